"""Tests for openclaw_sdk.client.scheduler."""

import asyncio

import pytest

from openclaw_sdk.client.scheduler import PollScheduler


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRunDue:
    """Job timing, driven by a fake clock."""

    @pytest.mark.asyncio
    async def test_jobs_run_after_their_interval(self):
        clock = FakeClock()
        scheduler = PollScheduler(clock=clock)
        calls = []

        async def health():
            calls.append("health")

        async def sessions():
            calls.append("sessions")

        scheduler.add_job("health", 30, health)
        scheduler.add_job("sessions", 60, sessions)

        assert await scheduler.run_due() == []
        clock.now = 30
        assert await scheduler.run_due() == ["health"]
        clock.now = 60
        assert await scheduler.run_due() == ["health", "sessions"]
        assert calls == ["health", "health", "sessions"]

    @pytest.mark.asyncio
    async def test_failing_job_keeps_schedule(self, caplog):
        clock = FakeClock()
        scheduler = PollScheduler(clock=clock)

        async def broken():
            raise RuntimeError("poll exploded")

        scheduler.add_job("broken", 10, broken)
        clock.now = 10
        assert await scheduler.run_due() == ["broken"]
        assert "poll exploded" in caplog.text
        clock.now = 20
        assert await scheduler.run_due() == ["broken"]

    def test_interval_must_be_positive(self):
        scheduler = PollScheduler()

        async def noop():
            pass

        with pytest.raises(ValueError):
            scheduler.add_job("noop", 0, noop)


class TestTicker:

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = PollScheduler()
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler.add_job("job", 0.01, job)
        scheduler.start()
        assert scheduler.is_running
        await asyncio.wait_for(ran.wait(), timeout=1.0)
        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self):
        await PollScheduler().stop()
