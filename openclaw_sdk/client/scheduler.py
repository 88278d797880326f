"""Periodic polling driven by a single ticker task."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class PollJob:
    """A coroutine run every ``interval`` seconds."""
    name: str
    interval: float
    action: Callable[[], Awaitable[Any]]
    next_run: float = 0.0


class PollScheduler:
    """Runs registered jobs from one background task.

    Jobs run sequentially on the ticker task, each first after one full
    interval. A failing job is logged and keeps its schedule.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._jobs: List[PollJob] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def jobs(self) -> List[PollJob]:
        return list(self._jobs)

    def add_job(self, name: str, interval: float, action: Callable[[], Awaitable[Any]]) -> PollJob:
        if interval <= 0:
            raise ValueError(f"Poll interval for {name} must be positive")
        job = PollJob(name=name, interval=interval, action=action,
                      next_run=self._clock() + interval)
        self._jobs.append(job)
        return job

    def start(self) -> None:
        if self.is_running:
            return
        now = self._clock()
        for job in self._jobs:
            job.next_run = now + job.interval
        self._task = asyncio.create_task(self._run())
        self._logger.debug(f"Polling started ({len(self._jobs)} job(s))")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            self._logger.debug("Polling stopped")

    async def run_due(self) -> List[str]:
        """Run every job whose time has come; returns their names."""
        ran: List[str] = []
        for job in list(self._jobs):
            if self._clock() < job.next_run:
                continue
            job.next_run = self._clock() + job.interval
            try:
                await job.action()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._logger.warning(f"Poll job {job.name} failed: {e}")
            ran.append(job.name)
        return ran

    def _seconds_until_next(self) -> float:
        if not self._jobs:
            return 1.0
        return max(0.0, min(job.next_run for job in self._jobs) - self._clock())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._seconds_until_next())
            await self.run_due()


__all__ = [
    "PollJob",
    "PollScheduler",
]
