"""Tests for openclaw_sdk.router: routing of responses and events."""

from typing import Dict, List

from openclaw_sdk.activity import ActivitySelector
from openclaw_sdk.bus import (
    ActivityChanged,
    ChannelHealthChanged,
    EventBus,
    NotificationReceived,
    SessionsChanged,
    UsageChanged,
)
from openclaw_sdk.events import EventEnvelope, RequestEnvelope, ResponseEnvelope
from openclaw_sdk.router import EventRouter
from openclaw_sdk.sessions import SessionRegistry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class Recorder:
    """Collects everything the router publishes or calls back."""

    def __init__(self):
        self.bus = EventBus()
        self.events: Dict[type, List] = {}
        for event_type in (ActivityChanged, ChannelHealthChanged, NotificationReceived,
                           SessionsChanged, UsageChanged):
            self.events[event_type] = []
            self.bus.subscribe(event_type, self.events[event_type].append)
        self.challenges: List = []
        self.hello: List = []
        self.invalidations = 0

    def on_invalidated(self):
        self.invalidations += 1


def _make_router():
    recorder = Recorder()
    registry = SessionRegistry()
    router = EventRouter(
        registry,
        ActivitySelector(clock=lambda: 0.0),
        recorder.bus,
        on_challenge=recorder.challenges.append,
        on_hello_ok=recorder.hello.append,
        on_sessions_invalidated=recorder.on_invalidated,
    )
    return router, registry, recorder


def _event(name: str, payload: dict, session_key: str = None) -> EventEnvelope:
    return EventEnvelope(event=name, payload=payload, session_key=session_key)


# ---------------------------------------------------------------------------
# Tests: responses
# ---------------------------------------------------------------------------

class TestResponses:

    def test_hello_ok(self):
        router, _, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={"type": "hello-ok", "protocol": 3}))
        assert recorder.hello == [{"type": "hello-ok", "protocol": 3}]

    def test_sessions_payload(self):
        router, registry, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={"sessions": {"agent:main:main": {"status": "active"}}}))
        published = recorder.events[SessionsChanged]
        assert len(published) == 1
        assert published[0].sessions[0].is_main
        assert "agent:main:main" in registry

    def test_all_markers_processed(self):
        router, _, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={
            "type": "hello-ok",
            "channels": {"telegram": {"configured": True}},
            "sessions": [{"key": "agent:a"}],
            "usage": {"totalTokens": 10},
        }))
        assert len(recorder.hello) == 1
        assert len(recorder.events[ChannelHealthChanged]) == 1
        assert len(recorder.events[SessionsChanged]) == 1
        assert recorder.events[UsageChanged][0].usage.total_tokens == 10
        assert router.usage.total_tokens == 10
        assert router.channels[0].status == "ready"

    def test_empty_channels_not_published(self):
        router, _, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={"channels": {}}))
        assert recorder.events[ChannelHealthChanged] == []

    def test_malformed_usage_dropped(self, caplog):
        router, _, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={"usage": "lots"}))
        assert recorder.events[UsageChanged] == []
        assert router.usage is None
        assert "Failed to parse usage" in caplog.text

    def test_infinite_usage_count_reads_as_zero(self, caplog):
        router, _, recorder = _make_router()
        router.dispatch(ResponseEnvelope(payload={"usage": {"inputTokens": float("inf")}}))
        assert recorder.events[UsageChanged][0].usage.input_tokens == 0
        assert router.usage.input_tokens == 0
        assert "Message processing error" not in caplog.text

    def test_error_response_logged(self, caplog):
        router, _, _ = _make_router()
        router.dispatch(ResponseEnvelope(payload={}, ok=False, error={"message": "denied"}))
        assert "denied" in caplog.text

    def test_requests_and_none_ignored(self):
        router, _, recorder = _make_router()
        router.dispatch(None)
        router.dispatch(RequestEnvelope(method="health"))
        assert all(not published for published in recorder.events.values())


# ---------------------------------------------------------------------------
# Tests: events
# ---------------------------------------------------------------------------

class TestEvents:

    def test_challenge(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("connect.challenge", {"nonce": "abc"}))
        assert recorder.challenges == ["abc"]

    def test_agent_tool_activity(self):
        router, registry, recorder = _make_router()
        payload = {"stream": "tool", "data": {"phase": "start", "name": "exec", "args": {"command": "make"}}}
        router.dispatch(_event("agent", payload, session_key="agent:sub1"))

        activity = recorder.events[ActivityChanged][0].activity
        assert activity.session_key == "agent:sub1"
        assert activity.label == "make"
        assert registry.get("agent:sub1").current_activity == "💻 make"
        assert len(recorder.events[SessionsChanged]) == 1

    def test_tool_result_does_not_touch_sessions(self):
        router, registry, recorder = _make_router()
        router.dispatch(_event(
            "agent",
            {"stream": "tool", "data": {"phase": "result", "name": "exec"}},
            session_key="main",
        ))
        assert recorder.events[ActivityChanged][0].activity is None
        assert recorder.events[SessionsChanged] == []
        assert "main" not in registry

    def test_finished_job_clears_session_activity(self):
        router, registry, recorder = _make_router()
        key = "agent:main:cron1"
        router.dispatch(_event("agent", {"stream": "job", "data": {"state": "running"}}, session_key=key))
        assert registry.get(key).current_activity == "⚡ Job: running"
        first_seen = registry.get(key).last_seen

        router.dispatch(_event("agent", {"stream": "job", "data": {"state": "done"}}, session_key=key))
        session = registry.get(key)
        assert session.current_activity is None
        assert session.last_seen >= first_seen
        assert len(recorder.events[SessionsChanged]) == 2
        assert recorder.events[SessionsChanged][-1].sessions[0].current_activity is None

    def test_errored_job_without_session_inserts_idle_entry(self):
        router, registry, recorder = _make_router()
        router.dispatch(_event("agent", {"stream": "job", "data": {"state": "error"}}, session_key="main"))
        assert recorder.events[ActivityChanged][0].activity is None
        assert registry.get("main").current_activity is None
        assert len(recorder.events[SessionsChanged]) == 1

    def test_agent_main_flag_from_registry(self):
        router, registry, recorder = _make_router()
        registry.apply_payload([{"key": "agent:boss", "isMain": True}])
        router.dispatch(_event("agent", {"stream": "job", "data": {"state": "started"}}, session_key="agent:boss"))
        assert recorder.events[ActivityChanged][0].source.is_main

    def test_agent_without_session_key(self):
        router, registry, _ = _make_router()
        router.dispatch(_event("agent", {"stream": "job", "data": {"state": "started"}}))
        assert "unknown" in registry

    def test_agent_content_notifies(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("agent", {"content": "Reminder: water plants"}))
        notification = recorder.events[NotificationReceived][0].notification
        assert notification.category == "reminder"

    def test_health_event(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("health", {"channels": {"whatsapp": {"lastError": "logged out"}}}))
        assert recorder.events[ChannelHealthChanged][0].channels[0].status == "error"

    def test_assistant_chat_notifies(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("chat", {"role": "assistant", "text": "Meeting moved to 4pm"}))
        assert recorder.events[NotificationReceived][0].notification.category == "calendar"

    def test_user_chat_ignored(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("chat", {"role": "user", "text": "hello"}))
        assert recorder.events[NotificationReceived] == []

    def test_long_chat_ignored(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("chat", {"role": "assistant", "text": "x" * 500}))
        assert recorder.events[NotificationReceived] == []

    def test_session_event_invalidates(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("session", {"key": "agent:new"}))
        assert recorder.invalidations == 1

    def test_unknown_event_ignored(self):
        router, _, recorder = _make_router()
        router.dispatch(_event("presence", {"who": "me"}))
        assert all(not published for published in recorder.events.values())

    def test_callback_failure_contained(self, caplog):
        recorder = Recorder()

        def broken(nonce):
            raise RuntimeError("handshake exploded")

        router = EventRouter(SessionRegistry(), ActivitySelector(), recorder.bus, on_challenge=broken)
        router.dispatch(_event("connect.challenge", {"nonce": "n"}))
        assert "Message processing error" in caplog.text
