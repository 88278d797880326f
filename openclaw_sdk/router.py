"""Dispatch of decoded gateway frames.

Responses are routed by the markers present in their payload (all of them,
not just the first). Events are routed by name; unknown names are ignored so
that newer gateways can add events without breaking older clients.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .activity import ActivitySelector, activity_from_agent_event
from .bus import (
    ActivityChanged,
    ChannelHealthChanged,
    EventBus,
    NotificationReceived,
    SessionsChanged,
    UsageChanged,
)
from .errors import ProtocolError
from .events import EventEnvelope, EventName, Message, ResponseEnvelope
from .models import ActivityRecord, ChannelStatus, UsageSnapshot
from .notifications import build_notification
from .sessions import SessionRegistry
from .status import parse_channel_health, parse_usage

logger = logging.getLogger(__name__)


HELLO_OK = "hello-ok"
UNKNOWN_SESSION = "unknown"

# Assistant chat messages at or above this length are not notifications.
MAX_CHAT_NOTIFICATION_LENGTH = 500


class EventRouter:
    """Routes decoded frames to the session, activity and status components.

    Callbacks let the owner react to protocol milestones without the router
    knowing about the transport:

    - ``on_challenge(nonce)``: a ``connect.challenge`` event arrived.
    - ``on_hello_ok(payload)``: the handshake was accepted.
    - ``on_sessions_invalidated()``: the session list should be re-fetched.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        selector: ActivitySelector,
        bus: EventBus,
        on_challenge: Optional[Callable[[Optional[str]], None]] = None,
        on_hello_ok: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_sessions_invalidated: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._registry = registry
        self._selector = selector
        self._bus = bus
        self._on_challenge = on_challenge
        self._on_hello_ok = on_hello_ok
        self._on_sessions_invalidated = on_sessions_invalidated
        self._logger = logger or logging.getLogger(__name__)

        self._usage: Optional[UsageSnapshot] = None
        self._channels: List[ChannelStatus] = []

        self._event_handlers: Dict[str, Callable[[EventEnvelope], None]] = {
            EventName.CONNECT_CHALLENGE.value: self._handle_challenge,
            EventName.AGENT.value: self._handle_agent,
            EventName.HEALTH.value: self._handle_health,
            EventName.CHAT.value: self._handle_chat,
            EventName.SESSION.value: self._handle_session,
        }

    # =========================================================================
    # Snapshots
    # =========================================================================

    @property
    def usage(self) -> Optional[UsageSnapshot]:
        return replace(self._usage) if self._usage else None

    @property
    def channels(self) -> List[ChannelStatus]:
        return [replace(c) for c in self._channels]

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, message: Optional[Message]) -> None:
        """Route one decoded frame. Never raises."""
        if message is None:
            return
        try:
            if isinstance(message, ResponseEnvelope):
                self.handle_response(message)
            elif isinstance(message, EventEnvelope):
                self.handle_event(message)
            else:
                self._logger.debug(f"Ignoring inbound {message.type.value} frame")
        except Exception:
            self._logger.exception("Message processing error")

    def handle_response(self, response: ResponseEnvelope) -> None:
        payload = response.payload

        if response.ok is False or response.error is not None:
            self._logger.warning(f"Gateway returned an error response: {response.error!r}")

        if payload.get("type") == HELLO_OK:
            self._logger.info("Handshake complete (hello-ok)")
            if self._on_hello_ok:
                self._on_hello_ok(payload)

        if "channels" in payload:
            self._apply_channels(payload["channels"])

        if "sessions" in payload:
            snapshot = self._registry.apply_payload(payload["sessions"])
            if snapshot is not None:
                self._bus.publish(SessionsChanged(sessions=tuple(snapshot)))

        if "usage" in payload:
            self._apply_usage(payload["usage"])

    def handle_event(self, event: EventEnvelope) -> None:
        handler = self._event_handlers.get(event.event)
        if handler is None:
            self._logger.debug(f"Ignoring unknown event: {event.event}")
            return
        handler(event)

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _handle_challenge(self, event: EventEnvelope) -> None:
        nonce = event.payload.get("nonce")
        nonce = nonce if isinstance(nonce, str) else None
        self._logger.info(f"Received challenge, nonce: {nonce}")
        if self._on_challenge:
            self._on_challenge(nonce)

    def _handle_agent(self, event: EventEnvelope) -> None:
        session_key = event.session_key or UNKNOWN_SESSION
        is_main = self._registry.is_main(session_key)

        activity = activity_from_agent_event(session_key, is_main, event.payload)
        if activity is not None:
            self._apply_activity(activity)

        content = event.payload.get("content")
        if isinstance(content, str) and content:
            self._notify(content)

    def _handle_health(self, event: EventEnvelope) -> None:
        if "channels" in event.payload:
            self._apply_channels(event.payload["channels"])

    def _handle_chat(self, event: EventEnvelope) -> None:
        payload = event.payload
        text = payload.get("text")
        if not isinstance(text, str) or not text:
            return
        if payload.get("role") != "assistant":
            return
        self._logger.info(f"Assistant response: {text[:100]}")
        if len(text) < MAX_CHAT_NOTIFICATION_LENGTH:
            self._notify(text)

    def _handle_session(self, event: EventEnvelope) -> None:
        self._logger.debug("Session event received, refreshing session list")
        if self._on_sessions_invalidated:
            self._on_sessions_invalidated()

    # =========================================================================
    # State updates
    # =========================================================================

    def _apply_activity(self, activity: ActivityRecord) -> None:
        self._logger.info(
            f"Agent activity: {activity.label} "
            f"({activity.kind.value}, session: {activity.session_key})"
        )
        displayed = self._selector.update(activity)
        self._bus.publish(ActivityChanged(activity=displayed, source=activity))

        if not activity.is_idle:
            current = activity.display_text
        elif activity.stream == "job":
            # A finished job clears the session's activity; tool results leave it
            current = None
        else:
            return
        snapshot = self._registry.touch(activity.session_key, activity.is_main, current)
        self._bus.publish(SessionsChanged(sessions=tuple(snapshot)))

    def _apply_channels(self, channels: Any) -> None:
        try:
            parsed = parse_channel_health(channels)
        except ProtocolError as e:
            self._logger.warning(f"Failed to parse channel health: {e}")
            return
        if not parsed:
            return
        self._channels = parsed
        summary = ", ".join(f"{c.name}={c.status}" for c in parsed)
        self._logger.info(f"Channel health: {summary}")
        self._bus.publish(ChannelHealthChanged(channels=tuple(replace(c) for c in parsed)))

    def _apply_usage(self, usage: Any) -> None:
        try:
            snapshot = parse_usage(usage)
        except ProtocolError as e:
            self._logger.warning(f"Failed to parse usage: {e}")
            return
        self._usage = snapshot
        self._bus.publish(UsageChanged(usage=replace(snapshot)))

    def _notify(self, text: str) -> None:
        self._bus.publish(NotificationReceived(notification=build_notification(text)))

    def reset(self) -> None:
        """Forget cached activity (e.g. after the connection dropped)."""
        self._selector.clear()


__all__ = [
    "EventRouter",
    "HELLO_OK",
    "MAX_CHAT_NOTIFICATION_LENGTH",
]
