"""Observable events published by the gateway client.

Consumers subscribe a handler per event type; no inheritance is required.

Usage:
    bus = EventBus()
    unsubscribe = bus.subscribe(SessionsChanged, lambda e: print(e.sessions))
    ...
    unsubscribe()
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type, TypeVar

from .models import (
    ActivityRecord,
    ChannelStatus,
    ConnectionState,
    NotificationEvent,
    Session,
    UsageSnapshot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionStateChanged:
    state: ConnectionState
    previous: ConnectionState


@dataclass(frozen=True)
class NotificationReceived:
    notification: NotificationEvent


@dataclass(frozen=True)
class ActivityChanged:
    """The displayed activity after processing ``source``.

    ``activity`` is None when no session has anything to show.
    """
    activity: Optional[ActivityRecord]
    source: ActivityRecord


@dataclass(frozen=True)
class ChannelHealthChanged:
    channels: Tuple[ChannelStatus, ...]


@dataclass(frozen=True)
class SessionsChanged:
    sessions: Tuple[Session, ...]


@dataclass(frozen=True)
class UsageChanged:
    usage: UsageSnapshot


E = TypeVar("E")


class EventBus:
    """Synchronous publish/subscribe dispatcher keyed by event class.

    Handlers run on the publisher's task. A failing handler is logged and
    does not prevent the remaining handlers from running.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[type, List[Callable]] = {}

    def subscribe(self, event_type: Type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler. Returns a callable that removes it."""
        self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: object) -> None:
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception as e:
                self._logger.warning(f"Error in {type(event).__name__} handler: {e}")

    def handler_count(self, event_type: type) -> int:
        return len(self._handlers.get(event_type, ()))


__all__ = [
    "ActivityChanged",
    "ChannelHealthChanged",
    "ConnectionStateChanged",
    "EventBus",
    "NotificationReceived",
    "SessionsChanged",
    "UsageChanged",
]
