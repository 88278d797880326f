"""OpenClaw SDK - asyncio client for the OpenClaw gateway.

Usage:
    from openclaw_sdk import ConnectionManager, SessionsChanged, load_client_config

    manager = ConnectionManager(load_client_config(Path.cwd()))
    manager.bus.subscribe(SessionsChanged, lambda e: print(len(e.sessions)))
    await manager.connect()
"""

from openclaw_sdk.activity import ActivitySelector, shorten_path, truncate_label
from openclaw_sdk.bus import (
    ActivityChanged,
    ChannelHealthChanged,
    ConnectionStateChanged,
    EventBus,
    NotificationReceived,
    SessionsChanged,
    UsageChanged,
)
from openclaw_sdk.client import (
    ClientConfig,
    ConnectionManager,
    RecoveryConfig,
    load_client_config,
)
from openclaw_sdk.errors import (
    ConnectionClosedError,
    GatewayError,
    NotConnectedError,
    ProtocolError,
    TransportError,
)
from openclaw_sdk.events import ProtocolCodec, deserialize_message, make_request
from openclaw_sdk.models import (
    ActivityKind,
    ActivityRecord,
    ChannelStatus,
    ConnectionState,
    NotificationEvent,
    Session,
    UsageSnapshot,
)
from openclaw_sdk.notifications import NotificationCategory, classify_notification
from openclaw_sdk.sessions import SessionRegistry

__all__ = [
    # Client
    "ClientConfig",
    "ConnectionManager",
    "RecoveryConfig",
    "load_client_config",
    # Observable events
    "ActivityChanged",
    "ChannelHealthChanged",
    "ConnectionStateChanged",
    "EventBus",
    "NotificationReceived",
    "SessionsChanged",
    "UsageChanged",
    # Errors
    "ConnectionClosedError",
    "GatewayError",
    "NotConnectedError",
    "ProtocolError",
    "TransportError",
    # Protocol
    "ProtocolCodec",
    "deserialize_message",
    "make_request",
    # Model
    "ActivityKind",
    "ActivityRecord",
    "ChannelStatus",
    "ConnectionState",
    "NotificationEvent",
    "Session",
    "UsageSnapshot",
    # Components
    "ActivitySelector",
    "NotificationCategory",
    "SessionRegistry",
    "classify_notification",
    "shorten_path",
    "truncate_label",
]
