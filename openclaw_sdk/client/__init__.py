"""OpenClaw gateway client implementation."""

from openclaw_sdk.client.backoff import BackoffSchedule
from openclaw_sdk.client.config import (
    ClientConfig,
    GatewayConfig,
    PollingConfig,
    RecoveryConfig,
    load_client_config,
)
from openclaw_sdk.client.connection import ConnectionManager
from openclaw_sdk.client.transport import Transport, open_websocket, origin_for

__all__ = [
    "BackoffSchedule",
    "ClientConfig",
    "ConnectionManager",
    "GatewayConfig",
    "PollingConfig",
    "RecoveryConfig",
    "Transport",
    "load_client_config",
    "open_websocket",
    "origin_for",
]
