"""Error taxonomy for the gateway client.

Transport failures trigger reconnection, protocol failures drop a single
frame, and application failures are surfaced to the caller only.
"""


class GatewayError(Exception):
    """Base class for all gateway client errors."""
    pass


class TransportError(GatewayError):
    """The WebSocket could not be opened, written to, or read from."""
    pass


class ProtocolError(GatewayError):
    """An inbound frame could not be decoded into a protocol message."""
    pass


class NotConnectedError(GatewayError):
    """Raised when a command is issued while the transport is not open."""

    def __init__(self, message: str = "Gateway connection is not open"):
        super().__init__(message)


class ConnectionClosedError(GatewayError):
    """Raised when the client has been permanently closed."""

    def __init__(self, message: str = "Gateway client is closed"):
        super().__init__(message)


__all__ = [
    "ConnectionClosedError",
    "GatewayError",
    "NotConnectedError",
    "ProtocolError",
    "TransportError",
]
