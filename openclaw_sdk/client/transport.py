"""WebSocket transport for the gateway connection.

The connection manager talks to the gateway through the small ``Transport``
interface below; ``open_websocket`` is the production connector built on
the ``websockets`` asyncio client. Tests inject an in-memory transport
through the same seam.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Union
from urllib.parse import urlsplit

import websockets
from websockets import ClientConnection
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    WebSocketException,
)
from websockets.protocol import State

from ..errors import TransportError

logger = logging.getLogger(__name__)


KEEPALIVE_INTERVAL = 30.0
OPEN_TIMEOUT = 10.0

Fragment = Union[str, bytes]


class Transport(Protocol):
    """A bidirectional message channel to the gateway."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, text: str) -> None:
        """Send one text message. Raises TransportError on failure."""
        ...

    async def read_fragments(self) -> Optional[List[Fragment]]:
        """Fragments of the next inbound message.

        Returns None once the peer closed the connection normally; raises
        TransportError if it was lost abnormally.
        """
        ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


def origin_for(url: str) -> str:
    """HTTP origin matching a WebSocket URL (``wss://h:1/p`` -> ``https://h:1``)."""
    parts = urlsplit(url)
    scheme = {"ws": "http", "wss": "https"}.get(parts.scheme, parts.scheme)
    return f"{scheme}://{parts.netloc}"


class WebSocketTransport:
    """``Transport`` backed by a ``websockets`` client connection."""

    def __init__(self, websocket: ClientConnection):
        self._ws = websocket

    @property
    def is_open(self) -> bool:
        return self._ws.state is State.OPEN

    async def send(self, text: str) -> None:
        try:
            await self._ws.send(text)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(f"Send failed: {e}") from e

    async def read_fragments(self) -> Optional[List[Fragment]]:
        try:
            return [fragment async for fragment in self._ws.recv_streaming()]
        except ConnectionClosedOK:
            return None
        except ConnectionClosed as e:
            raise TransportError(f"Connection lost: {e}") from e
        except OSError as e:
            raise TransportError(f"Receive failed: {e}") from e

    async def close(self) -> None:
        try:
            await self._ws.close()
        except (WebSocketException, OSError) as e:
            logger.debug(f"Error closing WebSocket: {e}")


async def open_websocket(url: str) -> WebSocketTransport:
    """Open a WebSocket to the gateway.

    The handshake carries an ``Origin`` header derived from the URL, and
    keepalive pings are sent every 30 seconds.

    Raises:
        TransportError: If the connection cannot be established.
    """
    headers = {"Origin": origin_for(url)}
    try:
        websocket = await websockets.connect(
            url,
            additional_headers=headers,
            ping_interval=KEEPALIVE_INTERVAL,
            open_timeout=OPEN_TIMEOUT,
            max_size=None,
        )
    except (WebSocketException, OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"Failed to connect to {url}: {e}") from e
    logger.debug(f"WebSocket open to {url} (origin {headers['Origin']})")
    return WebSocketTransport(websocket)


__all__ = [
    "Connector",
    "KEEPALIVE_INTERVAL",
    "Transport",
    "WebSocketTransport",
    "open_websocket",
    "origin_for",
]
