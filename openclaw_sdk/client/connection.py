"""Gateway connection with automatic recovery.

``ConnectionManager`` owns the WebSocket to the gateway: it performs the
challenge/response handshake, runs the receive loop, reconnects with a
fixed-table backoff and exposes the commands the gateway understands.

Features:
- Single reconnect owner; every failure path funnels into one task
- Handshake watchdog that drops connections stuck before ``hello-ok``
- Initial health/sessions/usage refresh after the handshake
- Optional periodic polling (health, sessions, usage)
- Observable events published on an ``EventBus``

Usage:
    from openclaw_sdk import ConnectionManager, ConnectionStateChanged

    manager = ConnectionManager(config)
    manager.bus.subscribe(ConnectionStateChanged, lambda e: print(e.state))

    await manager.connect()
    ...
    await manager.close()
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set, Union

from ..activity import ActivitySelector
from ..bus import ConnectionStateChanged, EventBus
from ..errors import ConnectionClosedError, NotConnectedError, TransportError
from ..events import Method, ProtocolCodec
from ..models import ActivityRecord, ChannelStatus, ConnectionState, Session, UsageSnapshot
from ..router import EventRouter
from ..sessions import SessionRegistry
from .backoff import BackoffSchedule
from .config import ClientConfig
from .scheduler import PollScheduler
from .transport import Connector, Transport, open_websocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Persistent, self-healing connection to the OpenClaw gateway.

    Connection state machine:

        DISCONNECTED --connect()--> CONNECTING --hello-ok--> CONNECTED
        CONNECTING/CONNECTED --transport failure--> ERROR --backoff--> CONNECTING
        CONNECTING/CONNECTED --remote close--> DISCONNECTED --backoff--> CONNECTING

    ``disconnect()`` stops reconnecting until the next ``connect()``;
    ``close()`` stops it for good.

    All state is mutated on the event loop. Properties return copies.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        connector: Optional[Connector] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize the manager.

        Args:
            config: Client configuration. Defaults to built-in defaults.
            connector: Coroutine function opening a transport for a URL.
                Defaults to a WebSocket connection.
            bus: Event bus to publish observable events on.
            clock: Monotonic clock used for activity debouncing.
            logger: Logger to use instead of the module logger.
        """
        self._config = config or ClientConfig()
        self._connector = connector or open_websocket
        self._logger = logger or logging.getLogger(__name__)
        self.bus = bus or EventBus(self._logger)

        self._registry = SessionRegistry(self._logger)
        self._selector = ActivitySelector(clock=clock, logger=self._logger)
        self._router = EventRouter(
            self._registry,
            self._selector,
            self.bus,
            on_challenge=self._on_challenge,
            on_hello_ok=self._on_hello_ok,
            on_sessions_invalidated=self._on_sessions_invalidated,
            logger=self._logger,
        )
        self._codec = ProtocolCodec(self._logger)
        self._backoff = BackoffSchedule(self._config.recovery.backoff_ms)

        # State management
        self._state = ConnectionState.DISCONNECTED
        self._stopped = True
        self._closed = False

        # Transport and its tasks
        self._transport: Optional[Transport] = None
        self._send_lock = asyncio.Lock()
        self._receive_task: Optional[asyncio.Task] = None
        self._handshake_task: Optional[asyncio.Task] = None

        # Reconnection and background work
        self._reconnect_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

        self._scheduler = PollScheduler(logger=self._logger)
        polling = self._config.polling
        self._scheduler.add_job("health", polling.health_interval, self._poll_health)
        self._scheduler.add_job("sessions", polling.sessions_interval, self._poll_sessions)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def sessions(self) -> List[Session]:
        return self._registry.snapshot()

    @property
    def usage(self) -> Optional[UsageSnapshot]:
        return self._router.usage

    @property
    def channels(self) -> List[ChannelStatus]:
        return self._router.channels

    @property
    def displayed_activity(self) -> Optional[ActivityRecord]:
        return self._selector.displayed

    @property
    def backoff_failures(self) -> int:
        """Consecutive failed attempts since the last successful handshake."""
        return self._backoff.failures

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self) -> bool:
        """Open the connection to the gateway.

        The handshake completes asynchronously; watch for
        ``ConnectionStateChanged`` to CONNECTED. A failed attempt is retried
        in the background unless recovery is disabled.

        Returns:
            True if the transport is open.

        Raises:
            ConnectionClosedError: If ``close()`` was called.
        """
        if self._closed:
            raise ConnectionClosedError()

        self._stopped = False
        if self._config.polling.enabled:
            self._scheduler.start()

        if self._transport is not None and self._transport.is_open:
            return True

        await self._cancel_reconnection()
        if await self._open():
            return True
        self._schedule_reconnect()
        return False

    async def disconnect(self) -> None:
        """Close the connection and stop reconnecting until ``connect()``."""
        self._stopped = True
        await self._shutdown()
        self._router.reset()
        self._transition_to(ConnectionState.DISCONNECTED)
        self._logger.info("Disconnected from gateway")

    async def close(self) -> None:
        """Permanently close the client.

        After calling close(), ``connect()`` raises ConnectionClosedError.
        """
        if self._closed:
            return
        self._closed = True
        await self.disconnect()

    # =========================================================================
    # Commands
    # =========================================================================

    async def check_health(self) -> bool:
        """Send a deep health check, reconnecting if the transport is gone.

        Returns:
            True if the request was sent.
        """
        transport = self._transport
        if transport is None or not transport.is_open:
            self._logger.debug("Health check: transport not open")
            self._schedule_reconnect()
            return False
        try:
            await self._send_request(Method.HEALTH, {"deep": True})
            return True
        except (NotConnectedError, TransportError) as e:
            self._logger.warning(f"Health check failed: {e}")
            await self._drop_transport(transport, e)
            return False

    async def send_chat_message(self, message: str) -> bool:
        """Send a chat message to the main agent.

        Raises:
            NotConnectedError: If the transport is not open.
            TransportError: If the message could not be written.
        """
        await self._send_request(Method.CHAT_SEND, {"message": message})
        self._logger.info(f"Sent chat message: {message[:100]}")
        return True

    async def request_sessions(self) -> bool:
        return await self._try_send(Method.SESSIONS_LIST)

    async def request_usage(self) -> bool:
        # Older gateways do not implement usage; failures stay at debug level.
        return await self._try_send(Method.USAGE, level=logging.DEBUG)

    async def start_channel(self, channel: str) -> bool:
        self._logger.info(f"Starting channel: {channel}")
        return await self._try_send(Method.CHANNEL_START, {"channel": channel})

    async def stop_channel(self, channel: str) -> bool:
        self._logger.info(f"Stopping channel: {channel}")
        return await self._try_send(Method.CHANNEL_STOP, {"channel": channel})

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send_request(
        self,
        method: Union[Method, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Serialize and write one request.

        Raises:
            NotConnectedError: If the transport is not open.
            TransportError: If the write failed.
        """
        transport = self._transport
        if transport is None or not transport.is_open:
            raise NotConnectedError()
        text = self._codec.encode_request(method, params)
        async with self._send_lock:
            await transport.send(text)
        self._logger.debug(f"Sent request: {getattr(method, 'value', method)}")

    async def _try_send(
        self,
        method: Method,
        params: Optional[Dict[str, Any]] = None,
        level: int = logging.WARNING,
    ) -> bool:
        try:
            await self._send_request(method, params)
            return True
        except NotConnectedError:
            self._logger.debug(f"Not connected, skipping {method.value}")
            return False
        except TransportError as e:
            self._logger.log(level, f"Failed to send {method.value}: {e}")
            return False

    # =========================================================================
    # Handshake
    # =========================================================================

    def _handshake_params(self) -> Dict[str, Any]:
        gateway = self._config.gateway
        return {
            "minProtocol": gateway.min_protocol,
            "maxProtocol": gateway.max_protocol,
            "client": {
                "id": gateway.client_id,
                "version": gateway.client_version,
                "platform": gateway.platform,
                "mode": gateway.mode,
                "displayName": gateway.display_name,
            },
            "role": gateway.role,
            "scopes": list(gateway.scopes),
            "caps": [],
            "commands": [],
            "permissions": {},
            "auth": {"token": gateway.token},
            "locale": gateway.locale,
            "userAgent": gateway.user_agent,
        }

    def _on_challenge(self, nonce: Optional[str]) -> None:
        self._spawn(self._send_handshake())

    async def _send_handshake(self) -> None:
        self._logger.info("Sending connect handshake")
        try:
            await self._send_request(Method.CONNECT, self._handshake_params())
        except (NotConnectedError, TransportError) as e:
            self._logger.warning(f"Failed to send handshake: {e}")

    def _on_hello_ok(self, payload: Dict[str, Any]) -> None:
        self._backoff.reset()
        self._cancel(self._handshake_task)
        self._handshake_task = None
        self._transition_to(ConnectionState.CONNECTED)
        self._logger.info("Connected to gateway")
        self._spawn(self._initial_refresh())

    async def _initial_refresh(self) -> None:
        await asyncio.sleep(self._config.recovery.settle_delay)
        if not self.is_connected:
            return
        await self.check_health()
        await self.request_sessions()
        await self.request_usage()

    def _on_sessions_invalidated(self) -> None:
        self._spawn(self.request_sessions())

    async def _handshake_watchdog(self, transport: Transport) -> None:
        await asyncio.sleep(self._config.recovery.handshake_timeout)
        if transport is self._transport and self._state != ConnectionState.CONNECTED:
            timeout = self._config.recovery.handshake_timeout
            self._logger.warning(f"Handshake not completed within {timeout:.1f}s")
            await self._drop_transport(transport, TransportError("Handshake timed out"))

    # =========================================================================
    # Transport lifecycle
    # =========================================================================

    async def _open(self) -> bool:
        """Open a fresh transport and start its receive loop."""
        await self._teardown_transport()
        self._transition_to(ConnectionState.CONNECTING)

        url = self._config.gateway.url
        self._logger.info(f"Connecting to gateway at {url}")
        try:
            transport = await self._connector(url)
        except (TransportError, OSError) as e:
            self._logger.error(f"Connection failed: {e}")
            self._transition_to(ConnectionState.ERROR)
            return False

        if self._stopped:
            await transport.close()
            return False

        self._transport = transport
        self._codec.reset()
        self._receive_task = asyncio.create_task(self._receive_loop(transport))
        self._handshake_task = asyncio.create_task(self._handshake_watchdog(transport))
        self._logger.debug("Transport open, waiting for challenge")
        return True

    async def _receive_loop(self, transport: Transport) -> None:
        """Read frames until the transport closes, then hand over to recovery."""
        error: Optional[Exception] = None
        try:
            while True:
                fragments = await transport.read_fragments()
                if fragments is None:
                    self._logger.info("Gateway closed the connection")
                    break
                for fragment in fragments:
                    self._codec.feed(fragment)
                self._router.dispatch(self._codec.end_message())
        except asyncio.CancelledError:
            raise
        except TransportError as e:
            self._logger.error(f"Connection lost: {e}")
            error = e
        except Exception as e:
            self._logger.exception("Receive loop failed")
            error = e

        await self._drop_transport(transport, error)

    async def _drop_transport(self, transport: Transport, error: Optional[Exception]) -> None:
        """Forget a failed transport and schedule a reconnect.

        Does nothing if ``transport`` has already been replaced.
        """
        if transport is not self._transport:
            return
        self._transport = None
        self._codec.reset()
        self._cancel(self._handshake_task)
        self._cancel(self._receive_task)
        self._handshake_task = None
        self._receive_task = None

        await transport.close()
        self._transition_to(ConnectionState.ERROR if error else ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    async def _teardown_transport(self) -> None:
        transport, self._transport = self._transport, None
        for task in (self._receive_task, self._handshake_task):
            await self._cancel_and_wait(task)
        self._receive_task = None
        self._handshake_task = None
        self._codec.reset()
        if transport is not None:
            await transport.close()

    async def _shutdown(self) -> None:
        await self._cancel_reconnection()
        await self._scheduler.stop()
        for task in list(self._background):
            await self._cancel_and_wait(task)
        await self._teardown_transport()

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _schedule_reconnect(self) -> None:
        """Start the reconnect task unless one is already pending."""
        if self._stopped or self._closed:
            return
        if not self._config.recovery.enabled:
            self._logger.debug("Automatic reconnection disabled")
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnection_loop())

    async def _cancel_reconnection(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        await self._cancel_and_wait(task)

    async def _reconnection_loop(self) -> None:
        while not self._stopped:
            delay = self._backoff.next_delay()
            self._logger.info(
                f"Reconnecting in {delay:.1f}s (attempt {self._backoff.failures})"
            )
            await asyncio.sleep(delay)
            if self._stopped:
                return
            if await self._open():
                return

    # =========================================================================
    # Polling
    # =========================================================================

    async def _poll_health(self) -> None:
        if self._state == ConnectionState.CONNECTING:
            return
        await self.check_health()

    async def _poll_sessions(self) -> None:
        if self._state != ConnectionState.CONNECTED:
            return
        await self.request_sessions()
        await self.request_usage()

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _transition_to(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._logger.debug(f"Connection state: {old_state.value} -> {new_state.value}")
        self.bus.publish(ConnectionStateChanged(state=new_state, previous=old_state))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    @staticmethod
    async def _cancel_and_wait(task: Optional[asyncio.Task]) -> None:
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


__all__ = [
    "ConnectionManager",
]
