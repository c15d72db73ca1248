"""Real-time connection management.

This module owns the one live Socket.IO connection of an authenticated
session. It negotiates the transport, retries a failed handshake within a
fixed budget, tracks the connection state and room membership, and forwards
every server message to a single listener (the SessionCoordinator).

Features:
- Token-authenticated handshake with websocket/polling transport fallback
- Fixed-delay, bounded retry of the initial handshake
- Transport-level reconnection after a drop, with the same budget
- Room membership cleared synchronously on every disconnect
- Events from a torn-down client are ignored, even if already in flight

Usage:
    manager = ConnectionManager(config.server, config.reconnect, on_event=handle)
    await manager.connect(token)
    await manager.room.join_room(42)
    ...
    await manager.teardown()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import socketio
from socketio import exceptions as sio_exceptions

from .config import ReconnectConfig, ServerConfig
from .events import ClientMessage, ServerEvent, error_message
from .rooms import RoomSession


logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle state of a session's connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORED = "errored"


# Listener for every server message after the manager has applied it
TransportListener = Callable[[ServerEvent, Any], Optional[Awaitable[None]]]

# Builds a fresh client per connection
ClientFactory = Callable[[ReconnectConfig], Any]


def create_socketio_client(reconnect: ReconnectConfig) -> socketio.AsyncClient:
    """Create a Socket.IO client with a fixed-delay reconnection budget."""
    return socketio.AsyncClient(
        reconnection=True,
        reconnection_attempts=reconnect.attempts,
        reconnection_delay=reconnect.delay,
        reconnection_delay_max=reconnect.delay,
        randomization_factor=0,
        logger=False,
        engineio_logger=False,
    )


class ConnectionManager:
    """Manager for one token-authenticated real-time connection.

    Only this class touches the transport client. Other components react to
    forwarded events or go through ``emit`` and the RoomSession.

    At most one client is live at a time: ``connect`` tears down any
    existing client before opening a new one, and ``teardown`` detaches the
    client before closing it so nothing it delivers afterwards is applied.
    """

    def __init__(
        self,
        server: Optional[ServerConfig] = None,
        reconnect: Optional[ReconnectConfig] = None,
        on_event: Optional[TransportListener] = None,
        client_factory: ClientFactory = create_socketio_client,
    ):
        """Initialize the connection manager.

        Args:
            server: Endpoint and transport settings.
            reconnect: Retry budget and handshake timeout.
            on_event: Called with every server message after local state has
                been updated.
            client_factory: Builds the transport client. Tests pass a fake.
        """
        self._server = server or ServerConfig()
        self._reconnect = reconnect or ReconnectConfig()
        self._on_event = on_event
        self._client_factory = client_factory

        self._client: Optional[Any] = None
        self._token: Optional[str] = None

        self.state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self.room = RoomSession(self)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self.state == ConnectionState.CONNECTED

    @property
    def has_client(self) -> bool:
        """Whether a transport client is currently attached."""
        return self._client is not None

    @property
    def sid(self) -> Optional[str]:
        if self._client is None:
            return None
        return getattr(self._client, "sid", None)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, token: Optional[str]) -> bool:
        """Open a connection authenticated with ``token``.

        Does nothing when the token is empty. Failures are recorded in
        ``last_error`` and never raised.

        Returns:
            True once the handshake succeeded, False otherwise.
        """
        if not token:
            logger.debug("No token, not connecting")
            return False

        if self._client is not None:
            await self.teardown()

        client = self._client_factory(self._reconnect)
        self._client = client
        self._token = token
        self._bind(client)
        self.state = ConnectionState.CONNECTING

        attempts = max(1, self._reconnect.attempts)
        timeout = self._reconnect.handshake_timeout

        for attempt in range(1, attempts + 1):
            self.state = ConnectionState.CONNECTING
            logger.info(f"Connecting to {self._server.url} (attempt {attempt}/{attempts})")
            try:
                await asyncio.wait_for(
                    client.connect(
                        self._server.url,
                        auth={"token": token},
                        transports=list(self._server.transports),
                        socketio_path=self._server.socketio_path,
                        wait_timeout=timeout,
                    ),
                    timeout=timeout + 1,
                )
            except asyncio.TimeoutError:
                message = f"Connection handshake timed out after {timeout:g}s"
                await self._close_quietly(client, handshake_pending=True)
            except sio_exceptions.ConnectionError as e:
                message = str(e) or "Connection failed"
            else:
                if client is not self._client:
                    return False
                self._mark_connected()
                return True

            if client is not self._client:
                # Torn down while the handshake was in flight
                return False

            self.last_error = message
            self.state = ConnectionState.ERRORED
            logger.warning(f"Connection attempt {attempt}/{attempts} failed: {message}")

            if attempt < attempts:
                await asyncio.sleep(self._reconnect.delay)
                if client is not self._client:
                    return False

        logger.error(f"Giving up after {attempts} connection attempts")
        return False

    async def teardown(self) -> None:
        """Close the connection and forget the token.

        Safe to call repeatedly and on any exit path.
        """
        client = self._client
        self._client = None
        self._token = None
        self.room.clear()
        self.state = ConnectionState.DISCONNECTED

        if client is None:
            return

        await self._close_quietly(client)
        logger.info("Connection closed")

    async def __aenter__(self) -> "ConnectionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.teardown()

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def emit(self, message: ClientMessage, data: Any = None) -> bool:
        """Send a client message over the live connection.

        Returns:
            True if the message was handed to the transport.
        """
        client = self._client
        if client is None or self.state != ConnectionState.CONNECTED:
            return False

        try:
            if data is None:
                await client.emit(message.value)
            else:
                await client.emit(message.value, data)
        except sio_exceptions.SocketIOError as e:
            logger.warning(f"Failed to send {message.value}: {e}")
            return False
        return True

    def record_error(self, message: str) -> None:
        """Store a protocol error without changing connection state."""
        self.last_error = message

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    def _bind(self, client: Any) -> None:
        """Register a handler on ``client`` for every server message."""
        for server_event in ServerEvent:
            client.on(server_event.value, self._make_handler(client, server_event))

    def _make_handler(self, client: Any, server_event: ServerEvent) -> Callable[..., Awaitable[None]]:
        async def handler(*args: Any) -> None:
            if client is not self._client:
                logger.debug(f"Ignoring {server_event.value} from a closed connection")
                return
            payload = args[0] if args else None
            await self.handle_event(server_event, payload)

        return handler

    async def handle_event(self, server_event: ServerEvent, payload: Any = None) -> None:
        """Apply a server message to local state, then forward it.

        Lifecycle transitions happen here, before any listener runs, so the
        listener always observes the post-event state.
        """
        if server_event == ServerEvent.CONNECT:
            self._mark_connected()
        elif server_event == ServerEvent.DISCONNECT:
            self.state = ConnectionState.DISCONNECTED
            self.room.clear()
            logger.info(f"Disconnected: {payload or 'no reason given'}")
        elif server_event == ServerEvent.CONNECT_ERROR:
            self.last_error = error_message(payload)
            self.state = ConnectionState.ERRORED
            logger.warning(f"Connection error: {self.last_error}")
        elif server_event == ServerEvent.JOINED_PROJECT:
            self.room.on_joined(payload)
        elif server_event == ServerEvent.LEFT_PROJECT:
            self.room.on_left(payload)

        if self._on_event is None:
            return

        try:
            result = self._on_event(server_event, payload)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception(f"Listener failed on {server_event.value}")

    def _mark_connected(self) -> None:
        if self.state != ConnectionState.CONNECTED:
            logger.info(f"Connected (sid={self.sid})")
        self.state = ConnectionState.CONNECTED
        self.last_error = None

    async def _close_quietly(self, client: Any, handshake_pending: bool = False) -> None:
        try:
            if handshake_pending:
                # No reconnect loop exists yet, drop the half-open session
                await client.disconnect()
            else:
                # shutdown() also aborts a reconnect loop already in progress
                await client.shutdown()
        except Exception as e:
            logger.debug(f"Error closing connection: {e}")
