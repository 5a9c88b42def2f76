"""Lifecycle of the single persistent connection to the lobby server."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Set

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError, SocketIOError

import config
from protocol import (
    CONNECT, DISCONNECT, INVALID_LOBBY, INVALID_NAME, JOIN_LOBBY, UPDATE,
    DisconnectKind, JoinLobby, classify_disconnect, encode,
)

logger = logging.getLogger(__name__)

TRANSPORT_POLL_SECONDS = 0.05

_socket: Optional[socketio.AsyncClient] = None


def get_socket() -> socketio.AsyncClient:
    """Process-wide socket, created on first use."""
    global _socket
    if _socket is None:
        _socket = socketio.AsyncClient(
            reconnection=True,
            reconnection_delay=config.RECONNECTION_DELAY_SECONDS,
        )
    return _socket


class ConnectionListener(Protocol):
    async def on_update(self, data) -> None: ...

    async def on_invalid_name(self) -> None: ...

    async def on_invalid_lobby(self) -> None: ...

    async def on_connection_change(self) -> None: ...


@dataclass
class ConnectionLifecycle:
    connected: bool = False
    reconnecting: bool = False


class ConnectionManager:
    """Owns open/close of the socket for one mounted view.

    Every time the socket connects, ``join-lobby`` is (re)sent with the
    identity returned by ``join_request``. A first connect is a join, any
    later one is a replay so the server re-seats the same participant.
    """

    EVENTS = (CONNECT, DISCONNECT, UPDATE, INVALID_NAME, INVALID_LOBBY)

    def __init__(self, sio, url: str, join_request: Callable[[], JoinLobby],
                 listener: ConnectionListener):
        self.sio = sio
        self.url = url
        self.join_request = join_request
        self.listener = listener
        self.lifecycle = ConnectionLifecycle()
        self.mounted = False
        self._has_connected = False
        self._tasks: Set[asyncio.Task] = set()

    def _register_handlers(self):
        self.sio.on(CONNECT, self._on_connect)
        self.sio.on(DISCONNECT, self._on_disconnect)
        self.sio.on(UPDATE, self._on_update)
        self.sio.on(INVALID_NAME, self._on_invalid_name)
        self.sio.on(INVALID_LOBBY, self._on_invalid_lobby)

    def _discard_handlers(self):
        handlers = self.sio.handlers.get("/", {})
        for event in self.EVENTS:
            handlers.pop(event, None)

    async def mount(self):
        if self.mounted:
            return
        self.mounted = True
        self._register_handlers()
        logger.info("Opening connection to %s", self.url)
        await self.sio.connect(self.url)

    async def unmount(self):
        if not self.mounted:
            return
        # Flip first so anything still in flight is ignored.
        self.mounted = False
        self._discard_handlers()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.lifecycle = ConnectionLifecycle()
        self._has_connected = False
        logger.info("Closing connection to %s", self.url)
        # disconnect() alone leaves a running reconnect loop behind.
        await self.sio.shutdown()

    async def emit(self, event: str, payload: Optional[dict] = None):
        if not self.mounted:
            logger.warning("Not sending %s: view is not mounted", event)
            return
        try:
            if payload is None:
                await self.sio.emit(event)
            else:
                await self.sio.emit(event, payload)
        except SocketIOError as exc:
            logger.warning("Could not send %s: %s", event, exc)

    def emit_later(self, delay: float, event: str, payload: Optional[dict] = None):
        """Send ``event`` after ``delay`` seconds unless the view unmounts first."""
        async def _delayed():
            await asyncio.sleep(delay)
            await self.emit(event, payload)

        self._spawn(_delayed())

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- inbound ---

    async def _on_connect(self):
        if not self.mounted:
            return
        replay = self._has_connected
        self._has_connected = True
        self.lifecycle.connected = True
        if replay:
            logger.info("Reconnected to %s, replaying join", self.url)
        await self.emit(JOIN_LOBBY, encode(self.join_request()))

    async def _on_disconnect(self, reason=None):
        if not self.mounted:
            return
        kind = classify_disconnect(reason)
        self.lifecycle.connected = False
        if kind == DisconnectKind.CLIENT:
            return
        logger.warning("Connection lost (%s)", reason or "unknown reason")
        self.lifecycle.reconnecting = True
        await self.listener.on_connection_change()
        if kind == DisconnectKind.SERVER:
            # The transport does not retry a server-initiated close.
            self._spawn(self._reopen())

    def _transport_closed(self) -> bool:
        return not self.sio.connected and self.sio.eio.state == "disconnected"

    async def _reopen(self):
        # The disconnect handler runs before the transport is torn down, and
        # connect() refuses a client that is still disconnecting.
        while self.mounted:
            while self.mounted and not self._transport_closed():
                await asyncio.sleep(TRANSPORT_POLL_SECONDS)
            if not self.mounted:
                return
            try:
                await self.sio.connect(self.url)
                return
            except (SocketConnectionError, ValueError) as exc:
                logger.warning("Reconnect to %s failed: %s", self.url, exc)
            await asyncio.sleep(config.RECONNECTION_DELAY_SECONDS)

    def mark_synced(self):
        """Called once an inbound snapshot has been accepted."""
        self.lifecycle.reconnecting = False

    async def _on_update(self, data=None):
        if not self.mounted:
            return
        await self.listener.on_update(data)

    async def _on_invalid_name(self, *args):
        if not self.mounted:
            return
        await self.listener.on_invalid_name()

    async def _on_invalid_lobby(self, *args):
        if not self.mounted:
            return
        await self.listener.on_invalid_lobby()
