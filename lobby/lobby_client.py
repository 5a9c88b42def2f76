"""The mounted lobby view: wires identity, connection and session together."""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol

import config
from catalog import ActivityCatalog
from connection_manager import ConnectionManager, get_socket
from identity_store import NAME_KEY, IdentityStore, resolve_join
from protocol import (
    GAME_EXIT, GAME_SELECT, GAME_START, HOST_GAME_LOADED, NAME,
    GameSelect, NamePayload, ProtocolError, encode, parse_snapshot,
)
from session import (
    INITIAL_STATE, LobbyView, Phase, Reset, SessionState, SnapshotReceived,
    build_view, reduce,
)

logger = logging.getLogger(__name__)

NAME_TAKEN_NOTICE = "Name already in use"
BAD_UPDATE_NOTICE = "Received an invalid lobby update"


@dataclass(frozen=True)
class Intents:
    submit_name: Callable[[str], Awaitable[None]]
    reset_name: Callable[[], Awaitable[None]]
    select_activity: Callable[[str], Awaitable[None]]
    start_game: Callable[[], Awaitable[None]]
    exit_game: Callable[[], Awaitable[None]]
    notify_host_ready: Callable[[], Awaitable[None]]


class PhaseRenderer(Protocol):
    def render(self, view: LobbyView, intents: Intents) -> None: ...

    def show_notice(self, text: str) -> None: ...

    def navigate(self, url: str) -> None: ...


class LobbyClient:
    """One participant's view of one room.

    State only changes from inbound server messages; the intent methods just
    send and return, and the next ``update`` carries the outcome.
    """

    def __init__(self, room_code: str, renderer: PhaseRenderer, store: IdentityStore,
                 catalog: Optional[ActivityCatalog] = None, sio=None,
                 url: Optional[str] = None):
        self.room_code = room_code
        self.renderer = renderer
        self.store = store
        self.catalog = catalog or ActivityCatalog()
        self.state: SessionState = INITIAL_STATE
        self.left = False
        # (submitted name, name stored before it) until the server answers
        self._pending_name: Optional[tuple] = None
        self.connection = ConnectionManager(
            sio if sio is not None else get_socket(),
            url or config.SERVER_URL,
            self._join_request,
            self,
        )
        self.intents = Intents(
            submit_name=self.submit_name,
            reset_name=self.reset_name,
            select_activity=self.select_activity,
            start_game=self.start_game,
            exit_game=self.exit_game,
            notify_host_ready=self.notify_host_ready,
        )

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def view(self) -> LobbyView:
        return build_view(
            self.state,
            self.room_code,
            reconnecting=self.connection.lifecycle.reconnecting,
            suggested_name=self.store.load().display_name,
            catalog=self.catalog,
        )

    def _render(self):
        self.renderer.render(self.view, self.intents)

    def _join_request(self):
        return resolve_join(self.store, self.room_code)

    # --- lifecycle ---

    async def mount(self):
        if self.left:
            logger.warning("Room %s was left, not mounting again", self.room_code)
            return
        self.state = INITIAL_STATE
        self._render()
        await self.connection.mount()

    async def unmount(self):
        self.state = reduce(self.state, Reset())
        self._pending_name = None
        await self.connection.unmount()

    # --- inbound ---

    async def on_update(self, data):
        try:
            snapshot = parse_snapshot(data)
        except ProtocolError:
            logger.exception("Discarding malformed update for room %s", self.room_code)
            self.renderer.show_notice(BAD_UPDATE_NOTICE)
            return
        self.state = reduce(self.state, SnapshotReceived(snapshot))
        self.connection.mark_synced()
        me = snapshot.me
        if isinstance(me.id, int) and not isinstance(me.id, bool):
            self.store.remember_seat(self.room_code, me.id)
        if me.name:
            self.store.remember_name(me.name)
            if self._pending_name and self._pending_name[0] == me.name:
                self._pending_name = None
        self._render()

    async def on_invalid_name(self):
        if self._pending_name is not None:
            rejected, previous = self._pending_name
            self._pending_name = None
            self.store.set(NAME_KEY, previous)
            logger.info("Name '%s' rejected in room %s", rejected, self.room_code)
        self.renderer.show_notice(NAME_TAKEN_NOTICE)

    async def on_invalid_lobby(self):
        logger.warning("Room %s is unknown or expired, leaving", self.room_code)
        self.left = True
        await self.unmount()
        self.renderer.navigate(f"{config.JOIN_PATH}?invalid={self.room_code}")

    async def on_connection_change(self):
        self._render()

    # --- intents ---

    async def _send(self, event: str, payload: Optional[dict] = None):
        if self.left:
            logger.warning("Room %s was left, dropping %s", self.room_code, event)
            return
        await self.connection.emit(event, payload)

    async def submit_name(self, name: str):
        name = name.strip()
        if not name:
            await self.reset_name()
            return
        if not self.left:
            # Remembered for next visit even before the server accepts it;
            # rolled back if the server rejects it.
            self._pending_name = (name, self.store.get(NAME_KEY))
            self.store.remember_name(name)
        await self._send(NAME, encode(NamePayload(name=name)))

    async def reset_name(self):
        """Give up the current name and go back to name entry."""
        await self._send(NAME, encode(NamePayload(name="")))

    async def select_activity(self, activity_id: str):
        if self.catalog.game_list and self.catalog.get(activity_id) is None:
            logger.warning("Unknown activity %s selected", activity_id)
        await self._send(GAME_SELECT, encode(GameSelect(activity_id=activity_id)))

    async def start_game(self):
        view = self.view
        logger.info("Starting %s in room %s with %d players",
                    view.selected_activity_id, self.room_code, len(view.participant_list))
        await self._send(GAME_START)

    async def exit_game(self):
        await self._send(GAME_EXIT)

    async def notify_host_ready(self):
        """Tell the server the host has loaded, after a short grace delay."""
        if not self.view.is_host:
            logger.warning("Only the host reports readiness; ignoring")
            return
        if self.left:
            return
        self.connection.emit_later(config.HOST_READY_DELAY_SECONDS, HOST_GAME_LOADED)
