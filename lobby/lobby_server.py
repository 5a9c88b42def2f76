"""Reference lobby server: rosters, host arbitration and snapshots over socket.io."""

import asyncio
import logging
import re
import time
from typing import Dict, List, Optional

from pydantic import ValidationError

import config
from catalog import ActivityCatalog
from protocol import (
    GAME_EXIT, GAME_SELECT, GAME_START, HOST_GAME_LOADED, INVALID_LOBBY,
    INVALID_NAME, JOIN_LOBBY, NAME, UPDATE,
    GameSelect, JoinLobby, LobbySnapshot, LobbyStatus, NamePayload, Participant,
    encode,
)

logger = logging.getLogger(__name__)


class Room:
    def __init__(self, room_code: str):
        self.room_code = room_code
        self.participants: Dict[int, dict] = {}  # id -> {name, connected}
        self.connections: Dict[str, int] = {}  # sid -> participant id
        self.host_id: Optional[int] = None
        self.state = LobbyStatus.LOBBY
        self.selected_activity_id = ""
        self.activity_state: dict = {}
        self.next_id = 1
        self.lock = asyncio.Lock()
        self.last_activity = time.time()

    def touch(self):
        self.last_activity = time.time()

    def is_expired(self) -> bool:
        return time.time() - self.last_activity > config.ROOM_TTL_SECONDS

    def sid_for(self, participant_id: int) -> Optional[str]:
        for sid, pid in self.connections.items():
            if pid == participant_id:
                return sid
        return None

    def attach(self, sid: str, participant_id: Optional[int]) -> int:
        """Bind ``sid`` to a seat, re-using ``participant_id`` when it exists.

        Re-attaching is idempotent: the seat is never duplicated, and a stale
        connection still bound to it is dropped.
        """
        if participant_id is not None and participant_id in self.participants:
            old_sid = self.sid_for(participant_id)
            if old_sid and old_sid != sid:
                self.connections.pop(old_sid, None)
                logger.info("Participant %s moved to a new connection in room %s",
                            participant_id, self.room_code)
            pid = participant_id
        else:
            pid = self.next_id
            self.next_id += 1
            self.participants[pid] = {"name": None, "connected": False}
            logger.info("Participant %s created in room %s", pid, self.room_code)
        self.connections[sid] = pid
        self.participants[pid]["connected"] = True
        if self.host_id is None or not self._is_connected(self.host_id):
            self.host_id = pid if self.host_id is None else self._first_connected()
        return pid

    def _is_connected(self, participant_id: int) -> bool:
        return self.participants.get(participant_id, {}).get("connected", False)

    def _first_connected(self) -> Optional[int]:
        for pid in sorted(self.participants):
            if self._is_connected(pid):
                return pid
        return None

    def name_taken(self, name: str, participant_id: int) -> bool:
        wanted = name.casefold()
        for pid, p in self.participants.items():
            if pid != participant_id and p["name"] and p["name"].casefold() == wanted:
                return True
        return False

    def get_participant_list(self) -> List[Participant]:
        return [
            Participant(id=pid, name=p["name"], is_host=pid == self.host_id)
            for pid, p in sorted(self.participants.items())
            if p["connected"]
        ]

    def snapshot_for(self, participant_id: int) -> dict:
        p = self.participants[participant_id]
        snapshot = LobbySnapshot(
            phase=self.state,
            participant_list=self.get_participant_list(),
            me=Participant(id=participant_id, name=p["name"],
                           is_host=participant_id == self.host_id),
            selected_activity_id=self.selected_activity_id,
            activity_state=self.activity_state,
        )
        return encode(snapshot)

    def _remove_connection(self, sid: str):
        pid = self.connections.pop(sid, None)
        if pid is None:
            return
        # The seat is kept so the participant can resume it.
        self.participants[pid]["connected"] = False
        logger.info("Participant %s disconnected from room %s (seat kept)",
                    pid, self.room_code)
        if self.host_id == pid:
            successor = self._first_connected()
            if successor is not None:
                self.host_id = successor
                logger.info("Host of room %s passed to %s", self.room_code, successor)


class LobbyServer:
    def __init__(self, sio, catalog: ActivityCatalog):
        self.sio = sio
        self.catalog = catalog
        self.rooms: Dict[str, Room] = {}
        self.sid_rooms: Dict[str, str] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def register(self):
        self.sio.on("disconnect", self.handle_disconnect)
        self.sio.on(JOIN_LOBBY, self.handle_join)
        self.sio.on(NAME, self.handle_name)
        self.sio.on(GAME_SELECT, self.handle_game_select)
        self.sio.on(GAME_START, self.handle_game_start)
        self.sio.on(GAME_EXIT, self.handle_game_exit)
        self.sio.on(HOST_GAME_LOADED, self.handle_host_game_loaded)

    def start_cleanup_loop(self):
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_expired_rooms())

    async def _cleanup_expired_rooms(self):
        while True:
            try:
                await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
                self.remove_expired_rooms()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in room cleanup loop")

    def remove_expired_rooms(self):
        expired = [code for code, room in self.rooms.items() if room.is_expired()]
        for code in expired:
            room = self.rooms.pop(code)
            for sid in room.connections:
                self.sid_rooms.pop(sid, None)
            logger.info("Cleaned up expired room %s", code)

    def create_room(self, room_code: str) -> Room:
        room = Room(room_code)
        self.rooms[room_code] = room
        logger.info("Room created: %s", room_code)
        return room

    async def broadcast(self, room: Room):
        for sid, pid in list(room.connections.items()):
            await self.sio.emit(UPDATE, room.snapshot_for(pid), to=sid)

    def _room_for(self, sid: str):
        code = self.sid_rooms.get(sid)
        room = self.rooms.get(code) if code else None
        if room is None:
            return None, None
        return room, room.connections.get(sid)

    # --- handlers ---

    async def handle_join(self, sid: str, data=None):
        try:
            request = JoinLobby.model_validate(data)
        except ValidationError:
            logger.warning("Malformed join-lobby from %s", sid)
            return
        room = self.rooms.get(request.room_code)
        if room is None or room.is_expired():
            logger.info("Join for unknown room %s from %s", request.room_code, sid)
            await self.sio.emit(INVALID_LOBBY, to=sid)
            return

        previous_code = self.sid_rooms.get(sid)
        if previous_code and previous_code != room.room_code and previous_code in self.rooms:
            old_room = self.rooms[previous_code]
            async with old_room.lock:
                old_room._remove_connection(sid)
            await self.broadcast(old_room)

        async with room.lock:
            pid = room.attach(sid, request.participant_id)
            self.sid_rooms[sid] = room.room_code
            if request.name and not room.participants[pid]["name"]:
                name = _clean_name(request.name)
                if name and not room.name_taken(name, pid):
                    room.participants[pid]["name"] = name
            room.touch()
        await self.broadcast(room)

    async def handle_name(self, sid: str, data=None):
        room, pid = self._room_for(sid)
        if room is None or pid is None:
            return
        try:
            payload = NamePayload.model_validate(data)
        except ValidationError:
            logger.warning("Malformed name from %s", sid)
            return
        name = _clean_name(payload.name)
        async with room.lock:
            if name and room.name_taken(name, pid):
                rejected = True
            else:
                rejected = False
                room.participants[pid]["name"] = name or None
                room.touch()
        if rejected:
            await self.sio.emit(INVALID_NAME, to=sid)
            return
        await self.broadcast(room)

    def _host_room(self, sid: str, event: str):
        room, pid = self._room_for(sid)
        if room is None or pid is None:
            return None
        if pid != room.host_id:
            logger.warning("Ignoring %s from non-host %s in room %s", event, pid, room.room_code)
            return None
        return room

    async def handle_game_select(self, sid: str, data=None):
        room = self._host_room(sid, GAME_SELECT)
        if room is None:
            return
        try:
            payload = GameSelect.model_validate(data)
        except ValidationError:
            logger.warning("Malformed game-select from %s", sid)
            return
        if self.catalog.get(payload.activity_id) is None:
            logger.warning("Unknown activity %s in room %s", payload.activity_id, room.room_code)
            return
        async with room.lock:
            if room.state != LobbyStatus.LOBBY:
                return
            room.selected_activity_id = payload.activity_id
            room.touch()
        await self.broadcast(room)

    async def handle_game_start(self, sid: str, *args):
        room = self._host_room(sid, GAME_START)
        if room is None:
            return
        async with room.lock:
            if room.state != LobbyStatus.LOBBY or not room.selected_activity_id:
                return
            room.state = LobbyStatus.INGAME
            room.activity_state = {"status": "loading", "activityId": room.selected_activity_id}
            room.touch()
        logger.info("Room %s started %s", room.room_code, room.selected_activity_id)
        await self.broadcast(room)

    async def handle_host_game_loaded(self, sid: str, *args):
        room = self._host_room(sid, HOST_GAME_LOADED)
        if room is None:
            return
        async with room.lock:
            if room.state != LobbyStatus.INGAME or room.activity_state.get("status") != "loading":
                return
            room.activity_state = {**room.activity_state, "status": "running"}
            room.touch()
        await self.broadcast(room)

    async def handle_game_exit(self, sid: str, *args):
        room = self._host_room(sid, GAME_EXIT)
        if room is None:
            return
        async with room.lock:
            if room.state != LobbyStatus.INGAME:
                return
            room.state = LobbyStatus.LOBBY
            room.activity_state = {}
            room.touch()
        logger.info("Room %s returned to lobby", room.room_code)
        await self.broadcast(room)

    async def handle_disconnect(self, sid: str, *args):
        code = self.sid_rooms.pop(sid, None)
        room = self.rooms.get(code) if code else None
        if room is None:
            return
        async with room.lock:
            room._remove_connection(sid)
        await self.broadcast(room)


def _clean_name(name: str) -> str:
    name = re.sub(r'<[^>]+>', '', name or "").strip()
    return name[:config.MAX_NAME_LENGTH]
