"""Durable storage of the last seat this device held, used to resume it."""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from protocol import JoinLobby

logger = logging.getLogger(__name__)

ROOM_CODE_KEY = "roomCode"
PARTICIPANT_ID_KEY = "participantId"
NAME_KEY = "name"
KEYS = (ROOM_CODE_KEY, PARTICIPANT_ID_KEY, NAME_KEY)


@dataclass(frozen=True)
class SessionIdentity:
    room_code: Optional[str] = None
    participant_id: Optional[int] = None
    display_name: Optional[str] = None


class IdentityStore:
    """JSON-file key-value store over a fixed set of keys, with no expiry.

    Values are only ever overwritten, never deleted, so a restarted client can
    always attempt to resume its previous seat.
    """

    def __init__(self, path: str):
        self.path = path
        self._values: dict = self._read()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError):
            logger.warning("Identity file %s unreadable, starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Identity file %s has unexpected shape, starting empty", self.path)
            return {}
        return {k: v for k, v in data.items() if k in KEYS}

    def _write(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self._values, fh)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> Any:
        if key not in KEYS:
            raise KeyError(key)
        return self._values.get(key)

    def set(self, key: str, value: Any):
        if key not in KEYS:
            raise KeyError(key)
        if self._values.get(key) == value:
            return
        self._values[key] = value
        self._write()

    def load(self) -> SessionIdentity:
        participant_id = self._values.get(PARTICIPANT_ID_KEY)
        if not isinstance(participant_id, int) or isinstance(participant_id, bool):
            participant_id = None
        return SessionIdentity(
            room_code=self._values.get(ROOM_CODE_KEY),
            participant_id=participant_id,
            display_name=self._values.get(NAME_KEY) or None,
        )

    def remember_seat(self, room_code: str, participant_id: int):
        """Persist a server-confirmed seat."""
        self.set(ROOM_CODE_KEY, room_code)
        self.set(PARTICIPANT_ID_KEY, participant_id)

    def remember_name(self, name: str):
        self.set(NAME_KEY, name)


def resolve_join(store: IdentityStore, room_code: str) -> JoinLobby:
    """Build the join request for ``room_code``.

    A resume (stored room matches) carries the stored participant id and name
    so the server re-attaches the same seat; anything else is a fresh join.
    """
    identity = store.load()
    if identity.room_code == room_code and identity.participant_id is not None:
        logger.info("Resuming seat %s in room %s", identity.participant_id, room_code)
        return JoinLobby(
            room_code=room_code,
            participant_id=identity.participant_id,
            name=identity.display_name,
        )
    logger.info("Fresh join for room %s", room_code)
    return JoinLobby(room_code=room_code)
