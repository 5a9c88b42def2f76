"""Wire protocol for the lobby connection: event names and payload shapes."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

# --- Client -> server ---
JOIN_LOBBY = "join-lobby"
NAME = "name"
GAME_SELECT = "game-select"
GAME_START = "game-start"
GAME_EXIT = "game-exit"
HOST_GAME_LOADED = "host-game-loaded"

# --- Server -> client ---
UPDATE = "update"
INVALID_NAME = "invalid-name"
INVALID_LOBBY = "invalid-lobby"
DISCONNECT = "disconnect"
# socket.io re-fires "connect" after a successful reconnect; the client
# tracks whether it is a first open or a reconnect.
CONNECT = "connect"

# Transport reason tags. Both the socket.io wire strings and the shorter
# python-socketio/engine.io spellings are recognised.
SERVER_DISCONNECT_REASONS = frozenset({"io server disconnect", "server disconnect"})
CLIENT_DISCONNECT_REASONS = frozenset({"io client disconnect", "client disconnect"})


class ProtocolError(ValueError):
    """An inbound payload does not have the shape the protocol requires."""


class LobbyStatus(str, Enum):
    LOADING = "loading"
    LOBBY = "lobby"
    INGAME = "ingame"


class DisconnectKind(str, Enum):
    SERVER = "server"
    CLIENT = "client"
    NETWORK = "network"


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Participant(_Wire):
    id: Optional[int] = None
    name: Optional[str] = None
    is_host: Optional[bool] = Field(default=None, alias="isHost")


class LobbySnapshot(_Wire):
    phase: LobbyStatus
    participant_list: List[Participant] = Field(default_factory=list, alias="participantList")
    me: Participant = Field(default_factory=Participant, alias="self")
    selected_activity_id: str = Field(default="", alias="selectedActivityId")
    activity_state: Dict[str, Any] = Field(default_factory=dict, alias="activityState")

    @model_validator(mode="after")
    def single_host(self):
        if self.phase in (LobbyStatus.LOBBY, LobbyStatus.INGAME):
            hosts = [p for p in self.participant_list if p.is_host]
            if len(hosts) > 1:
                raise ValueError(f"{len(hosts)} participants marked as host")
        return self


class JoinLobby(_Wire):
    room_code: str = Field(alias="roomCode")
    participant_id: Optional[int] = Field(default=None, alias="participantId")
    name: Optional[str] = None


class NamePayload(_Wire):
    name: str


class GameSelect(_Wire):
    activity_id: str = Field(alias="activityId")


def encode(payload: BaseModel) -> dict:
    """Serialize an outbound payload with its wire (camelCase) field names."""
    return payload.model_dump(by_alias=True, exclude_none=True, mode="json")


def parse_snapshot(data: Any) -> LobbySnapshot:
    """Validate an ``update`` payload. Raises ProtocolError on any defect."""
    try:
        return LobbySnapshot.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed lobby snapshot: {exc}") from exc


def classify_disconnect(reason: Optional[str]) -> DisconnectKind:
    if reason in SERVER_DISCONNECT_REASONS:
        return DisconnectKind.SERVER
    if reason in CLIENT_DISCONNECT_REASONS:
        return DisconnectKind.CLIENT
    return DisconnectKind.NETWORK
