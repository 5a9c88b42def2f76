"""Client-side session state machine.

The server pushes a complete lobby snapshot on every change. The client keeps
only the latest one and derives the rendered phase from it, so the reducer has
a single replacing action and never advances on local optimism.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from protocol import LobbySnapshot, LobbyStatus, Participant


class Phase(str, Enum):
    LOADING = "loading"
    AWAITING_NAME = "awaiting-name"
    LOBBY = "lobby"
    IN_GAME = "in-game"


@dataclass(frozen=True)
class SnapshotReceived:
    snapshot: LobbySnapshot


@dataclass(frozen=True)
class Reset:
    pass


Action = Union[SnapshotReceived, Reset]


@dataclass(frozen=True)
class SessionState:
    snapshot: Optional[LobbySnapshot] = None

    @property
    def phase(self) -> Phase:
        return derive_phase(self.snapshot)


INITIAL_STATE = SessionState()


def derive_phase(snapshot: Optional[LobbySnapshot]) -> Phase:
    if snapshot is None:
        return Phase.LOADING
    if not snapshot.me.name:
        return Phase.AWAITING_NAME
    if snapshot.phase == LobbyStatus.LOBBY:
        return Phase.LOBBY
    if snapshot.phase == LobbyStatus.INGAME:
        return Phase.IN_GAME
    return Phase.LOADING


def reduce(state: SessionState, action: Action) -> SessionState:
    if isinstance(action, SnapshotReceived):
        # Total replacement: nothing from the previous snapshot survives.
        return SessionState(snapshot=action.snapshot)
    if isinstance(action, Reset):
        return INITIAL_STATE
    raise TypeError(f"Unknown session action: {action!r}")


@dataclass(frozen=True)
class LobbyView:
    """Everything a phase renderer needs to draw the current screen."""

    phase: Phase
    room_code: str
    participant_list: List[Participant] = field(default_factory=list)
    me: Participant = field(default_factory=Participant)
    selected_activity_id: str = ""
    activity_state: Dict[str, Any] = field(default_factory=dict)
    reconnecting: bool = False
    suggested_name: Optional[str] = None
    catalog: Any = None

    @property
    def is_host(self) -> bool:
        return bool(self.me.is_host)


def build_view(state: SessionState, room_code: str, reconnecting: bool = False,
               suggested_name: Optional[str] = None, catalog: Any = None) -> LobbyView:
    snapshot = state.snapshot
    if snapshot is None:
        return LobbyView(phase=Phase.LOADING, room_code=room_code, reconnecting=reconnecting,
                         suggested_name=suggested_name, catalog=catalog)
    return LobbyView(
        phase=state.phase,
        room_code=room_code,
        participant_list=list(snapshot.participant_list),
        me=snapshot.me,
        selected_activity_id=snapshot.selected_activity_id,
        activity_state=dict(snapshot.activity_state),
        reconnecting=reconnecting,
        suggested_name=suggested_name,
        catalog=catalog,
    )
