from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Union
from enum import Enum


class Role(str, Enum):
    VILLAGER = "villager"
    MAFIA = "mafia"
    DETECTIVE = "detective"
    ANGEL = "angel"
    MINION = "minion"
    SUICIDE_BOMBER = "suicide_bomber"


class Phase(str, Enum):
    LOBBY = "lobby"
    NIGHT = "night"
    DAY = "day"          # narration pause after the night resolves
    VOTING = "voting"
    ENDED = "ended"


class Winner(str, Enum):
    VILLAGE = "village"
    MAFIA = "mafia"
    SUICIDE_BOMBER = "suicide_bomber"


class ActionType(str, Enum):
    KILL = "kill"
    INVESTIGATE = "investigate"
    PROTECT = "protect"


# Roles that act at night, and the only action each may submit
ACTION_ROLES: Dict[ActionType, Role] = {
    ActionType.KILL: Role.MAFIA,
    ActionType.INVESTIGATE: Role.DETECTIVE,
    ActionType.PROTECT: Role.ANGEL,
}
NIGHT_ROLES: List[Role] = [Role.MAFIA, Role.DETECTIVE, Role.ANGEL]

VILLAGE_TEAM = {Role.VILLAGER, Role.DETECTIVE, Role.ANGEL, Role.SUICIDE_BOMBER}

# Day ballot target meaning "eliminate nobody"
NO_ELIMINATION = "no_murder"


class GameSettings(BaseModel):
    """Host-chosen role configuration.

    Counts accept numbers, numeric strings or "auto". The role assigner parses
    them and falls back to defaults, so a bad value never rejects a start.
    """

    model_config = ConfigDict(populate_by_name=True)

    mafia_count: Union[int, float, str, None] = Field("auto", alias="mafiaCount")
    detective_count: Union[int, float, str, None] = Field(0, alias="detectiveCount")
    angel_count: Union[int, float, str, None] = Field(None, alias="angelCount")
    suicide_bomber: bool = Field(False, alias="suicideBomber")
    minion: bool = False
    day_duration: Optional[float] = Field(None, alias="dayDuration")


class PlayerState(BaseModel):
    id: str
    name: str
    role: Optional[Role] = None
    alive: bool = True
    session_id: Optional[str] = None  # current connection; rebinds on reconnect

    def to_public(self, reveal_role: bool = False) -> Dict[str, Any]:
        """Roster entry; role only included when the viewer may see it."""
        return {
            "id": self.id,
            "name": self.name,
            "alive": self.alive,
            "role": self.role.value if reveal_role and self.role else None,
        }

    def to_ref(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name}


class NightBallots(BaseModel):
    # voter id -> target id, one mapping per acting role
    mafia: Dict[str, str] = {}
    detective: Dict[str, str] = {}
    angel: Dict[str, str] = {}

    def for_role(self, role: Role) -> Dict[str, str]:
        if role == Role.MAFIA:
            return self.mafia
        if role == Role.DETECTIVE:
            return self.detective
        if role == Role.ANGEL:
            return self.angel
        raise ValueError(f"Role {role.value} has no night ballot")

    def clear(self) -> None:
        self.mafia.clear()
        self.detective.clear()
        self.angel.clear()


class RoomState(BaseModel):
    room_id: str
    phase: Phase = Phase.LOBBY
    day: int = 0
    host_id: Optional[str] = None
    host_name: Optional[str] = None
    winner: Optional[Winner] = None
    game_log: List[str] = []
    settings: GameSettings = Field(default_factory=GameSettings)
    players: Dict[str, PlayerState] = {}
    night_ballots: NightBallots = Field(default_factory=NightBallots)
    day_ballots: Dict[str, str] = {}

    def alive_players(self) -> List[PlayerState]:
        return [p for p in self.players.values() if p.alive]

    def alive_with_role(self, role: Role) -> List[PlayerState]:
        return [p for p in self.players.values() if p.alive and p.role == role]

    def find_by_name(self, name: str) -> Optional[PlayerState]:
        for p in self.players.values():
            if p.name == name:
                return p
        return None

    def log(self, entry: str) -> None:
        self.game_log.append(entry)


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host_name: str = Field("", alias="hostName")


class CreateRoomResponse(BaseModel):
    success: bool = True
    roomId: str
    joinUrl: str


class JoinRoomResponse(BaseModel):
    success: bool = True
    roomId: str
    phase: Phase
    joinUrl: str
