"""
WebSocket message shapes.

Inbound messages form a closed tagged union on ``type``; ``inbound_adapter``
validates a decoded JSON object into exactly one variant. Field names follow the
client's camelCase wire format through aliases.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.game import ActionType, GameSettings


class _Inbound(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HostConnect(_Inbound):
    type: Literal["host_connect"]
    host_name: str = Field("", alias="hostName")


class JoinGame(_Inbound):
    type: Literal["join_game"]
    player_name: str = Field("", alias="playerName")
    existing_player_id: Optional[str] = Field(None, alias="existingPlayerId")


class StartGame(_Inbound):
    type: Literal["start_game"]
    game_settings: Optional[GameSettings] = Field(None, alias="gameSettings")


class KickPlayer(_Inbound):
    type: Literal["kick_player"]
    player_id: str = Field(..., alias="playerId")


class NightActionBody(_Inbound):
    type: ActionType
    target: str


class NightAction(_Inbound):
    type: Literal["night_action"]
    action: NightActionBody


class DayVoteBody(_Inbound):
    target: str


class DayVote(_Inbound):
    type: Literal["day_vote"]
    vote: DayVoteBody


class RevealRole(_Inbound):
    type: Literal["reveal_role"]


class NewGame(_Inbound):
    type: Literal["new_game"]


InboundMessage = Annotated[
    Union[
        HostConnect,
        JoinGame,
        StartGame,
        KickPlayer,
        NightAction,
        DayVote,
        RevealRole,
        NewGame,
    ],
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter = TypeAdapter(InboundMessage)

KNOWN_MESSAGE_TYPES = {
    "host_connect",
    "join_game",
    "start_game",
    "kick_player",
    "night_action",
    "day_vote",
    "reveal_role",
    "new_game",
}

# Messages an unbound session (no host flag, no player) may send
UNBOUND_MESSAGE_TYPES = {"host_connect", "join_game"}
