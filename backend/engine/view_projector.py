"""
View Projector — who sees what.

  host            full roster with every true role
  player/unbound  roles of dead players only, every role once the game ended
  night actors    teammates + their own group's live ballots, never another group's
  minion          additionally told who the mafia are
"""
from typing import Any, Dict, List, Optional

from models.game import NIGHT_ROLES, Phase, PlayerState, Role, RoomState
from services.session_registry import Session


def _can_see_role(viewer_is_host: bool, state: RoomState, player: PlayerState) -> bool:
    return viewer_is_host or not player.alive or state.phase == Phase.ENDED


def game_state_view(state: RoomState, viewer: Optional[Session] = None) -> Dict[str, Any]:
    is_host = bool(viewer and (viewer.is_host or viewer.id == state.host_id))
    return {
        "roomId": state.room_id,
        "phase": state.phase.value,
        "day": state.day,
        "hostId": state.host_id,
        "winner": state.winner.value if state.winner else None,
        "gameLog": list(state.game_log),
        "settings": state.settings.model_dump(by_alias=True),
        "players": [
            p.to_public(reveal_role=_can_see_role(is_host, state, p))
            for p in state.players.values()
        ],
        "dayVoteCount": len(state.day_ballots),
    }


def game_state_message(state: RoomState, viewer: Optional[Session] = None) -> Dict[str, Any]:
    return {"type": "game_state_update", "gameState": game_state_view(state, viewer)}


def rolemates(state: RoomState, player: PlayerState) -> List[Dict[str, str]]:
    """Alive teammates sharing an acting role; villagers and others get none."""
    if player.role not in NIGHT_ROLES:
        return []
    return [
        p.to_ref() for p in state.players.values()
        if p.role == player.role and p.alive and p.id != player.id
    ]


def mafia_members(state: RoomState) -> List[Dict[str, str]]:
    return [p.to_ref() for p in state.players.values() if p.role == Role.MAFIA]


def role_assigned_message(state: RoomState, player: PlayerState) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "type": "role_assigned",
        "role": player.role.value if player.role else None,
        "rolemates": rolemates(state, player),
    }
    if player.role == Role.MINION:
        message["mafiaMembers"] = mafia_members(state)
    return message


def role_reveal_message(state: RoomState, player: PlayerState) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "type": "role_reveal",
        "role": player.role.value if player.role else None,
    }
    if player.role == Role.MINION:
        message["mafiaMembers"] = mafia_members(state)
    return message


def night_action_message(state: RoomState, player: PlayerState) -> Optional[Dict[str, Any]]:
    """Coordination view for an alive night actor, or None if the player gets nothing."""
    if state.phase != Phase.NIGHT or not player.alive or player.role not in NIGHT_ROLES:
        return None
    return {
        "type": "night_action_update",
        "role": player.role.value,
        "rolemates": rolemates(state, player),
        "alivePlayers": [p.to_ref() for p in state.alive_players()],
        "nightActionState": {
            f"{player.role.value}Votes": dict(state.night_ballots.for_role(player.role)),
        },
    }
