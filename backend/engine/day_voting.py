"""
Day Voting Engine — plurality elimination by the whole village.

Every alive player may cast one ballot (a player id or NO_ELIMINATION). The
vote resolves automatically once every alive player has a ballot.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from engine.errors import GameStateError, PhaseError
from engine.night_consensus import plurality_target
from engine.win_conditions import apply_win_check, end_game
from models.game import NO_ELIMINATION, Phase, PlayerState, Role, RoomState, Winner

logger = logging.getLogger(__name__)

VOTING_PHASES = {Phase.DAY, Phase.VOTING}


@dataclass
class DayOutcome:
    eliminated: Optional[str] = None
    winner: Optional[Winner] = None


def record_day_vote(state: RoomState, player: PlayerState, target: str) -> None:
    if state.phase not in VOTING_PHASES:
        raise PhaseError("Votes can only be cast during the day")
    if not player.alive:
        raise GameStateError("Eliminated players cannot vote", code="PLAYER_ELIMINATED")
    if target != NO_ELIMINATION:
        victim = state.players.get(target)
        if not victim or not victim.alive:
            raise GameStateError("Vote target is not an alive player", code="INVALID_TARGET")

    # Re-insert so ballot order follows each voter's latest cast
    state.day_ballots.pop(player.id, None)
    state.day_ballots[player.id] = target


def cast_ballots(state: RoomState) -> List[Tuple[str, str]]:
    """Ballots from voters who are still alive, in cast order."""
    return [
        (voter_id, target)
        for voter_id, target in state.day_ballots.items()
        if voter_id in state.players and state.players[voter_id].alive
    ]


def voting_complete(state: RoomState) -> bool:
    alive = state.alive_players()
    return bool(alive) and len(cast_ballots(state)) == len(alive)


def resolve_day_vote(state: RoomState) -> DayOutcome:
    outcome = DayOutcome()
    leader = plurality_target(cast_ballots(state))
    victim = state.players.get(leader) if leader and leader != NO_ELIMINATION else None

    if victim and victim.alive:
        victim.alive = False
        outcome.eliminated = victim.id
        state.log(f"{victim.name} was eliminated by village vote ({victim.role.value})")
        logger.info(f"[{state.room_id}] Day {state.day}: {victim.name} eliminated ({victim.role.value})")
    else:
        state.log("No one was eliminated this round")
        logger.info(f"[{state.room_id}] Day {state.day}: no elimination")

    state.day_ballots.clear()
    state.night_ballots.clear()

    if victim and victim.role == Role.SUICIDE_BOMBER:
        end_game(state, Winner.SUICIDE_BOMBER)
        outcome.winner = Winner.SUICIDE_BOMBER
        return outcome

    outcome.winner = apply_win_check(state)
    if outcome.winner:
        return outcome

    state.phase = Phase.NIGHT
    state.day += 1
    state.log(f"🌙 Night {state.day} begins - Special roles, make your moves!")
    return outcome
