"""
Night Consensus Engine — per-role ballots, unanimity gate, resolution.

Mafia, detectives and angels each vote into their own ballot. The night only
resolves once every group is complete: all alive members voted and all of their
votes name the same target. A group with no alive members is complete.

Resolution order:
  1. Detectives' plurality target is investigated; each alive detective who
     voted receives the true mafia / not-mafia answer privately.
  2. Mafia's unanimous target dies unless an angel protected them.
  3. Ballots are cleared.
  4. Win conditions are checked; a winner ends the game.
  5. Otherwise the room moves to day (or straight to voting).
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from engine.errors import GameStateError, PhaseError
from engine.win_conditions import apply_win_check
from models.game import (
    ACTION_ROLES, NIGHT_ROLES, ActionType, Phase, PlayerState, Role, RoomState, Winner,
)

logger = logging.getLogger(__name__)


@dataclass
class Investigation:
    target_id: str
    target_name: str
    is_mafia: bool
    detective_ids: List[str] = field(default_factory=list)

    def to_message(self) -> dict:
        return {
            "type": "investigation_result",
            # clients display `target` as-is
            "target": self.target_name,
            "targetId": self.target_id,
            "targetName": self.target_name,
            "isMafia": self.is_mafia,
        }


@dataclass
class NightOutcome:
    investigation: Optional[Investigation] = None
    killed: Optional[str] = None
    saved: Optional[str] = None
    winner: Optional[Winner] = None


# ── Voting ────────────────────────────────────────────────────────────────────

def record_night_action(state: RoomState, player: PlayerState, action_type: ActionType, target: str) -> None:
    """Validate and store one night vote, replacing the voter's previous one."""
    if state.phase != Phase.NIGHT:
        raise PhaseError("Night actions can only be submitted during the night phase")
    if not player.alive:
        raise GameStateError("Eliminated players cannot act", code="PLAYER_ELIMINATED")

    required_role = ACTION_ROLES[action_type]
    if player.role != required_role:
        raise GameStateError(
            f"Your role cannot perform '{action_type.value}'", code="NO_NIGHT_ACTION",
        )

    victim = state.players.get(target)
    if not victim or not victim.alive:
        raise GameStateError("Target is not an alive player", code="INVALID_TARGET")

    ballot = state.night_ballots.for_role(required_role)
    ballot[player.id] = target
    logger.info(f"[{state.room_id}] {required_role.value} vote: {player.name} -> {victim.name}")


def valid_votes(state: RoomState, role: Role) -> List[Tuple[str, str]]:
    """Ballot entries whose voter is still alive and still holds `role`."""
    votes = []
    for voter_id, target in state.night_ballots.for_role(role).items():
        voter = state.players.get(voter_id)
        if voter and voter.alive and voter.role == role:
            votes.append((voter_id, target))
    return votes


def group_complete(state: RoomState, role: Role) -> bool:
    members = state.alive_with_role(role)
    if not members:
        return True
    votes = valid_votes(state, role)
    if len(votes) != len(members):
        return False
    targets = {target for _, target in votes}
    return len(targets) == 1


def night_ready(state: RoomState) -> bool:
    return all(group_complete(state, role) for role in NIGHT_ROLES)


def plurality_target(votes: List[Tuple[str, str]]) -> Optional[str]:
    """
    Most-voted target. Ballots are replayed in order and a target takes the lead
    only by exceeding the current maximum, so the first to reach the winning
    count keeps it on a tie.
    """
    counts = {}
    leader, best = None, 0
    for _, target in votes:
        counts[target] = counts.get(target, 0) + 1
        if counts[target] > best:
            leader, best = target, counts[target]
    return leader


# ── Resolution ────────────────────────────────────────────────────────────────

def resolve_night(state: RoomState, skip_day_pause: bool = False) -> NightOutcome:
    """Apply the night's ballots to `state`. Caller checks `night_ready` first."""
    outcome = NightOutcome()

    # 1. Investigation
    detective_votes = valid_votes(state, Role.DETECTIVE)
    investigated = plurality_target(detective_votes)
    if investigated and investigated in state.players:
        target = state.players[investigated]
        outcome.investigation = Investigation(
            target_id=target.id,
            target_name=target.name,
            is_mafia=target.role == Role.MAFIA,
            detective_ids=[voter for voter, _ in detective_votes],
        )
        logger.info(
            f"[{state.room_id}] Investigation: {target.name} is "
            f"{'Mafia' if outcome.investigation.is_mafia else 'Not Mafia'}"
        )

    # 2. Kill vs protection
    mafia_votes = valid_votes(state, Role.MAFIA)
    protected = {target for _, target in valid_votes(state, Role.ANGEL)}
    kill_targets = {target for _, target in mafia_votes}
    kill_target = next(iter(kill_targets)) if len(kill_targets) == 1 else None

    if kill_target and kill_target in state.players:
        victim = state.players[kill_target]
        if kill_target in protected:
            outcome.saved = kill_target
            state.log(f"The Mafia tried to kill {victim.name} but {victim.name} was saved by an Angel!")
        else:
            victim.alive = False
            outcome.killed = kill_target
            state.log(f"{victim.name} was killed during the night ({victim.role.value})")
    elif mafia_votes:
        state.log("The Mafia failed to agree on a target")
    else:
        state.log("No one was killed during the night")

    # 3. Fresh ballots for the next cycle
    state.night_ballots.clear()
    state.day_ballots.clear()

    # 4. Win check
    outcome.winner = apply_win_check(state)
    if outcome.winner:
        logger.info(f"[{state.room_id}] Night {state.day} ended the game: {outcome.winner.value}")
        return outcome

    # 5. Dawn
    if skip_day_pause:
        open_voting(state)
    else:
        state.phase = Phase.DAY
    logger.info(f"[{state.room_id}] Night {state.day} resolved → {state.phase.value}")
    return outcome


def open_voting(state: RoomState) -> None:
    state.phase = Phase.VOTING
    state.log("☀️ Day phase begins - Discuss what happened during the night and vote to eliminate someone!")
