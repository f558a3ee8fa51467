"""
Role Assignment Engine — deterministic role counts, random seating.

Responsibilities:
- Resolve the host's loosely typed gameSettings into concrete role counts
- Shrink special roles when they would leave no plain villager
- Shuffle the roster and deal roles in fixed priority order
- Log the resulting distribution to the game log

Called once by the room controller when the host starts the game.
"""
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config import settings
from models.game import GameSettings, Role, RoomState

logger = logging.getLogger(__name__)

# Dealing order; whatever is left over becomes villager
ROLE_PRIORITY: List[Role] = [
    Role.MAFIA,
    Role.DETECTIVE,
    Role.ANGEL,
    Role.SUICIDE_BOMBER,
    Role.MINION,
    Role.VILLAGER,
]


def _parse_count(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        if isinstance(value, str):
            value = value.strip()
        return max(0, int(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default


@dataclass
class RolePlan:
    mafia: int
    detective: int = 0
    angel: int = 0
    suicide_bomber: bool = False
    minion: bool = False

    @property
    def specials(self) -> int:
        return self.mafia + self.detective + self.angel + int(self.suicide_bomber) + int(self.minion)

    def counts(self, n_players: int) -> Dict[Role, int]:
        return {
            Role.MAFIA: self.mafia,
            Role.DETECTIVE: self.detective,
            Role.ANGEL: self.angel,
            Role.SUICIDE_BOMBER: int(self.suicide_bomber),
            Role.MINION: int(self.minion),
            Role.VILLAGER: n_players - self.specials,
        }


class RoleAssigner:
    """
    Assigns one role to every player in the room.

    The RNG is injectable so tests can seed the shuffle; production uses
    a fresh `random.Random()`.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 default_angel_min_players: Optional[int] = None):
        self.rng = rng or random.Random()
        self.default_angel_min_players = (
            default_angel_min_players
            if default_angel_min_players is not None
            else settings.default_angel_min_players
        )

    def auto_mafia_count(self, n_players: int) -> int:
        if n_players <= 4:
            return 1
        if n_players <= 7:
            return 2
        return 3

    def plan(self, n_players: int, game_settings: GameSettings) -> RolePlan:
        """
        Turn settings into concrete counts for `n_players`.

        If the requested specials would fill the whole table, mafia is clamped
        to max(1, min(requested, n // 3)) and the remaining budget
        (one villager held back) is dealt alternately to detective and angel,
        then to the suicide bomber and the minion.
        """
        if game_settings.mafia_count == "auto":
            mafia = self.auto_mafia_count(n_players)
        else:
            mafia = max(1, _parse_count(game_settings.mafia_count, 1))

        detective = _parse_count(game_settings.detective_count, 0)
        if game_settings.angel_count is None:
            angel = 1 if n_players >= self.default_angel_min_players else 0
        else:
            angel = _parse_count(game_settings.angel_count, 0)

        plan = RolePlan(
            mafia=mafia,
            detective=detective,
            angel=angel,
            suicide_bomber=bool(game_settings.suicide_bomber),
            minion=bool(game_settings.minion),
        )
        if plan.specials < n_players:
            return plan

        shrunk = RolePlan(mafia=max(1, min(mafia, n_players // 3)))
        budget = n_players - shrunk.mafia - 1
        while budget > 0 and (shrunk.detective < detective or shrunk.angel < angel):
            if shrunk.detective < detective:
                shrunk.detective += 1
                budget -= 1
            if budget > 0 and shrunk.angel < angel:
                shrunk.angel += 1
                budget -= 1
        if budget > 0 and plan.suicide_bomber:
            shrunk.suicide_bomber = True
            budget -= 1
        if budget > 0 and plan.minion:
            shrunk.minion = True
            budget -= 1

        logger.info(
            "Special roles (%d) exceed %d players, shrunk to %s",
            plan.specials, n_players, shrunk,
        )
        return shrunk

    def deal(self, player_ids: List[str], game_settings: GameSettings) -> Dict[str, Role]:
        """Pure assignment: shuffled player ids -> role, covering every id once."""
        ids = list(player_ids)
        counts = self.plan(len(ids), game_settings).counts(len(ids))
        self.rng.shuffle(ids)

        assignment: Dict[str, Role] = {}
        cursor = 0
        for role in ROLE_PRIORITY:
            for _ in range(counts[role]):
                assignment[ids[cursor]] = role
                cursor += 1
        return assignment

    def assign_roles(self, state: RoomState) -> Dict[str, Role]:
        """Label every player in `state` and append the distribution to the game log."""
        assignment = self.deal(list(state.players.keys()), state.settings)
        for player_id, role in assignment.items():
            state.players[player_id].role = role

        state.log(f"Roles assigned: {describe_distribution(assignment.values())}")
        logger.info(
            "[%s] Roles assigned to %d players: %s",
            state.room_id, len(assignment), describe_distribution(assignment.values()),
        )
        return assignment


def describe_distribution(roles) -> str:
    """'2 mafias, 1 detective, 3 villagers' in dealing order."""
    tally: Dict[Role, int] = {}
    for role in roles:
        tally[role] = tally.get(role, 0) + 1
    parts = []
    for role in ROLE_PRIORITY:
        count = tally.get(role, 0)
        if count:
            parts.append(f"{count} {role.value}{'s' if count > 1 else ''}")
    return ", ".join(parts)


# Module-level singleton
role_assigner = RoleAssigner()
