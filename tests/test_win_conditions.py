from __future__ import annotations

import pytest

from conftest import make_state
from engine.win_conditions import WIN_MESSAGES, apply_win_check, evaluate_winner
from models.game import Phase, Role, Winner


def _players(*roles: Role, dead: tuple[int, ...] = ()):
    state = make_state({f"p{i}": role for i, role in enumerate(roles)})
    for index in dead:
        state.players[f"p{index}"].alive = False
    return state


def test_no_alive_mafia_is_village_win_even_with_minions() -> None:
    state = _players(Role.MAFIA, Role.MINION, Role.MINION, Role.VILLAGER, dead=(0,))
    assert evaluate_winner(state.players.values()) == Winner.VILLAGE


@pytest.mark.parametrize(
    "roles",
    [
        (Role.MAFIA, Role.VILLAGER),
        (Role.MAFIA, Role.MINION, Role.VILLAGER, Role.DETECTIVE),
        (Role.MAFIA, Role.MAFIA, Role.ANGEL, Role.SUICIDE_BOMBER),
    ],
)
def test_mafia_side_at_parity_wins(roles) -> None:
    state = _players(*roles)
    assert evaluate_winner(state.players.values()) == Winner.MAFIA


def test_game_continues_while_village_outnumbers() -> None:
    state = _players(Role.MAFIA, Role.MINION, Role.VILLAGER, Role.DETECTIVE, Role.ANGEL)
    assert evaluate_winner(state.players.values()) is None


def test_dead_village_members_do_not_count() -> None:
    state = _players(Role.MAFIA, Role.VILLAGER, Role.VILLAGER, dead=(2,))
    assert evaluate_winner(state.players.values()) == Winner.MAFIA


def test_apply_win_check_ends_the_game() -> None:
    state = _players(Role.MAFIA, Role.VILLAGER, dead=(0,))
    assert apply_win_check(state) == Winner.VILLAGE
    assert state.phase == Phase.ENDED
    assert state.game_log[-1] == WIN_MESSAGES[Winner.VILLAGE]


def test_apply_win_check_leaves_running_game_alone() -> None:
    state = _players(Role.MAFIA, Role.VILLAGER, Role.VILLAGER, Role.VILLAGER)
    assert apply_win_check(state) is None
    assert state.phase == Phase.NIGHT
    assert state.game_log == []
