from __future__ import annotations

import pytest

from conftest import make_state
from engine.errors import GameStateError, PhaseError
from engine.night_consensus import (
    group_complete,
    night_ready,
    plurality_target,
    record_night_action,
    resolve_night,
)
from models.game import ActionType, Phase, Role, Winner


def _table():
    return make_state({
        "mona": Role.MAFIA,
        "max": Role.MAFIA,
        "dana": Role.DETECTIVE,
        "ada": Role.ANGEL,
        "vic": Role.VILLAGER,
        "val": Role.VILLAGER,
        "vera": Role.VILLAGER,
    })


def _act(state, voter: str, action: ActionType, target: str) -> None:
    record_night_action(state, state.players[voter], action, target)


def test_unanimity_gate_waits_for_every_member() -> None:
    state = _table()
    _act(state, "mona", ActionType.KILL, "vic")
    _act(state, "dana", ActionType.INVESTIGATE, "max")
    _act(state, "ada", ActionType.PROTECT, "val")

    assert not group_complete(state, Role.MAFIA)
    assert not night_ready(state)

    _act(state, "max", ActionType.KILL, "vic")
    assert night_ready(state)


def test_split_mafia_blocks_until_they_agree() -> None:
    state = _table()
    _act(state, "dana", ActionType.INVESTIGATE, "max")
    _act(state, "ada", ActionType.PROTECT, "val")
    _act(state, "mona", ActionType.KILL, "vic")
    _act(state, "max", ActionType.KILL, "vera")
    assert not night_ready(state)

    _act(state, "max", ActionType.KILL, "vic")
    assert night_ready(state)


def test_duplicate_votes_overwrite_instead_of_accumulating() -> None:
    state = _table()
    for _ in range(3):
        _act(state, "mona", ActionType.KILL, "vic")
    assert state.night_ballots.mafia == {"mona": "vic"}


def test_group_without_alive_members_is_complete() -> None:
    state = _table()
    state.players["ada"].alive = False
    assert group_complete(state, Role.ANGEL)


def test_dead_voters_are_ignored_at_resolution() -> None:
    state = _table()
    _act(state, "mona", ActionType.KILL, "vera")
    _act(state, "max", ActionType.KILL, "vic")
    state.players["max"].alive = False

    assert group_complete(state, Role.MAFIA)


@pytest.mark.parametrize(
    ("voter", "action", "target", "error"),
    [
        ("vic", ActionType.KILL, "val", GameStateError),
        ("mona", ActionType.PROTECT, "val", GameStateError),
        ("mona", ActionType.KILL, "ghost", GameStateError),
    ],
)
def test_invalid_night_actions_rejected(voter, action, target, error) -> None:
    state = _table()
    with pytest.raises(error):
        _act(state, voter, action, target)
    assert state.night_ballots.mafia == {}


def test_night_actions_rejected_outside_night() -> None:
    state = _table()
    state.phase = Phase.VOTING
    with pytest.raises(PhaseError):
        _act(state, "mona", ActionType.KILL, "vic")


def test_angel_save_prevents_kill() -> None:
    state = _table()
    _act(state, "mona", ActionType.KILL, "vic")
    _act(state, "max", ActionType.KILL, "vic")
    _act(state, "dana", ActionType.INVESTIGATE, "vera")
    _act(state, "ada", ActionType.PROTECT, "vic")

    outcome = resolve_night(state)

    assert state.players["vic"].alive
    assert outcome.saved == "vic" and outcome.killed is None
    assert "The Mafia tried to kill Vic but Vic was saved by an Angel!" in state.game_log
    assert state.phase == Phase.DAY


def test_kill_logs_victim_role_and_clears_ballots() -> None:
    state = _table()
    _act(state, "mona", ActionType.KILL, "dana")
    _act(state, "max", ActionType.KILL, "dana")
    _act(state, "dana", ActionType.INVESTIGATE, "mona")
    _act(state, "ada", ActionType.PROTECT, "ada")

    outcome = resolve_night(state, skip_day_pause=True)

    assert not state.players["dana"].alive
    assert outcome.killed == "dana"
    assert "Dana was killed during the night (detective)" in state.game_log
    assert state.night_ballots.mafia == {} and state.night_ballots.detective == {}
    assert state.phase == Phase.VOTING


def test_investigation_reports_true_alignment_to_each_detective() -> None:
    state = _table()
    state.players["vera"].role = Role.DETECTIVE
    _act(state, "dana", ActionType.INVESTIGATE, "max")
    _act(state, "vera", ActionType.INVESTIGATE, "max")

    outcome = resolve_night(state)

    assert outcome.investigation is not None
    assert outcome.investigation.is_mafia
    assert outcome.investigation.detective_ids == ["dana", "vera"]
    assert outcome.investigation.to_message() == {
        "type": "investigation_result",
        "target": "Max",
        "targetId": "max",
        "targetName": "Max",
        "isMafia": True,
    }


def test_no_mafia_votes_logs_quiet_night() -> None:
    state = make_state({"mona": Role.MAFIA, "vic": Role.VILLAGER, "val": Role.VILLAGER, "vera": Role.VILLAGER})
    state.players["mona"].alive = False
    outcome = resolve_night(state)

    assert "No one was killed during the night" in state.game_log
    assert outcome.winner == Winner.VILLAGE


def test_night_kill_can_hand_mafia_the_win() -> None:
    state = make_state({"mona": Role.MAFIA, "vic": Role.VILLAGER, "val": Role.VILLAGER})
    _act(state, "mona", ActionType.KILL, "vic")

    outcome = resolve_night(state)

    assert outcome.winner == Winner.MAFIA
    assert state.phase == Phase.ENDED
    assert state.winner == Winner.MAFIA


def test_plurality_prefers_first_to_reach_the_maximum() -> None:
    votes = [("a", "x"), ("b", "y"), ("c", "y"), ("d", "x")]
    assert plurality_target(votes) == "y"
    assert plurality_target([]) is None
