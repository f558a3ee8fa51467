from __future__ import annotations

import pytest

from conftest import make_state
from engine.day_voting import cast_ballots, record_day_vote, resolve_day_vote, voting_complete
from engine.errors import GameStateError, PhaseError
from models.game import NO_ELIMINATION, Phase, Role, Winner


def _village(phase: Phase = Phase.VOTING):
    return make_state({
        "mona": Role.MAFIA,
        "max": Role.MAFIA,
        "dana": Role.DETECTIVE,
        "vic": Role.VILLAGER,
        "val": Role.VILLAGER,
        "sam": Role.SUICIDE_BOMBER,
    }, phase=phase)


def _vote(state, voter: str, target: str) -> None:
    record_day_vote(state, state.players[voter], target)


def test_plurality_with_abstention_eliminates_leader() -> None:
    state = make_state({
        "mona": Role.MAFIA,
        "vic": Role.VILLAGER,
        "val": Role.VILLAGER,
        "vera": Role.VILLAGER,
    }, phase=Phase.VOTING)
    _vote(state, "vic", "mona")
    _vote(state, "val", "mona")
    _vote(state, "vera", NO_ELIMINATION)
    assert not voting_complete(state)
    _vote(state, "mona", "vic")
    assert voting_complete(state)

    outcome = resolve_day_vote(state)

    assert outcome.eliminated == "mona"
    assert not state.players["mona"].alive
    assert "Mona was eliminated by village vote (mafia)" in state.game_log
    assert outcome.winner == Winner.VILLAGE
    assert state.phase == Phase.ENDED


def test_no_elimination_majority_spares_everyone_and_starts_next_night() -> None:
    state = _village()
    for voter in ("mona", "max", "dana", "vic"):
        _vote(state, voter, NO_ELIMINATION)
    _vote(state, "val", "mona")
    _vote(state, "sam", "max")

    outcome = resolve_day_vote(state)

    assert outcome.eliminated is None
    assert all(p.alive for p in state.players.values())
    assert "No one was eliminated this round" in state.game_log
    assert state.phase == Phase.NIGHT
    assert state.day == 2
    assert state.game_log[-1] == "🌙 Night 2 begins - Special roles, make your moves!"
    assert state.day_ballots == {}


def test_suicide_bomber_elimination_wins_outright() -> None:
    state = _village()
    for voter in ("mona", "max", "dana", "vic", "val"):
        _vote(state, voter, "sam")
    _vote(state, "sam", "mona")

    outcome = resolve_day_vote(state)

    assert outcome.winner == Winner.SUICIDE_BOMBER
    assert state.winner == Winner.SUICIDE_BOMBER
    assert state.phase == Phase.ENDED


def test_changed_vote_moves_to_the_back_of_the_ballot() -> None:
    state = _village()
    _vote(state, "vic", "mona")
    _vote(state, "val", "max")
    _vote(state, "vic", "max")

    assert cast_ballots(state) == [("val", "max"), ("vic", "max")]


def test_tie_goes_to_first_target_reaching_the_maximum() -> None:
    state = make_state({
        "mona": Role.MAFIA,
        "vic": Role.VILLAGER,
        "val": Role.VILLAGER,
        "vera": Role.VILLAGER,
    }, phase=Phase.VOTING)
    _vote(state, "mona", "vic")
    _vote(state, "vic", "mona")
    _vote(state, "val", "mona")
    _vote(state, "vera", "vic")

    outcome = resolve_day_vote(state)
    assert outcome.eliminated == "mona"


def test_votes_accepted_during_day_pause() -> None:
    state = _village(phase=Phase.DAY)
    _vote(state, "vic", "mona")
    assert state.day_ballots == {"vic": "mona"}


def test_votes_rejected_at_night() -> None:
    state = _village(phase=Phase.NIGHT)
    with pytest.raises(PhaseError):
        _vote(state, "vic", "mona")


def test_dead_voters_and_dead_targets_rejected() -> None:
    state = _village()
    state.players["vic"].alive = False
    with pytest.raises(GameStateError):
        _vote(state, "vic", "mona")
    with pytest.raises(GameStateError):
        _vote(state, "val", "vic")
    with pytest.raises(GameStateError):
        _vote(state, "val", "nobody-by-that-id")
