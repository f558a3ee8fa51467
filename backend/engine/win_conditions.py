from typing import Iterable, Optional

from models.game import Phase, PlayerState, Role, RoomState, VILLAGE_TEAM, Winner

WIN_MESSAGES = {
    Winner.VILLAGE: "Village wins! All Mafia have been eliminated.",
    Winner.MAFIA: "Mafia wins! They equal or outnumber the Village.",
    Winner.SUICIDE_BOMBER: "The Suicide Bomber wins! They tricked the village into voting them out.",
}


def evaluate_winner(players: Iterable[PlayerState]) -> Optional[Winner]:
    """
    Village wins once no mafia is alive (minions do not count).
    Mafia wins when alive mafia + minions >= alive village team.
    """
    alive = [p for p in players if p.alive]
    alive_mafia = sum(1 for p in alive if p.role == Role.MAFIA)
    alive_minion = sum(1 for p in alive if p.role == Role.MINION)
    alive_village = sum(1 for p in alive if p.role in VILLAGE_TEAM)

    if alive_mafia == 0:
        return Winner.VILLAGE
    if alive_mafia + alive_minion >= alive_village:
        return Winner.MAFIA
    return None


def end_game(state: RoomState, winner: Winner) -> None:
    state.phase = Phase.ENDED
    state.winner = winner
    state.log(WIN_MESSAGES[winner])


def apply_win_check(state: RoomState) -> Optional[Winner]:
    """Evaluate the roster and end the game if someone has won."""
    winner = evaluate_winner(state.players.values())
    if winner:
        end_game(state, winner)
    return winner
