from __future__ import annotations

from conftest import FakeConnection
from engine.host_authority import can_claim_host, resolve_host_authority
from models.game import RoomState
from services.session_registry import SessionRegistry


def _room_with_host():
    sessions = SessionRegistry("AUTH01")
    host = sessions.register(FakeConnection())
    sessions.bind_host(host.id, "Hana")
    player = sessions.register(FakeConnection())
    sessions.bind_player(player.id, "p1", "Pat")
    room = RoomState(room_id="AUTH01", host_id=host.id, host_name="Hana")
    return sessions, room, host, player


def test_host_session_is_authorized() -> None:
    sessions, room, host, _ = _room_with_host()
    assert resolve_host_authority(host, room, sessions)


def test_session_matching_host_id_is_authorized_without_flag() -> None:
    sessions, room, host, _ = _room_with_host()
    host.is_host = False
    assert resolve_host_authority(host, room, sessions)


def test_player_denied_while_host_connected() -> None:
    sessions, room, _, player = _room_with_host()
    assert not resolve_host_authority(player, room, sessions)
    assert not can_claim_host(player, room, sessions)


def test_authority_falls_back_once_host_drops() -> None:
    sessions, room, host, player = _room_with_host()
    sessions.remove(host.id)

    assert resolve_host_authority(player, room, sessions)
    assert can_claim_host(player, room, sessions)


def test_room_without_host_can_be_claimed() -> None:
    sessions = SessionRegistry("AUTH02")
    newcomer = sessions.register(FakeConnection())
    room = RoomState(room_id="AUTH02")

    assert can_claim_host(newcomer, room, sessions)
    assert resolve_host_authority(newcomer, room, sessions)


def test_no_session_is_never_authorized() -> None:
    sessions, room, _, _ = _room_with_host()
    assert not resolve_host_authority(None, room, sessions)
