from __future__ import annotations

from typing import Any, Optional

from config import Settings
from engine.role_assigner import RoleAssigner
from engine.room_controller import RoomController
from models.game import Phase, PlayerState, Role, RoomState
from services.storage_service import MemoryRoomStorage


class FakeConnection:
    """Stands in for a Starlette WebSocket: records what the room sends."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict[str, Any]] = []
        self.closed: Optional[tuple[int, Optional[str]]] = None
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("connection reset by peer")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = (code, reason)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]

    def last(self, msg_type: str) -> Optional[dict[str, Any]]:
        matches = self.of_type(msg_type)
        return matches[-1] if matches else None

    def clear(self) -> None:
        self.sent.clear()


class FlakyStorage(MemoryRoomStorage):
    """Memory storage whose writes can be switched off."""

    def __init__(self):
        super().__init__({})
        self.fail_puts = False
        self.puts = 0

    async def put(self, key: str, value: str) -> None:
        if self.fail_puts:
            raise RuntimeError("storage unavailable")
        self.puts += 1
        await super().put(key, value)


class NoShuffle:
    """Keeps join order so roles are dealt predictably in priority order."""

    def shuffle(self, items: list) -> None:
        return None


def make_state(roles: dict[str, Role], phase: Phase = Phase.NIGHT, day: int = 1) -> RoomState:
    """Room with one player per entry; ids are the given keys, names capitalized."""
    state = RoomState(room_id="TEST01", phase=phase, day=day)
    for player_id, role in roles.items():
        state.players[player_id] = PlayerState(
            id=player_id, name=player_id.capitalize(), role=role, session_id=f"s-{player_id}",
        )
    return state


def make_controller(storage: Optional[MemoryRoomStorage] = None, **overrides: Any) -> RoomController:
    config = Settings(**{"day_advance_delay_sec": 0, "min_players": 2, **overrides})
    return RoomController(
        "TEST01",
        storage if storage is not None else MemoryRoomStorage({}),
        assigner=RoleAssigner(rng=NoShuffle(), default_angel_min_players=config.default_angel_min_players),
        config=config,
    )


class Table:
    """A controller with named fake clients attached to it."""

    def __init__(self, controller: RoomController):
        self.controller = controller
        self.clients: dict[str, FakeConnection] = {}
        self.session_ids: dict[str, str] = {}

    async def connect(self, who: str, fail: bool = False) -> FakeConnection:
        connection = FakeConnection(fail=fail)
        session = await self.controller.connect(connection)
        self.clients[who] = connection
        self.session_ids[who] = session.id
        return connection

    async def send(self, who: str, message: dict[str, Any]) -> None:
        await self.controller.handle_message(self.session_ids[who], message)

    async def host(self, name: str = "Host") -> FakeConnection:
        connection = await self.connect("host")
        await self.send("host", {"type": "host_connect", "hostName": name})
        return connection

    async def join(self, name: str, existing_player_id: Optional[str] = None) -> FakeConnection:
        connection = await self.connect(name)
        message: dict[str, Any] = {"type": "join_game", "playerName": name}
        if existing_player_id:
            message["existingPlayerId"] = existing_player_id
        await self.send(name, message)
        return connection

    @property
    def state(self) -> RoomState:
        return self.controller.state

    def player(self, name: str) -> PlayerState:
        found = self.state.find_by_name(name)
        assert found is not None, f"no player named {name}"
        return found

    def with_role(self, role: Role) -> list[PlayerState]:
        return [p for p in self.state.players.values() if p.role == role]
