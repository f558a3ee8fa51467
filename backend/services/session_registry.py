"""
Session Registry — live connections of one room.

Maps an opaque session id (one per WebSocket) to its connection handle and the
provisional binding the client has claimed: player id, display name, host flag.
A session never owns game state; dropping it only removes the entry.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """The subset of a Starlette WebSocket the room needs."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


@dataclass
class Session:
    id: str
    connection: Connection
    player_id: Optional[str] = None
    player_name: Optional[str] = None
    is_host: bool = False

    @property
    def is_bound(self) -> bool:
        return self.is_host or self.player_id is not None


class SessionRegistry:
    """
    Tracks active sessions for a single room.
    Only touched from the room's event loop, so no locking of its own.
    """

    def __init__(self, room_id: str = ""):
        self.room_id = room_id
        self._sessions: Dict[str, Session] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def register(self, connection: Connection) -> Session:
        session = Session(id=str(uuid.uuid4()), connection=connection)
        self._sessions[session.id] = session
        logger.debug(f"[{self.room_id}] session {session.id} opened ({len(self)} total)")
        return session

    def remove(self, session_id: str) -> Optional[Session]:
        return self._sessions.pop(session_id, None)

    def get(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def has(self, session_id: Optional[str]) -> bool:
        return session_id is not None and session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    # ── Binding ────────────────────────────────────────────────────────────────

    def bind_player(self, session_id: str, player_id: str, player_name: str) -> None:
        session = self._sessions.get(session_id)
        if session:
            session.player_id = player_id
            session.player_name = player_name

    def bind_host(self, session_id: str, host_name: str) -> None:
        session = self._sessions.get(session_id)
        if session:
            session.is_host = True
            session.player_name = host_name

    def unbind_player(self, player_id: str, keep: Optional[str] = None) -> None:
        """Detach every session other than `keep` still pointing at this player."""
        for session in self._sessions.values():
            if session.player_id == player_id and session.id != keep:
                session.player_id = None
                session.player_name = None

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_to(self, session_id: Optional[str], message: Dict) -> None:
        """Send a private message to a single session, if it is still connected."""
        session = self.get(session_id)
        if not session:
            return
        try:
            await session.connection.send_json(message)
        except Exception as exc:
            logger.warning(f"[{self.room_id}] send_to {session_id} failed: {exc}")
            self.remove(session_id)

    async def broadcast(self, message: Dict, exclude: Optional[str] = None) -> None:
        for session in self:
            if session.id == exclude:
                continue
            await self.send_to(session.id, message)

    async def close(self, session_id: str, code: int = 1000, reason: str = "") -> None:
        session = self.remove(session_id)
        if not session:
            return
        try:
            await session.connection.close(code=code, reason=reason)
        except Exception as exc:
            logger.warning(f"[{self.room_id}] close {session_id} failed: {exc}")

    async def close_all(self, code: int = 1001, reason: str = "") -> None:
        for session in self:
            await self.close(session.id, code=code, reason=reason)
