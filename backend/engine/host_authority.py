from typing import Optional

from models.game import RoomState
from services.session_registry import Session, SessionRegistry


def resolve_host_authority(session: Optional[Session], room: RoomState, sessions: SessionRegistry) -> bool:
    """
    May `session` run host-only commands (start, kick, new game)?

    Host identity lives on a connection, not a credential, so authority falls
    back to whoever asks once the recorded host session is gone.
    """
    if session is None:
        return False
    if session.is_host or session.id == room.host_id:
        return True
    return not sessions.has(room.host_id)


def can_claim_host(session: Session, room: RoomState, sessions: SessionRegistry) -> bool:
    """A host_connect succeeds unless a different, still-connected session is host."""
    return room.host_id in (None, session.id) or not sessions.has(room.host_id)
