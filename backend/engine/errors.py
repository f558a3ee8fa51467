"""Rejections raised by the room engine and reported to the sender as `error` messages."""
from typing import Optional


class GameError(Exception):
    code = "GAME_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_message(self) -> dict:
        return {"type": "error", "message": self.message, "code": self.code}


class ProtocolError(GameError):
    """Malformed message, unknown type, or a session that is not bound yet."""
    code = "PROTOCOL_ERROR"


class AuthorizationError(GameError):
    code = "NOT_HOST"


class PhaseError(GameError):
    code = "WRONG_PHASE"


class GameStateError(GameError):
    """Reference to a missing player/target or an otherwise invalid request."""
    code = "INVALID_STATE"


class StorageError(GameError):
    code = "STORAGE_ERROR"
