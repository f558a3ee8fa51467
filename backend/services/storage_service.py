"""
Room persistence — one serialized blob per room under a fixed key.

The blob layout stores every mapping (players, day votes, the three night
ballots) as an explicit list of [key, value] pairs so that ordering survives
any JSON/KV backend. Two backends:

  memory     — process-local dict, the default for a single-node deployment
  firestore  — one document per room in `settings.firestore_collection`
"""
import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional, Protocol

from config import settings
from models.game import GameSettings, NightBallots, PlayerState, RoomState

logger = logging.getLogger(__name__)

GAME_STATE_KEY = "gameState"


# ── Snapshot codec ────────────────────────────────────────────────────────────

def _pairs(mapping: Dict[str, Any]) -> List[List[Any]]:
    return [[k, v] for k, v in mapping.items()]


def _unpairs(pairs: Optional[List[List[Any]]]) -> Dict[str, Any]:
    return {k: v for k, v in (pairs or [])}


def dump_room_state(state: RoomState) -> str:
    """Serialize the full room snapshot (room, roster, ballots) to a JSON string."""
    players = [
        [
            p.id,
            {
                "id": p.id,
                "name": p.name,
                "role": p.role.value if p.role else None,
                "alive": p.alive,
                "sessionId": p.session_id,
            },
        ]
        for p in state.players.values()
    ]
    data = {
        "roomId": state.room_id,
        "phase": state.phase.value,
        "day": state.day,
        "hostId": state.host_id,
        "hostName": state.host_name,
        "winner": state.winner.value if state.winner else None,
        "gameLog": list(state.game_log),
        "gameSettings": state.settings.model_dump(by_alias=True),
        "players": players,
        "dayVotes": _pairs(state.day_ballots),
        "roleVoting": {
            "mafiaVotes": _pairs(state.night_ballots.mafia),
            "detectiveVotes": _pairs(state.night_ballots.detective),
            "angelVotes": _pairs(state.night_ballots.angel),
        },
    }
    return json.dumps(data)


def load_room_state(blob: str) -> RoomState:
    data = json.loads(blob)
    players: Dict[str, PlayerState] = {}
    for pid, p in data.get("players") or []:
        players[pid] = PlayerState(
            id=p["id"],
            name=p["name"],
            role=p.get("role"),
            alive=p.get("alive", True),
            session_id=p.get("sessionId"),
        )
    role_voting = data.get("roleVoting") or {}
    return RoomState(
        room_id=data["roomId"],
        phase=data.get("phase", "lobby"),
        day=data.get("day", 0),
        host_id=data.get("hostId"),
        host_name=data.get("hostName"),
        winner=data.get("winner"),
        game_log=data.get("gameLog") or [],
        settings=GameSettings.model_validate(data.get("gameSettings") or {}),
        players=players,
        night_ballots=NightBallots(
            mafia=_unpairs(role_voting.get("mafiaVotes")),
            detective=_unpairs(role_voting.get("detectiveVotes")),
            angel=_unpairs(role_voting.get("angelVotes")),
        ),
        day_ballots=_unpairs(data.get("dayVotes")),
    )


# ── Storage backends ──────────────────────────────────────────────────────────

class RoomStorage(Protocol):
    """Key-value storage scoped to one room."""

    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str) -> None: ...

    async def delete_all(self) -> None: ...


class MemoryRoomStorage:
    def __init__(self, bucket: Dict[str, str]):
        self._bucket = bucket

    async def get(self, key: str) -> Optional[str]:
        return self._bucket.get(key)

    async def put(self, key: str, value: str) -> None:
        self._bucket[key] = value

    async def delete_all(self) -> None:
        self._bucket.clear()


class MemoryStorageService:
    def __init__(self):
        self._rooms: Dict[str, Dict[str, str]] = {}

    def for_room(self, room_id: str) -> MemoryRoomStorage:
        return MemoryRoomStorage(self._rooms.setdefault(room_id, {}))


class FirestoreRoomStorage:
    def __init__(self, service: "FirestoreStorageService", room_id: str):
        self._service = service
        self._room_id = room_id

    async def get(self, key: str) -> Optional[str]:
        doc = await self._service._run(lambda: self._service._room_ref(self._room_id).get())
        if doc.exists:
            return (doc.to_dict() or {}).get(key)
        return None

    async def put(self, key: str, value: str) -> None:
        await self._service._run(
            lambda: self._service._room_ref(self._room_id).set({key: value}, merge=True)
        )

    async def delete_all(self) -> None:
        await self._service._run(lambda: self._service._room_ref(self._room_id).delete())


class FirestoreStorageService:
    """
    Firestore-backed room blobs using run_in_executor to avoid
    blocking the event loop.
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the memory backend never needs GCP libraries loaded
        from google.cloud import firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)
        self.collection = settings.firestore_collection

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _room_ref(self, room_id: str):
        return self.db.collection(self.collection).document(room_id)

    def for_room(self, room_id: str) -> FirestoreRoomStorage:
        return FirestoreRoomStorage(self, room_id)


_storage_service = None


def get_storage_service():
    """Lazy singleton — the Firestore client is only built on first use."""
    global _storage_service
    if _storage_service is None:
        if settings.storage_backend == "firestore":
            _storage_service = FirestoreStorageService()
        else:
            _storage_service = MemoryStorageService()
        logger.info("Room storage backend: %s", settings.storage_backend)
    return _storage_service
