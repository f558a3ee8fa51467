"""
Room Registry — room id → RoomController, plus the idle sweeper.

Rooms are created over HTTP, looked up on every WebSocket upgrade, and dropped
once nobody has touched them for `settings.room_idle_timeout_sec`. A room that
is missing from memory but still has a persisted blob (e.g. after a restart
with the Firestore backend) is revived on lookup.
"""
import asyncio
import logging
import secrets
import string
from typing import Dict, List, Optional

from config import Settings, settings as default_settings
from engine.room_controller import RoomController
from services.storage_service import GAME_STATE_KEY, get_storage_service

logger = logging.getLogger(__name__)

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


class RoomRegistry:
    def __init__(self, storage_service=None, config: Optional[Settings] = None):
        self._storage_service = storage_service
        self.config = config or default_settings
        self._rooms: Dict[str, RoomController] = {}
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def storage_service(self):
        if self._storage_service is None:
            self._storage_service = get_storage_service()
        return self._storage_service

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _new_room_id(self) -> str:
        while True:
            room_id = "".join(
                secrets.choice(ROOM_ID_ALPHABET) for _ in range(self.config.room_id_length)
            )
            if room_id not in self._rooms:
                return room_id

    def _controller(self, room_id: str) -> RoomController:
        return RoomController(
            room_id, self.storage_service.for_room(room_id), config=self.config,
        )

    # ── Lookup ─────────────────────────────────────────────────────────────────

    async def create_room(self, host_name: str) -> RoomController:
        room_id = self._new_room_id()
        controller = self._controller(room_id)
        await controller.initialize(host_name)
        self._rooms[room_id] = controller
        return controller

    async def get(self, room_id: str) -> Optional[RoomController]:
        controller = self._rooms.get(room_id)
        if controller:
            return controller

        candidate = self._controller(room_id)
        try:
            blob = await candidate.storage.get(GAME_STATE_KEY)
        except Exception:
            logger.warning(f"[{room_id}] Storage lookup failed", exc_info=True)
            return None
        if not blob:
            return None
        # Another coroutine may have revived it while we were reading
        controller = self._rooms.setdefault(room_id, candidate)
        logger.info(f"[{room_id}] Room revived from storage")
        return controller

    # ── Idle cleanup ───────────────────────────────────────────────────────────

    async def sweep_idle(self) -> List[str]:
        """Close every room idle for longer than the configured timeout."""
        expired = [
            room_id for room_id, controller in self._rooms.items()
            if controller.idle_seconds() > self.config.room_idle_timeout_sec
        ]
        for room_id in expired:
            controller = self._rooms.pop(room_id)
            logger.info(f"[{room_id}] Closing idle room")
            await controller.close()
        return expired

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.room_sweep_interval_sec)
            try:
                await self.sweep_idle()
            except Exception:
                logger.exception("Room sweep failed")

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="room-sweeper")

    async def stop_sweeper(self) -> None:
        if self._sweeper and not self._sweeper.done():
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
        self._sweeper = None


room_registry = RoomRegistry()
