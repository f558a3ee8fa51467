"""
Room HTTP endpoints.

Routes:
  POST /api/create-room          — Mint a room id and record the host's name
  GET  /api/join-room?roomId=    — Check a room exists before opening the socket
"""
import logging

from fastapi import APIRouter, HTTPException, Query

from models.game import CreateRoomRequest, CreateRoomResponse, JoinRoomResponse
from services.room_registry import room_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rooms"])


def _join_url(room_id: str) -> str:
    return f"/game.html?room={room_id}"


@router.post("/create-room", response_model=CreateRoomResponse, status_code=201)
async def create_room(body: CreateRoomRequest):
    host_name = body.host_name.strip()
    if not host_name:
        raise HTTPException(status_code=400, detail="Host name is required")
    controller = await room_registry.create_room(host_name)
    logger.info(f"Room {controller.room_id} created for host {host_name}")
    return CreateRoomResponse(roomId=controller.room_id, joinUrl=_join_url(controller.room_id))


@router.get("/join-room", response_model=JoinRoomResponse)
async def join_room(roomId: str = Query(..., min_length=1, description="Room code shared by the host")):
    room_id = roomId.strip().upper()
    controller = await room_registry.get(room_id)
    if not controller:
        raise HTTPException(status_code=404, detail="Room not found")
    state = await controller.snapshot()
    return JoinRoomResponse(roomId=room_id, phase=state.phase, joinUrl=_join_url(room_id))
