"""
WebSocket Hub — one socket per session, routed to the room's controller.

URL: /room/{room_id}/websocket

Connection flow:
  1. Look up the room → close 4404 if it does not exist
  2. Accept and register a fresh session (opaque id, nothing bound yet)
  3. Controller sends the current game_state_update
  4. Message loop: every text frame goes to RoomController.handle_raw
  5. On disconnect: the session is dropped, the player stays in the room

Clients identify themselves with host_connect or join_game; everything else
is rejected until the session is bound.
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from services.room_registry import room_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/room/{room_id}/websocket")
async def websocket_endpoint(ws: WebSocket, room_id: str):
    controller = await room_registry.get(room_id)
    if not controller:
        await ws.close(code=4404, reason="Room not found")
        return

    await ws.accept()
    session = await controller.connect(ws)
    logger.debug(f"[{room_id}] session {session.id} connected ({len(controller.sessions)} total)")

    try:
        while True:
            raw = await ws.receive_text()
            await controller.handle_raw(session.id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await controller.disconnect(session.id)
