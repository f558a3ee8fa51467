import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config import settings

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

from services.room_registry import room_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🌙 Mafia room server starting up...")
    room_registry.start_sweeper()
    yield
    await room_registry.stop_sweeper()
    logger.info("Room server shutting down.")


app = FastAPI(
    title="Mafia Rooms",
    version="0.1.0",
    description="Real-time multiplayer social deduction rooms over WebSockets",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "mafia-rooms", "version": "0.1.0", "rooms": len(room_registry)}


from routers.room_router import router as room_router
from routers.ws_router import router as ws_router

app.include_router(room_router, prefix="/api")
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
