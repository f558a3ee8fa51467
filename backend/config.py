from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List, Literal


class Settings(BaseSettings):
    # CORS origins; set ALLOWED_ORIGINS env var for production (JSON list)
    allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]
    debug: bool = False
    log_level: str = "INFO"

    # Persistence: "memory" keeps room blobs in-process, "firestore" writes one document per room
    storage_backend: Literal["memory", "firestore"] = "memory"
    google_cloud_project: str = ""
    firestore_emulator_host: Optional[str] = None
    firestore_collection: str = "rooms"

    # Game rules
    min_players: int = 2
    # angelCount left unset in gameSettings defaults to 1 angel at this many players
    default_angel_min_players: int = 5
    # Pause between night resolution and the voting phase; 0 goes straight to voting.
    # A positive gameSettings.dayDuration overrides it per game
    day_advance_delay_sec: float = 8.0

    # Room lifecycle
    room_id_length: int = 6
    room_idle_timeout_sec: int = 2 * 60 * 60
    room_sweep_interval_sec: int = 30 * 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )


settings = Settings()
