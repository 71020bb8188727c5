from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Chess Rooms"
    debug: bool = False
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    socketio_path: str = "socket.io"
    websocket_path: str = "/ws"

    room_idle_timeout_seconds: float = 600.0
    room_id_length: int = Field(default=8, ge=8, le=32)

    rate_limit_enabled: bool = True
    websocket_connect_limit: int = 20
    websocket_connect_window_seconds: int = 60
    websocket_event_limit: int = 180
    websocket_event_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CHESSROOMS_",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
