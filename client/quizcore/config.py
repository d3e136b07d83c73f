from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Game server location; scheme is picked from USE_TLS
    SERVER_HOST: str = "localhost:8080"
    USE_TLS: bool = False
    HOST_PATH: str = "/api/host/"
    PLAY_PATH: str = "/api/play/"
    PROTOCOL_REVISION: Literal["current", "legacy"] = "current"
    OPEN_TIMEOUT_SEC: float = 10.0

    # Session timings (seconds)
    MIN_PLAYERS: int = 3
    QUESTION_COUNTDOWN_SEC: int = 5
    TICK_INTERVAL_SEC: float = 1.0
    HANDSHAKE_DELAY_SEC: float = 0.7
    START_ERROR_CLEAR_SEC: float = 3.0

    # Where the rendering layer should send the user after a lost connection
    PLAYER_EXIT_PATH: str = "/join"
    HOST_EXIT_PATH: str = "/"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
