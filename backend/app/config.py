from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    QUESTIONS_CSV: str = "questions.csv"
    STATIC_DIR: str = "public"
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"
    CORS_ORIGIN_REGEX: Optional[str] = None
    # Used when a question row has no usable time limit
    DEFAULT_TIME_LIMIT: int = 20
    TICK_SECONDS: float = 1.0
    WATCH_QUESTIONS: bool = True
    QUESTIONS_POLL_SECONDS: float = 1.0
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
