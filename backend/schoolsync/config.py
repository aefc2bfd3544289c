import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DEFAULT_STORE_PATH = Path(__file__).resolve().parent / "data" / "store.json"


class Settings(BaseSettings):
    persistence_mode: Literal["file", "database"] = Field("file", alias="SCHOOLSYNC_PERSISTENCE_MODE")
    store_path: Path = Field(DEFAULT_STORE_PATH, alias="SCHOOLSYNC_STORE_PATH")
    database_url: str = Field("sqlite:///schoolsync.db", alias="SCHOOLSYNC_DATABASE_URL")
    database_echo: bool = Field(False, alias="SCHOOLSYNC_DATABASE_ECHO")
    reconcile_interval: float = Field(2.0, gt=0, alias="SCHOOLSYNC_RECONCILE_INTERVAL")
    notification_interval: float = Field(45.0, gt=0, alias="SCHOOLSYNC_NOTIFICATION_INTERVAL")
    notification_ttl: float = Field(8.0, gt=0, alias="SCHOOLSYNC_NOTIFICATION_TTL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid schoolsync configuration: {exc}") from exc
