"""Runtime settings read from ``MAPNOTES_*`` environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MAPNOTES_", env_file=".env", extra="ignore")

    # Server
    env: str = "development"
    host: str = "127.0.0.1"
    port: int = 3000
    reload: bool = False
    log_level: str = "INFO"

    # Storage
    data_file: Path = Path("data") / "mapdata.json"
    public_dir: Path = Path("public")

    # Auth
    admin_password: str = "admin"
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    session_ttl_seconds: Optional[int] = Field(None, gt=0)  # None keeps sessions until logout/restart
    restrict_delete_to_owner: bool = False

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
