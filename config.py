"""Settings from environment variables (prefix SYNC_) or a .env file."""
from __future__ import annotations
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SYNC_", env_file=".env", case_sensitive=False)

    # rule source; the built-in syncs are used when unset
    sync_file: Optional[str] = None
    # unset means cascades run until no sync fires
    max_cascade_traces: Optional[int] = None

    log_level: str = "INFO"
    log_format: str = "json"

    host: str = "0.0.0.0"
    port: int = 5000

    @field_validator("max_cascade_traces")
    @classmethod
    def positive_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("max_cascade_traces must be at least 1")
        return v

    @field_validator("log_format")
    @classmethod
    def known_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
