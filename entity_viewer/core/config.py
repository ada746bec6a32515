"""Configuration of the data-access layer."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings shared by the database handle, viewers and query builders."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database connection
    database_dsn: str = Field(
        default="sqlite+aiosqlite:///./entity_viewer.db",
        alias="DATABASE_DSN",
    )
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Per-viewer loaders
    loader_max_batch_size: int | None = Field(
        default=None, alias="LOADER_MAX_BATCH_SIZE", ge=1
    )
    loader_cache_size: int | None = Field(
        default=None, alias="LOADER_CACHE_SIZE", ge=1
    )

    # Query builders
    query_debug: bool = Field(default=False, alias="QUERY_DEBUG")

    @field_validator("loader_max_batch_size", "loader_cache_size", mode="before")
    @classmethod
    def _empty_as_unset(cls, value: int | str | None) -> int | str | None:
        """Treat an empty environment value as "no limit"."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment only once."""
    return Settings()
