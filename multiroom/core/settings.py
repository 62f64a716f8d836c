"""Application settings and lazy settings loader."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration.

    Provider credentials are not settings: each provider profile names the
    environment variable that holds its key, and those are read directly.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "env.example"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    LOG_LEVEL: str = "INFO"

    # Routing document; None means the packaged default.
    ROUTING_CONFIG_PATH: str | None = None

    # Shared working storage for room outputs, completion flags and the final report.
    WORK_DIR: str = "work"
    AGENTS_DIR: str = "agents"

    # Deadline applied to every provider call.
    PROVIDER_TIMEOUT_S: float = 120.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance (lazy-loaded)."""
    return Settings()
