"""Application configuration loaded from the environment.

Values come from ``CODE_ASSISTANT_*`` environment variables; local development
can keep them in a ``.env`` file next to the application.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from code_assistant import logger


class Settings(BaseSettings):
    """Client settings with defaults suited to a locally running backend."""

    model_config = SettingsConfigDict(
        env_prefix="CODE_ASSISTANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    api_base_url: str = "http://localhost:8080"
    request_timeout: float = 120.0

    # Local key-value store for settings, setup state and the last codebase path
    storage_path: Path = Path.home() / ".code_assistant" / "storage.json"

    # Quiet periods (seconds)
    settings_save_delay: float = 0.3
    search_delay: float = 0.3

    # Background refresh intervals (seconds)
    conversation_refresh_interval: float = 15.0
    indexing_poll_interval: float = 3.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    logger.debug("Fetching application settings.")
    return Settings()
