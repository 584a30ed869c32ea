"""
Centralized configuration management for recallcore.
"""
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Path Configuration ---


def get_default_db_path() -> Path:
    """Returns the default path for the key-value database file."""
    return Path.home() / ".recallcore" / "recallcore.db"


class Settings(BaseSettings):
    """
    Defines application settings, loaded from RECALLCORE_* environment
    variables or a .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECALLCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Backend selection ---
    # "local" keeps everything in the key-value store; "remote" syncs cards
    # and packs with the flashcard API.
    backend: Literal["local", "remote"] = "local"

    # DuckDB file for the key-value store, or ":memory:".
    db_path: str = str(get_default_db_path())

    # --- Remote API ---
    api_base_url: str = "http://localhost:3001/api/user"
    session_id: Optional[str] = None
    request_timeout: float = Field(default=10.0, gt=0)

    # --- Logging ---
    log_level: str = "WARNING"

    # --- Testing Configuration ---
    # When True, disables safety checks that prevent data loss during tests.
    # Should NEVER be enabled in production.
    testing_mode: bool = False


# Create a singleton instance of the settings
settings = Settings()
