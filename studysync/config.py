"""
Configuration settings for studysync.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STUDYSYNC_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Local Cache
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".studysync",
        description="Directory for the local progress cache and exports",
    )
    local_db_path: Path | None = Field(
        default=None,
        description="SQLite cache file (defaults to <data_dir>/progress.db)",
    )

    # ========================================
    # Course Content
    # ========================================
    course_base_url: str = Field(
        default="http://localhost:4200",
        description="Base URL (or directory) serving <courseId>.json files",
    )
    course_names: dict[str, str] = Field(
        default_factory=lambda: {"daten-informatikrecht": "Daten und Informatikrecht"},
        description="Display names keyed by course id",
    )

    # ========================================
    # Remote Store (Firestore REST)
    # ========================================
    remote_project_id: str | None = Field(
        default=None,
        description="Firestore project id (remote sync disabled when unset)",
    )
    remote_database: str = Field(
        default="(default)",
        description="Firestore database id",
    )
    remote_base_url: str = Field(
        default="https://firestore.googleapis.com/v1",
        description="Firestore REST endpoint",
    )
    remote_auth_token: str | None = Field(
        default=None,
        description="Bearer token (Firebase ID token) for the signed-in user",
    )
    remote_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout for remote store requests",
    )
    user_id: str | None = Field(
        default=None,
        description="Signed-in user id (None = signed out)",
    )

    # ========================================
    # Study Sessions
    # ========================================
    default_question_limit: int = Field(
        default=0,
        description="Questions per session (0 = all questions in scope)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_local_db_path(self) -> Path:
        """Return the SQLite cache path, falling back to the data directory."""
        return self.local_db_path or self.data_dir / "progress.db"

    def has_remote_configured(self) -> bool:
        """Check if the remote store can be used at all."""
        return bool(self.remote_project_id)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
