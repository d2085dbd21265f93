"""
SQLite Local Progress Cache.

Durable, synchronous, best-effort persistence of one CourseProgress per
course id. Values are the full record as JSON (dates as ISO-8601 strings)
stored under a namespaced key:

    study-questions-progress-<courseId>

Nothing here raises: failures are logged and reads degrade to "no data".

Database location: ~/.studysync/progress.db
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from studysync.core.models import Course, CourseProgress
from studysync.core.progress import migrate_legacy_progress

STORAGE_KEY_PREFIX = "study-questions-progress-"


def storage_key(course_id: str) -> str:
    """Namespaced cache key for a course."""
    return f"{STORAGE_KEY_PREFIX}{course_id}"


class LocalProgressStore:
    """
    SQLite-backed key-value cache for progress records.

    Handles:
    - save: overwrite the record for a course
    - load: read and validate a record (None if absent or corrupt)
    - clear: remove a record (idempotent)
    """

    DEFAULT_DB_PATH = Path.home() / ".studysync" / "progress.db"

    def __init__(self, db_path: Path | None = None):
        """
        Initialize the progress cache.

        Args:
            db_path: Custom database path (defaults to ~/.studysync/progress.db)
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self._conn: sqlite3.Connection | None = None

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            logger.error("Failed to initialize progress cache at {}: {}", self.db_path, exc)
        else:
            logger.debug("LocalProgressStore initialized at {}", self.db_path)

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS progress_cache (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.commit()

    # =========================================================================
    # Progress Operations
    # =========================================================================

    def save(self, progress: CourseProgress) -> None:
        """
        Save progress, replacing any stored record for the same course.

        Args:
            progress: CourseProgress to persist
        """
        try:
            serialized = json.dumps(progress.to_json_dict())
            self.conn.execute(
                """
                INSERT INTO progress_cache (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """,
                (storage_key(progress.course_id), serialized),
            )
            self.conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            logger.error("Failed to save progress to local cache: {}", exc)

    def load(self, course_id: str, course: Course | None = None) -> CourseProgress | None:
        """
        Load progress for a course.

        Args:
            course_id: The course identifier
            course: Current course content; enables migration of
                    index-keyed records written by older versions

        Returns:
            CourseProgress, or None if absent or unreadable
        """
        try:
            row = self.conn.execute(
                "SELECT value FROM progress_cache WHERE key = ?",
                (storage_key(course_id),),
            ).fetchone()
            if row is None:
                return None

            data = json.loads(row["value"])
            if course is not None and isinstance(data, dict):
                data = migrate_legacy_progress(data, course)
            return CourseProgress.from_json_dict(data)

        except (sqlite3.Error, json.JSONDecodeError, ValidationError, AttributeError, TypeError) as exc:
            logger.error("Failed to load progress from local cache: {}", exc)
            return None

    def clear(self, course_id: str) -> None:
        """Remove the stored record for a course (no-op if absent)."""
        try:
            self.conn.execute(
                "DELETE FROM progress_cache WHERE key = ?",
                (storage_key(course_id),),
            )
            self.conn.commit()
        except sqlite3.Error as exc:
            logger.error("Failed to clear progress from local cache: {}", exc)

    def list_course_ids(self) -> list[str]:
        """Course ids with a cached record, sorted."""
        try:
            rows = self.conn.execute(
                "SELECT key FROM progress_cache WHERE key LIKE ? ORDER BY key",
                (f"{STORAGE_KEY_PREFIX}%",),
            ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Failed to list cached progress: {}", exc)
            return []
        return [row["key"][len(STORAGE_KEY_PREFIX):] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
