"""
Exception types raised across studysync.

Only failures a caller must react to are modelled here. Local cache problems
never surface as exceptions; they are logged and treated as missing data.
"""

from __future__ import annotations


class StudySyncError(Exception):
    """Base class for all studysync errors."""


class CourseLoadError(StudySyncError):
    """A course document could not be fetched or parsed."""

    def __init__(self, course_id: str, reason: str):
        self.course_id = course_id
        self.reason = reason
        super().__init__(f"Failed to load course '{course_id}': {reason}")


class RemoteStoreError(StudySyncError):
    """A remote progress document operation failed (network, permission, decode)."""


class ProgressImportError(StudySyncError):
    """An imported progress file was rejected. The message is meant for the user."""
