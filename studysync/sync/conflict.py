"""
Conflict arbitration between local and remote progress.

When the remote record is strictly newer than the local one, accepting it
would discard local activity the timestamps cannot account for, so the
choice is handed to an arbiter (usually the user). Dismissing the question
keeps local progress.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from loguru import logger

from studysync.core.models import CourseProgress


class SyncChoice(str, Enum):
    """Which copy of the progress record to keep."""

    CLOUD = "cloud"
    LOCAL = "local"

    @property
    def display_name(self) -> str:
        return {
            SyncChoice.CLOUD: "Use cloud progress",
            SyncChoice.LOCAL: "Keep local progress",
        }[self]


@runtime_checkable
class ConflictArbiter(Protocol):
    """Decides between a local record and a strictly newer remote record."""

    async def choose(
        self, local: CourseProgress, remote: CourseProgress
    ) -> SyncChoice | None:
        """Return the chosen side, or None when the decision was dismissed."""
        ...


class KeepLocalArbiter:
    """Non-interactive arbiter that always keeps local progress."""

    async def choose(
        self, local: CourseProgress, remote: CourseProgress
    ) -> SyncChoice | None:
        return SyncChoice.LOCAL


async def ask_arbiter(
    arbiter: ConflictArbiter,
    local: CourseProgress,
    remote: CourseProgress,
) -> SyncChoice:
    """
    Ask the arbiter, treating dismissal or failure as LOCAL.

    Never raises: local data is never discarded without an explicit choice.
    """
    try:
        choice = await arbiter.choose(local, remote)
    except Exception as e:
        logger.warning("Sync conflict prompt failed, keeping local progress: {}", e)
        return SyncChoice.LOCAL

    if choice is None:
        logger.info("Sync conflict dismissed, keeping local progress")
        return SyncChoice.LOCAL

    return SyncChoice(choice)
