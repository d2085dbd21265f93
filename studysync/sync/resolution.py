"""
Progress Resolution Service.

Decides, on every course load, which progress record becomes live:

1. Load local progress and synchronize it against the course.
2. Signed out: use local (or a fresh record saved locally). Remote is
   never touched.
3. Signed in: load remote. A failed load degrades to step 2.
4. Reconcile:
   - neither exists  -> fresh record, saved to both stores
   - only remote     -> adopt (synchronized), saved locally
   - only local      -> adopt, pushed to remote
   - both            -> compare last_activity_at (unset = epoch):
       local newer   -> keep local, push to remote
       remote newer  -> ask the arbiter: CLOUD overwrites local,
                        LOCAL is pushed to remote
       equal         -> adopt remote

The returned progress is always recalculation-consistent.
"""

from __future__ import annotations

from datetime import UTC, datetime

from loguru import logger

from studysync.core.models import Course, CourseMetadata, CourseProgress
from studysync.core.progress import (
    initialize_progress,
    recalculate_progress,
    synchronize_progress,
)
from studysync.exceptions import RemoteStoreError
from studysync.store.local_store import LocalProgressStore
from studysync.store.remote_store import RemoteProgressStore
from studysync.sync.conflict import (
    ConflictArbiter,
    KeepLocalArbiter,
    SyncChoice,
    ask_arbiter,
)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def activity_time(progress: CourseProgress) -> datetime:
    """Last activity timestamp, with unset treated as the epoch."""
    return progress.last_activity_at or EPOCH


class ProgressResolver:
    """Reconciles local, remote and freshly initialized progress."""

    def __init__(
        self,
        local_store: LocalProgressStore,
        remote_store: RemoteProgressStore | None = None,
        arbiter: ConflictArbiter | None = None,
    ):
        self.local_store = local_store
        self.remote_store = remote_store
        self.arbiter = arbiter or KeepLocalArbiter()

    @property
    def remote_available(self) -> bool:
        return self.remote_store is not None and self.remote_store.is_available

    async def resolve(
        self,
        course: Course,
        metadata: CourseMetadata,
        user_id: str | None,
    ) -> tuple[Course, CourseProgress]:
        """
        Resolve the live progress record for a course.

        Args:
            course: Freshly loaded course content
            metadata: Course identity
            user_id: Signed-in user id, or None when signed out

        Returns:
            (course, progress) with progress matching the course structure
        """
        local = self.local_store.load(metadata.id, course=course)
        if local is not None:
            local = synchronize_progress(local, course)

        if user_id is None or not self.remote_available:
            return course, self._resolve_local_only(course, metadata, local)

        try:
            remote = await self.remote_store.load_progress(user_id, metadata.id)
        except RemoteStoreError as e:
            logger.warning("Remote store unavailable, falling back to local progress: {}", e)
            return course, self._resolve_local_only(course, metadata, local)

        if remote is not None:
            remote = synchronize_progress(remote, course)

        progress = await self._reconcile(course, metadata, user_id, local, remote)
        return course, recalculate_progress(progress)

    def _resolve_local_only(
        self,
        course: Course,
        metadata: CourseMetadata,
        local: CourseProgress | None,
    ) -> CourseProgress:
        if local is not None:
            return recalculate_progress(local)

        fresh = initialize_progress(course, metadata)
        self.local_store.save(fresh)
        logger.info("Initialized fresh progress for {}", metadata.id)
        return fresh

    async def _reconcile(
        self,
        course: Course,
        metadata: CourseMetadata,
        user_id: str,
        local: CourseProgress | None,
        remote: CourseProgress | None,
    ) -> CourseProgress:
        if local is None and remote is None:
            fresh = initialize_progress(course, metadata)
            self.local_store.save(fresh)
            await self._push(user_id, fresh)
            logger.info("Initialized fresh progress for {}", metadata.id)
            return fresh

        if local is None:
            logger.info("Adopting remote progress for {}", metadata.id)
            self.local_store.save(remote)
            return remote

        if remote is None:
            logger.info("Uploading local progress for {}", metadata.id)
            await self._push(user_id, local)
            return local

        local_time = activity_time(local)
        remote_time = activity_time(remote)

        if local_time > remote_time:
            logger.info("Local progress is newer for {}, pushing to remote", metadata.id)
            await self._push(user_id, local)
            return local

        if remote_time > local_time:
            choice = await ask_arbiter(self.arbiter, local, remote)
            if choice == SyncChoice.CLOUD:
                logger.info("Using cloud progress for {}", metadata.id)
                self.local_store.save(remote)
                return remote

            logger.info("Keeping local progress for {}, pushing to remote", metadata.id)
            await self._push(user_id, local)
            return local

        # Equal timestamps: remote is authoritative
        self.local_store.save(remote)
        return remote

    async def _push(self, user_id: str, progress: CourseProgress) -> None:
        try:
            await self.remote_store.save_progress(user_id, progress)
        except RemoteStoreError as e:
            logger.warning("Failed to push progress to remote store: {}", e)
