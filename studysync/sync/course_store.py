"""
Course Store - application state and the progress write-back path.

CourseState holds the single live progress record for the open course and
notifies subscribers on every change. CourseStore drives it:

- load_course: fetch content, resolve progress, publish
- update_progress: recalculate, publish, save locally, push remotely in
  the background
- set_user: sign-in / sign-out events
- clear_progress / reset: remove progress from both stores

Remote pushes are fire-and-forget asyncio tasks that run one at a time in
write order. A failed push is logged and never rolls back the local write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from studysync.content.loader import CourseLoader
from studysync.core.models import Course, CourseMetadata, CourseProgress
from studysync.core.progress import recalculate_progress
from studysync.exceptions import CourseLoadError, RemoteStoreError
from studysync.store.local_store import LocalProgressStore
from studysync.store.remote_store import RemoteProgressStore
from studysync.sync.resolution import ProgressResolver

StateListener = Callable[["CourseState"], None]


@dataclass
class ProgressStats:
    """Rounded summary of a progress record for display."""

    completion: int
    accuracy: int
    mastered: int
    reviewing: int
    learning: int
    not_started: int
    total: int


@dataclass
class CourseState:
    """Observable state of the open course."""

    metadata: CourseMetadata | None = None
    course: Course | None = None
    progress: CourseProgress | None = None
    user_id: str | None = None
    is_loading: bool = False
    error: str | None = None

    _listeners: list[StateListener] = field(default_factory=list, repr=False)

    @property
    def has_progress(self) -> bool:
        return self.progress is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called after every state change.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def patch(self, **changes: Any) -> None:
        """Apply field changes and notify listeners once."""
        for name, value in changes.items():
            if name.startswith("_") or not hasattr(self, name):
                raise AttributeError(f"Unknown state field: {name}")
            setattr(self, name, value)

        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("State listener failed: {}", e)


class CourseStore:
    """Owns the live progress record and keeps both stores in step with it."""

    def __init__(
        self,
        loader: CourseLoader,
        local_store: LocalProgressStore,
        remote_store: RemoteProgressStore | None = None,
        resolver: ProgressResolver | None = None,
        state: CourseState | None = None,
    ):
        self.loader = loader
        self.local_store = local_store
        self.remote_store = remote_store
        self.resolver = resolver or ProgressResolver(local_store, remote_store)
        self.state = state or CourseState()
        self._pending: set[asyncio.Task[None]] = set()
        self._push_lock = asyncio.Lock()

    @property
    def remote_enabled(self) -> bool:
        """True when a user is signed in and the remote store is configured."""
        return (
            self.state.user_id is not None
            and self.remote_store is not None
            and self.remote_store.is_available
        )

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_course(self, metadata: CourseMetadata) -> CourseProgress | None:
        """
        Load a course and resolve its progress.

        On a load failure the error is published, course and progress are
        cleared, and None is returned.
        """
        self.state.patch(is_loading=True, error=None)

        try:
            course = await self.loader.fetch(metadata.id)
        except CourseLoadError as e:
            logger.error("{}", e)
            self.state.patch(
                error=str(e),
                is_loading=False,
                metadata=None,
                course=None,
                progress=None,
            )
            return None

        course, progress = await self.resolver.resolve(course, metadata, self.state.user_id)

        self.state.patch(
            metadata=metadata,
            course=course,
            progress=progress,
            is_loading=False,
            error=None,
        )
        return progress

    # =========================================================================
    # Write-back
    # =========================================================================

    def update_progress(self, progress: CourseProgress) -> CourseProgress:
        """
        Publish and persist a changed progress record.

        Local persistence is synchronous. The remote push, when enabled, is
        scheduled on the running event loop and not awaited.
        """
        recalculated = recalculate_progress(progress)
        self.state.patch(progress=recalculated)
        self.local_store.save(recalculated)

        if self.remote_enabled:
            self._schedule_push(self.state.user_id, recalculated)

        return recalculated

    def set_user(self, user_id: str | None, auth_token: str | None = None) -> None:
        """
        Handle a sign-in or sign-out.

        Signing in while progress is already in memory pushes that progress
        to the remote store in the background.
        """
        was_signed_out = self.state.user_id is None

        if self.remote_store is not None and auth_token is not None:
            self.remote_store.set_auth_token(auth_token)

        self.state.patch(user_id=user_id)

        if was_signed_out and user_id is not None and self.state.has_progress:
            if self.remote_enabled:
                logger.info("Signed in, uploading current progress")
                self._schedule_push(user_id, self.state.progress)

    async def clear_progress(self, course_id: str) -> None:
        """Remove a course's progress from both stores."""
        self.local_store.clear(course_id)

        if self.remote_enabled:
            try:
                await self.remote_store.clear_progress(self.state.user_id, course_id)
            except RemoteStoreError as e:
                logger.warning("Failed to clear remote progress for {}: {}", course_id, e)

        if self.state.metadata is not None and self.state.metadata.id == course_id:
            self.state.patch(progress=None)

    async def reset(self) -> None:
        """Clear the open course's progress everywhere and reset state."""
        if self.state.metadata is not None:
            await self.clear_progress(self.state.metadata.id)

        self.state.patch(
            metadata=None,
            course=None,
            progress=None,
            is_loading=False,
            error=None,
        )

    def progress_stats(self) -> ProgressStats | None:
        """Rounded summary of the live progress, or None without progress."""
        progress = self.state.progress
        if progress is None:
            return None

        return ProgressStats(
            completion=round(progress.overall_completion_percentage),
            accuracy=round(progress.overall_accuracy),
            mastered=progress.mastered_count,
            reviewing=progress.reviewing_count,
            learning=progress.learning_count,
            not_started=progress.not_started_count,
            total=progress.total_questions,
        )

    # =========================================================================
    # Background pushes
    # =========================================================================

    def _schedule_push(self, user_id: str, progress: CourseProgress) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, remote push for {} skipped", progress.course_id)
            return

        task = loop.create_task(self._push(user_id, progress))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(self, user_id: str, progress: CourseProgress) -> None:
        # Lock waiters are served in order, so pushes land in write order
        async with self._push_lock:
            try:
                await self.remote_store.save_progress(user_id, progress)
            except RemoteStoreError as e:
                logger.error("Background progress push failed for {}: {}", progress.course_id, e)

    @property
    def pending_pushes(self) -> int:
        return len(self._pending)

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled remote push has finished."""
        if self.pending_pushes:
            logger.debug("Waiting for {} pending remote push(es)", self.pending_pushes)
        while self._pending:
            await asyncio.gather(*list(self._pending))
