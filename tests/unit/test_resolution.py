"""
Unit tests for ProgressResolver.

Local progress uses a real SQLite store in tmp_path; the remote store and
conflict arbiter are in-memory fakes that record their calls.
"""

from datetime import timedelta

import pytest

from studysync.core.mastery import apply_answer
from studysync.core.models import Course, MasteryLevel
from studysync.core.progress import initialize_progress
from studysync.exceptions import RemoteStoreError
from studysync.store.local_store import LocalProgressStore
from studysync.sync.conflict import KeepLocalArbiter, SyncChoice, ask_arbiter
from studysync.sync.resolution import ProgressResolver
from tests.fakes import FakeArbiter, FakeRemote


@pytest.fixture
def local(tmp_path):
    store = LocalProgressStore(tmp_path / "progress.db")
    yield store
    store.close()


@pytest.fixture
def remote():
    return FakeRemote()


def _with_activity(course, metadata, t0, when, question="q1", results=(True,)):
    progress = initialize_progress(course, metadata, now=t0)
    for is_correct in results:
        progress = apply_answer(progress, "Basics", question, is_correct, now=when)
    return progress


class TestSignedOut:
    """Resolution without a signed-in user."""

    @pytest.mark.asyncio
    async def test_fresh_progress_saved_locally(self, local, remote, course, metadata):
        """No local record: a fresh one is created and cached; remote untouched."""
        resolver = ProgressResolver(local, remote)

        _, progress = await resolver.resolve(course, metadata, None)

        assert progress.not_started_count == 3
        assert local.load(metadata.id) == progress
        assert remote.saves == []

    @pytest.mark.asyncio
    async def test_existing_local_is_synchronized(self, local, remote, course, course_data, metadata, t0):
        """Local progress is repaired against the current course."""
        local.save(_with_activity(course, metadata, t0, t0))
        course_data["questionGroups"][0]["questions"].append(
            {"id": "q4", "question": "New?", "answers": []}
        )
        grown = Course.model_validate(course_data)

        _, progress = await ProgressResolver(local, remote).resolve(grown, metadata, None)

        assert progress.total_questions == 4
        assert progress.group("Basics").find("q4") is not None
        assert progress.group("Basics").find("q1").correct_attempts == 1


class TestSignedIn:
    """Resolution with a signed-in user."""

    @pytest.mark.asyncio
    async def test_neither_exists(self, local, remote, course, metadata):
        """Fresh progress is saved to both stores."""
        _, progress = await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert local.load(metadata.id) == progress
        assert remote.documents[("u1", metadata.id)] == progress

    @pytest.mark.asyncio
    async def test_only_remote(self, local, remote, course, metadata, t0):
        """Remote progress is adopted and cached locally."""
        remote.documents[("u1", metadata.id)] = _with_activity(course, metadata, t0, t0)

        _, progress = await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert progress.group("Basics").find("q1").correct_attempts == 1
        assert local.load(metadata.id) == progress
        assert remote.saves == []

    @pytest.mark.asyncio
    async def test_only_local(self, local, remote, course, metadata, t0):
        """Local progress is adopted and uploaded."""
        local.save(_with_activity(course, metadata, t0, t0))

        _, progress = await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert len(remote.saves) == 1
        assert remote.documents[("u1", metadata.id)] == progress

    @pytest.mark.asyncio
    async def test_local_newer_pushes_once(self, local, remote, course, metadata, t0):
        """Strictly newer local wins silently with exactly one push."""
        arbiter = FakeArbiter()
        local_progress = _with_activity(course, metadata, t0, t0 + timedelta(hours=2))
        remote.documents[("u1", metadata.id)] = _with_activity(
            course, metadata, t0, t0 + timedelta(hours=1), question="q2"
        )
        local.save(local_progress)

        _, progress = await ProgressResolver(local, remote, arbiter).resolve(course, metadata, "u1")

        assert progress == local_progress
        assert len(remote.saves) == 1
        assert remote.saves[0][1] == local_progress
        assert arbiter.calls == 0

    @pytest.mark.asyncio
    async def test_remote_newer_cloud_choice(self, local, remote, course, metadata, t0):
        """Strictly newer remote + CLOUD overwrites local, no push."""
        remote_progress = _with_activity(
            course, metadata, t0, t0 + timedelta(hours=3), question="q2", results=(True, True, True)
        )
        remote.documents[("u1", metadata.id)] = remote_progress
        local.save(_with_activity(course, metadata, t0, t0 + timedelta(hours=1)))
        arbiter = FakeArbiter(SyncChoice.CLOUD)

        _, progress = await ProgressResolver(local, remote, arbiter).resolve(course, metadata, "u1")

        assert progress == remote_progress
        assert progress.group("Basics").find("q2").mastery_level == MasteryLevel.MASTERED
        assert local.load(metadata.id) == remote_progress
        assert remote.saves == []
        assert arbiter.calls == 1

    @pytest.mark.asyncio
    async def test_remote_newer_local_choice(self, local, remote, course, metadata, t0):
        """Strictly newer remote + LOCAL keeps local and pushes it."""
        local_progress = _with_activity(course, metadata, t0, t0 + timedelta(hours=1))
        local.save(local_progress)
        remote.documents[("u1", metadata.id)] = _with_activity(
            course, metadata, t0, t0 + timedelta(hours=3), question="q2"
        )

        _, progress = await ProgressResolver(local, remote, FakeArbiter(SyncChoice.LOCAL)).resolve(
            course, metadata, "u1"
        )

        assert progress == local_progress
        assert remote.documents[("u1", metadata.id)] == local_progress

    @pytest.mark.asyncio
    async def test_dismissed_arbiter_keeps_local(self, local, remote, course, metadata, t0):
        """A dismissed (None) or failing prompt keeps local."""
        local_progress = _with_activity(course, metadata, t0, t0)
        local.save(local_progress)
        remote.documents[("u1", metadata.id)] = _with_activity(
            course, metadata, t0, t0 + timedelta(hours=3), question="q2"
        )

        _, progress = await ProgressResolver(local, remote, FakeArbiter(choice=None)).resolve(
            course, metadata, "u1"
        )

        assert progress == local_progress

    @pytest.mark.asyncio
    async def test_equal_timestamps_adopt_remote(self, local, remote, course, metadata, t0):
        """At parity the remote copy wins without asking."""
        arbiter = FakeArbiter()
        local.save(_with_activity(course, metadata, t0, t0))
        remote_progress = _with_activity(course, metadata, t0, t0, question="q2")
        remote.documents[("u1", metadata.id)] = remote_progress

        _, progress = await ProgressResolver(local, remote, arbiter).resolve(course, metadata, "u1")

        assert progress == remote_progress
        assert arbiter.calls == 0

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_to_local(self, local, remote, course, metadata, t0):
        """A failing remote load degrades to local-only resolution."""
        local_progress = _with_activity(course, metadata, t0, t0)
        local.save(local_progress)
        remote.load_error = RemoteStoreError("offline")

        _, progress = await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert progress == local_progress
        assert remote.saves == []

    @pytest.mark.asyncio
    async def test_push_failure_does_not_abort(self, local, remote, course, metadata, t0):
        """A failed upload is logged; resolution still returns local."""
        local_progress = _with_activity(course, metadata, t0, t0)
        local.save(local_progress)
        remote.save_error = RemoteStoreError("denied")

        _, progress = await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert progress == local_progress

    @pytest.mark.asyncio
    async def test_unavailable_remote_is_ignored(self, local, course, metadata):
        """An unconfigured remote behaves like being signed out."""
        remote = FakeRemote(available=False)

        await ProgressResolver(local, remote).resolve(course, metadata, "u1")

        assert remote.saves == []

    @pytest.mark.asyncio
    async def test_remote_record_is_synchronized(self, local, remote, course, course_data, metadata, t0):
        """Remote progress is repaired against the current course before use."""
        remote.documents[("u1", metadata.id)] = _with_activity(course, metadata, t0, t0)
        course_data["questionGroups"].pop()
        shrunk = Course.model_validate(course_data)

        _, progress = await ProgressResolver(local, remote).resolve(shrunk, metadata, "u1")

        assert progress.total_question_groups == 1
        assert progress.group("Copyright") is None


class TestAskArbiter:
    """Tests for ask_arbiter."""

    @pytest.mark.asyncio
    async def test_failure_means_local(self, course, metadata, t0):
        """Exceptions from the prompt resolve to LOCAL."""
        progress = initialize_progress(course, metadata, now=t0)
        choice = await ask_arbiter(FakeArbiter(error=RuntimeError("closed")), progress, progress)
        assert choice == SyncChoice.LOCAL

    @pytest.mark.asyncio
    async def test_keep_local_arbiter(self, course, metadata, t0):
        """KeepLocalArbiter always keeps local progress."""
        progress = initialize_progress(course, metadata, now=t0)
        assert await ask_arbiter(KeepLocalArbiter(), progress, progress) == SyncChoice.LOCAL
