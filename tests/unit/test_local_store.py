"""
Unit tests for the SQLite local progress cache.
"""

import json

import pytest

from studysync.core.mastery import apply_answer
from studysync.core.progress import initialize_progress
from studysync.store.local_store import LocalProgressStore, storage_key


@pytest.fixture
def store(tmp_path):
    """Local store backed by a temporary database."""
    store = LocalProgressStore(tmp_path / "progress.db")
    yield store
    store.close()


@pytest.fixture
def progress(course, metadata, t0):
    """Progress with one mastered question."""
    progress = initialize_progress(course, metadata, now=t0)
    for _ in range(3):
        progress = apply_answer(progress, "Basics", "q1", True, now=t0, hint_used=True)
    return progress


class TestLocalProgressStore:
    """Tests for save / load / clear."""

    def test_round_trip(self, store, progress):
        """load(save(p)) equals p, including dates."""
        store.save(progress)
        loaded = store.load(progress.course_id)

        assert loaded == progress
        assert loaded.group("Basics").find("q1").mastered_at == progress.group("Basics").find("q1").mastered_at

    def test_load_missing_returns_none(self, store):
        """Unknown course ids yield None."""
        assert store.load("unknown") is None

    def test_save_overwrites(self, store, progress, t0):
        """A second save replaces the stored record."""
        store.save(progress)
        updated = apply_answer(progress, "Copyright", "q3", True, now=t0)
        store.save(updated)

        assert store.load(progress.course_id) == updated

    def test_clear_is_idempotent(self, store, progress):
        """clear removes the record and may be repeated."""
        store.save(progress)
        store.clear(progress.course_id)
        store.clear(progress.course_id)

        assert store.load(progress.course_id) is None

    def test_corrupt_entry_treated_as_absent(self, store, progress):
        """Corrupt JSON is logged and reads as None."""
        store.conn.execute(
            "INSERT INTO progress_cache (key, value) VALUES (?, ?)",
            (storage_key(progress.course_id), "{not json"),
        )
        store.conn.commit()

        assert store.load(progress.course_id) is None

    def test_invalid_shape_treated_as_absent(self, store):
        """Valid JSON that is not a progress record reads as None."""
        store.conn.execute(
            "INSERT INTO progress_cache (key, value) VALUES (?, ?)",
            (storage_key("c"), json.dumps({"courseId": "c"})),
        )
        store.conn.commit()

        assert store.load("c") is None

    def test_legacy_record_migrated_on_load(self, store, course, metadata):
        """Index-keyed records are upgraded when the course is known."""
        legacy = {
            "courseId": metadata.id,
            "courseName": metadata.name,
            "createdAt": "2024-01-01T00:00:00",
            "groupsProgress": [
                {
                    "groupName": "Basics",
                    "totalQuestions": 2,
                    "questionsProgress": [
                        {"questionIndex": 0, "totalAttempts": 1, "correctAttempts": 1,
                         "consecutiveCorrect": 1, "masteryLevel": "reviewing"},
                    ],
                }
            ],
        }
        store.conn.execute(
            "INSERT INTO progress_cache (key, value) VALUES (?, ?)",
            (storage_key(metadata.id), json.dumps(legacy)),
        )
        store.conn.commit()

        loaded = store.load(metadata.id, course=course)

        assert loaded.group("Basics").find("q1").correct_attempts == 1

    def test_malformed_legacy_record_does_not_raise(self, store, course, metadata):
        """Junk next to index-keyed entries is dropped, never raised."""
        legacy = {
            "courseId": metadata.id,
            "courseName": metadata.name,
            "createdAt": "2024-01-01T00:00:00",
            "groupsProgress": [
                {
                    "groupName": "Basics",
                    "totalQuestions": 2,
                    "questionsProgress": [{"questionIndex": 0, "totalAttempts": 1, "correctAttempts": 1}, 42],
                },
                "junk",
            ],
        }
        store.conn.execute(
            "INSERT INTO progress_cache (key, value) VALUES (?, ?)",
            (storage_key(metadata.id), json.dumps(legacy)),
        )
        store.conn.commit()

        loaded = store.load(metadata.id, course=course)

        assert [g.group_name for g in loaded.groups_progress] == ["Basics"]
        assert [q.question_id for q in loaded.group("Basics").questions_progress] == ["q1"]

    def test_unmigratable_shape_treated_as_absent(self, store, course):
        """A legacy record whose groups hold non-list entries loads as None."""
        broken = {
            "courseId": "c",
            "courseName": "C",
            "groupsProgress": [{"questionsProgress": [{"questionIndex": 0}]}, {"questionsProgress": 5}],
        }
        store.conn.execute(
            "INSERT INTO progress_cache (key, value) VALUES (?, ?)",
            (storage_key("c"), json.dumps(broken)),
        )
        store.conn.commit()

        assert store.load("c", course=course) is None

    def test_list_course_ids(self, store, progress):
        """Cached course ids are listed without the key prefix."""
        store.save(progress)
        assert store.list_course_ids() == [progress.course_id]

    def test_stored_value_is_camel_case_json(self, store, progress):
        """The cached value is the camelCase JSON record."""
        store.save(progress)
        row = store.conn.execute(
            "SELECT value FROM progress_cache WHERE key = ?",
            (storage_key(progress.course_id),),
        ).fetchone()
        data = json.loads(row["value"])

        assert data["courseId"] == progress.course_id
        assert isinstance(data["createdAt"], str)
