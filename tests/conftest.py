"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from studysync.core.models import Course, CourseMetadata  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (stores wired together)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def course_data():
    """Raw course document as served by the content host."""
    return {
        "questionGroups": [
            {
                "name": "Basics",
                "questions": [
                    {
                        "id": "q1",
                        "question": "Which regulation governs personal data in the EU?",
                        "hint": "Four letters",
                        "reason": "The GDPR applies since May 2018.",
                        "answers": [
                            {"text": "GDPR", "correct": True},
                            {"text": "HIPAA", "correct": False},
                            {"text": "SOX", "correct": False},
                        ],
                    },
                    {
                        "id": "q2",
                        "question": "Which are lawful bases for processing?",
                        "hint": "",
                        "reason": "Art. 6 GDPR lists six bases.",
                        "answers": [
                            {"text": "Consent", "correct": True},
                            {"text": "Contract", "correct": True},
                            {"text": "Curiosity", "correct": False},
                        ],
                    },
                ],
            },
            {
                "name": "Copyright",
                "questions": [
                    {
                        "id": "q3",
                        "question": "How long does copyright last after the author's death in the EU?",
                        "hint": "",
                        "reason": "",
                        "answers": [
                            {"text": "50 years", "correct": False},
                            {"text": "70 years", "correct": True},
                        ],
                    },
                ],
            },
        ]
    }


@pytest.fixture
def course(course_data):
    """Validated sample course (2 groups, 3 questions)."""
    return Course.model_validate(course_data)


@pytest.fixture
def metadata():
    """Metadata for the sample course."""
    return CourseMetadata(id="daten-informatikrecht", name="Daten und Informatikrecht")


@pytest.fixture
def course_dir(tmp_path, course_data, metadata):
    """Directory serving the sample course as <courseId>.json."""
    directory = tmp_path / "courses"
    directory.mkdir()
    (directory / f"{metadata.id}.json").write_text(json.dumps(course_data), encoding="utf-8")
    return directory


@pytest.fixture
def t0():
    """Fixed reference time."""
    return datetime(2025, 3, 1, 9, 0, 0, tzinfo=UTC)


class FakeClock:
    """Deterministic clock advancing a fixed step per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=5)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock(t0):
    """Clock starting at t0, 5 seconds per reading."""
    return FakeClock(t0)
