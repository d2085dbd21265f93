"""
Core Module - Shared domain models and pure progress logic.

Components:
- models: Course content and progress records (pydantic)
- progress: initialize / synchronize / recalculate metrics
- mastery: Mastery update algorithm for answer events

Everything in this package is free of I/O; stores and services live in
studysync.store and studysync.sync.
"""

from studysync.core.mastery import (
    MASTERY_THRESHOLD,
    apply_answer,
    calculate_mastery_level,
    record_attempt,
)
from studysync.core.models import (
    Answer,
    Course,
    CourseMetadata,
    CourseProgress,
    MasteryLevel,
    Question,
    QuestionGroup,
    QuestionGroupProgress,
    QuestionProgress,
)
from studysync.core.progress import (
    initialize_progress,
    migrate_legacy_progress,
    recalculate_progress,
    synchronize_progress,
)

__all__ = [
    # Models
    "Answer",
    "Course",
    "CourseMetadata",
    "CourseProgress",
    "MasteryLevel",
    "Question",
    "QuestionGroup",
    "QuestionGroupProgress",
    "QuestionProgress",
    # Metrics
    "initialize_progress",
    "migrate_legacy_progress",
    "recalculate_progress",
    "synchronize_progress",
    # Mastery
    "MASTERY_THRESHOLD",
    "apply_answer",
    "calculate_mastery_level",
    "record_attempt",
]
