"""
Course and progress domain models.

Course content is loaded verbatim from JSON and treated as immutable for one
load cycle. Progress records are the aggregate that is reconciled between
the local cache and the remote store.

Serialized form uses camelCase keys so stored records and exported files
stay interchangeable with the web client that writes the same documents.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_utc(value: datetime) -> datetime:
    # Older records carry naive timestamps; they were always written in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict, omitting unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Course Content
# =============================================================================


class CourseMetadata(CamelModel):
    """Identifies a course independent of its content."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str | None = None
    url: str | None = None


class Answer(CamelModel):
    text: str
    correct: bool = False


class Question(CamelModel):
    id: str
    question: str
    hint: str = ""
    reason: str = ""
    answers: list[Answer] = Field(default_factory=list)

    def correct_indices(self) -> set[int]:
        """Indices of every answer flagged correct."""
        return {index for index, answer in enumerate(self.answers) if answer.correct}


class QuestionGroup(CamelModel):
    name: str
    # Early course files used the singular key
    questions: list[Question] = Field(
        default_factory=list,
        validation_alias=AliasChoices("questions", "question"),
    )


class Course(CamelModel):
    question_groups: list[QuestionGroup] = Field(default_factory=list)

    @property
    def total_questions(self) -> int:
        return sum(len(group.questions) for group in self.question_groups)

    def group(self, name: str) -> QuestionGroup | None:
        """Find a question group by name."""
        for group in self.question_groups:
            if group.name == name:
                return group
        return None


# =============================================================================
# Progress
# =============================================================================


class MasteryLevel(str, Enum):
    """
    Mastery progression for a single question.

    Ordered; transitions are only produced by the mastery update algorithm.
    """

    NOT_STARTED = "not_started"
    LEARNING = "learning"
    REVIEWING = "reviewing"
    MASTERED = "mastered"

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.LEARNING: "red",
            MasteryLevel.REVIEWING: "yellow",
            MasteryLevel.MASTERED: "green",
        }[self]


class QuestionProgress(CamelModel):
    """
    Learning state of one question.

    Invariants:
    - total_attempts == correct_attempts + incorrect_attempts
    - consecutive_correct and consecutive_incorrect are never both non-zero
    - mastered_at is stamped the first time the question reaches MASTERED
    """

    question_id: str
    total_attempts: int = 0
    correct_attempts: int = 0
    incorrect_attempts: int = 0
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0
    mastery_level: MasteryLevel = MasteryLevel.NOT_STARTED
    last_attempted_at: UtcDatetime | None = None
    first_correct_at: UtcDatetime | None = None
    mastered_at: UtcDatetime | None = None
    hint_used_count: int = 0

    @classmethod
    def fresh(cls, question_id: str) -> QuestionProgress:
        """Zeroed progress for a question never attempted."""
        return cls(question_id=question_id)


class QuestionGroupProgress(CamelModel):
    """Progress of one question group. Count/percentage fields are derived."""

    group_name: str
    total_questions: int = 0
    questions_progress: list[QuestionProgress] = Field(default_factory=list)
    started_at: UtcDatetime | None = None
    last_activity_at: UtcDatetime | None = None

    # Derived (see core.progress.recalculate_progress)
    not_started_count: int = 0
    learning_count: int = 0
    reviewing_count: int = 0
    mastered_count: int = 0
    completion_percentage: float = 0.0
    average_accuracy: float = 0.0

    def find(self, question_id: str) -> QuestionProgress | None:
        for question_progress in self.questions_progress:
            if question_progress.question_id == question_id:
                return question_progress
        return None


class CourseProgress(CamelModel):
    """Aggregate root: all progress one owner has made in one course."""

    course_id: str
    course_name: str
    total_questions: int = 0
    total_question_groups: int = 0
    groups_progress: list[QuestionGroupProgress] = Field(default_factory=list)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    last_activity_at: UtcDatetime | None = None

    # Derived (see core.progress.recalculate_progress)
    overall_completion_percentage: float = 0.0
    overall_accuracy: float = 0.0
    not_started_count: int = 0
    learning_count: int = 0
    reviewing_count: int = 0
    mastered_count: int = 0

    current_streak: int = 0
    longest_streak: int = 0
    total_study_time: float = 0.0  # seconds

    def group(self, name: str) -> QuestionGroupProgress | None:
        """Find group progress by group name."""
        for group_progress in self.groups_progress:
            if group_progress.group_name == name:
                return group_progress
        return None

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> CourseProgress:
        """Validate a JSON-compatible dict (ISO date strings are parsed)."""
        return cls.model_validate(data)
