"""
Mastery Update Algorithm.

Folds one answer event into the progress model:

    consecutive correct >= 3  -> MASTERED
    consecutive correct  > 0  -> REVIEWING
    otherwise (attempted)     -> LEARNING

A single wrong answer resets the correct streak and demotes to LEARNING.
mastered_at is stamped on the transition into MASTERED and kept afterwards,
so it always records the first time the question was mastered.
"""

from __future__ import annotations

from datetime import datetime

from studysync.core.models import (
    CourseProgress,
    MasteryLevel,
    QuestionProgress,
    utcnow,
)
from studysync.core.progress import recalculate_progress

MASTERY_THRESHOLD = 3  # Consecutive correct answers needed for mastery


def calculate_mastery_level(consecutive_correct: int, total_attempts: int) -> MasteryLevel:
    """
    Derive the mastery level from streak and attempt counters.

    Args:
        consecutive_correct: Current run of correct answers
        total_attempts: Attempts including the one just made

    Returns:
        MasteryLevel for the question
    """
    if total_attempts == 0:
        return MasteryLevel.NOT_STARTED

    if consecutive_correct >= MASTERY_THRESHOLD:
        return MasteryLevel.MASTERED

    if consecutive_correct > 0:
        return MasteryLevel.REVIEWING

    return MasteryLevel.LEARNING


def record_attempt(
    progress: QuestionProgress,
    is_correct: bool,
    now: datetime | None = None,
    hint_used: bool = False,
) -> QuestionProgress:
    """
    Apply one attempt to a question's progress.

    Args:
        progress: Prior state (left unmodified)
        is_correct: Whether the attempt was correct
        now: Attempt timestamp
        hint_used: Whether the hint was revealed before answering

    Returns:
        New QuestionProgress
    """
    now = now or utcnow()

    consecutive_correct = progress.consecutive_correct + 1 if is_correct else 0
    consecutive_incorrect = 0 if is_correct else progress.consecutive_incorrect + 1
    total_attempts = progress.total_attempts + 1
    level = calculate_mastery_level(consecutive_correct, total_attempts)

    mastered_at = progress.mastered_at
    if level == MasteryLevel.MASTERED and progress.mastery_level != MasteryLevel.MASTERED:
        mastered_at = mastered_at or now

    first_correct_at = progress.first_correct_at
    if is_correct and first_correct_at is None:
        first_correct_at = now

    return progress.model_copy(
        update={
            "total_attempts": total_attempts,
            "correct_attempts": progress.correct_attempts + (1 if is_correct else 0),
            "incorrect_attempts": progress.incorrect_attempts + (0 if is_correct else 1),
            "consecutive_correct": consecutive_correct,
            "consecutive_incorrect": consecutive_incorrect,
            "mastery_level": level,
            "last_attempted_at": now,
            "first_correct_at": first_correct_at,
            "mastered_at": mastered_at,
            "hint_used_count": progress.hint_used_count + (1 if hint_used else 0),
        }
    )


def apply_answer(
    progress: CourseProgress,
    group_name: str,
    question_id: str,
    is_correct: bool,
    now: datetime | None = None,
    hint_used: bool = False,
    study_seconds: float = 0.0,
) -> CourseProgress:
    """
    Fold one answer event into a course progress record.

    Updates the question entry, group activity timestamps, course activity
    timestamp, answer streaks and study time, then recalculates metrics.

    Raises:
        KeyError: If the group or question has no progress entry
    """
    now = now or utcnow()

    group_progress = progress.group(group_name)
    if group_progress is None:
        raise KeyError(f"No progress for group '{group_name}'")

    question_progress = group_progress.find(question_id)
    if question_progress is None:
        raise KeyError(f"No progress for question '{question_id}' in group '{group_name}'")

    updated_question = record_attempt(question_progress, is_correct, now=now, hint_used=hint_used)

    updated_group = group_progress.model_copy(
        update={
            "questions_progress": [
                updated_question if qp.question_id == question_id else qp
                for qp in group_progress.questions_progress
            ],
            "started_at": group_progress.started_at or now,
            "last_activity_at": now,
        }
    )

    current_streak = progress.current_streak + 1 if is_correct else 0

    return recalculate_progress(
        progress.model_copy(
            update={
                "groups_progress": [
                    updated_group if gp.group_name == group_name else gp
                    for gp in progress.groups_progress
                ],
                "last_activity_at": now,
                "current_streak": current_streak,
                "longest_streak": max(progress.longest_streak, current_streak),
                "total_study_time": progress.total_study_time + max(study_seconds, 0.0),
            }
        )
    )
