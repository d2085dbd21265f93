"""
Progress Metrics Engine.

Pure functions (no I/O) that build, repair and recompute CourseProgress
records:

- initialize_progress: fresh all-zero record for a course
- synchronize_progress: repair a record after the course content changed
- recalculate_progress: recompute every derived count/percentage
- migrate_legacy_progress: upgrade index-keyed records to id-keyed ones

Group progress is matched to course groups by name, never by position.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loguru import logger

from studysync.core.models import (
    Course,
    CourseMetadata,
    CourseProgress,
    MasteryLevel,
    QuestionGroup,
    QuestionGroupProgress,
    QuestionProgress,
    utcnow,
)


def _percentage(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def _fresh_group(group: QuestionGroup) -> QuestionGroupProgress:
    return QuestionGroupProgress(
        group_name=group.name,
        total_questions=len(group.questions),
        questions_progress=[QuestionProgress.fresh(q.id) for q in group.questions],
        not_started_count=len(group.questions),
    )


def initialize_progress(
    course: Course,
    metadata: CourseMetadata,
    now: datetime | None = None,
) -> CourseProgress:
    """
    Build a fresh progress record for a course.

    Args:
        course: Loaded course content
        metadata: Course id and display name
        now: Creation timestamp (defaults to current UTC time)

    Returns:
        CourseProgress with every question NOT_STARTED and consistent metrics
    """
    groups_progress = [_fresh_group(group) for group in course.question_groups]
    total_questions = course.total_questions

    return CourseProgress(
        course_id=metadata.id,
        course_name=metadata.name,
        total_questions=total_questions,
        total_question_groups=len(course.question_groups),
        groups_progress=groups_progress,
        created_at=now or utcnow(),
        not_started_count=total_questions,
    )


def calculate_group_metrics(group_progress: QuestionGroupProgress) -> QuestionGroupProgress:
    """Return a copy of the group with every derived field recomputed."""
    levels = [q.mastery_level for q in group_progress.questions_progress]
    mastered = levels.count(MasteryLevel.MASTERED)

    total_attempts = sum(q.total_attempts for q in group_progress.questions_progress)
    total_correct = sum(q.correct_attempts for q in group_progress.questions_progress)

    return group_progress.model_copy(
        update={
            "not_started_count": levels.count(MasteryLevel.NOT_STARTED),
            "learning_count": levels.count(MasteryLevel.LEARNING),
            "reviewing_count": levels.count(MasteryLevel.REVIEWING),
            "mastered_count": mastered,
            "completion_percentage": _percentage(mastered, group_progress.total_questions),
            "average_accuracy": _percentage(total_correct, total_attempts),
        }
    )


def recalculate_progress(progress: CourseProgress) -> CourseProgress:
    """
    Recompute all derived fields from the per-question state.

    Must run after every change to questions_progress before the record
    is considered valid.
    """
    groups = [calculate_group_metrics(group) for group in progress.groups_progress]

    all_questions = [q for group in groups for q in group.questions_progress]
    total_attempts = sum(q.total_attempts for q in all_questions)
    total_correct = sum(q.correct_attempts for q in all_questions)
    mastered = sum(g.mastered_count for g in groups)

    return progress.model_copy(
        update={
            "groups_progress": groups,
            "not_started_count": sum(g.not_started_count for g in groups),
            "learning_count": sum(g.learning_count for g in groups),
            "reviewing_count": sum(g.reviewing_count for g in groups),
            "mastered_count": mastered,
            "overall_completion_percentage": _percentage(mastered, progress.total_questions),
            "overall_accuracy": _percentage(total_correct, total_attempts),
        }
    )


def synchronize_progress(progress: CourseProgress, course: Course) -> CourseProgress:
    """
    Reconcile a progress record with the current course structure.

    For every course group (joined by name):
    - missing group progress is created all-zero
    - entries for question ids no longer in the group are dropped; an edited
      question gets a new id and therefore starts over
    - question ids without an entry get a zeroed one

    Group progress for groups no longer in the course is dropped.

    Returns:
        The input object itself when nothing drifted, otherwise a new,
        recalculated record.
    """
    has_changes = False
    orphaned_count = 0
    synchronized_groups: list[QuestionGroupProgress] = []

    for course_group in course.question_groups:
        group_progress = progress.group(course_group.name)

        if group_progress is None:
            logger.info("Adding missing group: {}", course_group.name)
            has_changes = True
            synchronized_groups.append(_fresh_group(course_group))
            continue

        current_ids = {q.id for q in course_group.questions}
        valid_entries = []
        for entry in group_progress.questions_progress:
            if entry.question_id in current_ids:
                valid_entries.append(entry)
            else:
                orphaned_count += 1
                logger.info(
                    "Removing orphaned progress for question ID: {} in group: {}",
                    entry.question_id,
                    course_group.name,
                )

        existing_ids = {entry.question_id for entry in valid_entries}
        missing = [q for q in course_group.questions if q.id not in existing_ids]
        if missing:
            logger.info(
                "Adding {} new question(s) to group: {}", len(missing), course_group.name
            )
            valid_entries.extend(QuestionProgress.fresh(q.id) for q in missing)

        if (
            missing
            or len(valid_entries) != len(group_progress.questions_progress)
            or group_progress.total_questions != len(course_group.questions)
        ):
            has_changes = True
            synchronized_groups.append(
                group_progress.model_copy(
                    update={
                        "questions_progress": valid_entries,
                        "total_questions": len(course_group.questions),
                    }
                )
            )
        else:
            synchronized_groups.append(group_progress)

    current_names = [g.group_name for g in synchronized_groups]
    previous_names = [g.group_name for g in progress.groups_progress]
    if current_names != previous_names:
        dropped = [name for name in previous_names if name not in current_names]
        if dropped:
            logger.info("Dropping progress for removed group(s): {}", ", ".join(dropped))
        has_changes = True

    if (
        progress.total_questions != course.total_questions
        or progress.total_question_groups != len(course.question_groups)
    ):
        has_changes = True

    if not has_changes:
        return progress

    if orphaned_count > 0:
        logger.info(
            "Progress synchronized: Removed {} orphaned progress entry(ies) from altered/removed questions",
            orphaned_count,
        )
    else:
        logger.info("Progress synchronized with current course data")

    return recalculate_progress(
        progress.model_copy(
            update={
                "groups_progress": synchronized_groups,
                "total_questions": course.total_questions,
                "total_question_groups": len(course.question_groups),
            }
        )
    )


def migrate_legacy_progress(raw: dict[str, Any], course: Course) -> dict[str, Any]:
    """
    Upgrade a serialized record whose entries are keyed by question index.

    Records written before questions carried stable ids store `questionIndex`
    instead of `questionId`. Each index is mapped through the course group at
    the same position; entries that cannot be mapped are dropped.

    Args:
        raw: Serialized (camelCase) progress record
        course: Current course content

    Returns:
        The same dict when no migration is needed, otherwise a migrated copy
    """
    groups = raw.get("groupsProgress")
    if not isinstance(groups, list):
        return raw

    needs_migration = any(
        isinstance(entry, dict) and "questionIndex" in entry and "questionId" not in entry
        for group in groups
        if isinstance(group, dict)
        for entry in group.get("questionsProgress") or []
    )
    if not needs_migration:
        return raw

    logger.info("Migrating old progress data from index-based to ID-based...")

    migrated_groups = []
    for group_index, group in enumerate(groups):
        if not isinstance(group, dict):
            logger.warning("Dropping malformed group progress at index {}", group_index)
            continue
        if group_index >= len(course.question_groups):
            logger.warning("No course group found at index {}", group_index)
            migrated_groups.append(group)
            continue

        course_group = course.question_groups[group_index]
        migrated_entries = []
        for entry in group.get("questionsProgress") or []:
            if not isinstance(entry, dict):
                logger.warning("Dropping malformed question progress in group {}", group_index)
                continue
            if "questionId" in entry:
                migrated_entries.append(entry)
                continue

            question_index = entry.get("questionIndex")
            if not isinstance(question_index, int) or not 0 <= question_index < len(course_group.questions):
                logger.warning(
                    "Cannot migrate progress for question at index {} in group {}",
                    question_index,
                    group_index,
                )
                continue

            migrated = {k: v for k, v in entry.items() if k != "questionIndex"}
            migrated["questionId"] = course_group.questions[question_index].id
            migrated_entries.append(migrated)

        migrated_groups.append({**group, "questionsProgress": migrated_entries})

    return {**raw, "groupsProgress": migrated_groups}
