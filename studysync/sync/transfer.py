"""
Progress import/export.

Export writes one progress record as pretty-printed camelCase JSON named
<courseId>-progress-<YYYY-MM-DD>.json. Import validates the file, asks for
confirmation when it belongs to a different course, and returns the record
for the caller to apply through the write-back path.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import date
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from studysync.core.models import CourseProgress
from studysync.exceptions import ProgressImportError


def export_filename(course_id: str, today: date | None = None) -> str:
    today = today or date.today()
    return f"{course_id}-progress-{today.isoformat()}.json"


def export_progress(
    progress: CourseProgress,
    directory: Path,
    today: date | None = None,
) -> Path:
    """
    Write a progress record to an export file.

    Args:
        progress: Record to export
        directory: Target directory (created if missing)
        today: Date used in the file name

    Returns:
        Path of the written file
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(progress.course_id, today)
    path.write_text(
        json.dumps(progress.to_json_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Exported progress for {} to {}", progress.course_id, path)
    return path


def parse_progress(raw: str) -> CourseProgress:
    """
    Parse exported JSON into a progress record.

    Raises:
        ProgressImportError: If the text is not JSON or not a progress record
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProgressImportError(
            "Failed to read the progress file. Please check that it is valid JSON."
        ) from e

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("courseId"), str)
        or not isinstance(data.get("groupsProgress"), list)
    ):
        raise ProgressImportError(
            "Invalid progress file: expected 'courseId' and 'groupsProgress'."
        )

    try:
        return CourseProgress.from_json_dict(data)
    except ValidationError as e:
        raise ProgressImportError(f"Invalid progress file: {e.error_count()} invalid field(s).") from e


def import_progress(
    path: Path,
    current_course_id: str,
    confirm: Callable[[str], bool],
    current_course_name: str | None = None,
) -> CourseProgress | None:
    """
    Read and validate a progress export.

    Args:
        path: Export file to read
        current_course_id: Id of the course the import is meant for
        confirm: Asked with a message when the file belongs to another course
        current_course_name: Display name given to a record taken over from
                             another course (defaults to its own name)

    Returns:
        The imported record bound to current_course_id, or None if the user
        declined

    Raises:
        ProgressImportError: If the file cannot be read or is invalid
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ProgressImportError(f"Cannot read {path}: {e}") from e

    progress = parse_progress(raw)

    if progress.course_id != current_course_id:
        message = (
            f"This progress file belongs to a different course ({progress.course_id}). "
            "Import anyway?"
        )
        if not confirm(message):
            logger.info("Import of {} declined", path)
            return None

        logger.info("Importing progress of {} into {}", progress.course_id, current_course_id)
        progress = progress.model_copy(
            update={
                "course_id": current_course_id,
                "course_name": current_course_name or progress.course_name,
            }
        )

    return progress
