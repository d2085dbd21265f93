"""
Course content loader.

Fetches course documents (<courseId>.json) from an HTTP origin or a local
directory and validates them into Course models. A course either loads
completely or the load fails with CourseLoadError; no partial course is
ever returned.
"""

from __future__ import annotations

import json
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from loguru import logger
from pydantic import ValidationError

from studysync.core.models import Course
from studysync.exceptions import CourseLoadError


def course_name(course_id: str, names: dict[str, str] | None = None) -> str:
    """
    Display name for a course id.

    Args:
        course_id: The course identifier
        names: Configured id -> name mapping

    Returns:
        The configured name, or the id itself when none is known
    """
    if names and course_id in names:
        return names[course_id]
    return course_id


class CourseLoader:
    """Load course documents from a base URL or directory."""

    def __init__(
        self,
        base_url: str | Path,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize loader.

        Args:
            base_url: http(s) origin, file:// URL or plain directory path
                      holding one <courseId>.json per course
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = str(base_url)
        self.timeout = timeout
        self._transport = transport

    @property
    def is_remote(self) -> bool:
        return urlparse(self.base_url).scheme in ("http", "https")

    def _directory(self) -> Path:
        parsed = urlparse(self.base_url)
        if parsed.scheme == "file":
            return Path(unquote(parsed.path))
        return Path(self.base_url)

    async def fetch(self, course_id: str) -> Course:
        """
        Fetch and validate a course.

        Raises:
            CourseLoadError: Network error, non-2xx status, invalid JSON
                             or invalid course shape
        """
        if self.is_remote:
            raw = await self._fetch_http(course_id)
        else:
            raw = self._read_file(course_id)

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CourseLoadError(course_id, f"invalid JSON: {e}") from e

        try:
            course = Course.model_validate(data)
        except ValidationError as e:
            raise CourseLoadError(course_id, f"invalid course structure: {e}") from e

        logger.debug(
            "Loaded course {} ({} groups, {} questions)",
            course_id,
            len(course.question_groups),
            course.total_questions,
        )
        return course

    async def _fetch_http(self, course_id: str) -> str:
        url = f"{self.base_url.rstrip('/')}/{course_id}.json"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise CourseLoadError(course_id, f"request failed: {e}") from e

        if not response.is_success:
            raise CourseLoadError(course_id, f"HTTP {response.status_code}")
        return response.text

    def _read_file(self, course_id: str) -> str:
        path = self._directory() / f"{course_id}.json"
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CourseLoadError(course_id, f"cannot read {path}: {e}") from e
