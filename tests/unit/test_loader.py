"""
Unit tests for the course content loader.
"""

import json

import httpx
import pytest

from studysync.content.loader import CourseLoader, course_name
from studysync.exceptions import CourseLoadError


def _transport(status=200, body=None, text=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


class TestHttpLoading:
    """Tests for loading courses over HTTP."""

    @pytest.mark.asyncio
    async def test_fetch_course(self, course_data):
        """A valid document becomes a Course."""
        requested = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, json=course_data)

        loader = CourseLoader("http://courses.test/", transport=httpx.MockTransport(handler))
        course = await loader.fetch("daten-informatikrecht")

        assert requested == ["http://courses.test/daten-informatikrecht.json"]
        assert course.total_questions == 3

    @pytest.mark.asyncio
    async def test_not_found(self):
        """404 raises CourseLoadError naming the course."""
        loader = CourseLoader("http://courses.test", transport=_transport(404, {}))

        with pytest.raises(CourseLoadError) as exc_info:
            await loader.fetch("missing")

        assert exc_info.value.course_id == "missing"
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        """A body that is not JSON raises CourseLoadError."""
        loader = CourseLoader("http://courses.test", transport=_transport(text="<html>"))

        with pytest.raises(CourseLoadError):
            await loader.fetch("broken")

    @pytest.mark.asyncio
    async def test_invalid_structure(self):
        """JSON with the wrong shape raises CourseLoadError."""
        loader = CourseLoader(
            "http://courses.test",
            transport=_transport(body={"questionGroups": [{"questions": []}]}),
        )

        with pytest.raises(CourseLoadError):
            await loader.fetch("broken")

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Transport failures raise CourseLoadError."""

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        loader = CourseLoader("http://courses.test", transport=httpx.MockTransport(refuse))

        with pytest.raises(CourseLoadError):
            await loader.fetch("any")


class TestDirectoryLoading:
    """Tests for loading courses from disk."""

    @pytest.mark.asyncio
    async def test_plain_directory(self, course_dir, metadata):
        """Plain directory paths are read directly."""
        course = await CourseLoader(course_dir).fetch(metadata.id)
        assert [g.name for g in course.question_groups] == ["Basics", "Copyright"]

    @pytest.mark.asyncio
    async def test_file_url(self, course_dir, metadata):
        """file:// URLs are supported."""
        course = await CourseLoader(course_dir.as_uri()).fetch(metadata.id)
        assert course.total_questions == 3

    @pytest.mark.asyncio
    async def test_missing_file(self, course_dir):
        """Missing files raise CourseLoadError."""
        with pytest.raises(CourseLoadError):
            await CourseLoader(course_dir).fetch("nope")

    @pytest.mark.asyncio
    async def test_invalid_file(self, tmp_path):
        """Invalid JSON on disk raises CourseLoadError."""
        (tmp_path / "bad.json").write_text(json.dumps([1, 2]), encoding="utf-8")

        with pytest.raises(CourseLoadError):
            await CourseLoader(tmp_path).fetch("bad")

    @pytest.mark.asyncio
    async def test_non_utf8_file(self, tmp_path):
        """Undecodable bytes on disk raise CourseLoadError."""
        (tmp_path / "binary.json").write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(CourseLoadError):
            await CourseLoader(tmp_path).fetch("binary")


class TestCourseName:
    """Tests for course_name."""

    def test_known_and_unknown_ids(self):
        """Known ids map to names; unknown ids fall back to the id."""
        names = {"daten-informatikrecht": "Daten und Informatikrecht"}

        assert course_name("daten-informatikrecht", names) == "Daten und Informatikrecht"
        assert course_name("other", names) == "other"
        assert course_name("other") == "other"
