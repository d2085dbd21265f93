"""Course content loading."""

from studysync.content.loader import CourseLoader, course_name

__all__ = ["CourseLoader", "course_name"]
