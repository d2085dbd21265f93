"""
Study Module - Priority-ordered quiz sessions.

Components:
- prioritizer: Priority bands per mastery level
- session: StudySession state machine
"""

from studysync.study.prioritizer import PRIORITY_RANGES, order_by_priority, priority_score
from studysync.study.session import (
    QuestionCandidate,
    SessionState,
    SessionStats,
    StudySession,
    build_candidates,
)

__all__ = [
    "PRIORITY_RANGES",
    "QuestionCandidate",
    "SessionState",
    "SessionStats",
    "StudySession",
    "build_candidates",
    "order_by_priority",
    "priority_score",
]
