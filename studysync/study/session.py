"""
Study Session Engine.

State machine for one quiz session:

    IDLE -> IN_PROGRESS -> ANSWERED -> IN_PROGRESS -> ... -> FINISHED

Candidates are every question in scope paired with its progress, ordered by
learning priority and optionally truncated. Each submitted answer is folded
into the course progress and handed to the on_progress callback (normally
CourseStore.update_progress), which persists it.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from loguru import logger

from studysync.core.mastery import apply_answer
from studysync.core.models import (
    Answer,
    Course,
    CourseProgress,
    Question,
    QuestionProgress,
    utcnow,
)
from studysync.study.prioritizer import order_by_priority


class SessionState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    ANSWERED = "answered"
    FINISHED = "finished"


@dataclass
class QuestionCandidate:
    """A question queued for the session together with its progress."""

    question: Question
    group_name: str
    progress: QuestionProgress


@dataclass
class SessionStats:
    """Counters for the current session only."""

    total_answered: int = 0
    correct_answers: int = 0
    incorrect_answers: int = 0

    @property
    def accuracy(self) -> int:
        """Session accuracy in whole percent."""
        if self.total_answered == 0:
            return 0
        return round(self.correct_answers / self.total_answered * 100)


ProgressCallback = Callable[[CourseProgress], CourseProgress | None]
FinishedCallback = Callable[[SessionStats], None]


def build_candidates(
    course: Course,
    progress: CourseProgress,
    group_name: str | None = None,
) -> list[QuestionCandidate]:
    """
    Pair every in-scope question with its progress entry.

    Questions without an entry are skipped with a warning; after
    synchronization this never happens.
    """
    candidates: list[QuestionCandidate] = []

    for group in course.question_groups:
        if group_name is not None and group.name != group_name:
            continue

        group_progress = progress.group(group.name)
        for question in group.questions:
            question_progress = group_progress.find(question.id) if group_progress else None
            if question_progress is None:
                logger.warning("No progress found for question {}", question.id)
                continue
            candidates.append(QuestionCandidate(question, group.name, question_progress))

    return candidates


@dataclass
class StudySession:
    """
    One study session over a course (or a single group of it).

    Usage:
        session = StudySession(on_progress=store.update_progress)
        session.start(course, progress, group_name="Basics", limit=10)
        while session.state != SessionState.FINISHED:
            session.select_answer(0)
            session.submit()
            session.advance()
    """

    on_progress: ProgressCallback | None = None
    on_finished: FinishedCallback | None = None
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], datetime] = utcnow

    state: SessionState = field(default=SessionState.IDLE, init=False)
    queue: list[QuestionCandidate] = field(default_factory=list, init=False)
    index: int = field(default=0, init=False)
    stats: SessionStats = field(default_factory=SessionStats, init=False)
    progress: CourseProgress | None = field(default=None, init=False)
    last_result: bool | None = field(default=None, init=False)
    hint_visible: bool = field(default=False, init=False)

    _selected: set[int] = field(default_factory=set, init=False, repr=False)
    _shown_at: datetime | None = field(default=None, init=False, repr=False)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(
        self,
        course: Course,
        progress: CourseProgress,
        group_name: str | None = None,
        limit: int | None = None,
    ) -> None:
        """Build and order the question queue, then show the first question."""
        candidates = build_candidates(course, progress, group_name)
        ordered = order_by_priority(candidates, lambda c: c.progress, self.rng)
        if limit is not None and limit > 0:
            ordered = ordered[:limit]

        self.queue = ordered
        self.index = 0
        self.stats = SessionStats()
        self.progress = progress

        logger.debug("Session started with {} question(s)", len(self.queue))

        if not self.queue:
            self._finish()
            return

        self._show_current()

    def advance(self) -> None:
        """Move to the next question, or finish when none remain."""
        if self.state == SessionState.FINISHED:
            return

        if not self.has_more:
            self._finish()
            return

        self.index += 1
        self._show_current()

    def finish(self) -> None:
        """End the session early. Answers already submitted stay saved."""
        if self.state != SessionState.FINISHED:
            self._finish()

    def _show_current(self) -> None:
        self._selected = set()
        self.last_result = None
        self.hint_visible = False
        self._shown_at = self.clock()
        self.state = SessionState.IN_PROGRESS

    def _finish(self) -> None:
        self.state = SessionState.FINISHED
        logger.debug(
            "Session finished: {}/{} correct",
            self.stats.correct_answers,
            self.stats.total_answered,
        )
        if self.on_finished:
            self.on_finished(self.stats)

    # =========================================================================
    # Current question
    # =========================================================================

    @property
    def current(self) -> QuestionCandidate | None:
        if self.state in (SessionState.IN_PROGRESS, SessionState.ANSWERED):
            return self.queue[self.index]
        return None

    @property
    def has_more(self) -> bool:
        return self.index < len(self.queue) - 1

    @property
    def selected(self) -> list[int]:
        return sorted(self._selected)

    @property
    def is_answered(self) -> bool:
        return self.state == SessionState.ANSWERED

    def select_answer(self, index: int) -> None:
        """Toggle an answer in the current selection."""
        current = self.current
        if current is None or self.is_answered:
            return
        if not 0 <= index < len(current.question.answers):
            return

        if index in self._selected:
            self._selected.discard(index)
        else:
            self._selected.add(index)

    def reveal_hint(self) -> None:
        """Show the hint for the current question. Counted on submit."""
        if self.current is not None and not self.is_answered:
            self.hint_visible = True

    def is_selection_correct(self) -> bool:
        """Exact match between selected and correct answer indices."""
        current = self.current
        if current is None or not self._selected:
            return False
        return self._selected == current.question.correct_indices()

    def missed_correct_answers(self) -> list[Answer]:
        """Correct answers the user did not select."""
        current = self.current
        if current is None:
            return []
        return [
            answer
            for index, answer in enumerate(current.question.answers)
            if answer.correct and index not in self._selected
        ]

    def submit(self) -> bool | None:
        """
        Grade the current selection and record the attempt.

        Returns:
            Whether the answer was correct, or None if nothing was submitted
            (no selection, or already answered)
        """
        current = self.current
        if current is None or self.is_answered or not self._selected:
            return None

        is_correct = self.is_selection_correct()
        now = self.clock()
        study_seconds = (now - self._shown_at).total_seconds() if self._shown_at else 0.0

        self.state = SessionState.ANSWERED
        self.last_result = is_correct
        self.stats.total_answered += 1
        if is_correct:
            self.stats.correct_answers += 1
        else:
            self.stats.incorrect_answers += 1

        self._record(current, is_correct, now, study_seconds)
        return is_correct

    def _record(
        self,
        candidate: QuestionCandidate,
        is_correct: bool,
        now: datetime,
        study_seconds: float,
    ) -> None:
        if self.progress is None:
            return

        try:
            updated = apply_answer(
                self.progress,
                candidate.group_name,
                candidate.question.id,
                is_correct,
                now=now,
                hint_used=self.hint_visible,
                study_seconds=study_seconds,
            )
        except KeyError as e:
            logger.error("Question progress not found: {}", e)
            return

        if self.on_progress:
            stored = self.on_progress(updated)
            if stored is not None:
                updated = stored

        self.progress = updated
        group_progress = updated.group(candidate.group_name)
        if group_progress is not None:
            candidate.progress = group_progress.find(candidate.question.id) or candidate.progress
