"""
Question prioritization for study sessions.

Lower score = shown sooner. Each mastery level owns a non-overlapping band:

    NOT_STARTED   [0, 10)   random
    LEARNING      [10, 20)  higher incorrect ratio -> lower score
    REVIEWING     20 + 3 * consecutive_correct
    MASTERED      [30, 40)  random, resurfaced for retention
    unknown       40

Equal scores are interleaved by a random tie-breaker instead of keeping a
stable order.
"""

from __future__ import annotations

import math
import random
from collections.abc import Callable, Sequence
from typing import TypeVar

from studysync.core.models import MasteryLevel, QuestionProgress

PRIORITY_RANGES: dict[MasteryLevel, tuple[float, float]] = {
    MasteryLevel.NOT_STARTED: (0.0, 10.0),
    MasteryLevel.LEARNING: (10.0, 20.0),
    MasteryLevel.REVIEWING: (20.0, 30.0),
    MasteryLevel.MASTERED: (30.0, 40.0),
}
FALLBACK_PRIORITY = 40.0

T = TypeVar("T")


def priority_score(progress: QuestionProgress, rng: random.Random) -> float:
    """Score a question by learning need."""
    level = progress.mastery_level

    if level == MasteryLevel.NOT_STARTED:
        low, high = PRIORITY_RANGES[level]
        return low + rng.random() * (high - low)

    if level == MasteryLevel.LEARNING:
        low, high = PRIORITY_RANGES[level]
        incorrect_ratio = progress.incorrect_attempts / max(progress.total_attempts, 1)
        score = low + (1 - incorrect_ratio) * (high - low)
        # No wrong answers would reach the REVIEWING band
        return min(score, math.nextafter(high, low))

    if level == MasteryLevel.REVIEWING:
        low, _ = PRIORITY_RANGES[level]
        return low + progress.consecutive_correct * 3

    if level == MasteryLevel.MASTERED:
        low, high = PRIORITY_RANGES[level]
        return low + rng.random() * (high - low)

    return FALLBACK_PRIORITY


def order_by_priority(
    items: Sequence[T],
    progress_of: Callable[[T], QuestionProgress],
    rng: random.Random,
) -> list[T]:
    """
    Sort items by ascending priority score.

    Args:
        items: Things to order (e.g. session candidates)
        progress_of: Extracts the progress record from an item
        rng: Randomness source for band scores and tie-breaking

    Returns:
        New list, highest priority first
    """
    keyed = [(priority_score(progress_of(item), rng), rng.random(), index) for index, item in enumerate(items)]
    keyed.sort()
    return [items[index] for _, _, index in keyed]
