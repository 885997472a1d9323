"""Confidence-history checks over lessons.

``detect_declining_confidence`` is the default "declining" predicate used by
the analytics roll-up. The roll-up accepts any ``Callable[[Lesson], bool]``
in its place.
"""

from __future__ import annotations

from typing import Literal

from llkb.models import ConfidenceHistoryEntry, Lesson
from llkb.utils.time import days_between

HISTORY_WINDOW = 30
DECLINE_RATIO = 0.8
TREND_CHANGE = 0.1
LOW_CONFIDENCE_THRESHOLD = 0.4

ConfidenceTrend = Literal["increasing", "decreasing", "stable", "unknown"]


def detect_declining_confidence(lesson: Lesson) -> bool:
    """Return True when current confidence fell below 80% of its recent average.

    The average is taken over the last 30 history entries. Lessons with fewer
    than two entries are never declining.
    """
    history = lesson.metrics.confidence_history
    if not history or len(history) < 2:
        return False
    recent = history[-HISTORY_WINDOW:]
    average = sum(entry.value for entry in recent) / len(recent)
    return lesson.metrics.confidence < average * DECLINE_RATIO


def get_confidence_trend(history: list[ConfidenceHistoryEntry] | None) -> ConfidenceTrend:
    """Compare the average of the first and last thirds of a history."""
    if not history or len(history) < 3:
        return "unknown"
    third = len(history) // 3
    first_avg = sum(e.value for e in history[:third]) / third
    last_avg = sum(e.value for e in history[-third:]) / third
    if first_avg == 0:
        return "increasing" if last_avg > 0 else "stable"
    change = (last_avg - first_avg) / first_avg
    if change > TREND_CHANGE:
        return "increasing"
    if change < -TREND_CHANGE:
        return "decreasing"
    return "stable"


def needs_confidence_review(lesson: Lesson, threshold: float = LOW_CONFIDENCE_THRESHOLD) -> bool:
    return lesson.metrics.confidence < threshold


__all__ = [
    "detect_declining_confidence",
    "days_between",
    "get_confidence_trend",
    "needs_confidence_review",
]
