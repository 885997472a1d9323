"""Usage and quality roll-up over the lesson and component stores.

Analytics is a pure recomputation from ``lessons.json`` and
``components.json``; it never reads history or learned patterns. The result
is written to ``analytics.json`` and can be regenerated at any time.

Two archive conventions coexist and are kept as-is:
- archived lessons live in the separate ``archived`` list of lessons.json
- archived components stay in ``components`` with ``archived: true``
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from llkb.core.errors import DocumentValidationError, ErrorCode
from llkb.core.logging import get_logger
from llkb.learning.confidence import detect_declining_confidence
from llkb.models import (
    AnalyticsFile,
    AnalyticsOverview,
    Component,
    ComponentsFile,
    ComponentStats,
    Lesson,
    LessonsFile,
    LessonStats,
    NeedsReview,
    TopPerformerComponent,
    TopPerformerLesson,
    TopPerformers,
)
from llkb.store.files import load_document, save_json_atomic
from llkb.utils.numbers import round_half_up
from llkb.utils.time import days_between, parse_timestamp, utc_now, utc_now_iso

_logger = get_logger("analytics")

ANALYTICS_VERSION = "1.0.0"
LESSONS_FILENAME = "lessons.json"
COMPONENTS_FILENAME = "components.json"
ANALYTICS_FILENAME = "analytics.json"

LESSON_CATEGORIES: tuple[str, ...] = (
    "selector",
    "timing",
    "quirk",
    "auth",
    "data",
    "assertion",
    "navigation",
    "ui-interaction",
)
COMPONENT_CATEGORIES: tuple[str, ...] = tuple(c for c in LESSON_CATEGORIES if c != "quirk")
SCOPES: tuple[str, ...] = (
    "universal",
    "framework:angular",
    "framework:react",
    "framework:vue",
    "framework:ag-grid",
    "app-specific",
)

TOP_PERFORMER_LIMIT = 5
LOW_CONFIDENCE_THRESHOLD = 0.4
LOW_USAGE_THRESHOLD = 2
LOW_USAGE_MIN_AGE_DAYS = 30

DecliningPredicate = Callable[[Lesson], bool]
_DocT = TypeVar("_DocT", bound=BaseModel)


def _active_lessons(lessons: LessonsFile) -> list[Lesson]:
    return [lesson for lesson in lessons.lessons if not lesson.archived]


def _active_components(components: ComponentsFile) -> list[Component]:
    return [component for component in components.components if not component.archived]


def _count_closed(values: list[str], closed_set: tuple[str, ...]) -> dict[str, int]:
    counts = dict.fromkeys(closed_set, 0)
    for value in values:
        if value in counts:
            counts[value] += 1
    return counts


def create_empty_analytics() -> AnalyticsFile:
    """Return a zero-valued analytics document with every closed-set key present."""
    return AnalyticsFile(
        version=ANALYTICS_VERSION,
        last_updated=utc_now_iso(),
        lesson_stats=LessonStats(by_category=dict.fromkeys(LESSON_CATEGORIES, 0)),
        component_stats=ComponentStats(
            by_category=dict.fromkeys(COMPONENT_CATEGORIES, 0),
            by_scope=dict.fromkeys(SCOPES, 0),
        ),
    )


def calculate_overview(lessons: LessonsFile, components: ComponentsFile) -> AnalyticsOverview:
    return AnalyticsOverview(
        total_lessons=len(lessons.lessons),
        active_lessons=len(_active_lessons(lessons)),
        archived_lessons=len(lessons.archived),
        total_components=len(components.components),
        active_components=len(_active_components(components)),
        archived_components=sum(1 for c in components.components if c.archived),
    )


def calculate_lesson_stats(lessons: LessonsFile) -> LessonStats:
    """Per-category counts and averages over active lessons.

    Averages are rounded to two decimals and are 0 when there are no active
    lessons.
    """
    active = _active_lessons(lessons)
    avg_confidence = avg_success_rate = 0.0
    if active:
        count = len(active)
        avg_confidence = round_half_up(sum(lesson.metrics.confidence for lesson in active) / count)
        avg_success_rate = round_half_up(
            sum(lesson.metrics.success_rate for lesson in active) / count
        )

    return LessonStats(
        by_category=_count_closed([lesson.category for lesson in active], LESSON_CATEGORIES),
        avg_confidence=avg_confidence,
        avg_success_rate=avg_success_rate,
    )


def calculate_component_stats(components: ComponentsFile) -> ComponentStats:
    """Per-category and per-scope counts plus reuse totals over active components."""
    active = _active_components(components)
    total_reuses = sum(c.metrics.total_uses for c in active)
    average = round_half_up(total_reuses / len(active)) if active else 0.0

    return ComponentStats(
        by_category=_count_closed([c.category for c in active], COMPONENT_CATEGORIES),
        by_scope=_count_closed([c.scope for c in active], SCOPES),
        total_reuses=total_reuses,
        avg_reuses_per_component=average,
    )


def calculate_top_performers(lessons: LessonsFile, components: ComponentsFile) -> TopPerformers:
    """Top 5 active lessons by success rate × occurrences and components by uses.

    Both rankings are stable: ties keep their input order.
    """
    scored_lessons = [
        TopPerformerLesson(
            id=lesson.id,
            title=lesson.title,
            score=round_half_up(lesson.metrics.success_rate * lesson.metrics.occurrences),
        )
        for lesson in _active_lessons(lessons)
    ]
    used_components = [
        TopPerformerComponent(id=c.id, name=c.name, uses=c.metrics.total_uses)
        for c in _active_components(components)
    ]
    scored_lessons.sort(key=lambda t: t.score, reverse=True)
    used_components.sort(key=lambda t: t.uses, reverse=True)
    return TopPerformers(
        lessons=scored_lessons[:TOP_PERFORMER_LIMIT],
        components=used_components[:TOP_PERFORMER_LIMIT],
    )


def _is_low_usage(component: Component, now: datetime) -> bool:
    if component.metrics.total_uses >= LOW_USAGE_THRESHOLD:
        return False
    extracted_at = parse_timestamp(component.source.extracted_at)
    if extracted_at is None:
        return False
    return days_between(now, extracted_at) > LOW_USAGE_MIN_AGE_DAYS


def calculate_needs_review(
    lessons: LessonsFile,
    components: ComponentsFile,
    now: datetime | None = None,
    is_declining: DecliningPredicate = detect_declining_confidence,
) -> NeedsReview:
    """Collect the ids of active records that deserve human attention.

    Args:
        lessons: Lesson store.
        components: Component store.
        now: Reference time for component age (defaults to the current time).
        is_declining: Predicate flagging lessons whose confidence is declining.

    Returns:
        Low-confidence lessons (confidence < 0.4), declining lessons, and
        components used fewer than 2 times that are older than 30 days.
        Components with an unparseable extraction time are not flagged.
    """
    now = now or utc_now()
    active_lessons = _active_lessons(lessons)
    return NeedsReview(
        low_confidence_lessons=[
            lesson.id
            for lesson in active_lessons
            if lesson.metrics.confidence < LOW_CONFIDENCE_THRESHOLD
        ],
        low_usage_components=[
            c.id for c in _active_components(components) if _is_low_usage(c, now)
        ],
        declining_success_rate=[lesson.id for lesson in active_lessons if is_declining(lesson)],
    )


def load_analytics_file(analytics_path: Path) -> AnalyticsFile | None:
    """Load an analytics document; None when missing or invalid (with a warning)."""
    if not analytics_path.exists():
        return None
    try:
        analytics: AnalyticsFile = load_document(analytics_path, AnalyticsFile)
    except DocumentValidationError as e:
        _logger.warning(
            "analytics_invalid",
            path=str(analytics_path),
            error=e.reason,
            code=ErrorCode.DOCUMENT_INVALID.value,
        )
        return None
    except OSError as e:
        _logger.warning(
            "analytics_unreadable",
            path=str(analytics_path),
            error=str(e),
            code=ErrorCode.SOURCE_UNREADABLE.value,
        )
        return None
    return analytics


def _load_source(path: Path, schema: type[_DocT]) -> _DocT | None:
    if not path.exists():
        _logger.warning(
            "analytics_source_missing",
            path=str(path),
            code=ErrorCode.SOURCE_MISSING.value,
        )
        return None
    try:
        document: _DocT = load_document(path, schema)
    except DocumentValidationError as e:
        _logger.warning(
            "analytics_source_invalid",
            path=str(path),
            error=e.reason,
            code=ErrorCode.DOCUMENT_INVALID.value,
        )
        return None
    except OSError as e:
        _logger.warning(
            "analytics_source_unreadable",
            path=str(path),
            error=str(e),
            code=ErrorCode.SOURCE_UNREADABLE.value,
        )
        return None
    return document


def update_analytics_with_data(
    lessons: LessonsFile,
    components: ComponentsFile,
    analytics_path: Path,
    is_declining: DecliningPredicate = detect_declining_confidence,
) -> bool:
    """Recompute every section from already-loaded stores and save atomically.

    The version and impact block of an existing analytics document are kept;
    a missing or invalid document is replaced by the empty default.

    Returns:
        True if the document was written.
    """
    previous = load_analytics_file(analytics_path) or create_empty_analytics()
    analytics = AnalyticsFile(
        version=previous.version,
        last_updated=utc_now_iso(),
        overview=calculate_overview(lessons, components),
        lesson_stats=calculate_lesson_stats(lessons),
        component_stats=calculate_component_stats(components),
        impact=previous.impact,
        top_performers=calculate_top_performers(lessons, components),
        needs_review=calculate_needs_review(lessons, components, is_declining=is_declining),
    )
    result = save_json_atomic(analytics_path, analytics)
    if result.success:
        _logger.info(
            "analytics_updated",
            path=str(analytics_path),
            active_lessons=analytics.overview.active_lessons,
            active_components=analytics.overview.active_components,
        )
    return result.success


def update_analytics(
    root: Path,
    is_declining: DecliningPredicate = detect_declining_confidence,
) -> bool:
    """Recompute ``<root>/analytics.json`` from the lesson and component stores.

    Args:
        root: Knowledge-base root directory.
        is_declining: Predicate flagging lessons whose confidence is declining.

    Returns:
        True if the analytics document was written. False, with a warning,
        when lessons.json or components.json is missing or invalid, or when
        the write fails. Never raises.
    """
    root = Path(root)
    lessons = _load_source(root / LESSONS_FILENAME, LessonsFile)
    components = _load_source(root / COMPONENTS_FILENAME, ComponentsFile)
    if lessons is None or components is None:
        _logger.warning(
            "analytics_update_skipped",
            root=str(root),
            reason="lessons or components not found",
        )
        return False
    return update_analytics_with_data(lessons, components, root / ANALYTICS_FILENAME, is_declining)


def get_analytics_summary(root: Path) -> str:
    """Render ``<root>/analytics.json`` as a short multi-line summary."""
    analytics = load_analytics_file(Path(root) / ANALYTICS_FILENAME)
    if analytics is None:
        return "Analytics not available"

    o = analytics.overview
    lesson_stats = analytics.lesson_stats
    component_stats = analytics.component_stats
    review = analytics.needs_review
    review_count = (
        len(review.low_confidence_lessons)
        + len(review.low_usage_components)
        + len(review.declining_success_rate)
    )
    return "\n".join([
        f"LLKB Analytics ({analytics.last_updated})",
        "-" * 50,
        f"Lessons: {o.active_lessons} active, {o.archived_lessons} archived",
        f"  Avg Confidence: {lesson_stats.avg_confidence}",
        f"  Avg Success Rate: {lesson_stats.avg_success_rate}",
        f"Components: {o.active_components} active, {o.archived_components} archived",
        f"  Total Reuses: {component_stats.total_reuses}",
        f"  Avg Reuses/Component: {component_stats.avg_reuses_per_component}",
        f"Items Needing Review: {review_count}",
    ])
