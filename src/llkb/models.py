"""Data models for the LLKB knowledge base.

Every document LLKB reads or writes is a pydantic model, so untrusted JSON is
validated at the load boundary and never trusted past it. Python attributes are
snake_case; the on-disk JSON uses camelCase keys through an alias generator.

Model groups:
- Discovery inputs: DiscoveredProfile, SelectorSignals (produced elsewhere)
- Patterns: SelectorHint, DiscoveredPattern, LearnedPattern, DiscoveredPatternsFile
- Knowledge records: Lesson, Component and their file wrappers (read-only here)
- Analytics: AnalyticsFile and its sections
- History: HistoryEvent
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PatternLayer = Literal["app-specific", "framework", "universal"]


class _Document(BaseModel):
    """Base for persisted models: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with on-disk key names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class _FrozenDocument(_Document):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class _OpenDocument(_Document):
    """Records owned by other tools: unknown keys are kept verbatim."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# =============================================================================
# Discovery inputs
# =============================================================================


class FrameworkSignal(_Document):
    """A detected application framework (react, angular, vue, ...)."""

    name: str
    version: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)


class UiLibrarySignal(_Document):
    """A detected UI component library (mui, antd, chakra, ag-grid, ...)."""

    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    has_enterprise: bool | None = None


class SelectorSignals(_Document):
    """Selector usage analysis; only primary_attribute drives synthesis."""

    primary_attribute: str = "data-testid"
    naming_convention: str = "mixed"
    coverage: dict[str, float] = Field(default_factory=dict)
    total_components_analyzed: int = 0
    sample_selectors: list[str] = Field(default_factory=list)


class AuthHints(_Document):
    """Authentication hints; selectors are keyed by role (submitButton, ...)."""

    detected: bool = False
    type: str | None = None
    login_route: str | None = None
    selectors: dict[str, str] | None = None
    bypass_available: bool | None = None
    bypass_method: str | None = None


class DiscoveredProfile(_Document):
    """Application profile produced by the discovery step."""

    version: str = "1.0"
    generated_at: str | None = None
    project_root: str | None = None
    frameworks: list[FrameworkSignal] = Field(default_factory=list)
    ui_libraries: list[UiLibrarySignal] = Field(default_factory=list)
    selector_signals: SelectorSignals | None = None
    auth: AuthHints = Field(default_factory=AuthHints)


# =============================================================================
# Patterns
# =============================================================================


class SelectorHint(_FrozenDocument):
    """A strategy + value suggestion for locating the element of a pattern."""

    strategy: str
    value: str
    name: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class DiscoveredPattern(_FrozenDocument):
    """A candidate produced by one synthesis pass. Never mutated."""

    id: str
    normalized_text: str
    original_text: str
    mapped_primitive: str
    selector_hints: list[SelectorHint] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    layer: PatternLayer
    category: str | None = None
    source_journeys: list[str] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0)
    fail_count: int = Field(default=0, ge=0)
    template_source: str | None = None
    entity_name: str | None = None


class LearnedPattern(_FrozenDocument):
    """The persisted unit of knowledge.

    ``ir_primitive`` is a plain string label (click, fill, ...), decoupled from
    any richer runtime action representation.
    """

    normalized_text: str
    original_text: str
    ir_primitive: str
    confidence: float = Field(ge=0.0, le=1.0)
    success_count: int = Field(default=0, ge=0)
    fail_count: int = Field(default=0, ge=0)
    source_journeys: list[str] = Field(default_factory=list)
    last_updated: str | None = None


class DiscoveredPatternsMetadata(_Document):
    frameworks: list[str] = Field(default_factory=list)
    ui_libraries: list[str] = Field(default_factory=list)
    total_patterns: int = 0
    by_category: dict[str, int] = Field(default_factory=dict)
    by_template: dict[str, int] = Field(default_factory=dict)
    average_confidence: float = 0.0
    discovery_duration: float | None = None


class DiscoveredPatternsFile(_Document):
    """The ``discovered-patterns.json`` report of one synthesis run."""

    version: str
    generated_at: str
    source: str
    patterns: list[DiscoveredPattern]
    metadata: DiscoveredPatternsMetadata = Field(default_factory=DiscoveredPatternsMetadata)


# =============================================================================
# Knowledge records (read-only for this package)
# =============================================================================


class ConfidenceHistoryEntry(_Document):
    date: str
    value: float


class LessonMetrics(_OpenDocument):
    occurrences: int = 0
    success_rate: float = 0.0
    confidence: float = 0.0
    first_seen: str | None = None
    last_success: str | None = None
    last_applied: str | None = None
    confidence_history: list[ConfidenceHistoryEntry] | None = None


class Lesson(_OpenDocument):
    """A distilled, reusable fact about test behavior."""

    id: str
    title: str = ""
    pattern: str = ""
    trigger: str = ""
    category: str
    scope: str = "app-specific"
    journey_ids: list[str] = Field(default_factory=list)
    metrics: LessonMetrics = Field(default_factory=LessonMetrics)
    tags: list[str] | None = None
    archived: bool = False


class LessonsFile(_OpenDocument):
    """``lessons.json``: active lessons plus the separate archive list."""

    version: str = "1.0.0"
    last_updated: str | None = None
    lessons: list[Lesson]
    archived: list[Lesson] = Field(default_factory=list)


class ComponentMetrics(_OpenDocument):
    total_uses: int = 0
    success_rate: float = 0.0
    last_used: str | None = None


class ComponentSource(_OpenDocument):
    original_code: str = ""
    extracted_from: str = ""
    extracted_by: str = "journey-implement"
    extracted_at: str


class Component(_OpenDocument):
    """A reusable UI-interaction unit extracted from observed tests."""

    id: str
    name: str = ""
    description: str = ""
    category: str
    scope: str = "app-specific"
    file_path: str = ""
    metrics: ComponentMetrics = Field(default_factory=ComponentMetrics)
    source: ComponentSource
    archived: bool = False


class ComponentsFile(_OpenDocument):
    """``components.json``: archived components stay in the same list, flagged."""

    version: str = "1.0.0"
    last_updated: str | None = None
    components: list[Component]


# =============================================================================
# Analytics
# =============================================================================


class AnalyticsOverview(_Document):
    total_lessons: int = 0
    active_lessons: int = 0
    archived_lessons: int = 0
    total_components: int = 0
    active_components: int = 0
    archived_components: int = 0


class LessonStats(_Document):
    by_category: dict[str, int] = Field(default_factory=dict)
    avg_confidence: float = 0.0
    avg_success_rate: float = 0.0


class ComponentStats(_Document):
    by_category: dict[str, int] = Field(default_factory=dict)
    by_scope: dict[str, int] = Field(default_factory=dict)
    total_reuses: int = 0
    avg_reuses_per_component: float = 0.0


class ImpactMetrics(_Document):
    """Impact estimates; carried over between updates, never recomputed here."""

    verify_iterations_saved: float = 0
    avg_iterations_before_llkb: float = Field(default=0, alias="avgIterationsBeforeLLKB")
    avg_iterations_after_llkb: float = Field(default=0, alias="avgIterationsAfterLLKB")
    code_deduplication_rate: float = 0
    estimated_hours_saved: float = 0


class TopPerformerLesson(_Document):
    id: str
    title: str
    score: float


class TopPerformerComponent(_Document):
    id: str
    name: str
    uses: int


class TopPerformers(_Document):
    lessons: list[TopPerformerLesson] = Field(default_factory=list)
    components: list[TopPerformerComponent] = Field(default_factory=list)


class NeedsReview(_Document):
    low_confidence_lessons: list[str] = Field(default_factory=list)
    low_usage_components: list[str] = Field(default_factory=list)
    declining_success_rate: list[str] = Field(default_factory=list)


class AnalyticsFile(_Document):
    """``analytics.json``: a derived snapshot, regenerable at any time."""

    version: str
    last_updated: str
    overview: AnalyticsOverview = Field(default_factory=AnalyticsOverview)
    lesson_stats: LessonStats = Field(default_factory=LessonStats)
    component_stats: ComponentStats = Field(default_factory=ComponentStats)
    impact: ImpactMetrics = Field(default_factory=ImpactMetrics)
    top_performers: TopPerformers = Field(default_factory=TopPerformers)
    needs_review: NeedsReview = Field(default_factory=NeedsReview)


# =============================================================================
# History
# =============================================================================


class HistoryEvent(_OpenDocument):
    """One knowledge-affecting action, appended as a single JSONL record.

    Only ``event`` and ``timestamp`` are required; event-specific keys
    (lessonId, componentId, success, ...) are preserved verbatim.
    """

    event: str
    timestamp: str
    prompt: str | None = None
    journey_id: str | None = None
