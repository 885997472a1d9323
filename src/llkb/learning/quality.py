"""Quality controls for discovered pattern candidates.

The deduplicator collapses candidates that denote the same normalized action
into one record per (lower-cased normalized text, primitive) key. The other
controls adjust or filter confidence before candidates reach the store:

- Cross-source boosting: +0.10 for phrases found by 2+ independent sources
- Confidence threshold: drop candidates below the admission threshold
- Pruning: drop tried candidates that have not been used recently
- Signal weighting: raise confidence to the baseline of its evidence strength

All functions return new lists of new (frozen) patterns; inputs are never
mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal

from llkb.core.logging import get_logger
from llkb.models import DiscoveredPattern, SelectorHint
from llkb.utils.time import utc_now

_logger = get_logger("quality")

KEY_SEPARATOR = "::"
DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_MAX_AGE_DAYS = 90
CROSS_SOURCE_BOOST = 0.1
MAX_CONFIDENCE = 0.95

SignalStrength = Literal["strong", "medium", "weak"]

SIGNAL_CONFIDENCES: dict[str, float] = {
    "strong": 0.85,
    "medium": 0.75,
    "weak": 0.60,
}


# =============================================================================
# Keys
# =============================================================================


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace(":", "\\:")


def _unescape(value: str) -> str:
    chars: list[str] = []
    i = 0
    while i < len(value):
        if value[i] == "\\" and i + 1 < len(value):
            chars.append(value[i + 1])
            i += 2
        else:
            chars.append(value[i])
            i += 1
    return "".join(chars)


def pattern_key(text: str, primitive: str) -> str:
    """Build the identity key of a pattern.

    The text is lower-cased. Backslashes and colons in both parts are escaped
    before joining with ``::``, so texts containing selector syntax such as
    ``button::after`` can never collide with a different text/primitive pair.
    """
    return f"{_escape(text.lower())}{KEY_SEPARATOR}{_escape(primitive)}"


def split_pattern_key(key: str) -> tuple[str, str]:
    """Invert ``pattern_key``: return ``(lower-cased text, primitive)``.

    Raises:
        ValueError: If the key has no unescaped separator.
    """
    i = 0
    while i < len(key):
        if key[i] == "\\":
            i += 2
            continue
        if key.startswith(KEY_SEPARATOR, i):
            return _unescape(key[:i]), _unescape(key[i + len(KEY_SEPARATOR):])
        i += 1
    raise ValueError(f"Not a pattern key: {key!r}")


def discovered_key(pattern: DiscoveredPattern) -> str:
    return pattern_key(pattern.normalized_text, pattern.mapped_primitive)


# =============================================================================
# Deduplication
# =============================================================================


def merge_selector_hints(
    first: list[SelectorHint],
    second: list[SelectorHint],
) -> list[SelectorHint]:
    """Union two hint lists keyed by (strategy, value).

    On a shared key the hint with the higher confidence wins; a hint with a
    confidence beats one without. First-seen order is kept.
    """
    merged: dict[tuple[str, str], SelectorHint] = {}
    for hint in [*first, *second]:
        key = (hint.strategy, hint.value)
        current = merged.get(key)
        if current is None:
            merged[key] = hint
        elif hint.confidence is not None and (
            current.confidence is None or hint.confidence > current.confidence
        ):
            merged[key] = hint
    return list(merged.values())


def _union(first: list[str], second: list[str]) -> list[str]:
    return list(dict.fromkeys([*first, *second]))


def _combine(kept: DiscoveredPattern, incoming: DiscoveredPattern) -> DiscoveredPattern:
    base, other = (incoming, kept) if incoming.confidence > kept.confidence else (kept, incoming)
    return base.model_copy(
        update={
            "confidence": max(kept.confidence, incoming.confidence),
            "success_count": kept.success_count + incoming.success_count,
            "fail_count": kept.fail_count + incoming.fail_count,
            "source_journeys": _union(kept.source_journeys, incoming.source_journeys),
            "selector_hints": merge_selector_hints(base.selector_hints, other.selector_hints),
        }
    )


def deduplicate_patterns(patterns: list[DiscoveredPattern]) -> list[DiscoveredPattern]:
    """Collapse candidates sharing a key into one record.

    When two candidates collide, identity fields come from the more confident
    one (the earlier one on a tie), confidence is the maximum, counters are
    summed, and journeys and selector hints are unioned. The position of the
    first occurrence of each key is kept.
    """
    seen: dict[str, DiscoveredPattern] = {}
    for pattern in patterns:
        key = discovered_key(pattern)
        existing = seen.get(key)
        seen[key] = pattern if existing is None else _combine(existing, pattern)
    return list(seen.values())


# =============================================================================
# Filtering and confidence adjustment
# =============================================================================


def apply_confidence_threshold(
    patterns: list[DiscoveredPattern],
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> list[DiscoveredPattern]:
    """Keep candidates with confidence at or above ``threshold``."""
    return [p for p in patterns if p.confidence >= threshold]


def boost_cross_source_patterns(patterns: list[DiscoveredPattern]) -> list[DiscoveredPattern]:
    """Raise the confidence of phrases corroborated by independent sources.

    Candidates are grouped by normalized text. When a group spans at least two
    distinct template sources, entity names or source journeys, every member
    gains CROSS_SOURCE_BOOST, capped at MAX_CONFIDENCE. Input order is kept.
    """
    groups: dict[str, list[DiscoveredPattern]] = {}
    for pattern in patterns:
        groups.setdefault(pattern.normalized_text, []).append(pattern)

    boosted_texts: set[str] = set()
    for text, group in groups.items():
        if len(group) < 2:
            continue
        template_sources = {p.template_source for p in group if p.template_source}
        entity_names = {p.entity_name for p in group if p.entity_name}
        journeys = {j for p in group for j in p.source_journeys}
        if max(len(template_sources), len(entity_names), len(journeys)) >= 2:
            boosted_texts.add(text)

    return [
        p.model_copy(update={"confidence": min(p.confidence + CROSS_SOURCE_BOOST, MAX_CONFIDENCE)})
        if p.normalized_text in boosted_texts
        else p
        for p in patterns
    ]


@dataclass(frozen=True)
class PatternUsage:
    """Usage record of a pattern, keyed by pattern id in a usage mapping."""

    last_used: datetime
    use_count: int = 0


def prune_unused_patterns(
    patterns: list[DiscoveredPattern],
    usage: dict[str, PatternUsage],
    max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    now: datetime | None = None,
) -> list[DiscoveredPattern]:
    """Drop tried candidates whose last use is older than ``max_age_days``.

    Untried candidates (no successes or failures) and candidates without a
    usage record are always kept.
    """
    now = now or utc_now()
    max_age = timedelta(days=max_age_days)
    kept: list[DiscoveredPattern] = []
    for pattern in patterns:
        record = usage.get(pattern.id)
        if pattern.success_count + pattern.fail_count == 0 or record is None:
            kept.append(pattern)
        elif now - record.last_used <= max_age:
            kept.append(pattern)
    return kept


def apply_signal_weighting(
    patterns: list[DiscoveredPattern],
    strengths: dict[str, SignalStrength],
) -> list[DiscoveredPattern]:
    """Raise each candidate to the baseline of its signal strength.

    Confidence is never lowered and never exceeds MAX_CONFIDENCE. Candidates
    without a strength entry are returned unchanged.
    """
    weighted: list[DiscoveredPattern] = []
    for pattern in patterns:
        strength = strengths.get(pattern.id)
        if strength is None:
            weighted.append(pattern)
            continue
        confidence = min(max(pattern.confidence, SIGNAL_CONFIDENCES[strength]), MAX_CONFIDENCE)
        weighted.append(pattern.model_copy(update={"confidence": confidence}))
    return weighted


# =============================================================================
# Combined pipeline
# =============================================================================


@dataclass
class QualityControlResult:
    """Counters describing one pass through the quality pipeline."""

    input_count: int = 0
    output_count: int = 0
    deduplicated: int = 0
    threshold_filtered: int = 0
    cross_source_boosted: int = 0
    pruned: int = 0


def apply_all_quality_controls(
    patterns: list[DiscoveredPattern],
    threshold: float | None = None,
    usage: dict[str, PatternUsage] | None = None,
    max_age_days: int | None = None,
) -> tuple[list[DiscoveredPattern], QualityControlResult]:
    """Run boost, dedup, threshold and (with usage stats) prune in order.

    Boosting runs before dedup so the source diversity of duplicate phrases is
    still visible; the threshold runs after boost so corroborated candidates
    can clear it.
    """
    result = QualityControlResult(input_count=len(patterns))

    before = {p.id: p.confidence for p in patterns}
    boosted = boost_cross_source_patterns(patterns)
    result.cross_source_boosted = sum(
        1 for p in boosted if p.id in before and p.confidence > before[p.id]
    )

    deduped = deduplicate_patterns(boosted)
    result.deduplicated = len(boosted) - len(deduped)

    filtered = apply_confidence_threshold(
        deduped, DEFAULT_CONFIDENCE_THRESHOLD if threshold is None else threshold
    )
    result.threshold_filtered = len(deduped) - len(filtered)

    output = filtered
    if usage is not None:
        output = prune_unused_patterns(
            filtered, usage, DEFAULT_MAX_AGE_DAYS if max_age_days is None else max_age_days
        )
        result.pruned = len(filtered) - len(output)

    result.output_count = len(output)
    _logger.debug("quality_controls_applied", **vars(result))
    return output, result
