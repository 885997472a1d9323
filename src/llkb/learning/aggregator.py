"""Gated pattern extraction run.

Wires the learned-pattern lifecycle for one invocation:

1. Check that LLKB is enabled
2. Consult the rate governor (daily ceiling, then per-journey ceiling)
3. Synthesize candidates from the discovered profile and run the quality
   controls against the configured confidence threshold
4. Save the discovered-patterns report
5. Absorb the candidates into the learned-pattern store
6. Append a ``patterns_discovered`` history event

Every failure is collected on the result; nothing raises, so the workflow
that triggered the run continues unaffected.
"""

from __future__ import annotations

import time
from pathlib import Path

from llkb.core.config import LLKBConfig, load_config
from llkb.core.logging import RunContext, get_logger, with_context
from llkb.governance.history import (
    EVENT_COMPONENT_EXTRACTED,
    EVENT_PATTERNS_DISCOVERED,
    PROMPT_JOURNEY_IMPLEMENT,
    HistoryLog,
)
from llkb.learning.merger import LearnedPatternStore
from llkb.learning.quality import QualityControlResult, apply_all_quality_controls
from llkb.learning.synthesizer import (
    create_discovered_patterns_file,
    generate_patterns,
    save_discovered_patterns,
)
from llkb.models import DiscoveredProfile, SelectorSignals

_logger = get_logger("aggregator")

DEFAULT_PROMPT = "discover-foundation"


class AggregationResult:
    """Result of a gated extraction run."""

    def __init__(self) -> None:
        self.skipped_reason: str | None = None
        self.patterns_synthesized: int = 0
        self.patterns_after_dedup: int = 0
        self.patterns_admitted: int = 0
        self.quality: QualityControlResult | None = None
        self.added: int = 0
        self.updated: int = 0
        self.report_saved: bool = False
        self.history_logged: bool = False
        self.errors: list[str] = []
        self.warnings: list[str] = []

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    def __repr__(self) -> str:
        if self.skipped_reason:
            return f"AggregationResult(skipped={self.skipped_reason})"
        return (
            f"AggregationResult(synthesized={self.patterns_synthesized}, "
            f"deduplicated={self.patterns_after_dedup}, admitted={self.patterns_admitted}, "
            f"added={self.added}, updated={self.updated})"
        )


class PatternAggregator:
    """Runs synthesis, quality controls, merge and history for one root."""

    def __init__(self, root: Path, config: LLKBConfig | None = None) -> None:
        """Initialize the aggregator.

        Args:
            root: Knowledge-base root directory.
            config: Configuration to use; loaded from ``<root>/config.yml``
                when omitted.
        """
        self.root = Path(root)
        self.config = config if config is not None else load_config(self.root)
        self.history = HistoryLog(self.root)
        self.store = LearnedPatternStore(self.root)

    def _skip_reason(self, journey_id: str | None) -> str | None:
        if not self.config.enabled:
            return "disabled"
        if self.history.is_daily_rate_limit_reached(self.config):
            return "daily_limit"
        if journey_id is not None and self.history.is_journey_rate_limit_reached(
            journey_id, self.config
        ):
            return "journey_limit"
        return None

    def run(
        self,
        profile: DiscoveredProfile,
        signals: SelectorSignals | None = None,
        journey_id: str | None = None,
        prompt: str = DEFAULT_PROMPT,
    ) -> AggregationResult:
        """Run one gated extraction.

        Args:
            profile: Discovered application profile.
            signals: Selector analysis (falls back to the profile's own).
            journey_id: Journey that triggered the run, if any.
            prompt: Prompt that triggered the run.

        Returns:
            AggregationResult with counters, skip reason and collected errors.
        """
        result = AggregationResult()
        ctx = RunContext(llkb_root=str(self.root), journey_id=journey_id, prompt=prompt)

        with with_context(ctx):
            result.skipped_reason = self._skip_reason(journey_id)
            if result.skipped_reason is not None:
                _logger.info("extraction_skipped", reason=result.skipped_reason)
                return result

            started = time.monotonic()
            candidates = generate_patterns(profile, signals)
            result.patterns_synthesized = len(candidates)

            admitted, quality = apply_all_quality_controls(
                candidates, threshold=self.config.extraction.confidence_threshold
            )
            result.quality = quality
            result.patterns_after_dedup = quality.input_count - quality.deduplicated
            result.patterns_admitted = len(admitted)

            duration_ms = round((time.monotonic() - started) * 1000, 2)
            report = create_discovered_patterns_file(admitted, profile, duration_ms)
            saved = save_discovered_patterns(report, self.root)
            result.report_saved = saved.success
            if not saved.success:
                result.warnings.append(f"Failed to save discovered patterns: {saved.error}")

            merge = self.store.absorb(admitted)
            result.added = merge.added
            result.updated = merge.updated
            result.errors.extend(merge.errors)

            result.history_logged = self.history.record(
                EVENT_PATTERNS_DISCOVERED,
                prompt=prompt,
                journey_id=journey_id,
                count=len(admitted),
                added=merge.added,
                updated=merge.updated,
            )
            if not result.history_logged:
                result.warnings.append("Failed to append patterns_discovered event to history")

            _logger.info(
                "extraction_completed",
                synthesized=result.patterns_synthesized,
                deduplicated=result.patterns_after_dedup,
                admitted=result.patterns_admitted,
                added=result.added,
                updated=result.updated,
            )
        return result

    def record_extraction(
        self,
        component_id: str,
        journey_id: str,
        prompt: str = PROMPT_JOURNEY_IMPLEMENT,
    ) -> bool:
        """Append the ``component_extracted`` event counted by the rate governor."""
        return self.history.record(
            EVENT_COMPONENT_EXTRACTED,
            prompt=prompt,
            journey_id=journey_id,
            component_id=component_id,
        )
