"""Learned-pattern lifecycle: synthesis, quality control, merge and aggregation."""

from llkb.learning.aggregator import AggregationResult, PatternAggregator
from llkb.learning.merger import LearnedPatternStore, MergeResult, merge_discovered_patterns
from llkb.learning.quality import apply_all_quality_controls, deduplicate_patterns
from llkb.learning.synthesizer import generate_patterns

__all__ = [
    # Synthesis
    "generate_patterns",
    # Quality
    "deduplicate_patterns",
    "apply_all_quality_controls",
    # Merge
    "merge_discovered_patterns",
    "LearnedPatternStore",
    "MergeResult",
    # Aggregation
    "PatternAggregator",
    "AggregationResult",
]
