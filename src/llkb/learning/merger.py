"""Confidence-weighted, non-destructive merge into the learned-pattern store.

The merge contract:
- ``existing`` and its elements are never mutated; a new list is returned
- a candidate with a new key is appended as a fresh LearnedPattern
- a candidate with a known key replaces the entry only when its confidence is
  strictly greater; otherwise the entry is left untouched (same object)

This makes the merge idempotent: merging the same discovered set twice finds
no improvement on the second pass and returns an equal store.

``LearnedPatternStore`` owns ``<root>/learned-patterns.json`` and wraps the
load → merge → save sequence in an advisory lock so concurrent processes do
not lose each other's additions.
"""

from __future__ import annotations

from pathlib import Path

from llkb.core.errors import DocumentValidationError, ErrorCode, LockTimeoutError, SaveResult
from llkb.core.logging import get_logger
from llkb.learning.quality import pattern_key
from llkb.models import DiscoveredPattern, LearnedPattern
from llkb.store.files import file_lock, load_document, save_json_atomic
from llkb.utils.time import utc_now_iso

_logger = get_logger("merger")

LEARNED_PATTERNS_FILENAME = "learned-patterns.json"


def learned_key(pattern: LearnedPattern) -> str:
    return pattern_key(pattern.normalized_text, pattern.ir_primitive)


def _to_learned(pattern: DiscoveredPattern, timestamp: str) -> LearnedPattern:
    return LearnedPattern(
        normalized_text=pattern.normalized_text,
        original_text=pattern.original_text,
        ir_primitive=pattern.mapped_primitive,
        confidence=pattern.confidence,
        success_count=pattern.success_count,
        fail_count=pattern.fail_count,
        source_journeys=list(pattern.source_journeys),
        last_updated=timestamp,
    )


def _merge(
    existing: list[LearnedPattern],
    discovered: list[DiscoveredPattern],
) -> tuple[list[LearnedPattern], int, int]:
    merged = list(existing)
    index: dict[str, int] = {}
    for position, pattern in enumerate(merged):
        index.setdefault(learned_key(pattern), position)

    added = updated = 0
    for candidate in discovered:
        key = pattern_key(candidate.normalized_text, candidate.mapped_primitive)
        position = index.get(key)
        if position is None:
            index[key] = len(merged)
            merged.append(_to_learned(candidate, utc_now_iso()))
            added += 1
        elif candidate.confidence > merged[position].confidence:
            merged[position] = _to_learned(candidate, utc_now_iso())
            updated += 1
    return merged, added, updated


def merge_discovered_patterns(
    existing: list[LearnedPattern],
    discovered: list[DiscoveredPattern],
) -> list[LearnedPattern]:
    """Fold discovered candidates into a learned-pattern list.

    Lookups go through a key → position index over the accumulating result,
    so a later duplicate in ``discovered`` sees an update applied earlier in
    the same pass.

    Args:
        existing: Current store content. Not modified.
        discovered: Candidates to fold in, typically deduplicated.

    Returns:
        A new list: every existing key (in order), then new keys in discovery
        order.
    """
    merged, _, _ = _merge(existing, discovered)
    return merged


class MergeResult:
    """Result of absorbing discovered patterns into the store."""

    def __init__(self) -> None:
        self.added: int = 0
        self.updated: int = 0
        self.unchanged: int = 0
        self.total: int = 0
        self.saved: bool = False
        self.errors: list[str] = []

    @property
    def changed(self) -> bool:
        return self.added > 0 or self.updated > 0

    def __repr__(self) -> str:
        return (
            f"MergeResult(added={self.added}, updated={self.updated}, "
            f"unchanged={self.unchanged}, total={self.total}, saved={self.saved})"
        )


class LearnedPatternStore:
    """JSON-backed learned-pattern store (a bare array on disk)."""

    def __init__(self, root: Path) -> None:
        """Initialize the store.

        Args:
            root: Knowledge-base root directory.
        """
        self.root = Path(root)
        self.path = self.root / LEARNED_PATTERNS_FILENAME
        self.lock_path = self.path.with_name(f"{self.path.name}.lock")

    def _load_for_update(self) -> list[LearnedPattern] | None:
        """Load the stored patterns for a read-modify-write.

        Returns:
            The stored patterns, an empty list when the file is missing, or
            None when it exists but is unreadable or malformed (with a
            warning). Callers must not overwrite the store on None.
        """
        if not self.path.exists():
            return []
        try:
            patterns: list[LearnedPattern] = load_document(self.path, list[LearnedPattern])
        except DocumentValidationError as e:
            _logger.warning(
                "learned_patterns_invalid",
                path=str(self.path),
                error=e.reason,
                code=ErrorCode.DOCUMENT_INVALID.value,
            )
            return None
        except OSError as e:
            _logger.warning(
                "learned_patterns_unreadable",
                path=str(self.path),
                error=str(e),
                code=ErrorCode.SOURCE_UNREADABLE.value,
            )
            return None
        return patterns

    def load(self) -> list[LearnedPattern]:
        """Load the stored patterns.

        Returns:
            The stored patterns; an empty list when the file is missing,
            unreadable or malformed (the latter two with a warning).
        """
        patterns = self._load_for_update()
        return patterns if patterns is not None else []

    def save(self, patterns: list[LearnedPattern]) -> SaveResult:
        """Atomically replace the stored patterns."""
        return save_json_atomic(self.path, patterns)

    def absorb(self, discovered: list[DiscoveredPattern]) -> MergeResult:
        """Merge candidates into the store under an advisory lock.

        The file is rewritten only when at least one entry was added or
        updated, so repeating a run leaves the store byte-identical. A store
        that exists but cannot be read or validated is left untouched and
        the merge is abandoned.

        Args:
            discovered: Candidates to fold in.

        Returns:
            MergeResult with counters; failures are collected in ``errors``.
        """
        result = MergeResult()
        try:
            with file_lock(self.lock_path):
                existing = self._load_for_update()
                if existing is None:
                    result.errors.append(
                        f"Learned pattern store {self.path} is unreadable or invalid; "
                        "not merged"
                    )
                    return result
                merged, result.added, result.updated = _merge(existing, discovered)
                result.unchanged = len(discovered) - result.added - result.updated
                result.total = len(merged)

                if result.changed:
                    outcome = self.save(merged)
                    result.saved = outcome.success
                    if not outcome.success:
                        result.errors.append(f"Failed to save learned patterns: {outcome.error}")
        except LockTimeoutError as e:
            _logger.warning(
                "learned_patterns_lock_timeout",
                path=str(self.lock_path),
                waited_seconds=e.waited_seconds,
                code=ErrorCode.LOCK_TIMEOUT.value,
            )
            result.errors.append(str(e))
            return result
        except OSError as e:
            _logger.warning(
                "learned_patterns_absorb_failed",
                path=str(self.path),
                error=str(e),
                code=ErrorCode.WRITE_FAILED.value,
            )
            result.errors.append(str(e))
            return result

        _logger.info(
            "patterns_merged",
            added=result.added,
            updated=result.updated,
            unchanged=result.unchanged,
            total=result.total,
        )
        return result
