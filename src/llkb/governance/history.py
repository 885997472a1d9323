"""Append-only history log and the rate governor built on it.

Every knowledge-affecting action is appended as one JSON line to
``<root>/history/<YYYY-MM-DD>.jsonl`` (local calendar date). Filenames sort
lexically in chronological order.

The rate governor counts today's predictive extractions, across all journeys
and per journey, and compares them with the configured ceilings. A ceiling is
reached at the configured value, not only above it.

Appending never raises: a failure is logged and reported as False so the
workflow that triggered it continues.
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from llkb.core.config import LLKBConfig
from llkb.core.errors import ErrorCode, LockTimeoutError
from llkb.core.logging import get_logger
from llkb.models import HistoryEvent
from llkb.store.files import acquire_lock
from llkb.utils.time import format_date as _format_date
from llkb.utils.time import utc_now_iso

_logger = get_logger("history")

HISTORY_DIRNAME = "history"
DEFAULT_RETENTION_DAYS = 365

EVENT_COMPONENT_EXTRACTED = "component_extracted"
EVENT_PATTERNS_DISCOVERED = "patterns_discovered"
PROMPT_JOURNEY_IMPLEMENT = "journey-implement"

_HISTORY_FILE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})\.jsonl$")

EventPredicate = Callable[[HistoryEvent], bool]


@dataclass
class CleanupResult:
    """Outcome of a retention cleanup.

    Attributes:
        deleted: Paths that were removed.
        errors: One message per file that could not be removed.
    """

    deleted: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _is_predictive_extraction(event: HistoryEvent) -> bool:
    return event.event == EVENT_COMPONENT_EXTRACTED and event.prompt == PROMPT_JOURNEY_IMPLEMENT


class HistoryLog:
    """Date-partitioned JSONL event log under one knowledge-base root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def history_dir(self) -> Path:
        return self.root / HISTORY_DIRNAME

    @staticmethod
    def format_date(day: date | datetime) -> str:
        return _format_date(day)

    def file_path_for(self, day: date | datetime | None = None) -> Path:
        """Path of the log file for ``day`` (today when omitted)."""
        return self.history_dir / f"{self.format_date(day or date.today())}.jsonl"

    # =========================================================================
    # Writing
    # =========================================================================

    def append(self, event: HistoryEvent) -> bool:
        """Append one event to today's log.

        The directory and file are created when missing. The record is written
        as a single ``write`` of one line while holding an exclusive flock on
        the file, so concurrent appenders never interleave inside a line.

        Args:
            event: The event to record.

        Returns:
            True if the line was written. False on any I/O failure or lock
            timeout; a warning is logged and nothing is raised.
        """
        path = self.file_path_for()
        line = json.dumps(event.to_json_dict(), ensure_ascii=False) + "\n"
        try:
            self.history_dir.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(path), os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            try:
                acquire_lock(fd, path)
                os.write(fd, line.encode("utf-8"))
            finally:
                os.close(fd)
        except LockTimeoutError as e:
            _logger.warning(
                "history_lock_timeout",
                path=str(path),
                waited_seconds=e.waited_seconds,
                code=ErrorCode.LOCK_TIMEOUT.value,
            )
            return False
        except OSError as e:
            _logger.warning(
                "history_append_failed",
                path=str(path),
                error=str(e),
                code=ErrorCode.HISTORY_APPEND_FAILED.value,
            )
            return False
        return True

    def record(self, event_type: str, **fields: Any) -> bool:
        """Stamp and append an event built from keyword fields.

        Example:
            log.record("component_extracted", prompt="journey-implement",
                       journey_id="JRN-0001", component_id="COMP-12")
        """
        payload = {to_camel(key): value for key, value in fields.items()}
        event = HistoryEvent.model_validate(
            {"event": event_type, "timestamp": utc_now_iso(), **payload}
        )
        return self.append(event)

    # =========================================================================
    # Reading
    # =========================================================================

    def read_file(self, path: Path) -> list[HistoryEvent]:
        """Read every event of one log file.

        A missing file yields an empty list. Blank lines are skipped; a
        malformed line (including one that is not valid UTF-8) is skipped
        with a warning and the rest are returned.
        """
        if not path.exists():
            return []
        try:
            with open(path, "rb") as f:
                lines = f.read().splitlines()
        except OSError as e:
            _logger.warning(
                "history_unreadable",
                path=str(path),
                error=str(e),
                code=ErrorCode.SOURCE_UNREADABLE.value,
            )
            return []

        events: list[HistoryEvent] = []
        for line_number, raw_line in enumerate(lines, start=1):
            if not raw_line.strip():
                continue
            try:
                line = raw_line.decode("utf-8")
                events.append(HistoryEvent.model_validate_json(line))
            except (UnicodeDecodeError, ValidationError) as e:
                _logger.warning(
                    "history_line_invalid",
                    path=str(path),
                    line=line_number,
                    error=str(e),
                    code=ErrorCode.DOCUMENT_INVALID.value,
                )
        return events

    def read_today(self) -> list[HistoryEvent]:
        return self.read_file(self.file_path_for())

    def count_today_events(
        self,
        event_type: str,
        predicate: EventPredicate | None = None,
    ) -> int:
        """Count today's events of ``event_type`` that also satisfy ``predicate``."""
        return sum(
            1
            for event in self.read_today()
            if event.event == event_type and (predicate is None or predicate(event))
        )

    def count_predictive_extractions_today(self) -> int:
        """Count today's component extractions triggered by journey-implement."""
        return self.count_today_events(EVENT_COMPONENT_EXTRACTED, _is_predictive_extraction)

    def count_journey_extractions_today(self, journey_id: str) -> int:
        return self.count_today_events(
            EVENT_COMPONENT_EXTRACTED,
            lambda e: _is_predictive_extraction(e) and e.journey_id == journey_id,
        )

    # =========================================================================
    # Rate governance
    # =========================================================================

    def is_daily_rate_limit_reached(self, config: LLKBConfig) -> bool:
        """True when today's predictive extractions reached the daily ceiling."""
        return self.count_predictive_extractions_today() >= config.extraction.max_predictive_per_day

    def is_journey_rate_limit_reached(self, journey_id: str, config: LLKBConfig) -> bool:
        """True when ``journey_id``'s extractions today reached the per-journey ceiling."""
        count = self.count_journey_extractions_today(journey_id)
        return count >= config.extraction.max_predictive_per_journey

    # =========================================================================
    # Range queries and retention
    # =========================================================================

    def _dated_files(self) -> list[tuple[date, Path]]:
        if not self.history_dir.is_dir():
            return []
        dated: list[tuple[date, Path]] = []
        for path in self.history_dir.iterdir():
            match = _HISTORY_FILE_PATTERN.match(path.name)
            if match is None:
                continue
            try:
                file_date = date.fromisoformat(match.group(1))
            except ValueError:
                continue
            dated.append((file_date, path))
        return dated

    def files_in_range(self, start: date, end: date) -> list[Path]:
        """List log files dated within ``[start, end]``, oldest first."""
        return sorted(path for file_date, path in self._dated_files() if start <= file_date <= end)

    def cleanup_old_files_detailed(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        today: date | None = None,
    ) -> CleanupResult:
        """Delete log files dated strictly before ``today - retention_days``.

        DESTRUCTIVE: removed files cannot be recovered. Only names matching
        ``YYYY-MM-DD.jsonl`` with a real calendar date are considered. Each
        deletion is independent; a failure is logged and collected and the
        remaining files are still processed.
        """
        cutoff = (today or date.today()) - timedelta(days=retention_days)
        result = CleanupResult()
        for file_date, path in sorted(self._dated_files()):
            if file_date >= cutoff:
                continue
            try:
                path.unlink()
            except OSError as e:
                _logger.warning(
                    "history_delete_failed",
                    path=str(path),
                    error=str(e),
                    code=ErrorCode.CLEANUP_DELETE_FAILED.value,
                )
                result.errors.append(f"{path}: {e}")
                continue
            result.deleted.append(path)

        if result.deleted:
            _logger.info(
                "history_cleaned_up",
                deleted=len(result.deleted),
                failed=len(result.errors),
                retention_days=retention_days,
            )
        return result

    def cleanup_old_files(
        self,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        today: date | None = None,
    ) -> list[Path]:
        """Delete expired log files and return the deleted paths.

        DESTRUCTIVE: see ``cleanup_old_files_detailed``.
        """
        return self.cleanup_old_files_detailed(retention_days, today).deleted
