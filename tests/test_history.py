"""Tests for llkb.governance.history module."""

from __future__ import annotations

import json
from datetime import date, timedelta
from pathlib import Path

import pytest

from llkb.core.config import LLKBConfig
from llkb.governance.history import (
    EVENT_COMPONENT_EXTRACTED,
    HISTORY_DIRNAME,
    PROMPT_JOURNEY_IMPLEMENT,
    HistoryLog,
)
from llkb.models import HistoryEvent

TODAY = date(2026, 6, 1)


@pytest.fixture
def log(llkb_root: Path) -> HistoryLog:
    return HistoryLog(llkb_root)


@pytest.fixture
def limited_config() -> LLKBConfig:
    return LLKBConfig.model_validate(
        {"extraction": {"maxPredictivePerDay": 3, "maxPredictivePerJourney": 2}}
    )


def _extract(log: HistoryLog, journey_id: str, prompt: str = PROMPT_JOURNEY_IMPLEMENT) -> None:
    assert log.record(
        EVENT_COMPONENT_EXTRACTED,
        prompt=prompt,
        journey_id=journey_id,
        component_id="COMP-1",
    )


def _touch(log: HistoryLog, name: str) -> Path:
    log.history_dir.mkdir(parents=True, exist_ok=True)
    path = log.history_dir / name
    path.write_text("")
    return path


class TestAppend:
    """Tests for append() and record()."""

    def test_round_trip(self, log: HistoryLog):
        """An appended event reads back equal."""
        event = HistoryEvent.model_validate({
            "event": "lesson_applied",
            "timestamp": "2026-06-01T10:00:00Z",
            "lessonId": "L001",
            "success": True,
        })

        assert log.append(event) is True

        assert log.read_today() == [event]

    def test_one_line_per_event(self, log: HistoryLog):
        """Each event is one JSON line in today's file."""
        _extract(log, "JRN-1")
        _extract(log, "JRN-2")

        lines = log.file_path_for().read_text().splitlines()

        assert len(lines) == 2
        record = json.loads(lines[0])
        assert record["event"] == EVENT_COMPONENT_EXTRACTED
        assert record["journeyId"] == "JRN-1"
        assert record["componentId"] == "COMP-1"
        assert "timestamp" in record

    def test_record_camelizes_keyword_fields(self, log: HistoryLog):
        """Snake_case keyword fields are written under camelCase keys."""
        assert log.record("lesson_applied", lesson_id="L001", pattern_count=2, success=True)

        record = json.loads(log.file_path_for().read_text().splitlines()[0])

        assert record["lessonId"] == "L001"
        assert record["patternCount"] == 2
        assert record["success"] is True
        assert "lesson_id" not in record
        assert (log.read_today()[0].model_extra or {})["lessonId"] == "L001"

    def test_file_named_by_date(self, log: HistoryLog):
        """Log files are named YYYY-MM-DD.jsonl under history/."""
        path = log.file_path_for(TODAY)
        assert path == log.root / HISTORY_DIRNAME / "2026-06-01.jsonl"

    def test_failure_returns_false(self, log: HistoryLog):
        """An unwritable history directory is reported, not raised."""
        log.history_dir.write_text("not a directory")
        assert log.record("lesson_applied", lesson_id="L001") is False


class TestReadFile:
    """Tests for read_file()."""

    def test_missing_file(self, log: HistoryLog):
        """A missing log file has no events."""
        assert log.read_file(log.file_path_for(TODAY)) == []

    def test_skips_blank_and_malformed_lines(self, log: HistoryLog):
        """Bad lines are skipped; the rest are returned."""
        path = _touch(log, "2026-06-01.jsonl")
        path.write_text(
            '{"event": "a", "timestamp": "2026-06-01T00:00:00Z"}\n'
            "\n"
            "{truncated\n"
            '{"timestamp": "2026-06-01T00:00:00Z"}\n'
            '{"event": "b", "timestamp": "2026-06-01T00:00:01Z"}\n'
        )

        events = log.read_file(path)

        assert [e.event for e in events] == ["a", "b"]

    def test_skips_lines_that_are_not_utf8(self, log: HistoryLog):
        """A line with invalid UTF-8 bytes is skipped; the others still count."""
        path = log.file_path_for()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(
            b'{"event": "component_extracted", "timestamp": "2026-06-01T00:00:00Z", '
            b'"prompt": "journey-implement", "journeyId": "JRN-1"}\n'
            b"\xff\xfe garbage\n"
        )

        assert [e.event for e in log.read_today()] == [EVENT_COMPONENT_EXTRACTED]
        assert log.count_predictive_extractions_today() == 1


class TestRateGovernor:
    """Tests for the daily and per-journey ceilings."""

    def test_daily_limit_boundary(self, log: HistoryLog, limited_config: LLKBConfig):
        """The daily ceiling is reached at the configured count."""
        _extract(log, "JRN-1")
        _extract(log, "JRN-2")
        assert log.is_daily_rate_limit_reached(limited_config) is False

        _extract(log, "JRN-3")
        assert log.count_predictive_extractions_today() == 3
        assert log.is_daily_rate_limit_reached(limited_config) is True

    def test_only_predictive_extractions_count(self, log: HistoryLog, limited_config):
        """Other prompts and event types do not consume the budget."""
        _extract(log, "JRN-1", prompt="journey-verify")
        log.record("lesson_applied", prompt=PROMPT_JOURNEY_IMPLEMENT, journey_id="JRN-1")
        log.record("patterns_discovered", prompt="discover-foundation")

        assert log.count_predictive_extractions_today() == 0
        assert log.is_daily_rate_limit_reached(limited_config) is False

    def test_journey_limit(self, log: HistoryLog, limited_config: LLKBConfig):
        """Each journey has its own ceiling."""
        _extract(log, "JRN-1")
        assert log.is_journey_rate_limit_reached("JRN-1", limited_config) is False

        _extract(log, "JRN-1")
        _extract(log, "JRN-2")

        assert log.count_journey_extractions_today("JRN-1") == 2
        assert log.is_journey_rate_limit_reached("JRN-1", limited_config) is True
        assert log.is_journey_rate_limit_reached("JRN-2", limited_config) is False

    def test_zero_ceiling_always_reached(self, log: HistoryLog):
        """A ceiling of zero blocks every extraction."""
        config = LLKBConfig.model_validate({"extraction": {"maxPredictivePerDay": 0}})
        assert log.is_daily_rate_limit_reached(config) is True

    def test_count_with_predicate(self, log: HistoryLog):
        """Arbitrary predicates narrow the count."""
        log.record("lesson_applied", lesson_id="L001", success=True)
        log.record("lesson_applied", lesson_id="L002", success=False)

        count = log.count_today_events(
            "lesson_applied", lambda e: (e.model_extra or {}).get("success") is True
        )

        assert count == 1


class TestRetention:
    """Tests for files_in_range() and cleanup_old_files()."""

    def test_files_in_range(self, log: HistoryLog):
        """Only valid dated files inside the range are listed, oldest first."""
        for name in ["2026-05-30.jsonl", "2026-05-28.jsonl", "2026-06-02.jsonl", "notes.txt"]:
            _touch(log, name)

        files = log.files_in_range(date(2026, 5, 28), date(2026, 6, 1))

        assert [p.name for p in files] == ["2026-05-28.jsonl", "2026-05-30.jsonl"]

    def test_missing_directory(self, log: HistoryLog):
        """Without a history directory nothing is listed or deleted."""
        assert log.files_in_range(date(2000, 1, 1), TODAY) == []
        assert log.cleanup_old_files(today=TODAY) == []

    def test_cleanup_deletes_only_expired(self, log: HistoryLog):
        """Files older than the retention window are deleted."""
        old = _touch(log, f"{(TODAY - timedelta(days=400)).isoformat()}.jsonl")
        recent = _touch(log, f"{(TODAY - timedelta(days=300)).isoformat()}.jsonl")
        impossible = _touch(log, "2026-02-30.jsonl")
        other = _touch(log, "backup.jsonl")

        deleted = log.cleanup_old_files(retention_days=365, today=TODAY)

        assert deleted == [old]
        assert not old.exists()
        assert recent.exists()
        assert impossible.exists()
        assert other.exists()

    def test_cutoff_day_is_kept(self, log: HistoryLog):
        """A file dated exactly at the cutoff survives."""
        boundary = _touch(log, f"{(TODAY - timedelta(days=30)).isoformat()}.jsonl")
        older = _touch(log, f"{(TODAY - timedelta(days=31)).isoformat()}.jsonl")

        result = log.cleanup_old_files_detailed(retention_days=30, today=TODAY)

        assert result.deleted == [older]
        assert result.errors == []
        assert boundary.exists()

    def test_failed_delete_does_not_stop_cleanup(
        self, log: HistoryLog, monkeypatch: pytest.MonkeyPatch
    ):
        """A file that cannot be deleted is reported and the rest are still removed."""
        locked = _touch(log, f"{(TODAY - timedelta(days=500)).isoformat()}.jsonl")
        expired = _touch(log, f"{(TODAY - timedelta(days=400)).isoformat()}.jsonl")
        original_unlink = Path.unlink

        def unlink(self: Path, missing_ok: bool = False) -> None:
            if self == locked:
                raise PermissionError(13, "Permission denied", str(self))
            original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)

        result = log.cleanup_old_files_detailed(retention_days=365, today=TODAY)

        assert result.deleted == [expired]
        assert not expired.exists()
        assert locked.exists()
        assert len(result.errors) == 1
        assert str(locked) in result.errors[0]
