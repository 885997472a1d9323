"""Time utilities for LLKB.

Provides timezone-aware datetime helpers plus the calendar-date formatting used
to name history files.
"""

from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """Return current UTC time as an ISO 8601 string."""
    return utc_now().isoformat()


def format_date(day: date | datetime) -> str:
    """Format a date as ``YYYY-MM-DD``.

    Lexical order of the result equals chronological order, which the history
    log relies on for file naming.
    """
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given.

    Returns:
        The parsed timezone-aware datetime, or None if the value is unparseable.
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def days_between(first: datetime, second: datetime) -> float:
    """Return the absolute distance between two datetimes in (fractional) days."""
    return abs((first - second).total_seconds()) / 86400.0
