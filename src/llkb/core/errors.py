"""Error codes and outcome values.

Nothing in the LLKB core raises past its public boundary during normal
operation. Fallible operations return an outcome (``SaveResult``, ``bool``,
``None``) and log a warning carrying one of the stable codes below.

Error codes are organized by category using numeric prefixes:
- L1xx: Missing or unreadable prerequisite data
- L2xx: Malformed persisted documents
- L3xx: Governance and persistence write failures
- L4xx: Retention cleanup failures
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class ErrorCode(str, Enum):
    """Stable identifiers attached to warning logs."""

    SOURCE_MISSING = "L101"
    """A required source document does not exist."""

    SOURCE_UNREADABLE = "L102"
    """A required source document exists but could not be read or parsed."""

    DOCUMENT_INVALID = "L201"
    """A persisted document failed shape validation."""

    WRITE_FAILED = "L301"
    """An atomic document replace failed."""

    HISTORY_APPEND_FAILED = "L302"
    """An event could not be appended to the history log."""

    LOCK_TIMEOUT = "L303"
    """An advisory file lock could not be acquired in time."""

    CLEANUP_DELETE_FAILED = "L401"
    """An expired history file could not be deleted."""


@dataclass(frozen=True)
class SaveResult:
    """Outcome of a document write.

    Attributes:
        success: Whether the new content is fully in place.
        error: Human-readable reason when success is False.
    """

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> SaveResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> SaveResult:
        return cls(success=False, error=error)


class DocumentValidationError(ValueError):
    """A persisted document did not match its expected shape.

    Raised only inside ``llkb.store.files.load_document``; public operations
    convert it into a warning and a None/False outcome.
    """

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid document {path}: {reason}")


class LockTimeoutError(OSError):
    """An advisory lock could not be acquired within the allowed wait."""

    def __init__(self, path: Path, waited_seconds: float) -> None:
        self.path = path
        self.waited_seconds = waited_seconds
        super().__init__(f"Timed out after {waited_seconds:.1f}s waiting for lock on {path}")
