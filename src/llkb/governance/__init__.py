"""Rate governance over the append-only history log."""

from llkb.governance.history import CleanupResult, HistoryLog

__all__ = ["CleanupResult", "HistoryLog"]
