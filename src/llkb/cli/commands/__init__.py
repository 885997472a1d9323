"""LLKB CLI commands."""

from .analytics import analytics
from .history import history, history_prune, rate_status
from .merge import merge

__all__ = [
    "analytics",
    "history",
    "history_prune",
    "merge",
    "rate_status",
]
