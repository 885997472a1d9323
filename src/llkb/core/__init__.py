"""Core infrastructure: configuration, errors and logging."""

from llkb.core.config import DEFAULT_LLKB_ROOT, LLKBConfig, load_config
from llkb.core.errors import ErrorCode, SaveResult

__all__ = [
    "DEFAULT_LLKB_ROOT",
    "ErrorCode",
    "LLKBConfig",
    "SaveResult",
    "load_config",
]
