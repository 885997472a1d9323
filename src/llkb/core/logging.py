"""Structured logging infrastructure for LLKB.

Provides structured logging using structlog with LLKB-specific context such
as the component name, the knowledge-base root and the journey being processed.
Library modules only ever call ``get_logger``; configuration happens once, in
the CLI callback (or in a host application that embeds LLKB).

Example usage:
    from llkb.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("merger")

    # Log with key/value context
    logger.info("patterns_merged", added=3, updated=1)

    # Correlate every log line of one extraction run
    ctx = RunContext(run_id="abc-123", journey_id="JRN-0042")
    with with_context(ctx):
        logger.info("run_started")  # Includes run_id and journey_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns that should never be logged.
# Auth selectors are fine to log; credentials captured alongside them are not.
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "credential",
    "bearer",
    "authorization",
})

LogFormat = Literal["json", "console", "both"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


# =============================================================================
# Run context
# =============================================================================


@dataclass(frozen=True)
class RunContext:
    """Correlation fields for a single LLKB invocation.

    Attributes:
        run_id: Unique id of this invocation (generated when omitted).
        llkb_root: Knowledge-base root the invocation works against.
        journey_id: Journey being processed, if any.
        prompt: Prompt that triggered the invocation (journey-implement, ...).
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    llkb_root: str | None = None
    journey_id: str | None = None
    prompt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the non-empty fields for inclusion in log entries."""
        data: dict[str, Any] = {"run_id": self.run_id}
        if self.llkb_root is not None:
            data["llkb_root"] = self.llkb_root
        if self.journey_id is not None:
            data["journey_id"] = self.journey_id
        if self.prompt is not None:
            data["prompt"] = self.prompt
        return data


_current_context: ContextVar[RunContext | None] = ContextVar(
    "llkb_run_context", default=None
)


def get_current_context() -> RunContext | None:
    """Return the RunContext active in the current execution flow, if any."""
    return _current_context.get()


@contextmanager
def with_context(ctx: RunContext) -> Iterator[RunContext]:
    """Activate a RunContext for the duration of a block.

    Args:
        ctx: The RunContext to use for the block.

    Yields:
        The RunContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


# =============================================================================
# Processors
# =============================================================================


def _sanitize_value(key: str, value: Any) -> Any:
    """Return "[REDACTED]" for values whose key looks sensitive."""
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields (one level deep)."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds RunContext fields.

    Explicitly bound fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            if key not in event_dict:
                event_dict[key] = value
    return event_dict


def _get_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    """Build the processor chain shared by the console and JSON renderers."""
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]

    if include_context:
        processors.append(_add_context)

    if include_timestamps:
        processors.append(_add_timestamp)

    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


# =============================================================================
# Logger wrapper
# =============================================================================


class LlkbLogger:
    """LLKB-specific logger wrapper around structlog.

    The logger is bound to a component name and can have additional context
    bound for a scope. The underlying structlog logger is fetched lazily on
    every call, so loggers created at import time still honour a later
    ``configure_logging()``.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> LlkbLogger:
        """Return a new logger with additional bound context."""
        new_logger = LlkbLogger.__new__(LlkbLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an exception with traceback. Call from an exception handler."""
        self._get_logger().exception(event, **kw)


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: LogLevel = "INFO",
    format: LogFormat = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 10,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure LLKB structured logging.

    Should be called once at application startup before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable stderr output, "json" for JSON
            lines (to file_path, or stdout when no file is given), "both" for
            console to stderr and JSON to file_path.
        file_path: Optional log file. Required if format="both".
        max_file_size_mb: Maximum log file size before rotation (MB).
        backup_count: Number of rotated log files to keep.
        include_timestamps: Whether to add ISO8601 timestamps.
        include_context: Whether to add RunContext fields.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    if format in ("json", "both"):
        if file_path:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            handlers.append(file_handler)
        else:
            json_handler = logging.StreamHandler(sys.stdout)
            json_handler.setLevel(log_level)
            handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    if format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # cache_logger_on_first_use=False so import-time loggers pick up this config
    structlog.configure(
        processors=_get_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> LlkbLogger:
    """Get an LLKB logger for a component.

    Args:
        component: The component name (e.g., "merger", "history", "analytics").
        **initial_context: Additional context to bind.

    Returns:
        An LlkbLogger bound to the component.
    """
    return LlkbLogger(component, **initial_context)


__all__ = [
    "LlkbLogger",
    "RunContext",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "with_context",
]
