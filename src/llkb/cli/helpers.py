"""Shared state and utilities for LLKB CLI commands.

Global options (knowledge-base root, logging) are parsed once by the app
callback and stored here so command functions do not have to thread them
through their signatures.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from llkb.core.config import DEFAULT_LLKB_ROOT
from llkb.core.logging import configure_logging

# =============================================================================
# Knowledge-base root
# =============================================================================

_root: Path = DEFAULT_LLKB_ROOT


def get_root() -> Path:
    """Return the knowledge-base root selected by ``--root``."""
    return _root


def set_root(root: Path) -> None:
    global _root
    _root = root


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """CLI logging options collected from the global callbacks."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


_log_config = CliLoggingConfig()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Args:
        console: Rich console for error output.

    Raises:
        typer.Exit: If the logging options are inconsistent.
    """
    if _log_config.configured:
        return

    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except (ValueError, AttributeError) as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_cli_state() -> None:
    """Reset root and logging state (used by tests)."""
    global _log_config
    _log_config = CliLoggingConfig()
    set_root(DEFAULT_LLKB_ROOT)
