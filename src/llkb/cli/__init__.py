"""LLKB CLI.

The CLI is built using Typer. Global options (``--root`` and the logging
options) are handled by the app callback before any command runs; command
implementations live in ``llkb.cli.commands``.

Package structure:
    cli/
    ├── __init__.py      # App assembly and global options
    ├── helpers.py       # Shared root/logging state
    ├── output.py        # Rich console and tables
    └── commands/
        ├── analytics.py # analytics
        ├── merge.py     # merge
        └── history.py   # rate-status, history, history-prune
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from llkb import __version__
from llkb.core.config import DEFAULT_LLKB_ROOT

from . import helpers as helpers
from .commands import analytics, history, history_prune, merge, rate_status
from .helpers import (
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
    set_root,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="llkb",
    help="Learned-pattern knowledge base maintenance",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"llkb v{__version__}")
        raise typer.Exit()


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    root: Annotated[
        Path,
        typer.Option(
            "--root",
            "-r",
            help="Knowledge-base root directory",
            envvar="LLKB_ROOT",
        ),
    ] = DEFAULT_LLKB_ROOT,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="LLKB_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="LLKB_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="LLKB_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """LLKB - learned-pattern knowledge base for UI test generation."""
    set_root(root)
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(analytics)
app.command()(merge)
app.command(name="rate-status")(rate_status)
app.command()(history)
app.command(name="history-prune")(history_prune)


__all__ = [
    "app",
    "main",
    "console",
]
