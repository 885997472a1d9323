"""Rich output formatting for the LLKB CLI."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.table import Table

# Shared console; commands print through this instance.
console = Console()


def print_json(data: Any) -> None:
    """Print data as indented JSON without line wrapping or markup."""
    console.print_json(data=data, highlight=False)


def create_rate_table() -> Table:
    table = Table(title="Predictive Extraction Limits")
    table.add_column("Scope", style="cyan")
    table.add_column("Today", justify="right")
    table.add_column("Ceiling", justify="right")
    table.add_column("Status")
    return table


def create_history_table(title: str) -> Table:
    table = Table(title=title)
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Event", style="cyan")
    table.add_column("Prompt")
    table.add_column("Journey")
    return table


def format_limit_status(reached: bool) -> str:
    return "[red]limit reached[/red]" if reached else "[green]ok[/green]"
