"""History and rate-governance commands.

Commands:
- rate-status: Show today's predictive extraction counts against their ceilings
- history: List the events recorded on one day
- history-prune: Delete expired history files (destructive)
"""

from __future__ import annotations

from datetime import date
from typing import Annotated

import typer

from ..helpers import get_root
from ..output import (
    console,
    create_history_table,
    create_rate_table,
    format_limit_status,
    print_json,
)


def _parse_day(value: str | None) -> date:
    if value is None:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}") from None


def rate_status(
    journey: Annotated[
        str | None,
        typer.Option("--journey", help="Also show the count for this journey id"),
    ] = None,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """Show predictive extraction counts against the configured ceilings.

    Examples:
        llkb rate-status
        llkb rate-status --journey JRN-0042 --json
    """
    from llkb.core.config import load_config
    from llkb.governance.history import HistoryLog

    root = get_root()
    config = load_config(root)
    log = HistoryLog(root)

    daily_count = log.count_predictive_extractions_today()
    daily_limit = config.extraction.max_predictive_per_day
    output: dict[str, object] = {
        "date": log.format_date(date.today()),
        "daily": {
            "count": daily_count,
            "limit": daily_limit,
            "reached": daily_count >= daily_limit,
        },
    }
    if journey is not None:
        journey_count = log.count_journey_extractions_today(journey)
        journey_limit = config.extraction.max_predictive_per_journey
        output["journey"] = {
            "id": journey,
            "count": journey_count,
            "limit": journey_limit,
            "reached": journey_count >= journey_limit,
        }

    if json_output:
        print_json(output)
        return

    table = create_rate_table()
    table.add_row(
        "all journeys",
        str(daily_count),
        str(daily_limit),
        format_limit_status(daily_count >= daily_limit),
    )
    if journey is not None:
        table.add_row(
            journey,
            str(journey_count),
            str(journey_limit),
            format_limit_status(journey_count >= journey_limit),
        )
    console.print(table)


def history(
    day: Annotated[
        str | None,
        typer.Option("--date", "-d", help="Day to show (YYYY-MM-DD, default today)"),
    ] = None,
    event: Annotated[
        str | None,
        typer.Option("--event", "-e", help="Only show events of this type"),
    ] = None,
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON for machine parsing",
    ),
) -> None:
    """List the history events recorded on one day.

    Examples:
        llkb history
        llkb history --date 2026-01-31 --event component_extracted
    """
    from llkb.governance.history import HistoryLog

    log = HistoryLog(get_root())
    target = _parse_day(day)
    events = log.read_file(log.file_path_for(target))
    if event is not None:
        events = [e for e in events if e.event == event]

    if json_output:
        print_json([e.to_json_dict() for e in events])
        return

    if not events:
        console.print(f"[dim]No events recorded on {log.format_date(target)}[/dim]")
        return

    table = create_history_table(f"History {log.format_date(target)}")
    for e in events:
        table.add_row(e.timestamp, e.event, e.prompt or "-", e.journey_id or "-")
    console.print(table)
    console.print(f"\n[dim]{len(events)} event(s)[/dim]")


def history_prune(
    retention_days: Annotated[
        int | None,
        typer.Option(
            "--retention-days",
            min=1,
            help="Keep this many days of history (default from config.yml)",
        ),
    ] = None,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Delete without asking for confirmation",
    ),
) -> None:
    """Delete history files older than the retention window.

    This is destructive: deleted files cannot be recovered.

    Examples:
        llkb history-prune
        llkb history-prune --retention-days 90 --yes
    """
    from llkb.core.config import load_config
    from llkb.governance.history import HistoryLog

    root = get_root()
    days = retention_days
    if days is None:
        days = load_config(root).history.retention_days

    if not yes and not typer.confirm(
        f"Permanently delete history files older than {days} days under {root}?"
    ):
        console.print("Aborted.")
        return

    result = HistoryLog(root).cleanup_old_files_detailed(days)
    console.print(f"Deleted [cyan]{len(result.deleted)}[/cyan] history file(s)")
    for error in result.errors:
        console.print(f"[red]Failed:[/red] {error}")
    if result.errors:
        raise typer.Exit(1)
