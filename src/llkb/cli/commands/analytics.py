"""Analytics command.

Commands:
- analytics: Recompute analytics.json and print the summary
"""

from __future__ import annotations

import typer

from ..helpers import get_root
from ..output import console, print_json


def analytics(
    no_update: bool = typer.Option(
        False,
        "--no-update",
        help="Show the stored analytics without recomputing them",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the analytics document as JSON",
    ),
) -> None:
    """Recompute and show knowledge-base analytics.

    Reads lessons.json and components.json under the root, rewrites
    analytics.json, then prints a summary.

    Examples:
        llkb analytics              # Recompute and summarize
        llkb analytics --no-update  # Summarize the stored document
        llkb analytics --json       # Full document for scripting
    """
    from llkb.analytics import (
        ANALYTICS_FILENAME,
        get_analytics_summary,
        load_analytics_file,
        update_analytics,
    )

    root = get_root()

    if not no_update and not update_analytics(root):
        console.print(
            f"[red]Cannot update analytics:[/red] lessons.json or components.json "
            f"missing or invalid under {root}"
        )
        raise typer.Exit(1)

    if json_output:
        document = load_analytics_file(root / ANALYTICS_FILENAME)
        if document is None:
            console.print("[red]Analytics not available[/red]")
            raise typer.Exit(1)
        print_json(document.to_json_dict())
        return

    console.print(get_analytics_summary(root), markup=False, highlight=False)
