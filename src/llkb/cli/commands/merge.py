"""Merge command.

Commands:
- merge: Absorb discovered-patterns.json into the learned-pattern store
"""

from __future__ import annotations

import typer

from ..helpers import get_root
from ..output import console, print_json


def merge(
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output the merge counters as JSON",
    ),
) -> None:
    """Merge discovered patterns into the learned-pattern store.

    Existing entries are only replaced by strictly more confident
    candidates, so running the command twice changes nothing the second
    time.

    Examples:
        llkb merge
        llkb --root ./.artk/llkb merge --json
    """
    from llkb.learning.merger import LearnedPatternStore
    from llkb.learning.synthesizer import DISCOVERED_PATTERNS_FILENAME, load_discovered_patterns

    root = get_root()
    report = load_discovered_patterns(root)
    if report is None:
        console.print(
            f"[red]No valid {DISCOVERED_PATTERNS_FILENAME}[/red] found under {root}"
        )
        raise typer.Exit(1)

    result = LearnedPatternStore(root).absorb(report.patterns)

    if json_output:
        print_json({
            "discovered": len(report.patterns),
            "added": result.added,
            "updated": result.updated,
            "unchanged": result.unchanged,
            "total": result.total,
            "saved": result.saved,
            "errors": result.errors,
        })
    else:
        console.print("[bold]Learned Pattern Merge[/bold]\n")
        console.print(f"  Discovered: [cyan]{len(report.patterns)}[/cyan]")
        console.print(f"  Added: [green]{result.added}[/green]")
        console.print(f"  Updated: [yellow]{result.updated}[/yellow]")
        console.print(f"  Unchanged: {result.unchanged}")
        console.print(f"  Store total: [cyan]{result.total}[/cyan]")
        for error in result.errors:
            console.print(f"[red]Error:[/red] {error}")

    if result.errors:
        raise typer.Exit(1)
