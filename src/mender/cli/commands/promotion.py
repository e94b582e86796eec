"""Promotion commands for the Mender CLI.

- `promotion analyze`: report promotable and near-promotion patterns
- `promotion promote`: mark eligible patterns as promoted
"""

from __future__ import annotations

import json as json_lib
from pathlib import Path

import typer
from rich.table import Table

from mender.core.errors import PatternStoreError
from mender.learning.promotion import (
    analyze_for_promotion,
    export_promotion_report,
    promote_patterns,
)

from ..helpers import get_config, get_store
from ..output import console, format_confidence

promotion_app = typer.Typer(name="promotion", help="Promote proven patterns to the static tier.")


@promotion_app.command("analyze")
def promotion_analyze(
    export_dir: Path | None = typer.Option(
        None,
        "--export-dir",
        "-o",
        help="Also write the JSON report and generated pattern module here",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Analyze learned patterns against the promotion criteria."""
    report = analyze_for_promotion(get_store(), get_config().promotion)

    if json_output:
        console.print(json_lib.dumps(report.to_dict(), indent=2, default=str))
    else:
        stats = report.stats
        console.print(
            f"[bold]{report.total_patterns}[/bold] patterns analyzed: "
            f"[green]{stats.eligible_for_promotion} promotable[/green], "
            f"[yellow]{stats.near_promotion} near promotion[/yellow], "
            f"{stats.needs_more_data} need more data, "
            f"[dim]{stats.already_promoted} already promoted[/dim]"
        )

        if report.promotable:
            table = Table(title="Promotable", show_header=True, header_style="bold")
            table.add_column("Name", style="cyan")
            table.add_column("Action", width=14)
            table.add_column("Confidence", justify="right", width=10)
            table.add_column("Journeys", justify="right", width=8)
            table.add_column("Example")
            for d in report.promotable:
                table.add_row(
                    d.name,
                    d.primitive_type,
                    format_confidence(d.confidence_at_promotion),
                    str(d.source_journeys_count),
                    d.example,
                )
            console.print(table)

        if report.near_promotion:
            table = Table(title="Near promotion", show_header=True, header_style="bold")
            table.add_column("Text", style="cyan")
            table.add_column("Missing")
            table.add_column("Uses needed", justify="right", width=11)
            for near in report.near_promotion:
                table.add_row(
                    near.pattern.original_text,
                    "\n".join(near.missing_criteria),
                    str(near.estimated_uses_needed),
                )
            console.print(table)

    if export_dir is not None:
        exported = export_promotion_report(report, export_dir)
        if not json_output:
            console.print(f"Report written to {exported.report_path}")
            if exported.code_path is not None:
                console.print(f"Generated patterns written to {exported.code_path}")


@promotion_app.command("promote")
def promotion_promote(
    pattern_ids: list[str] = typer.Argument(
        None, help="Pattern ids to promote. Omit to promote every eligible pattern."
    ),
) -> None:
    """Mark eligible patterns as promoted to the static tier."""
    try:
        outcome = promote_patterns(get_store(), pattern_ids or None, get_config().promotion)
    except PatternStoreError as e:
        console.print(f"[red]Promotion failed:[/red] {e}")
        raise typer.Exit(1) from None

    console.print(f"Promoted [bold green]{len(outcome.promoted)}[/bold green] pattern(s).")
    for pattern_id in outcome.promoted:
        console.print(f"  [green]✓[/green] {pattern_id}")
    if outcome.skipped:
        console.print(f"[yellow]{len(outcome.skipped)} not eligible:[/yellow]")
        for pattern_id in outcome.skipped:
            console.print(f"  [dim]- {pattern_id}[/dim]")
