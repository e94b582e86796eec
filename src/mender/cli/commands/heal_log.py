"""Heal log commands for the Mender CLI.

- `heal-log show`: one session's attempts, as a table or markdown
- `heal-log summary`: outcomes across every session in a directory
- `heal-log clear-state`: discard saved state so the next run starts fresh
"""

from __future__ import annotations

import json as json_lib
from pathlib import Path

import typer
from rich.markdown import Markdown
from rich.panel import Panel

from mender.healing.session_log import (
    aggregate_healing_logs,
    clear_session_state,
    format_healing_log,
    healing_log_path,
    load_healing_log,
)

from ..helpers import get_config
from ..output import (
    StatusColors,
    console,
    create_attempts_table,
    create_simple_table,
    format_duration_ms,
)

heal_log_app = typer.Typer(name="heal-log", help="Inspect healing session logs.")


def _log_dir(directory: Path | None) -> Path:
    return directory or get_config().log_dir


@heal_log_app.command("show")
def heal_log_show(
    journey: str = typer.Argument(..., help="Journey id, or a path to a .heal-log.json file"),
    directory: Path | None = typer.Option(
        None, "--dir", "-d", help="Heal log directory (default from config)"
    ),
    markdown: bool = typer.Option(False, "--markdown", "-m", help="Render as markdown"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show the attempts and outcome of one healing session."""
    candidate = Path(journey)
    path = candidate if candidate.suffix == ".json" else healing_log_path(
        _log_dir(directory), journey
    )
    log = load_healing_log(path)
    if log is None:
        console.print(f"[red]No readable heal log at[/red] {path}")
        raise typer.Exit(1)

    if json_output:
        console.print(json_lib.dumps(log.to_dict(), indent=2))
        return
    if markdown:
        console.print(Markdown(format_healing_log(log)))
        return

    color = StatusColors.get_heal_color(log.status)
    console.print(Panel(
        f"[bold]{log.journey_id}[/bold]\n"
        f"Status: [{color}]{log.status.value}[/{color}]\n"
        f"[dim]Started {log.session_start}"
        + (f", ended {log.session_end}" if log.session_end else "")
        + "[/dim]",
        title="Healing session",
        border_style=color,
    ))

    if log.attempts:
        table = create_attempts_table()
        for attempt in log.attempts:
            result_color = StatusColors.ATTEMPT_RESULT.get(attempt.result.value, "white")
            table.add_row(
                str(attempt.attempt),
                attempt.fix_type,
                attempt.failure_type,
                f"[{result_color}]{attempt.result.value}[/{result_color}]",
                format_duration_ms(attempt.duration_ms),
                attempt.error_message or attempt.change,
            )
        console.print(table)

    if log.summary is not None and log.summary.recommendation:
        console.print(f"\n[bold]Recommendation:[/bold] {log.summary.recommendation}")


@heal_log_app.command("summary")
def heal_log_summary(
    directory: Path | None = typer.Option(
        None, "--dir", "-d", help="Heal log directory (default from config)"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Summarize outcomes across all healing sessions in a directory."""
    report = aggregate_healing_logs(_log_dir(directory))

    if json_output:
        console.print(json_lib.dumps(report.to_dict(), indent=2))
        return
    if report.total_sessions == 0:
        console.print("[dim]No heal logs found.[/dim]")
        return

    table = create_simple_table()
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Sessions", str(report.total_sessions))
    for status, count in report.status_counts.items():
        if count:
            table.add_row(f"  {status}", str(count))
    table.add_row("Success rate", f"{report.success_rate * 100:.0f}%")
    table.add_row("Average attempts", f"{report.average_attempts:.1f}")
    console.print(table)

    if report.most_common_fixes:
        console.print("\n[bold]Most common fixes[/bold]")
        for fix, count in report.most_common_fixes[:5]:
            console.print(f"  {fix}: {count}")


@heal_log_app.command("clear-state")
def heal_log_clear_state(
    journey: str = typer.Argument(..., help="Journey id"),
    directory: Path | None = typer.Option(
        None, "--dir", "-d", help="Heal log directory (default from config)"
    ),
) -> None:
    """Discard saved session state so the next healing run starts fresh."""
    if clear_session_state(_log_dir(directory), journey):
        console.print(f"Cleared session state for [cyan]{journey}[/cyan]")
    else:
        console.print(f"[dim]No saved session state for {journey}[/dim]")
