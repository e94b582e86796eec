"""Pattern store commands for the Mender CLI.

- `patterns stats`: aggregate view of the learned pattern set
- `patterns list`: the learned patterns, highest confidence first
- `patterns match`: resolve a step phrase the way generation does
- `patterns prune`: drop old, low-confidence patterns that never succeeded
- `patterns export`: write high-confidence patterns as triggers
"""

from __future__ import annotations

import json as json_lib
from pathlib import Path

import typer
from rich.panel import Panel

from mender.core.config import MatchOptions
from mender.core.errors import PatternStoreError
from mender.learning.matcher import PatternMatcher
from mender.learning.store import prune_patterns

from ..helpers import get_config, get_store
from ..output import console, create_patterns_table, create_simple_table, format_confidence

patterns_app = typer.Typer(name="patterns", help="Inspect and maintain the pattern store.")


@patterns_app.command("stats")
def patterns_stats(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show learned pattern statistics."""
    store = get_store()
    stats = store.get_stats()

    if json_output:
        console.print(json_lib.dumps(stats.to_dict(), indent=2))
        return

    table = create_simple_table()
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total patterns", str(stats.total))
    table.add_row("Promoted", str(stats.promoted))
    table.add_row("High confidence (>= 0.7)", str(stats.high_confidence))
    table.add_row("Low confidence (< 0.3)", str(stats.low_confidence))
    table.add_row("Average confidence", format_confidence(stats.avg_confidence))
    table.add_row("Successes / failures", f"{stats.total_successes} / {stats.total_failures}")
    console.print(Panel(table, title=f"Pattern store: {store.root}", border_style="cyan"))


@patterns_app.command("list")
def patterns_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of patterns to show"),
    include_promoted: bool = typer.Option(
        False, "--include-promoted", help="Also show promoted patterns"
    ),
) -> None:
    """List learned patterns, highest confidence first."""
    patterns = [
        p for p in get_store().load_learned()
        if include_promoted or not p.promoted_to_core
    ]
    if not patterns:
        console.print("[dim]No learned patterns yet.[/dim]")
        return

    patterns.sort(key=lambda p: (p.confidence, p.success_count), reverse=True)
    table = create_patterns_table()
    for p in patterns[:limit]:
        table.add_row(
            p.id,
            p.original_text,
            p.mapped_primitive.type.value,
            format_confidence(p.confidence),
            f"{p.success_count}/{p.fail_count}",
            str(len(p.source_journeys)),
        )
    console.print(table)
    if len(patterns) > limit:
        console.print(f"[dim]... {len(patterns) - limit} more[/dim]")


@patterns_app.command("match")
def patterns_match(
    text: str = typer.Argument(..., help="Step phrase to resolve"),
    min_confidence: float | None = typer.Option(
        None, "--min-confidence", help="Minimum pattern confidence (default from config)"
    ),
    min_similarity: float | None = typer.Option(
        None, "--min-similarity", help="Minimum fuzzy similarity (default from config)"
    ),
    no_fuzzy: bool = typer.Option(False, "--no-fuzzy", help="Exact matches only"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Resolve a step phrase against learned and discovered patterns."""
    defaults = get_config().matching
    options = MatchOptions(
        min_confidence=defaults.min_confidence if min_confidence is None else min_confidence,
        min_similarity=defaults.min_similarity if min_similarity is None else min_similarity,
        use_fuzzy=defaults.use_fuzzy and not no_fuzzy,
    )
    match = PatternMatcher(get_store(), options).match(text)

    if json_output:
        console.print(json_lib.dumps(match.to_dict() if match else None, indent=2))
        if match is None:
            raise typer.Exit(1)
        return

    if match is None:
        console.print(f"[yellow]No pattern matches[/yellow] '{text}'")
        raise typer.Exit(1)

    table = create_simple_table()
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Pattern", match.pattern_id)
    table.add_row("Source", match.source)
    if match.layer:
        table.add_row("Layer", match.layer)
    table.add_row("Confidence", format_confidence(match.confidence))
    if not match.is_exact:
        table.add_row("Similarity", f"{match.similarity:.2f}")
    table.add_row("Primitive", json_lib.dumps(match.primitive.to_dict()))
    console.print(table)


@patterns_app.command("prune")
def patterns_prune(
    max_age_days: int | None = typer.Option(None, "--max-age-days", help="Age threshold"),
    min_confidence: float | None = typer.Option(
        None, "--min-confidence", help="Confidence threshold"
    ),
) -> None:
    """Remove stale, low-confidence patterns that never succeeded."""
    options = get_config().pruning
    updates: dict[str, float | int] = {}
    if max_age_days is not None:
        updates["max_age_days"] = max_age_days
    if min_confidence is not None:
        updates["min_confidence"] = min_confidence
    if updates:
        options = options.model_copy(update=updates)

    try:
        result = prune_patterns(get_store(), options)
    except PatternStoreError as e:
        console.print(f"[red]Prune failed:[/red] {e}")
        raise typer.Exit(1) from None
    console.print(f"Removed [bold]{result.removed}[/bold] pattern(s), {result.remaining} remaining.")


@patterns_app.command("export")
def patterns_export(
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Destination file (default: <store>/autogen-patterns.json)"
    ),
    min_confidence: float = typer.Option(0.7, "--min-confidence", help="Confidence threshold"),
) -> None:
    """Export high-confidence patterns as generator triggers."""
    try:
        result = get_store().export_to_config(min_confidence=min_confidence, output_path=output)
    except PatternStoreError as e:
        console.print(f"[red]Export failed:[/red] {e}")
        raise typer.Exit(1) from None
    console.print(f"Exported [bold]{result.exported}[/bold] pattern(s) to {result.path}")
