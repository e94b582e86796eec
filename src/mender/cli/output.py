"""Rich output formatting for the Mender CLI.

Centralizes the console, status colors and table factories so every
command renders patterns and heal logs the same way.
"""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from mender.healing.session_log import HealingLogStatus

# Shared console instance. Commands guard JSON output themselves.
console = Console()


class StatusColors:
    """Color mappings for status values."""

    HEAL_STATUS: dict[HealingLogStatus, str] = {
        HealingLogStatus.IN_PROGRESS: "blue",
        HealingLogStatus.HEALED: "green",
        HealingLogStatus.FAILED: "red",
        HealingLogStatus.EXHAUSTED: "yellow",
        HealingLogStatus.NOT_HEALABLE: "magenta",
        HealingLogStatus.CANCELLED: "dim",
    }

    ATTEMPT_RESULT: dict[str, str] = {
        "pass": "green",
        "fail": "red",
        "error": "red bold",
        "skipped": "dim",
        "pending": "yellow",
    }

    @classmethod
    def get_heal_color(cls, status: HealingLogStatus) -> str:
        return cls.HEAL_STATUS.get(status, "white")


def format_confidence(confidence: float) -> str:
    """Color a confidence score: green when high, red when low."""
    if confidence >= 0.7:
        color = "green"
    elif confidence >= 0.3:
        color = "yellow"
    else:
        color = "red"
    return f"[{color}]{confidence:.2f}[/{color}]"


def format_duration_ms(duration_ms: int) -> str:
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    return f"{duration_ms / 1000:.1f}s"


def create_patterns_table(title: str = "Learned Patterns") -> Table:
    """Create a styled table for learned pattern display."""
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Text", style="cyan", no_wrap=False)
    table.add_column("Action", width=14)
    table.add_column("Confidence", justify="right", width=10)
    table.add_column("S/F", justify="right", width=7)
    table.add_column("Journeys", justify="right", width=8)
    return table


def create_attempts_table(title: str = "Attempts") -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=3)
    table.add_column("Fix", style="cyan")
    table.add_column("Failure", width=11)
    table.add_column("Result", width=8)
    table.add_column("Duration", justify="right", width=9)
    table.add_column("Change", no_wrap=False)
    return table


def create_simple_table(show_header: bool = False) -> Table:
    """Create a simple table without box styling, for key-value displays."""
    return Table(show_header=show_header, box=None)
