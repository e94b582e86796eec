"""Mender CLI.

A thin Typer layer over the pattern store, the promotion analyzer and
healing session logs. Command groups live in ``commands/``; shared state
and factories in ``helpers.py``; Rich formatting in ``output.py``.

    mender patterns stats|list|match|prune|export
    mender promotion analyze|promote
    mender heal-log show|summary|clear-state
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from mender import __version__

from . import helpers as helpers
from .commands import heal_log_app, patterns_app, promotion_app
from .helpers import (
    configure_global_logging,
    load_cli_config,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

app = typer.Typer(
    name="mender",
    help="Self-healing and pattern learning for generated end-to-end tests",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Mender v{__version__}")
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
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="YAML configuration file",
            envvar="MENDER_CONFIG",
        ),
    ] = None,
    store: Annotated[
        Path | None,
        typer.Option(
            "--store",
            "-s",
            help="Pattern store directory (overrides the config)",
            envvar="MENDER_STORE",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="MENDER_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="MENDER_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="MENDER_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Mender - self-healing and pattern learning for generated end-to-end tests."""
    configure_global_logging(console)
    load_cli_config(config, store, console)


app.add_typer(patterns_app)
app.add_typer(promotion_app)
app.add_typer(heal_log_app)


__all__ = ["app", "main"]
