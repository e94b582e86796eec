"""Shared utilities for Mender CLI commands.

Holds the global CLI state set by the app callback (logging options and
the loaded configuration) and the factories commands use to reach the
pattern store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import typer
from rich.console import Console

from mender.core.config import MenderConfig
from mender.core.errors import HealingConfigError
from mender.core.logging import configure_logging
from mender.learning.store import PatternStore


@dataclass
class CliLoggingConfig:
    """CLI logging configuration state."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


@dataclass
class CliState:
    config_path: Path | None = None
    store_root: Path | None = None
    config: MenderConfig = field(default_factory=MenderConfig)


_log_config = CliLoggingConfig()
_state = CliState()


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return
    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        console.print(f"[red]Logging configuration error:[/red] {e}")
        raise typer.Exit(1) from None


def reset_cli_state() -> None:
    """Reset logging and config state (primarily for testing)."""
    global _log_config, _state
    _log_config = CliLoggingConfig()
    _state = CliState()


def load_cli_config(config_path: Path | None, store_root: Path | None, console: Console) -> None:
    """Load the YAML configuration named on the command line.

    Raises:
        typer.Exit: If the file is unreadable or invalid.
    """
    _state.config_path = config_path
    _state.store_root = store_root
    if config_path is None:
        _state.config = MenderConfig()
        return
    try:
        _state.config = MenderConfig.from_yaml(config_path)
    except HealingConfigError as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def get_config() -> MenderConfig:
    return _state.config


def get_store() -> PatternStore:
    """Pattern store for the configured root, honoring ``--store``."""
    store_config = _state.config.store
    if _state.store_root is not None:
        store_config = store_config.model_copy(update={"root": _state.store_root})
    return PatternStore(store_config)
