"""Exception hierarchy for Mender.

Only conditions the caller must decide about are raised. Store
corruption, lock contention and fix-strategy declines are recovered
locally and logged; unhealable failures surface as a HealingStatus.
"""

from __future__ import annotations

from pathlib import Path


class MenderError(Exception):
    """Base class for all Mender errors."""


class PatternStoreError(MenderError):
    """A pattern store document could not be written.

    The temp file has already been removed when this is raised; the
    original OSError is available as ``__cause__``.
    """

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class HealingConfigError(MenderError):
    """A configuration file could not be loaded or validated."""


class SessionStateError(MenderError):
    """Persisted healing session state could not be read or written."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


__all__ = [
    "HealingConfigError",
    "MenderError",
    "PatternStoreError",
    "SessionStateError",
]
