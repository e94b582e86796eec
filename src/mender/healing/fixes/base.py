"""Base classes and protocols for fix strategies.

A fix strategy is a pure text transformation over Playwright test
source. It either applies (returning the new code) or declines by
returning ``applied=False`` with the unchanged code and a reason.
Declining is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from mender.healing.models import FailureClassification, FixResult


@dataclass(frozen=True)
class AriaInfo:
    """Accessibility data captured for the failing element, when available."""

    role: str | None = None
    name: str | None = None
    level: int | None = None
    test_id: str | None = None
    label: str | None = None
    placeholder: str | None = None


@dataclass(frozen=True)
class FixContext:
    """Everything a strategy may look at besides the code itself."""

    line_number: int = 1
    """1-based line of the failure, or 1 when unknown."""

    error_message: str = ""
    classification: FailureClassification | None = None
    aria_info: AriaInfo | None = None
    max_timeout_ms: int = 30_000


class FixStrategy(Protocol):
    """Protocol for fix strategies.

    Each strategy must implement:
    - name: the fix type it implements
    - description: human-readable explanation
    - apply(): transform the code or decline
    """

    @property
    def name(self) -> str:
        """Fix type identifier, e.g. ``selector-refine``."""
        ...

    @property
    def description(self) -> str:
        ...

    def apply(self, code: str, context: FixContext) -> FixResult:
        """Return the transformed code, or a declined result."""
        ...


class BaseFixStrategy:
    """Common behavior for the built-in strategies."""

    @property
    def name(self) -> str:
        """Override in subclass."""
        raise NotImplementedError

    @property
    def description(self) -> str:
        """Override in subclass."""
        raise NotImplementedError

    def apply(self, code: str, context: FixContext) -> FixResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
