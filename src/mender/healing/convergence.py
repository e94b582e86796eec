"""Convergence tracking for healing sessions.

Records the error count after every attempt and classifies the shape of
that history. The healing loop combines the trend with the circuit
breaker through :func:`analyze_progress` to decide whether to keep
trying, stop, or hand the failure to a human.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mender.core.logging import get_logger
from mender.healing.circuit_breaker import HealingCircuitBreaker
from mender.healing.models import TrendDirection

_logger = get_logger("convergence")

# Consecutive non-improving attempts before a session is escalated
STAGNATION_LIMIT = 2


@dataclass
class ConvergenceState:
    """Snapshot of a detector for logs and reports."""

    error_count_history: list[int]
    trend: TrendDirection
    improvement_percent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_count_history": list(self.error_count_history),
            "trend": self.trend.value,
            "improvement_percent": self.improvement_percent,
        }


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def classify_trend(history: list[int]) -> TrendDirection:
    """Classify an error-count history.

    - fewer than two points: stagnating
    - the direction of change reverses more than once: oscillating
    - never increases and ends lower: improving
    - never decreases and ends higher: degrading
    - anything else: stagnating
    """
    if len(history) < 2:
        return TrendDirection.STAGNATING

    deltas = [b - a for a, b in zip(history, history[1:])]
    signs = [_sign(d) for d in deltas if d != 0]
    reversals = sum(1 for a, b in zip(signs, signs[1:]) if a != b)
    if reversals > 1:
        return TrendDirection.OSCILLATING

    first, last = history[0], history[-1]
    if all(d <= 0 for d in deltas) and last < first:
        return TrendDirection.IMPROVING
    if all(d >= 0 for d in deltas) and last > first:
        return TrendDirection.DEGRADING
    return TrendDirection.STAGNATING


def improvement_percent(history: list[int]) -> float:
    """Percentage drop from the first to the last error count; 0 when the first is 0."""
    if not history or history[0] == 0:
        return 0.0
    return (history[0] - history[-1]) / history[0] * 100


class ConvergenceDetector:
    """Tracks per-attempt error counts and error fingerprints."""

    def __init__(self) -> None:
        self._history: list[int] = []
        self._fingerprints: list[list[str]] = []
        self._stagnation_count = 0
        self._last_improvement: int | None = None

    @property
    def history(self) -> list[int]:
        return list(self._history)

    @property
    def stagnation_count(self) -> int:
        """Consecutive most recent attempts that did not lower the error count."""
        return self._stagnation_count

    @property
    def last_improvement(self) -> int | None:
        """1-based index of the last recorded count that was lower than its predecessor."""
        return self._last_improvement

    def record(self, error_count: int, fingerprints: list[str] | None = None) -> None:
        """Record the error count observed after one attempt."""
        if self._history:
            if error_count < self._history[-1]:
                self._stagnation_count = 0
                self._last_improvement = len(self._history) + 1
            else:
                self._stagnation_count += 1
        self._history.append(error_count)
        self._fingerprints.append(list(fingerprints or []))
        _logger.debug(
            "convergence.recorded",
            error_count=error_count,
            samples=len(self._history),
            stagnation_count=self._stagnation_count,
        )

    def trend(self) -> TrendDirection:
        return classify_trend(self._history)

    def improvement_percent(self) -> float:
        return improvement_percent(self._history)

    def is_converged(self) -> bool:
        return bool(self._history) and self._history[-1] == 0

    def new_errors(self) -> list[str]:
        """Fingerprints present after the latest attempt but not the one before."""
        if len(self._fingerprints) < 2:
            return []
        previous = set(self._fingerprints[-2])
        return [fp for fp in self._fingerprints[-1] if fp not in previous]

    def fixed_errors(self) -> list[str]:
        """Fingerprints present before the latest attempt and gone after it."""
        if len(self._fingerprints) < 2:
            return []
        current = set(self._fingerprints[-1])
        return [fp for fp in self._fingerprints[-2] if fp not in current]

    def get_state(self) -> ConvergenceState:
        return ConvergenceState(
            error_count_history=list(self._history),
            trend=self.trend(),
            improvement_percent=self.improvement_percent(),
        )

    def reset(self) -> None:
        self._history.clear()
        self._fingerprints.clear()
        self._stagnation_count = 0
        self._last_improvement = None

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "history": list(self._history),
            "fingerprints": [list(fps) for fps in self._fingerprints],
            "stagnation_count": self._stagnation_count,
            "last_improvement": self._last_improvement,
        }

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any]) -> ConvergenceDetector:
        """Restore a detector by assignment; the history is not replayed."""
        detector = cls()
        detector._history = [int(count) for count in snapshot.get("history", [])]
        detector._fingerprints = [
            [str(fp) for fp in fps] for fps in snapshot.get("fingerprints", [])
        ]
        detector._stagnation_count = int(snapshot.get("stagnation_count", 0))
        last = snapshot.get("last_improvement")
        detector._last_improvement = int(last) if last is not None else None
        return detector


class ProgressAction(str, Enum):
    CONTINUE = "continue"
    STOP = "stop"
    ESCALATE = "escalate"


@dataclass(frozen=True)
class ProgressDecision:
    action: ProgressAction
    reason: str
    details: dict[str, Any] = field(default_factory=dict)


def analyze_progress(
    breaker: HealingCircuitBreaker,
    detector: ConvergenceDetector,
) -> ProgressDecision:
    """Decide whether a session should keep going.

    Checked in order: an open breaker stops, convergence stops, a degrading
    or oscillating trend escalates, two attempts without improvement
    escalate, and anything else continues.
    """
    if breaker.is_open:
        return ProgressDecision(
            ProgressAction.STOP,
            f"Circuit breaker open: {breaker.open_reason.value}",
            {"open_reason": breaker.open_reason.value},
        )
    if detector.is_converged():
        return ProgressDecision(ProgressAction.STOP, "All errors resolved")
    trend = detector.trend()
    if trend == TrendDirection.DEGRADING:
        return ProgressDecision(
            ProgressAction.ESCALATE,
            "Error count increasing - fixes are making things worse",
            {"history": detector.history},
        )
    if trend == TrendDirection.OSCILLATING:
        return ProgressDecision(
            ProgressAction.ESCALATE,
            "Error counts oscillating - cannot converge",
            {"history": detector.history},
        )
    if detector.stagnation_count >= STAGNATION_LIMIT:
        return ProgressDecision(
            ProgressAction.ESCALATE,
            f"No improvement in last {detector.stagnation_count} attempts - stagnating",
            {"stagnation_count": detector.stagnation_count},
        )
    return ProgressDecision(
        ProgressAction.CONTINUE,
        f"Trend is {trend.value}",
        {"improvement_percent": round(detector.improvement_percent(), 1)},
    )
