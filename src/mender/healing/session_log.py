"""Durable records of healing sessions.

Two documents live in the loop's output directory for every journey:

- ``<journey_id>.heal-log.json``: every attempt plus the terminal status
  and a summary. Rewritten atomically after each attempt so a crash
  leaves an inspectable trail.
- ``<journey_id>.heal-state.json``: breaker and convergence snapshots,
  attempted fixes and the attempt count, so a restarted session keeps
  counting instead of starting over. Removed once the test is healed.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from mender.core.errors import SessionStateError
from mender.core.logging import get_logger
from mender.healing.models import AttemptResult, HealingAttempt
from mender.utils.fs import atomic_write_json, read_json_document
from mender.utils.time import Clock, utc_now_iso

_logger = get_logger("session_log")

LOG_SUFFIX = ".heal-log.json"
STATE_SUFFIX = ".heal-state.json"


class HealingLogStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    HEALED = "healed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    NOT_HEALABLE = "not_healable"
    CANCELLED = "cancelled"


@dataclass
class HealingSummary:
    total_attempts: int = 0
    successful_fixes: int = 0
    failed_attempts: int = 0
    total_duration_ms: int = 0
    fix_types_attempted: list[str] = field(default_factory=list)
    recommendation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successful_fixes": self.successful_fixes,
            "failed_attempts": self.failed_attempts,
            "total_duration_ms": self.total_duration_ms,
            "fix_types_attempted": list(self.fix_types_attempted),
            "recommendation": self.recommendation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealingSummary:
        return cls(
            total_attempts=int(data.get("total_attempts", 0)),
            successful_fixes=int(data.get("successful_fixes", 0)),
            failed_attempts=int(data.get("failed_attempts", 0)),
            total_duration_ms=int(data.get("total_duration_ms", 0)),
            fix_types_attempted=[str(f) for f in data.get("fix_types_attempted", [])],
            recommendation=data.get("recommendation"),
        )


@dataclass
class HealingLog:
    """The persisted log of one healing session."""

    journey_id: str
    session_start: str
    max_attempts: int
    status: HealingLogStatus = HealingLogStatus.IN_PROGRESS
    attempts: list[HealingAttempt] = field(default_factory=list)
    session_end: str | None = None
    summary: HealingSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "journey_id": self.journey_id,
            "session_start": self.session_start,
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
        }
        if self.session_end is not None:
            data["session_end"] = self.session_end
        if self.summary is not None:
            data["summary"] = self.summary.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealingLog:
        summary = data.get("summary")
        return cls(
            journey_id=str(data["journey_id"]),
            session_start=str(data.get("session_start") or utc_now_iso()),
            max_attempts=int(data.get("max_attempts", 3)),
            status=HealingLogStatus(data.get("status", HealingLogStatus.IN_PROGRESS.value)),
            attempts=[HealingAttempt.from_dict(a) for a in data.get("attempts", [])],
            session_end=data.get("session_end"),
            summary=HealingSummary.from_dict(summary) if isinstance(summary, dict) else None,
        )


def healing_log_path(output_dir: Path, journey_id: str) -> Path:
    return Path(output_dir) / f"{journey_id}{LOG_SUFFIX}"


class HealingLogger:
    """Writes the heal-log document for one journey.

    Pass ``log`` to continue a log loaded from disk when a session resumes.
    """

    def __init__(
        self,
        journey_id: str,
        output_dir: Path,
        max_attempts: int = 3,
        log: HealingLog | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._path = healing_log_path(output_dir, journey_id)
        self._clock = clock
        if log is None:
            log = HealingLog(
                journey_id=journey_id,
                session_start=utc_now_iso(),
                max_attempts=max_attempts,
            )
        else:
            log.status = HealingLogStatus.IN_PROGRESS
            log.session_end = None
            log.summary = None
            log.max_attempts = max_attempts
        self._log = log

    @property
    def path(self) -> Path:
        return self._path

    @property
    def log(self) -> HealingLog:
        return self._log

    @property
    def next_attempt_number(self) -> int:
        """Number for the next entry; a pending entry keeps its own number."""
        attempts = self._log.attempts
        if attempts and attempts[-1].result == AttemptResult.PENDING:
            return attempts[-1].attempt
        return len(attempts) + 1

    def log_attempt(self, attempt: HealingAttempt) -> None:
        """Record an attempt and persist the log before returning.

        A trailing pending entry is replaced by the outcome of the same
        attempt instead of being followed by it.
        """
        attempts = self._log.attempts
        if (
            attempts
            and attempts[-1].result == AttemptResult.PENDING
            and attempts[-1].attempt == attempt.attempt
        ):
            attempts[-1] = attempt
        else:
            attempts.append(attempt)
        self.save()

    def resolve_interrupted(self) -> int:
        """Mark pending entries left by a crashed run as errors.

        Returns:
            Number of entries resolved.
        """
        resolved = 0
        for attempt in self._log.attempts:
            if attempt.result == AttemptResult.PENDING:
                attempt.result = AttemptResult.ERROR
                attempt.error_message = "Interrupted before verification finished"
                resolved += 1
        if resolved:
            self.save()
            _logger.warning(
                "session_log.interrupted_attempts",
                journey_id=self._log.journey_id,
                count=resolved,
            )
        return resolved

    def save(self) -> None:
        atomic_write_json(self._path, self._log.to_dict(), clock=self._clock)

    def _finish(self, status: HealingLogStatus, recommendation: str | None) -> None:
        self._log.status = status
        self._log.session_end = utc_now_iso()
        self._log.summary = summarize_attempts(self._log.attempts, recommendation)
        self.save()
        _logger.info(
            "session_log.finished",
            journey_id=self._log.journey_id,
            status=status.value,
            attempts=len(self._log.attempts),
            path=str(self._path),
        )

    def mark_healed(self) -> None:
        self._finish(HealingLogStatus.HEALED, None)

    def mark_failed(self, recommendation: str) -> None:
        self._finish(HealingLogStatus.FAILED, recommendation)

    def mark_exhausted(self, recommendation: str) -> None:
        self._finish(HealingLogStatus.EXHAUSTED, recommendation)

    def mark_not_healable(self, recommendation: str) -> None:
        self._finish(HealingLogStatus.NOT_HEALABLE, recommendation)

    def mark_cancelled(self, recommendation: str) -> None:
        self._finish(HealingLogStatus.CANCELLED, recommendation)


def summarize_attempts(
    attempts: list[HealingAttempt],
    recommendation: str | None = None,
) -> HealingSummary:
    return HealingSummary(
        total_attempts=len(attempts),
        successful_fixes=sum(1 for a in attempts if a.result == AttemptResult.PASS),
        failed_attempts=sum(
            1 for a in attempts if a.result in (AttemptResult.FAIL, AttemptResult.ERROR)
        ),
        total_duration_ms=sum(a.duration_ms for a in attempts),
        fix_types_attempted=list(dict.fromkeys(a.fix_type for a in attempts)),
        recommendation=recommendation,
    )


def load_healing_log(path: Path) -> HealingLog | None:
    """Load a heal-log document. Missing or malformed files yield None."""
    try:
        data = read_json_document(Path(path))
        if data is None:
            return None
        return HealingLog.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        _logger.warning("session_log.unreadable", path=str(path), error=str(e))
        return None


_RESULT_ICONS = {
    AttemptResult.PASS: "✅",
    AttemptResult.SKIPPED: "⏭️",
    AttemptResult.PENDING: "⏳",
}


def format_healing_log(log: HealingLog) -> str:
    """Render a heal log as markdown."""
    lines = [f"# Healing Log: {log.journey_id}", ""]
    lines.append(f"Status: {log.status.value.upper()}")
    lines.append(f"Started: {log.session_start}")
    if log.session_end:
        lines.append(f"Ended: {log.session_end}")
    lines.extend(["", "## Attempts", ""])

    for attempt in log.attempts:
        icon = _RESULT_ICONS.get(attempt.result, "❌")
        lines.append(f"### Attempt {attempt.attempt} {icon}")
        lines.append("")
        lines.append(f"- **Fix Type**: {attempt.fix_type}")
        lines.append(f"- **Failure Type**: {attempt.failure_type}")
        lines.append(f"- **File**: {attempt.file}")
        lines.append(f"- **Duration**: {attempt.duration_ms}ms")
        lines.append(f"- **Result**: {attempt.result.value}")
        if attempt.error_message:
            lines.append(f"- **Error**: {attempt.error_message}")
        if attempt.change:
            lines.append(f"- **Change**: {attempt.change}")
        if attempt.evidence:
            lines.append(f"- **Evidence**: {', '.join(attempt.evidence)}")
        lines.append("")

    if log.summary is not None:
        summary = log.summary
        lines.extend(["## Summary", ""])
        lines.append(f"- Total Attempts: {summary.total_attempts}")
        lines.append(f"- Successful Fixes: {summary.successful_fixes}")
        lines.append(f"- Failed Attempts: {summary.failed_attempts}")
        lines.append(f"- Total Duration: {summary.total_duration_ms}ms")
        lines.append(f"- Fix Types Tried: {', '.join(summary.fix_types_attempted)}")
        if summary.recommendation:
            lines.extend(["", f"**Recommendation**: {summary.recommendation}"])

    return "\n".join(lines)


@dataclass
class HealingReport:
    """Summary over many heal logs."""

    total_sessions: int
    status_counts: dict[str, int]
    success_rate: float
    total_attempts: int
    average_attempts: float
    most_common_fixes: list[tuple[str, int]]
    most_common_failures: list[tuple[str, int]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "status_counts": dict(self.status_counts),
            "success_rate": self.success_rate,
            "total_attempts": self.total_attempts,
            "average_attempts": self.average_attempts,
            "most_common_fixes": [{"fix": f, "count": c} for f, c in self.most_common_fixes],
            "most_common_failures": [
                {"failure": f, "count": c} for f, c in self.most_common_failures
            ],
        }


def create_healing_report(logs: list[HealingLog]) -> HealingReport:
    statuses = Counter(log.status.value for log in logs)
    fixes: Counter[str] = Counter()
    failures: Counter[str] = Counter()
    total_attempts = 0
    for log in logs:
        for attempt in log.attempts:
            total_attempts += 1
            fixes[attempt.fix_type] += 1
            failures[attempt.failure_type] += 1

    total = len(logs)
    return HealingReport(
        total_sessions=total,
        status_counts={status.value: statuses.get(status.value, 0) for status in HealingLogStatus},
        success_rate=statuses.get(HealingLogStatus.HEALED.value, 0) / total if total else 0.0,
        total_attempts=total_attempts,
        average_attempts=total_attempts / total if total else 0.0,
        most_common_fixes=fixes.most_common(),
        most_common_failures=failures.most_common(),
    )


def aggregate_healing_logs(directory: Path) -> HealingReport:
    """Load every ``*.heal-log.json`` under ``directory`` and report on them."""
    logs = []
    for path in sorted(Path(directory).glob(f"*{LOG_SUFFIX}")):
        log = load_healing_log(path)
        if log is not None:
            logs.append(log)
    return create_healing_report(logs)


@dataclass
class SessionState:
    """Everything a restarted healing session needs to keep counting."""

    journey_id: str
    attempt_count: int = 0
    attempted_fixes: list[str] = field(default_factory=list)
    category: str | None = None
    breaker: dict[str, Any] = field(default_factory=dict)
    convergence: dict[str, Any] = field(default_factory=dict)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "journey_id": self.journey_id,
            "attempt_count": self.attempt_count,
            "attempted_fixes": list(self.attempted_fixes),
            "category": self.category,
            "breaker": dict(self.breaker),
            "convergence": dict(self.convergence),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        return cls(
            journey_id=str(data["journey_id"]),
            attempt_count=int(data.get("attempt_count", 0)),
            attempted_fixes=[str(f) for f in data.get("attempted_fixes", [])],
            category=data.get("category"),
            breaker=dict(data.get("breaker") or {}),
            convergence=dict(data.get("convergence") or {}),
            updated_at=str(data.get("updated_at") or utc_now_iso()),
        )


class SessionStateStore:
    """Reads and writes ``<journey_id>.heal-state.json`` documents."""

    def __init__(self, output_dir: Path, clock: Clock = time.time) -> None:
        self._output_dir = Path(output_dir)
        self._clock = clock

    def path_for(self, journey_id: str) -> Path:
        return self._output_dir / f"{journey_id}{STATE_SUFFIX}"

    def load(self, journey_id: str) -> SessionState | None:
        """Load saved state, or None when there is none.

        Raises:
            SessionStateError: If the document exists but cannot be used.
        """
        path = self.path_for(journey_id)
        try:
            data = read_json_document(path)
            if data is None:
                return None
            return SessionState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SessionStateError(path, f"unreadable session state: {e}") from e

    def save(self, state: SessionState) -> None:
        state.updated_at = utc_now_iso()
        path = self.path_for(state.journey_id)
        try:
            atomic_write_json(path, state.to_dict(), clock=self._clock)
        except OSError as e:
            raise SessionStateError(path, f"could not write session state: {e}") from e

    def clear(self, journey_id: str) -> bool:
        path = self.path_for(journey_id)
        if not path.exists():
            return False
        path.unlink()
        _logger.debug("session_log.state_cleared", journey_id=journey_id, path=str(path))
        return True


def clear_session_state(output_dir: Path, journey_id: str) -> bool:
    """Remove saved session state so the next run starts fresh."""
    return SessionStateStore(output_dir).clear(journey_id)
