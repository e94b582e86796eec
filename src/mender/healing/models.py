"""Data types shared by the healing rules, fix strategies and loop.

The verify and classify collaborators are external; these dataclasses
are the shapes the loop expects back from them. ``from_dict`` helpers
accept the camelCase JSON the verify tooling writes.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mender.utils.time import utc_now_iso


class FailureCategory(str, Enum):
    """Coarse failure taxonomy produced by the external classifier."""

    SELECTOR = "selector"
    TIMING = "timing"
    NAVIGATION = "navigation"
    DATA = "data"
    ASSERTION = "assertion"
    AUTH = "auth"
    ENV = "env"
    SCRIPT = "script"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> FailureCategory:
        """Return the member for ``value``; unrecognized names map to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class AttemptResult(str, Enum):
    """Outcome of one healing attempt."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"
    """The verify or apply collaborator raised."""

    SKIPPED = "skipped"
    """The fix strategy declined; no verify cycle was spent."""

    PENDING = "pending"
    """The fix is written and its verification has not returned yet."""


class HealingStatus(str, Enum):
    """Terminal status of a healing session."""

    HEALED = "healed"
    NOT_HEALABLE = "not_healable"
    EXHAUSTED = "exhausted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TrendDirection(str, Enum):
    """Shape of a session's per-attempt error-count history."""

    IMPROVING = "improving"
    DEGRADING = "degrading"
    STAGNATING = "stagnating"
    OSCILLATING = "oscillating"


@dataclass
class FailureClassification:
    """A classified test failure."""

    category: FailureCategory
    confidence: float = 0.0
    explanation: str = ""
    suggestion: str = ""
    is_test_issue: bool = True
    matched_keywords: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "suggestion": self.suggestion,
            "isTestIssue": self.is_test_issue,
            "matchedKeywords": list(self.matched_keywords),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureClassification:
        return cls(
            category=FailureCategory.parse(str(data.get("category", "unknown"))),
            confidence=float(data.get("confidence", 0.0) or 0.0),
            explanation=str(data.get("explanation", "")),
            suggestion=str(data.get("suggestion", "")),
            is_test_issue=bool(data.get("isTestIssue", data.get("is_test_issue", True))),
            matched_keywords=[
                str(k) for k in data.get("matchedKeywords", data.get("matched_keywords", []))
            ],
        )


_QUOTED = re.compile(r"\"[^\"]*\"|'[^']*'|`[^`]*`")
_DIGITS = re.compile(r"\d+")
_SPACES = re.compile(r"\s+")


def normalize_error_message(message: str) -> str:
    """Strip volatile parts of an error message (numbers, quoted values)."""
    normalized = _QUOTED.sub("<str>", message)
    normalized = _DIGITS.sub("<n>", normalized)
    return _SPACES.sub(" ", normalized).strip().lower()


def error_fingerprint(message: str) -> str:
    """Stable short identifier for an error message."""
    digest = hashlib.sha256(normalize_error_message(message).encode("utf-8"))
    return digest.hexdigest()[:16]


@dataclass
class VerifyFailures:
    tests: list[str] = field(default_factory=list)
    """Failure messages, one per failing test, in report order."""

    classifications: dict[str, FailureClassification] = field(default_factory=dict)
    """Classification per failing test, keyed by test title."""

    fingerprints: list[str] = field(default_factory=list)
    """Explicit fingerprints supplied by the runner. Empty means derive them."""


@dataclass
class VerifyResult:
    """What the verify collaborator reports for one test run."""

    status: str
    """Either "passed" or "failed"."""

    failures: VerifyFailures = field(default_factory=VerifyFailures)
    report_path: str | None = None

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def first_error(self) -> str:
        return self.failures.tests[0] if self.failures.tests else ""

    @property
    def error_count(self) -> int:
        if self.passed:
            return 0
        return max(1, len(self.failures.tests))

    def error_fingerprints(self) -> list[str]:
        if self.failures.fingerprints:
            return list(self.failures.fingerprints)
        return [error_fingerprint(message) for message in self.failures.tests]

    def first_classification(self) -> FailureClassification | None:
        for classification in self.failures.classifications.values():
            return classification
        return None

    @classmethod
    def passed_result(cls) -> VerifyResult:
        return cls(status="passed")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerifyResult:
        raw_failures = data.get("failures") or {}
        tests: list[str] = []
        fingerprints: list[str] = []
        for entry in raw_failures.get("tests", []):
            if isinstance(entry, dict):
                tests.append(str(entry.get("error") or entry.get("message") or ""))
                if entry.get("fingerprint"):
                    fingerprints.append(str(entry["fingerprint"]))
            else:
                tests.append(str(entry))
        classifications = {
            str(key): FailureClassification.from_dict(value)
            for key, value in (raw_failures.get("classifications") or {}).items()
            if isinstance(value, dict)
        }
        return cls(
            status=str(data.get("status", "failed")),
            failures=VerifyFailures(
                tests=tests,
                classifications=classifications,
                fingerprints=fingerprints if len(fingerprints) == len(tests) else [],
            ),
            report_path=data.get("reportPath"),
        )


@dataclass(frozen=True)
class FixResult:
    """Result of running one fix strategy over test source."""

    applied: bool
    code: str
    description: str
    confidence: float = 0.0
    tokens_used: int = 0
    """Tokens an LLM-backed strategy spent producing the fix."""

    @classmethod
    def declined(cls, code: str, description: str) -> FixResult:
        return cls(applied=False, code=code, description=description)


@dataclass
class HealingAttempt:
    """One logged healing attempt."""

    attempt: int
    failure_type: str
    fix_type: str
    file: str
    change: str
    result: AttemptResult
    evidence: list[str] = field(default_factory=list)
    error_message: str | None = None
    duration_ms: int = 0
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "attempt": self.attempt,
            "timestamp": self.timestamp,
            "failure_type": self.failure_type,
            "fix_type": self.fix_type,
            "file": self.file,
            "change": self.change,
            "evidence": list(self.evidence),
            "result": self.result.value,
            "duration_ms": self.duration_ms,
        }
        if self.error_message is not None:
            result["error_message"] = self.error_message
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HealingAttempt:
        return cls(
            attempt=int(data.get("attempt", 0)),
            failure_type=str(data.get("failure_type", "unknown")),
            fix_type=str(data.get("fix_type", "")),
            file=str(data.get("file", "")),
            change=str(data.get("change", "")),
            result=AttemptResult(data.get("result", "fail")),
            evidence=[str(e) for e in data.get("evidence", [])],
            error_message=data.get("error_message"),
            duration_ms=int(data.get("duration_ms", 0)),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
        )


@dataclass
class HealingResult:
    """Outcome of :func:`mender.healing.loop.run_healing_loop`."""

    success: bool
    status: HealingStatus
    attempts: int
    log_path: str
    applied_fix: str | None = None
    modified_code: str | None = None
    recommendation: str | None = None
    convergence_trend: TrendDirection | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "attempts": self.attempts,
            "log_path": self.log_path,
            "applied_fix": self.applied_fix,
            "recommendation": self.recommendation,
            "convergence_trend": (
                self.convergence_trend.value if self.convergence_trend else None
            ),
        }
