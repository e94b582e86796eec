"""Circuit breaker for healing sessions.

Stops a healing session that is going nowhere. The breaker opens when:
- the same error fingerprint occurs ``same_error_threshold`` times within
  the last ``error_history_size`` recorded fingerprints (this also catches
  A-B-A-B oscillation between two errors)
- the fraction of attempt-to-attempt transitions that increased the error
  count exceeds ``degradation_threshold``
- the token budget or the wall-clock budget is spent

The breaker has three states:
- CLOSED: attempts are allowed
- OPEN: attempts are refused until ``cooldown_ms`` has elapsed
- HALF_OPEN: one trial attempt is allowed; failing it reopens the breaker

Cost-exceeded openings never cool down. Independently of the state,
``can_attempt()`` is False once ``max_attempts`` attempts are recorded.

State is restorable from a snapshot without replaying history: restore,
then record exactly the one new attempt.

Example usage:
    breaker = HealingCircuitBreaker(CircuitBreakerConfig())

    if breaker.can_attempt():
        result = verify()
        if result.passed:
            breaker.record_success()
        else:
            breaker.record_attempt(result.error_fingerprints(), result.error_count)
"""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any

from mender.core.config import CircuitBreakerConfig
from mender.core.logging import get_logger
from mender.utils.time import Clock

# Module-level logger for circuit breaker events
_logger = get_logger("circuit_breaker")


class CircuitState(str, Enum):
    """State of the circuit breaker."""

    CLOSED = "closed"
    """Normal operation - attempts are allowed and outcomes are tracked."""

    OPEN = "open"
    """Blocking attempts until the cooldown elapses."""

    HALF_OPEN = "half_open"
    """One trial attempt is allowed to test whether progress resumed."""


class OpenReason(str, Enum):
    """Why the breaker opened."""

    SAME_ERROR_REPEATED = "same-error-repeated"
    DEGRADING = "degrading"
    COST_EXCEEDED = "cost-exceeded"
    NONE = "none"


@dataclass
class CircuitBreakerState:
    """Read-only view of a breaker, for logs and reports."""

    is_open: bool
    open_reason: OpenReason
    attempt_count: int
    max_attempts: int
    tokens_used: int
    error_history: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_open": self.is_open,
            "open_reason": self.open_reason.value,
            "attempt_count": self.attempt_count,
            "max_attempts": self.max_attempts,
            "tokens_used": self.tokens_used,
            "error_history": list(self.error_history),
        }


class HealingCircuitBreaker:
    """Per-session circuit breaker.

    Thread-safe: all state modifications are protected by a lock.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Clock = time.time,
        name: str = "healing",
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._name = name

        # State (protected by lock)
        self._state = CircuitState.CLOSED
        self._open_reason = OpenReason.NONE
        self._attempt_count = 0
        self._error_history: deque[str] = deque(maxlen=self._config.error_history_size)
        self._last_error_count: int | None = None
        self._transitions = 0
        self._degraded_transitions = 0
        self._tokens_used = 0
        self._opened_at: float | None = None
        self._started_at = clock()

        self._lock = Lock()

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def tokens_used(self) -> int:
        return self._tokens_used

    @property
    def open_reason(self) -> OpenReason:
        return self._open_reason

    @property
    def remaining_attempts(self) -> int:
        return max(0, self._config.max_attempts - self._attempt_count)

    @property
    def remaining_token_budget(self) -> int | None:
        """Tokens left, or None when the budget is disabled."""
        if self._config.max_token_budget <= 0:
            return None
        return max(0, self._config.max_token_budget - self._tokens_used)

    def get_state(self) -> CircuitState:
        """Current state, moving OPEN to HALF_OPEN once the cooldown has elapsed."""
        with self._lock:
            self._maybe_transition_to_half_open()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.get_state() == CircuitState.OPEN

    def _maybe_transition_to_half_open(self) -> None:
        """Should be called while holding the lock."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self._open_reason == OpenReason.COST_EXCEEDED:
            return
        elapsed_ms = (self._clock() - self._opened_at) * 1000
        if elapsed_ms >= self._config.cooldown_ms:
            self._state = CircuitState.HALF_OPEN
            _logger.info(
                "circuit_breaker.state_changed",
                name=self._name,
                from_state=CircuitState.OPEN.value,
                to_state=CircuitState.HALF_OPEN.value,
                reason="cooldown_elapsed",
                elapsed_ms=round(elapsed_ms),
            )

    def _open(self, reason: OpenReason, **details: Any) -> None:
        """Should be called while holding the lock."""
        from_state = self._state
        self._state = CircuitState.OPEN
        self._open_reason = reason
        self._opened_at = self._clock()
        _logger.warning(
            "circuit_breaker.state_changed",
            name=self._name,
            from_state=from_state.value,
            to_state=CircuitState.OPEN.value,
            reason=reason.value,
            attempt_count=self._attempt_count,
            **details,
        )

    def _cost_exceeded(self) -> dict[str, Any] | None:
        budget = self._config.max_token_budget
        if budget > 0 and self._tokens_used > budget:
            return {"tokens_used": self._tokens_used, "max_token_budget": budget}
        timeout_ms = self._config.total_timeout_ms
        if timeout_ms > 0:
            elapsed_ms = (self._clock() - self._started_at) * 1000
            if elapsed_ms > timeout_ms:
                return {"elapsed_ms": round(elapsed_ms), "total_timeout_ms": timeout_ms}
        return None

    def _repeated_error(self) -> dict[str, Any] | None:
        if not self._error_history:
            return None
        fingerprint, count = Counter(self._error_history).most_common(1)[0]
        if count >= self._config.same_error_threshold:
            return {"fingerprint": fingerprint, "occurrences": count}
        return None

    def _degradation(self) -> dict[str, Any] | None:
        if self._transitions < self._config.min_degradation_samples:
            return None
        ratio = self._degraded_transitions / self._transitions
        if ratio > self._config.degradation_threshold:
            return {"degradation_ratio": round(ratio, 3)}
        return None

    def can_attempt(self) -> bool:
        """Whether another attempt may start now."""
        with self._lock:
            if self._attempt_count >= self._config.max_attempts:
                return False
            if self._state != CircuitState.OPEN:
                exceeded = self._cost_exceeded()
                if exceeded is not None:
                    self._open(OpenReason.COST_EXCEEDED, **exceeded)
            self._maybe_transition_to_half_open()
            return self._state != CircuitState.OPEN

    def would_exceed_budget(self, tokens: int) -> bool:
        budget = self._config.max_token_budget
        return budget > 0 and self._tokens_used + tokens > budget

    def record_tokens(self, tokens: int) -> None:
        with self._lock:
            self._tokens_used += tokens
            exceeded = self._cost_exceeded()
            if exceeded is not None and self._state != CircuitState.OPEN:
                self._open(OpenReason.COST_EXCEEDED, **exceeded)

    def record_attempt(
        self,
        error_fingerprints: list[str],
        error_count: int,
        tokens_used: int = 0,
    ) -> None:
        """Record one failed attempt and open the breaker if warranted.

        Args:
            error_fingerprints: Fingerprints of the errors the attempt ended with.
            error_count: Number of errors after the attempt.
            tokens_used: Tokens spent on the attempt.
        """
        with self._lock:
            self._attempt_count += 1
            self._tokens_used += tokens_used
            for fingerprint in dict.fromkeys(error_fingerprints):
                self._error_history.append(fingerprint)

            if self._last_error_count is not None:
                self._transitions += 1
                if error_count > self._last_error_count:
                    self._degraded_transitions += 1
            self._last_error_count = error_count

            if self._state == CircuitState.HALF_OPEN:
                # Failed trial: reopen for the same reason
                self._open(self._open_reason, trial="failed")
                return

            exceeded = self._cost_exceeded()
            if exceeded is not None:
                self._open(OpenReason.COST_EXCEEDED, **exceeded)
                return
            repeated = self._repeated_error()
            if repeated is not None:
                self._open(OpenReason.SAME_ERROR_REPEATED, **repeated)
                return
            degraded = self._degradation()
            if degraded is not None:
                self._open(OpenReason.DEGRADING, **degraded)
                return

            _logger.debug(
                "circuit_breaker.attempt_recorded",
                name=self._name,
                attempt_count=self._attempt_count,
                error_count=error_count,
            )

    def record_success(self) -> None:
        """Record a passing attempt. Closes the breaker."""
        with self._lock:
            self._attempt_count += 1
            if self._state != CircuitState.CLOSED:
                _logger.info(
                    "circuit_breaker.state_changed",
                    name=self._name,
                    from_state=self._state.value,
                    to_state=CircuitState.CLOSED.value,
                    reason="attempt_passed",
                )
            self._state = CircuitState.CLOSED
            self._open_reason = OpenReason.NONE
            self._opened_at = None
            self._last_error_count = 0

    def reset(self) -> None:
        """Reset to a fresh session, including the wall-clock start."""
        with self._lock:
            old_state = self._state
            self._state = CircuitState.CLOSED
            self._open_reason = OpenReason.NONE
            self._attempt_count = 0
            self._error_history.clear()
            self._last_error_count = None
            self._transitions = 0
            self._degraded_transitions = 0
            self._tokens_used = 0
            self._opened_at = None
            self._started_at = self._clock()
            _logger.info("circuit_breaker.reset", name=self._name, from_state=old_state.value)

    def snapshot_state(self) -> CircuitBreakerState:
        with self._lock:
            return CircuitBreakerState(
                is_open=self._state == CircuitState.OPEN,
                open_reason=self._open_reason,
                attempt_count=self._attempt_count,
                max_attempts=self._config.max_attempts,
                tokens_used=self._tokens_used,
                error_history=list(self._error_history),
            )

    def to_snapshot(self) -> dict[str, Any]:
        """Serialize the full internal state."""
        with self._lock:
            return {
                "state": self._state.value,
                "open_reason": self._open_reason.value,
                "attempt_count": self._attempt_count,
                "error_history": list(self._error_history),
                "last_error_count": self._last_error_count,
                "transitions": self._transitions,
                "degraded_transitions": self._degraded_transitions,
                "tokens_used": self._tokens_used,
                "opened_at": self._opened_at,
                "elapsed_ms": int((self._clock() - self._started_at) * 1000),
            }

    @classmethod
    def from_snapshot(
        cls,
        snapshot: dict[str, Any],
        config: CircuitBreakerConfig | None = None,
        clock: Clock = time.time,
        name: str = "healing",
    ) -> HealingCircuitBreaker:
        """Rebuild a breaker from :meth:`to_snapshot` output, without replay."""
        breaker = cls(config, clock=clock, name=name)
        breaker._state = CircuitState(snapshot.get("state", CircuitState.CLOSED.value))
        breaker._open_reason = OpenReason(snapshot.get("open_reason", OpenReason.NONE.value))
        breaker._attempt_count = int(snapshot.get("attempt_count", 0))
        breaker._error_history.extend(str(fp) for fp in snapshot.get("error_history", []))
        last = snapshot.get("last_error_count")
        breaker._last_error_count = int(last) if last is not None else None
        breaker._transitions = int(snapshot.get("transitions", 0))
        breaker._degraded_transitions = int(snapshot.get("degraded_transitions", 0))
        breaker._tokens_used = int(snapshot.get("tokens_used", 0))
        opened_at = snapshot.get("opened_at")
        breaker._opened_at = float(opened_at) if opened_at is not None else None
        # Time between snapshot and restore does not count against the duration budget
        elapsed_ms = snapshot.get("elapsed_ms")
        if elapsed_ms is not None:
            breaker._started_at = clock() - int(elapsed_ms) / 1000
        return breaker
