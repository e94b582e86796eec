"""Healing loop and circuit breaker configuration models.

Defines the global healing gates (enabled flag, allow-list, deny-list)
and the thresholds that open a healing session's circuit breaker.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_ALLOWED_FIXES: tuple[str, ...] = (
    "selector-refine",
    "add-exact",
    "missing-await",
    "navigation-wait",
    "web-first-assertion",
)

DEFAULT_FORBIDDEN_FIXES: tuple[str, ...] = (
    "add-sleep",
    "remove-assertion",
    "weaken-assertion",
    "force-click",
    "bypass-auth",
)


class HealingConfig(BaseModel):
    """Global gates for automatic healing.

    The forbidden list is absolute: a fix type that appears in both lists
    is treated as forbidden.
    """

    enabled: bool = Field(
        default=True,
        description="Master switch. When disabled, no failure is ever healed.",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of verified fix attempts per session.",
    )
    allowed_fixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_FIXES),
        description="Fix types that may be applied. timeout-increase is opt-in.",
    )
    forbidden_fixes: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_FIXES),
        description="Fix types that must never be emitted, regardless of allowed_fixes.",
    )
    max_timeout_increase_ms: int = Field(
        default=30_000,
        ge=1_000,
        description="Upper bound for timeouts written by the timeout-increase fix.",
    )

    @field_validator("allowed_fixes", "forbidden_fixes")
    @classmethod
    def _strip_fix_names(cls, value: list[str]) -> list[str]:
        cleaned = [name.strip() for name in value]
        if any(not name for name in cleaned):
            raise ValueError("fix type names must be non-empty")
        return cleaned


class CircuitBreakerConfig(BaseModel):
    """Thresholds for a healing session's circuit breaker."""

    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts after which the breaker refuses further attempts.",
    )
    same_error_threshold: int = Field(
        default=2,
        ge=2,
        description="Occurrences of one error fingerprint within the history "
        "window that open the breaker.",
    )
    error_history_size: int = Field(
        default=10,
        ge=2,
        description="Number of most recent error fingerprints kept in the ring buffer.",
    )
    degradation_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Fraction of attempts that made the error count worse "
        "above which the breaker opens.",
    )
    min_degradation_samples: int = Field(
        default=2,
        ge=1,
        description="Attempt-to-attempt transitions required before the "
        "degradation ratio is evaluated.",
    )
    max_token_budget: int = Field(
        default=50_000,
        ge=0,
        description="Token budget for the session. 0 disables the budget.",
    )
    total_timeout_ms: int = Field(
        default=300_000,
        ge=0,
        description="Wall-clock budget for the session. 0 disables the timeout.",
    )
    cooldown_ms: int = Field(
        default=1_000,
        ge=0,
        description="Time an open breaker waits before allowing a trial attempt.",
    )

    @model_validator(mode="after")
    def _validate_window(self) -> CircuitBreakerConfig:
        if self.same_error_threshold > self.error_history_size:
            raise ValueError(
                f"same_error_threshold ({self.same_error_threshold}) must not exceed "
                f"error_history_size ({self.error_history_size})"
            )
        return self
