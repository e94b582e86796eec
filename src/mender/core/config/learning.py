"""Pattern store, matching, pruning and promotion configuration models."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class PatternStoreConfig(BaseModel):
    """Location and concurrency settings for the pattern store."""

    root: Path = Field(
        default=Path(".mender/llkb"),
        description="Directory holding learned-patterns.json and discovered-patterns.json.",
    )
    learned_cache_ttl_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long a loaded learned-pattern set may be served from memory.",
    )
    discovered_cache_ttl_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="How long a loaded discovered-pattern set may be served from memory.",
    )
    lock_stale_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Age after which an existing lock marker is taken over.",
    )
    lock_max_wait_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="How long to retry before proceeding without the lock.",
    )
    lock_retry_interval_seconds: float = Field(
        default=0.05,
        gt=0.0,
        description="Sleep between lock acquisition attempts.",
    )

    @model_validator(mode="after")
    def _validate_lock_timing(self) -> PatternStoreConfig:
        if self.lock_retry_interval_seconds > self.lock_stale_seconds:
            raise ValueError(
                "lock_retry_interval_seconds must not exceed lock_stale_seconds"
            )
        return self


class MatchOptions(BaseModel):
    """Thresholds for matching step text against stored patterns."""

    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    min_similarity: float = Field(default=0.7, ge=0.0, le=1.0)
    use_fuzzy: bool = Field(default=True)


class PruneOptions(BaseModel):
    """Criteria for removing low-value learned patterns."""

    max_age_days: int = Field(default=90, ge=0)
    min_confidence: float = Field(default=0.3, ge=0.0, le=1.0)
    min_success: int = Field(default=1, ge=0)


class PromotionCriteria(BaseModel):
    """Thresholds a learned pattern must meet to be promoted.

    Every threshold is inclusive: a value exactly at the boundary passes.
    """

    min_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    min_success_count: int = Field(default=5, ge=0)
    min_source_journeys: int = Field(default=2, ge=0)
    max_fail_count: int = Field(default=2, ge=0)
    min_success_rate: float = Field(default=0.85, ge=0.0, le=1.0)
