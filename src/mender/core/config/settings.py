"""Top-level Mender configuration.

Aggregates the healing and learning models and loads them from YAML:

    healing:
      max_attempts: 4
      allowed_fixes: [selector-refine, missing-await]
    circuit_breaker:
      same_error_threshold: 3
    store:
      root: e2e/.mender/llkb
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from mender.core.config.healing import CircuitBreakerConfig, HealingConfig
from mender.core.config.learning import (
    MatchOptions,
    PatternStoreConfig,
    PromotionCriteria,
    PruneOptions,
)
from mender.core.errors import HealingConfigError


class MenderConfig(BaseModel):
    """Complete Mender configuration. Every section is optional."""

    healing: HealingConfig = Field(default_factory=HealingConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    store: PatternStoreConfig = Field(default_factory=PatternStoreConfig)
    matching: MatchOptions = Field(default_factory=MatchOptions)
    pruning: PruneOptions = Field(default_factory=PruneOptions)
    promotion: PromotionCriteria = Field(default_factory=PromotionCriteria)
    log_dir: Path = Field(
        default=Path(".mender/heal-logs"),
        description="Directory for healing session logs and state files.",
    )

    @classmethod
    def from_yaml(cls, path: Path) -> MenderConfig:
        """Load configuration from a YAML file."""
        try:
            with open(path, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise HealingConfigError(f"cannot read {path}: {e}") from e
        return cls.from_yaml_string(text)

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> MenderConfig:
        """Load configuration from a YAML string. Empty input yields defaults."""
        try:
            data = yaml.safe_load(yaml_str) or {}
        except yaml.YAMLError as e:
            raise HealingConfigError(f"invalid YAML: {e}") from e
        if not isinstance(data, dict):
            raise HealingConfigError("configuration root must be a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise HealingConfigError(str(e)) from e
