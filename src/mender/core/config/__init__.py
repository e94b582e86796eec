"""Configuration models for Mender.

All models are re-exported here so callers can use
``from mender.core.config import HealingConfig``.
"""

from mender.core.config.healing import (
    DEFAULT_ALLOWED_FIXES,
    DEFAULT_FORBIDDEN_FIXES,
    CircuitBreakerConfig,
    HealingConfig,
)
from mender.core.config.learning import (
    MatchOptions,
    PatternStoreConfig,
    PromotionCriteria,
    PruneOptions,
)
from mender.core.config.settings import MenderConfig

__all__ = [
    "DEFAULT_ALLOWED_FIXES",
    "DEFAULT_FORBIDDEN_FIXES",
    "CircuitBreakerConfig",
    "HealingConfig",
    "MatchOptions",
    "MenderConfig",
    "PatternStoreConfig",
    "PromotionCriteria",
    "PruneOptions",
]
