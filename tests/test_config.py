"""Tests for mender.core.config models and YAML loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from mender.core.config import (
    DEFAULT_ALLOWED_FIXES,
    CircuitBreakerConfig,
    HealingConfig,
    MenderConfig,
    PatternStoreConfig,
    PromotionCriteria,
)
from mender.core.errors import HealingConfigError


class TestHealingConfig:
    """Tests for HealingConfig defaults and validation."""

    def test_defaults(self):
        """Test that the safe fix set is allowed and timeout-increase is opt-in."""
        config = HealingConfig()
        assert config.enabled is True
        assert config.max_attempts == 3
        assert config.allowed_fixes == list(DEFAULT_ALLOWED_FIXES)
        assert "timeout-increase" not in config.allowed_fixes
        assert "add-sleep" in config.forbidden_fixes
        assert config.max_timeout_increase_ms == 30_000

    def test_max_attempts_bounds(self):
        """Test that max_attempts must stay within 1..10."""
        with pytest.raises(ValidationError):
            HealingConfig(max_attempts=0)
        with pytest.raises(ValidationError):
            HealingConfig(max_attempts=11)

    def test_fix_names_are_stripped(self):
        """Test that whitespace around fix names is removed."""
        config = HealingConfig(allowed_fixes=[" missing-await "])
        assert config.allowed_fixes == ["missing-await"]

    def test_empty_fix_name_rejected(self):
        """Test that blank fix names are rejected."""
        with pytest.raises(ValidationError):
            HealingConfig(forbidden_fixes=["  "])

    def test_default_lists_are_independent(self):
        """Test that instances do not share their default lists."""
        first = HealingConfig()
        first.allowed_fixes.append("timeout-increase")
        assert "timeout-increase" not in HealingConfig().allowed_fixes


class TestCircuitBreakerConfig:
    """Tests for CircuitBreakerConfig validation."""

    def test_defaults(self):
        """Test default breaker thresholds."""
        config = CircuitBreakerConfig()
        assert config.max_attempts == 3
        assert config.same_error_threshold == 2
        assert config.error_history_size == 10
        assert config.degradation_threshold == 0.5
        assert config.max_token_budget == 50_000
        assert config.total_timeout_ms == 300_000

    def test_threshold_must_fit_history(self):
        """Test that the same-error threshold cannot exceed the history window."""
        with pytest.raises(ValidationError, match="same_error_threshold"):
            CircuitBreakerConfig(same_error_threshold=5, error_history_size=4)

    def test_threshold_minimum(self):
        """Test that a single occurrence can never open the breaker."""
        with pytest.raises(ValidationError):
            CircuitBreakerConfig(same_error_threshold=1)


class TestPatternStoreConfig:
    """Tests for PatternStoreConfig validation."""

    def test_defaults(self):
        """Test default store location and timings."""
        config = PatternStoreConfig()
        assert config.root == Path(".mender/llkb")
        assert config.learned_cache_ttl_seconds == 5.0
        assert config.discovered_cache_ttl_seconds == 10.0
        assert config.lock_stale_seconds == 30.0

    def test_retry_interval_cannot_exceed_stale_age(self):
        """Test that the lock retry interval is bounded by the stale age."""
        with pytest.raises(ValidationError):
            PatternStoreConfig(lock_stale_seconds=1.0, lock_retry_interval_seconds=2.0)


class TestMenderConfigYaml:
    """Tests for MenderConfig.from_yaml and from_yaml_string."""

    def test_empty_yaml_gives_defaults(self):
        """Test that an empty document yields the default configuration."""
        config = MenderConfig.from_yaml_string("")
        assert config == MenderConfig()

    def test_nested_sections(self):
        """Test that nested sections override their defaults."""
        config = MenderConfig.from_yaml_string(
            """
healing:
  max_attempts: 5
  allowed_fixes: [selector-refine, timeout-increase]
circuit_breaker:
  same_error_threshold: 3
store:
  root: e2e/.mender/llkb
promotion:
  min_success_count: 8
"""
        )
        assert config.healing.max_attempts == 5
        assert config.healing.allowed_fixes == ["selector-refine", "timeout-increase"]
        assert config.circuit_breaker.same_error_threshold == 3
        assert config.store.root == Path("e2e/.mender/llkb")
        assert config.promotion == PromotionCriteria(min_success_count=8)

    def test_invalid_yaml(self):
        """Test that malformed YAML raises HealingConfigError."""
        with pytest.raises(HealingConfigError, match="invalid YAML"):
            MenderConfig.from_yaml_string("healing: [unclosed")

    def test_non_mapping_root(self):
        """Test that a list at the root is rejected."""
        with pytest.raises(HealingConfigError, match="mapping"):
            MenderConfig.from_yaml_string("- a\n- b\n")

    def test_validation_error_is_wrapped(self):
        """Test that model validation failures surface as HealingConfigError."""
        with pytest.raises(HealingConfigError):
            MenderConfig.from_yaml_string("healing:\n  max_attempts: 50\n")

    def test_from_yaml_file(self, tmp_path: Path):
        """Test loading from a file on disk."""
        path = tmp_path / "mender.yaml"
        path.write_text("log_dir: out/heal\n", encoding="utf-8")
        assert MenderConfig.from_yaml(path).log_dir == Path("out/heal")

    def test_missing_file(self, tmp_path: Path):
        """Test that an unreadable file raises HealingConfigError."""
        with pytest.raises(HealingConfigError, match="cannot read"):
            MenderConfig.from_yaml(tmp_path / "missing.yaml")
