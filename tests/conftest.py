"""Pytest fixtures for Mender tests."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import pytest
import structlog

from mender.core.config import PatternStoreConfig
from mender.learning.cache import PatternCache
from mender.learning.models import LearnedPattern
from mender.learning.primitives import Primitive, PrimitiveType
from mender.learning.similarity import normalize_step_text
from mender.learning.store import PatternStore


class FakeClock:
    """Manually advanced clock, usable wherever a ``time.time`` callable is accepted."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    import mender.cli.helpers as cli_helpers

    cli_helpers.reset_cli_state()
    structlog.reset_defaults()

    # Clear all handlers from root logger
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    cli_helpers.reset_cli_state()
    structlog.reset_defaults()

    # Restore original handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Pattern store directory inside the test's temp dir."""
    return tmp_path / "llkb"


@pytest.fixture
def store(store_root: Path) -> PatternStore:
    """Pattern store with caching disabled so every read sees the last write."""
    config = PatternStoreConfig(
        root=store_root,
        learned_cache_ttl_seconds=0,
        discovered_cache_ttl_seconds=0,
        lock_max_wait_seconds=0.2,
        lock_retry_interval_seconds=0.01,
    )
    return PatternStore(config, cache=PatternCache(0, 0))


@pytest.fixture
def click_primitive() -> Primitive:
    return Primitive(
        PrimitiveType.CLICK,
        {"locator": {"strategy": "role", "value": "button", "options": {"name": "Save"}}},
    )


@pytest.fixture
def make_pattern(click_primitive: Primitive) -> Callable[..., LearnedPattern]:
    """Factory for learned patterns with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(
        text: str = "Click the Save button",
        confidence: float = 0.95,
        success_count: int = 6,
        fail_count: int = 0,
        journeys: int = 3,
        **kwargs,
    ) -> LearnedPattern:
        pattern_id = kwargs.pop("id", f"LPTEST{next(counter):04d}")
        return LearnedPattern(
            id=pattern_id,
            original_text=text,
            normalized_text=normalize_step_text(text),
            mapped_primitive=kwargs.pop("mapped_primitive", click_primitive),
            confidence=confidence,
            source_journeys=[f"JRN-{i:04d}" for i in range(1, journeys + 1)],
            success_count=success_count,
            fail_count=fail_count,
            **kwargs,
        )

    return _make
