"""Time utilities for Mender.

Provides timezone-aware datetime helpers and the clock type that
caches, locks and circuit breakers accept for injection in tests.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], float]
"""A zero-argument callable returning seconds, like ``time.time``."""


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time with tzinfo=UTC
    """
    return datetime.now(UTC)


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return utc_now().isoformat()


def epoch_millis(clock: Clock = time.time) -> int:
    """Return the clock reading in whole milliseconds."""
    return int(clock() * 1000)


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp, tolerating the trailing ``Z`` form.

    Returns None for empty or unparseable input. Naive values are
    treated as UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
