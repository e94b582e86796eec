"""Time-bounded in-memory cache for loaded pattern sets.

The cache is an ordinary object owned by whoever builds the store; there
is no module-level state. Build one per process and hand the same
instance to every PatternStore so reads share it.

Example usage:
    cache = PatternCache()
    store = PatternStore(config, cache=cache)
    matcher = PatternMatcher(store)
"""

from __future__ import annotations

import time
from collections.abc import Hashable
from dataclasses import dataclass
from threading import Lock
from typing import Generic, TypeVar

from mender.utils.time import Clock

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    loaded_at: float


class TTLCache(Generic[K, V]):
    """Key/value cache whose entries expire ``ttl_seconds`` after loading.

    Thread-safe. The clock is injectable so expiry can be tested without
    sleeping.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[K, _Entry[V]] = {}
        self._lock = Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: K) -> V | None:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.loaded_at >= self._ttl:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value=value, loaded_at=self._clock())

    def invalidate(self, key: K | None = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)


class PatternCache:
    """The two caches a pattern store reads through.

    Learned patterns change on every recorded outcome, so their TTL is
    shorter than the discovered set's.
    """

    def __init__(
        self,
        learned_ttl_seconds: float = 5.0,
        discovered_ttl_seconds: float = 10.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.learned: TTLCache[str, list] = TTLCache(learned_ttl_seconds, clock)
        self.discovered: TTLCache[str, list] = TTLCache(discovered_ttl_seconds, clock)

    def invalidate_all(self) -> None:
        self.learned.invalidate()
        self.discovered.invalidate()
