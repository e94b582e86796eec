"""Advisory sidecar-file lock for pattern store read-modify-write cycles.

Protocol:
- The lock for ``<store>`` is the marker file ``<store>.lock`` holding the
  creation time in epoch milliseconds.
- Acquisition is an exclusive create (``O_CREAT | O_EXCL``).
- A marker older than ``stale_seconds`` (by mtime) is removed and taken over.
- Otherwise acquisition is retried every ``retry_interval_seconds`` until
  ``max_wait_seconds`` elapse; after that the caller proceeds WITHOUT the
  lock and a warning is logged. Availability wins over strict exclusion.

Example usage:
    with FileLock(store_path) as held:
        patterns = load()      # held is False if we timed out
        save(mutate(patterns))
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

from mender.core.logging import get_logger
from mender.utils.time import Clock, epoch_millis

_logger = get_logger("file_lock")


def lock_path_for(target: Path) -> Path:
    """Return the sidecar lock path for ``target``."""
    return target.with_name(f"{target.name}.lock")


class FileLock:
    """Exclusive-create marker file lock with stale takeover and bounded wait."""

    def __init__(
        self,
        target: Path,
        stale_seconds: float = 30.0,
        max_wait_seconds: float = 5.0,
        retry_interval_seconds: float = 0.05,
        clock: Clock = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._target = target
        self._lock_path = lock_path_for(target)
        self._stale_seconds = stale_seconds
        self._max_wait_seconds = max_wait_seconds
        self._retry_interval = retry_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._held = False

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    @property
    def held(self) -> bool:
        return self._held

    def _lock_age(self) -> float | None:
        try:
            return self._clock() - self._lock_path.stat().st_mtime
        except FileNotFoundError:
            return None

    def try_acquire(self) -> bool:
        """Make one acquisition attempt, taking over a stale marker."""
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)

        age = self._lock_age()
        if age is not None:
            if age <= self._stale_seconds:
                return False
            _logger.warning(
                "file_lock.stale_lock_removed",
                lock_path=str(self._lock_path),
                age_seconds=round(age, 3),
            )
            self._lock_path.unlink(missing_ok=True)

        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(epoch_millis(self._clock)))
        self._held = True
        return True

    def acquire(self) -> bool:
        """Acquire the lock, waiting up to ``max_wait_seconds``.

        Returns:
            True if the lock is held. False if the wait timed out and the
            caller should proceed without it.
        """
        deadline = self._clock() + self._max_wait_seconds
        while True:
            if self.try_acquire():
                return True
            if self._clock() >= deadline:
                break
            self._sleep(self._retry_interval)

        _logger.warning(
            "file_lock.timeout_proceeding_unlocked",
            lock_path=str(self._lock_path),
            max_wait_seconds=self._max_wait_seconds,
        )
        return False

    def release(self) -> None:
        """Remove the marker if this instance created it."""
        if not self._held:
            return
        self._held = False
        self._lock_path.unlink(missing_ok=True)

    def __enter__(self) -> bool:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
