"""Tests for the pattern store's file lock and TTL caches."""

import os
import threading
from pathlib import Path

import pytest

from mender.learning.cache import PatternCache, TTLCache
from mender.learning.lock import FileLock, lock_path_for


class TestFileLock:
    """Tests for FileLock."""

    def test_lock_path(self, tmp_path: Path):
        """Test that the marker sits beside the guarded file."""
        target = tmp_path / "learned-patterns.json"
        assert lock_path_for(target) == tmp_path / "learned-patterns.json.lock"

    def test_acquire_and_release(self, tmp_path: Path):
        """Test the basic acquire/release cycle."""
        lock = FileLock(tmp_path / "store.json")
        assert lock.acquire() is True
        assert lock.held
        assert lock.lock_path.exists()
        assert lock.lock_path.read_text().isdigit()

        lock.release()
        assert not lock.held
        assert not lock.lock_path.exists()

    def test_context_manager(self, tmp_path: Path):
        """Test that the context manager reports and releases the lock."""
        lock = FileLock(tmp_path / "store.json")
        with lock as held:
            assert held is True
            assert lock.lock_path.exists()
        assert not lock.lock_path.exists()

    def test_second_holder_refused(self, tmp_path: Path):
        """Test that a fresh marker blocks a second try_acquire."""
        first = FileLock(tmp_path / "store.json")
        second = FileLock(tmp_path / "store.json")
        assert first.try_acquire()
        assert not second.try_acquire()
        first.release()
        assert second.try_acquire()
        second.release()

    def test_release_without_holding_keeps_marker(self, tmp_path: Path):
        """Test that only the creator removes the marker."""
        owner = FileLock(tmp_path / "store.json")
        other = FileLock(tmp_path / "store.json")
        owner.acquire()
        other.release()
        assert owner.lock_path.exists()
        owner.release()

    def test_stale_lock_taken_over(self, tmp_path: Path):
        """Test that a marker older than the stale age is removed and taken over."""
        target = tmp_path / "store.json"
        marker = lock_path_for(target)
        marker.write_text("0", encoding="utf-8")
        old = marker.stat().st_mtime - 45
        os.utime(marker, (old, old))

        lock = FileLock(target, stale_seconds=30.0, max_wait_seconds=0.0)
        assert lock.acquire() is True
        assert marker.read_text() != "0"
        lock.release()

    def test_timeout_proceeds_unlocked(self, tmp_path: Path, clock):
        """Test that a held lock makes acquire give up after the max wait."""
        target = tmp_path / "store.json"
        holder = FileLock(target, clock=clock)
        assert holder.acquire()

        sleeps: list[float] = []

        def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            clock.advance(seconds)

        waiter = FileLock(
            target,
            stale_seconds=3600.0,
            max_wait_seconds=0.5,
            retry_interval_seconds=0.1,
            clock=clock,
            sleep=fake_sleep,
        )
        with waiter as held:
            assert held is False
        assert sleeps
        assert sum(sleeps) == pytest.approx(0.5, abs=0.11)
        # The waiter never held the lock, so the holder's marker survives
        assert holder.lock_path.exists()
        holder.release()

    def test_waits_for_release(self, tmp_path: Path):
        """Test that a waiter acquires once the holder releases."""
        target = tmp_path / "store.json"
        holder = FileLock(target)
        holder.acquire()
        timer = threading.Timer(0.1, holder.release)
        timer.start()
        try:
            waiter = FileLock(target, max_wait_seconds=5.0, retry_interval_seconds=0.02)
            assert waiter.acquire() is True
            waiter.release()
        finally:
            timer.cancel()


class TestTTLCache:
    """Tests for TTLCache."""

    def test_expiry(self, clock):
        """Test that entries expire once the TTL has elapsed."""
        cache: TTLCache[str, list] = TTLCache(5.0, clock=clock)
        cache.put("learned", [1, 2])
        clock.advance(4.0)
        assert cache.get("learned") == [1, 2]
        clock.advance(1.0)
        assert cache.get("learned") is None

    def test_invalidate_one_and_all(self, clock):
        """Test targeted and full invalidation."""
        cache: TTLCache[str, int] = TTLCache(10.0, clock=clock)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2
        cache.invalidate()
        assert cache.get("b") is None

    def test_negative_ttl_rejected(self):
        """Test that a negative TTL is rejected."""
        with pytest.raises(ValueError):
            TTLCache(-1.0)

    def test_pattern_cache_ttls(self, clock):
        """Test that the learned set expires before the discovered set."""
        cache = PatternCache(5.0, 10.0, clock=clock)
        cache.learned.put("k", ["learned"])
        cache.discovered.put("k", ["discovered"])
        clock.advance(6.0)
        assert cache.learned.get("k") is None
        assert cache.discovered.get("k") == ["discovered"]
        cache.invalidate_all()
        assert cache.discovered.get("k") is None
