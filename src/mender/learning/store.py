"""Persistent pattern learning store.

Learned patterns live in ``<root>/learned-patterns.json``; discovered
(seeded) patterns are read from ``<root>/discovered-patterns.json``. Both
documents have the shape ``{"version", "lastUpdated", "patterns": [...]}``.

Reads go through a TTL cache and may be stale by up to the cache TTL.
Every mutation (record success/failure, promotion marking, pruning) is a
read-modify-write performed under the store's advisory FileLock, reloads
from disk bypassing the cache, and invalidates the cache after writing.

Error behavior:
- malformed or unreadable documents load as an empty set with a warning
- lock contention never blocks longer than the configured max wait
- write failures remove the temp file and raise PatternStoreError

Example usage:
    store = PatternStore(PatternStoreConfig(root=Path(".mender/llkb")))
    store.record_success("Click the Save button", primitive, "JRN-0001")
    store.record_failure("Click the Save button", "JRN-0002")
    stats = store.get_stats()
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from mender.core.config import PatternStoreConfig, PruneOptions
from mender.core.errors import PatternStoreError
from mender.core.logging import get_logger
from mender.learning.cache import PatternCache
from mender.learning.confidence import DEFAULT_CONFIDENCE, calculate_confidence
from mender.learning.lock import FileLock
from mender.learning.models import (
    DiscoveredPattern,
    LearnedPattern,
    generate_pattern_id,
)
from mender.learning.primitives import Primitive
from mender.learning.similarity import normalize_step_text
from mender.learning.triggers import generate_regex_from_text
from mender.utils.fs import atomic_write_json, read_json_document
from mender.utils.time import Clock, parse_iso, utc_now, utc_now_iso

_logger = get_logger("pattern_store")

LEARNED_PATTERNS_FILE = "learned-patterns.json"
DISCOVERED_PATTERNS_FILE = "discovered-patterns.json"
EXPORT_FILE = "autogen-patterns.json"
DOCUMENT_VERSION = "1.0.0"

HIGH_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.3


@dataclass(frozen=True)
class PruneResult:
    removed: int
    remaining: int


@dataclass(frozen=True)
class ExportResult:
    exported: int
    path: Path


@dataclass(frozen=True)
class PatternStats:
    """Aggregate view of the learned pattern set."""

    total: int = 0
    promoted: int = 0
    high_confidence: int = 0
    low_confidence: int = 0
    avg_confidence: float = 0.0
    total_successes: int = 0
    total_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "promoted": self.promoted,
            "high_confidence": self.high_confidence,
            "low_confidence": self.low_confidence,
            "avg_confidence": self.avg_confidence,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
        }


@dataclass(frozen=True)
class PromotablePattern:
    """A pattern passing the quick promotion filter, with its trigger."""

    pattern: LearnedPattern
    generated_regex: str
    priority: float


class PatternStore:
    """File-backed store of learned patterns plus read access to discovered ones."""

    def __init__(
        self,
        config: PatternStoreConfig | None = None,
        cache: PatternCache | None = None,
        clock: Clock = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or PatternStoreConfig()
        self._cache = cache or PatternCache(
            learned_ttl_seconds=self._config.learned_cache_ttl_seconds,
            discovered_ttl_seconds=self._config.discovered_cache_ttl_seconds,
        )
        self._clock = clock
        self._sleep = sleep

    @property
    def root(self) -> Path:
        return self._config.root

    @property
    def learned_path(self) -> Path:
        return self._config.root / LEARNED_PATTERNS_FILE

    @property
    def discovered_path(self) -> Path:
        return self._config.root / DISCOVERED_PATTERNS_FILE

    @property
    def cache(self) -> PatternCache:
        return self._cache

    def lock(self) -> FileLock:
        """Return a new lock object guarding the learned-pattern document."""
        return FileLock(
            self.learned_path,
            stale_seconds=self._config.lock_stale_seconds,
            max_wait_seconds=self._config.lock_max_wait_seconds,
            retry_interval_seconds=self._config.lock_retry_interval_seconds,
            clock=self._clock,
            sleep=self._sleep,
        )

    # =========================================================================
    # Loading and saving
    # =========================================================================

    def _read_raw_patterns(self, path: Path, kind: str) -> list[dict[str, Any]]:
        try:
            document = read_json_document(path)
        except (OSError, ValueError) as e:
            _logger.warning(
                "pattern_store.malformed_document",
                kind=kind,
                path=str(path),
                error=str(e),
            )
            return []
        if document is None:
            return []
        raw = document.get("patterns")
        if not isinstance(raw, list):
            _logger.warning("pattern_store.missing_patterns_list", kind=kind, path=str(path))
            return []
        return [item for item in raw if isinstance(item, dict)]

    def load_learned(self, bypass_cache: bool = False) -> list[LearnedPattern]:
        """Load learned patterns, upgrading legacy records in memory.

        Args:
            bypass_cache: Read from disk even if a fresh cached copy exists.

        Returns:
            A new list on every call. Pattern objects from the cache are
            shared with other readers and must not be mutated.
        """
        key = str(self.learned_path)
        if not bypass_cache:
            cached = self._cache.learned.get(key)
            if cached is not None:
                return list(cached)

        patterns = [
            LearnedPattern.from_dict(raw)
            for raw in self._read_raw_patterns(self.learned_path, "learned")
        ]
        self._cache.learned.put(key, patterns)
        _logger.debug("pattern_store.learned_loaded", count=len(patterns))
        return list(patterns)

    def load_discovered(self, bypass_cache: bool = False) -> list[DiscoveredPattern]:
        """Load discovered patterns, reconstructing tag-only primitives."""
        key = str(self.discovered_path)
        if not bypass_cache:
            cached = self._cache.discovered.get(key)
            if cached is not None:
                return list(cached)

        patterns = [
            DiscoveredPattern.from_dict(raw)
            for raw in self._read_raw_patterns(self.discovered_path, "discovered")
        ]
        self._cache.discovered.put(key, patterns)
        _logger.debug("pattern_store.discovered_loaded", count=len(patterns))
        return list(patterns)

    def save_learned(self, patterns: list[LearnedPattern]) -> None:
        """Atomically replace the learned-pattern document.

        Raises:
            PatternStoreError: If the document cannot be written.
        """
        document = {
            "version": DOCUMENT_VERSION,
            "lastUpdated": utc_now_iso(),
            "patterns": [p.to_dict() for p in patterns],
        }
        try:
            atomic_write_json(self.learned_path, document, clock=self._clock)
        except OSError as e:
            _logger.error("pattern_store.save_failed", path=str(self.learned_path), error=str(e))
            raise PatternStoreError(self.learned_path, f"save failed: {e}") from e
        finally:
            self._cache.learned.invalidate(str(self.learned_path))

    def clear(self) -> None:
        """Delete the learned-pattern document."""
        self.learned_path.unlink(missing_ok=True)
        self._cache.learned.invalidate(str(self.learned_path))

    # =========================================================================
    # Outcome recording
    # =========================================================================

    def find(self, text: str) -> LearnedPattern | None:
        """Return the learned pattern for ``text`` (cached read), if any."""
        normalized = normalize_step_text(text)
        for pattern in self.load_learned():
            if pattern.normalized_text == normalized:
                return pattern
        return None

    def record_success(
        self,
        text: str,
        primitive: Primitive,
        journey_id: str,
    ) -> LearnedPattern:
        """Record a successful mapping of ``text`` to ``primitive``.

        Creates the pattern with the default confidence on first sight.
        Later successes increment the counter, recompute confidence,
        refresh ``last_used`` and add ``journey_id`` to the provenance set.
        """
        normalized = normalize_step_text(text)
        with self.lock():
            patterns = self.load_learned(bypass_cache=True)
            pattern = next((p for p in patterns if p.normalized_text == normalized), None)
            now = utc_now_iso()

            if pattern is None:
                pattern = LearnedPattern(
                    id=generate_pattern_id(self._clock),
                    original_text=text,
                    normalized_text=normalized,
                    mapped_primitive=primitive,
                    confidence=DEFAULT_CONFIDENCE,
                    source_journeys=[journey_id],
                    success_count=1,
                    fail_count=0,
                    last_used=now,
                    created_at=now,
                )
                patterns.append(pattern)
                _logger.info("pattern_store.pattern_created", pattern_id=pattern.id)
            else:
                pattern.success_count += 1
                pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
                pattern.last_used = now
                if journey_id not in pattern.source_journeys:
                    pattern.source_journeys.append(journey_id)
                _logger.debug(
                    "pattern_store.success_recorded",
                    pattern_id=pattern.id,
                    success_count=pattern.success_count,
                    confidence=round(pattern.confidence, 4),
                )

            self.save_learned(patterns)
        return pattern

    def record_failure(self, text: str, journey_id: str) -> LearnedPattern | None:
        """Record a failed use of the mapping for ``text``.

        Returns:
            The updated pattern, or None if no pattern matches ``text``.
        """
        normalized = normalize_step_text(text)
        with self.lock():
            patterns = self.load_learned(bypass_cache=True)
            pattern = next((p for p in patterns if p.normalized_text == normalized), None)
            if pattern is None:
                return None
            pattern.fail_count += 1
            pattern.confidence = calculate_confidence(pattern.success_count, pattern.fail_count)
            pattern.last_used = utc_now_iso()
            self.save_learned(patterns)

        _logger.debug(
            "pattern_store.failure_recorded",
            pattern_id=pattern.id,
            journey_id=journey_id,
            fail_count=pattern.fail_count,
            confidence=round(pattern.confidence, 4),
        )
        return pattern

    # =========================================================================
    # Maintenance
    # =========================================================================

    def mark_promoted(
        self,
        pattern_ids: list[str],
        eligible: Callable[[LearnedPattern], bool] | None = None,
    ) -> list[str]:
        """Flag patterns as promoted to the static tier.

        Args:
            pattern_ids: Ids to mark.
            eligible: Optional check re-applied to the locked, freshly
                loaded record. Patterns failing it are left unmarked.

        Returns:
            Ids that were found and newly marked.
        """
        wanted = set(pattern_ids)
        marked: list[str] = []
        with self.lock():
            patterns = self.load_learned(bypass_cache=True)
            now = utc_now_iso()
            for pattern in patterns:
                if pattern.id not in wanted or pattern.promoted_to_core:
                    continue
                if eligible is None or eligible(pattern):
                    pattern.promoted_to_core = True
                    pattern.promoted_at = now
                    marked.append(pattern.id)
            if marked:
                self.save_learned(patterns)
        if marked:
            _logger.info("pattern_store.patterns_promoted", count=len(marked))
        return marked

    def prune(self, options: PruneOptions | None = None) -> PruneResult:
        """Remove low-value patterns. Promoted patterns are always kept.

        A pattern is removed when its confidence is below
        ``min_confidence``, when it has fewer than ``min_success``
        successes (if ``min_success`` > 0), or when it is older than
        ``max_age_days`` without a single success.
        """
        options = options or PruneOptions()
        max_age = timedelta(days=options.max_age_days)

        with self.lock():
            patterns = self.load_learned(bypass_cache=True)
            now = utc_now()

            def keep(pattern: LearnedPattern) -> bool:
                if pattern.promoted_to_core:
                    return True
                if pattern.confidence < options.min_confidence:
                    return False
                if options.min_success > 0 and pattern.success_count < options.min_success:
                    return False
                created = parse_iso(pattern.created_at)
                if created is not None and now - created > max_age and pattern.success_count == 0:
                    return False
                return True

            kept = [p for p in patterns if keep(p)]
            removed = len(patterns) - len(kept)
            if removed > 0:
                self.save_learned(kept)

        _logger.info("pattern_store.pruned", removed=removed, remaining=len(kept))
        return PruneResult(removed=removed, remaining=len(kept))

    def get_stats(self) -> PatternStats:
        patterns = self.load_learned()
        if not patterns:
            return PatternStats()
        return PatternStats(
            total=len(patterns),
            promoted=sum(1 for p in patterns if p.promoted_to_core),
            high_confidence=sum(1 for p in patterns if p.confidence >= HIGH_CONFIDENCE),
            low_confidence=sum(1 for p in patterns if p.confidence < LOW_CONFIDENCE),
            avg_confidence=sum(p.confidence for p in patterns) / len(patterns),
            total_successes=sum(p.success_count for p in patterns),
            total_failures=sum(p.fail_count for p in patterns),
        )

    def get_promotable_patterns(self) -> list[PromotablePattern]:
        """Quick promotion filter used by exports.

        See :mod:`mender.learning.promotion` for the full criteria.
        """
        return [
            PromotablePattern(
                pattern=p,
                generated_regex=generate_regex_from_text(p.original_text),
                priority=p.success_count * p.confidence,
            )
            for p in self.load_learned()
            if p.confidence >= 0.9
            and p.success_count >= 5
            and len(p.source_journeys) >= 2
            and not p.promoted_to_core
        ]

    def export_to_config(
        self,
        min_confidence: float = HIGH_CONFIDENCE,
        output_path: Path | None = None,
    ) -> ExportResult:
        """Write non-promoted patterns above ``min_confidence`` as triggers."""
        exportable = [
            p for p in self.load_learned()
            if p.confidence >= min_confidence and not p.promoted_to_core
        ]
        document = {
            "version": DOCUMENT_VERSION,
            "exportedAt": utc_now_iso(),
            "patterns": [
                {
                    "id": p.id,
                    "trigger": generate_regex_from_text(p.original_text),
                    "primitive": p.mapped_primitive.to_dict(),
                    "confidence": p.confidence,
                    "sourceCount": len(p.source_journeys),
                }
                for p in exportable
            ],
        }
        path = output_path or self.root / EXPORT_FILE
        try:
            atomic_write_json(path, document, clock=self._clock)
        except OSError as e:
            raise PatternStoreError(path, f"export failed: {e}") from e
        _logger.info("pattern_store.exported", exported=len(exportable), path=str(path))
        return ExportResult(exported=len(exportable), path=path)


# =============================================================================
# Module-level operations
# =============================================================================


def record_pattern_success(
    store: PatternStore, text: str, primitive: Primitive, journey_id: str
) -> LearnedPattern:
    return store.record_success(text, primitive, journey_id)


def record_pattern_failure(
    store: PatternStore, text: str, journey_id: str
) -> LearnedPattern | None:
    return store.record_failure(text, journey_id)


def prune_patterns(store: PatternStore, options: PruneOptions | None = None) -> PruneResult:
    return store.prune(options)


def mark_patterns_promoted(store: PatternStore, pattern_ids: list[str]) -> list[str]:
    return store.mark_promoted(pattern_ids)


def get_pattern_stats(store: PatternStore) -> PatternStats:
    return store.get_stats()


def export_patterns_to_config(
    store: PatternStore,
    min_confidence: float = HIGH_CONFIDENCE,
    output_path: Path | None = None,
) -> ExportResult:
    return store.export_to_config(min_confidence, output_path)


def clear_learned_patterns(store: PatternStore) -> None:
    store.clear()
