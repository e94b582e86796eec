"""Resolve step phrases to primitives across learned and discovered patterns.

Search order:
1. Learned patterns: an exact normalized-text hit short-circuits;
   otherwise the most similar eligible pattern above ``min_similarity``.
2. Discovered patterns: exact hits ranked by layer priority, then
   confidence; otherwise fuzzy hits ranked by layer, then similarity.
3. When both sources match, the discovered match wins only if its
   confidence is at least the learned one.

An exact match always beats a fuzzy one inside a source, whatever the
layers involved. Promoted patterns and blocked primitives never match.
"""

from __future__ import annotations

from mender.core.config import MatchOptions
from mender.core.logging import get_logger
from mender.learning.models import DiscoveredPattern, LearnedPattern, PatternMatch
from mender.learning.similarity import calculate_similarity, normalize_step_text
from mender.learning.store import PatternStore

_logger = get_logger("pattern_matcher")

SOURCE_LEARNED = "learned"
SOURCE_DISCOVERED = "discovered"


def _match_learned(
    normalized: str,
    patterns: list[LearnedPattern],
    options: MatchOptions,
) -> PatternMatch | None:
    eligible = [
        p for p in patterns
        if not p.promoted_to_core
        and not p.mapped_primitive.is_blocked
        and p.confidence >= options.min_confidence
    ]

    for pattern in eligible:
        if pattern.normalized_text == normalized:
            return PatternMatch(
                pattern_id=pattern.id,
                primitive=pattern.mapped_primitive,
                confidence=pattern.confidence,
                source=SOURCE_LEARNED,
            )

    if not options.use_fuzzy:
        return None

    best: LearnedPattern | None = None
    best_similarity = 0.0
    for pattern in eligible:
        similarity = calculate_similarity(normalized, pattern.normalized_text)
        if similarity >= options.min_similarity and similarity > best_similarity:
            best, best_similarity = pattern, similarity

    if best is None:
        return None
    return PatternMatch(
        pattern_id=best.id,
        primitive=best.mapped_primitive,
        confidence=best.confidence * best_similarity,
        source=SOURCE_LEARNED,
        similarity=best_similarity,
    )


def _match_discovered(
    normalized: str,
    patterns: list[DiscoveredPattern],
    options: MatchOptions,
) -> PatternMatch | None:
    eligible = [
        p for p in patterns
        if not p.mapped_primitive.is_blocked and p.confidence >= options.min_confidence
    ]

    exact = [p for p in eligible if p.normalized_text == normalized]
    if exact:
        best = max(exact, key=lambda p: (p.priority, p.confidence))
        return PatternMatch(
            pattern_id=best.id,
            primitive=best.mapped_primitive,
            confidence=best.confidence,
            source=SOURCE_DISCOVERED,
            layer=best.layer,
        )

    if not options.use_fuzzy:
        return None

    best_fuzzy: DiscoveredPattern | None = None
    best_rank: tuple[int, float] = (-1, 0.0)
    for pattern in eligible:
        similarity = calculate_similarity(normalized, pattern.normalized_text)
        if similarity < options.min_similarity:
            continue
        rank = (pattern.priority, similarity)
        if rank > best_rank:
            best_fuzzy, best_rank = pattern, rank

    if best_fuzzy is None:
        return None
    similarity = best_rank[1]
    return PatternMatch(
        pattern_id=best_fuzzy.id,
        primitive=best_fuzzy.mapped_primitive,
        confidence=best_fuzzy.confidence * similarity,
        source=SOURCE_DISCOVERED,
        similarity=similarity,
        layer=best_fuzzy.layer,
    )


class PatternMatcher:
    """Read-side lookup over a :class:`PatternStore`.

    Uses the store's cached loads, so results may lag recent writes by
    up to the cache TTL.
    """

    def __init__(self, store: PatternStore, options: MatchOptions | None = None) -> None:
        self._store = store
        self._options = options or MatchOptions()

    @property
    def options(self) -> MatchOptions:
        return self._options

    def match(self, text: str, options: MatchOptions | None = None) -> PatternMatch | None:
        """Return the best match for ``text``, or None if nothing qualifies."""
        options = options or self._options
        normalized = normalize_step_text(text)
        if not normalized:
            return None

        learned = _match_learned(normalized, self._store.load_learned(), options)
        discovered = _match_discovered(normalized, self._store.load_discovered(), options)

        if learned is None and discovered is None:
            _logger.debug("pattern_matcher.no_match", text=normalized)
            return None
        if discovered is None:
            return learned
        if learned is None:
            return discovered
        return discovered if discovered.confidence >= learned.confidence else learned


def match_pattern(
    store: PatternStore,
    text: str,
    options: MatchOptions | None = None,
) -> PatternMatch | None:
    """One-shot convenience wrapper around :meth:`PatternMatcher.match`."""
    return PatternMatcher(store, options).match(text)
