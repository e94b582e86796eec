"""Pattern learning: the store, matcher and promotion analyzer.

Step phrases map to structured UI actions. Mappings observed to work are
reinforced in a file-backed store, scored with a Wilson lower bound, and
eventually promoted to a static library tier.
"""

from mender.learning.cache import PatternCache, TTLCache
from mender.learning.confidence import calculate_confidence, wilson_lower_bound
from mender.learning.lock import FileLock
from mender.learning.matcher import PatternMatcher, match_pattern
from mender.learning.models import (
    DiscoveredPattern,
    LearnedPattern,
    Layer,
    PatternMatch,
)
from mender.learning.primitives import (
    Primitive,
    PrimitiveType,
    SelectorHint,
    reconstruct_primitive,
    resolve_primitive,
)
from mender.learning.promotion import (
    PromotionReport,
    analyze_for_promotion,
    meets_criteria,
    promote_patterns,
    promotion_stats,
)
from mender.learning.similarity import calculate_similarity, normalize_step_text
from mender.learning.store import (
    PatternStats,
    PatternStore,
    PruneResult,
    clear_learned_patterns,
    export_patterns_to_config,
    get_pattern_stats,
    mark_patterns_promoted,
    prune_patterns,
    record_pattern_failure,
    record_pattern_success,
)
from mender.learning.triggers import generate_regex_from_text

__all__ = [
    "DiscoveredPattern",
    "FileLock",
    "LearnedPattern",
    "Layer",
    "PatternCache",
    "PatternMatch",
    "PatternMatcher",
    "PatternStats",
    "PatternStore",
    "Primitive",
    "PrimitiveType",
    "PromotionReport",
    "PruneResult",
    "SelectorHint",
    "TTLCache",
    "analyze_for_promotion",
    "calculate_confidence",
    "calculate_similarity",
    "clear_learned_patterns",
    "export_patterns_to_config",
    "generate_regex_from_text",
    "get_pattern_stats",
    "mark_patterns_promoted",
    "match_pattern",
    "meets_criteria",
    "normalize_step_text",
    "promote_patterns",
    "promotion_stats",
    "prune_patterns",
    "reconstruct_primitive",
    "record_pattern_failure",
    "record_pattern_success",
    "resolve_primitive",
    "wilson_lower_bound",
]
