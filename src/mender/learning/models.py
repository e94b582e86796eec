"""Record types for the pattern learning store.

LearnedPattern is written by this package. DiscoveredPattern is seeded
by external discovery tooling and only read. Both are plain dataclasses
that (de)serialize to the camelCase JSON documents kept on disk.
"""

from __future__ import annotations

import hashlib
import random
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mender.learning.confidence import DEFAULT_CONFIDENCE
from mender.learning.primitives import Primitive, SelectorHint, resolve_primitive
from mender.learning.similarity import normalize_step_text
from mender.utils.time import Clock, epoch_millis, utc_now_iso

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_pattern_id(clock: Clock = time.time) -> str:
    """Return a new id: ``LP`` + base36 millis + 4 random base36 chars."""
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"LP{_to_base36(epoch_millis(clock))}{suffix}"


def derive_pattern_id(normalized_text: str, prefix: str = "LP") -> str:
    """Stable id for a record stored without one.

    Derived from the normalized text so every load of the same record
    yields the same id.
    """
    digest = hashlib.sha256(normalized_text.encode("utf-8")).hexdigest()
    return f"{prefix}{digest[:8].upper()}"


class Layer(str, Enum):
    """Provenance tier of a discovered pattern."""

    APP_SPECIFIC = "app-specific"
    FRAMEWORK = "framework"
    UNIVERSAL = "universal"


LAYER_PRIORITY: dict[str, int] = {
    Layer.APP_SPECIFIC.value: 3,
    Layer.FRAMEWORK.value: 2,
    Layer.UNIVERSAL.value: 1,
}


def layer_priority(layer: str) -> int:
    """Priority of a layer name; unknown layers rank below universal."""
    return LAYER_PRIORITY.get(layer, 0)


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return float(value)


def _count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(0, value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


@dataclass
class LearnedPattern:
    """A step phrase -> primitive mapping reinforced by observed outcomes."""

    id: str
    original_text: str
    normalized_text: str
    mapped_primitive: Primitive
    confidence: float = DEFAULT_CONFIDENCE
    """Always derived from the outcome counts, except the creation default."""

    source_journeys: list[str] = field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0
    last_used: str = field(default_factory=utc_now_iso)
    created_at: str = field(default_factory=utc_now_iso)
    promoted_to_core: bool = False
    """Promoted patterns are skipped by the matcher but kept for audit."""

    promoted_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the rich persisted shape."""
        result: dict[str, Any] = {
            "id": self.id,
            "originalText": self.original_text,
            "normalizedText": self.normalized_text,
            "mappedPrimitive": self.mapped_primitive.to_dict(),
            "confidence": self.confidence,
            "sourceJourneys": list(self.source_journeys),
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "lastUsed": self.last_used,
            "createdAt": self.created_at,
            "promotedToCore": self.promoted_to_core,
        }
        if self.promoted_at is not None:
            result["promotedAt"] = self.promoted_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnedPattern:
        """Deserialize either the rich shape or the legacy shape.

        Legacy records carry the action as a bare tag (``irPrimitive`` or a
        string ``mappedPrimitive``) plus optional ``selectorHints`` and may
        lack ids and timestamps. They are upgraded in memory only.
        """
        hints = [
            SelectorHint.from_dict(h) for h in data.get("selectorHints") or [] if isinstance(h, dict)
        ]
        raw_primitive = data.get("mappedPrimitive")
        if not isinstance(raw_primitive, dict) and isinstance(data.get("irPrimitive"), str):
            raw_primitive = data["irPrimitive"]
        now = utc_now_iso()
        original_text = str(data.get("originalText") or "")
        normalized_text = str(data.get("normalizedText") or normalize_step_text(original_text))
        promoted_at = data.get("promotedAt")
        return cls(
            id=str(data.get("id") or derive_pattern_id(normalized_text)),
            original_text=original_text,
            normalized_text=normalized_text,
            mapped_primitive=resolve_primitive(raw_primitive, hints),
            confidence=_number(data.get("confidence"), DEFAULT_CONFIDENCE),
            source_journeys=_string_list(data.get("sourceJourneys")),
            success_count=_count(data.get("successCount")),
            fail_count=_count(data.get("failCount")),
            last_used=str(data.get("lastUsed") or data.get("lastUpdated") or now),
            created_at=str(data.get("createdAt") or now),
            promoted_to_core=bool(data.get("promotedToCore", False)),
            promoted_at=str(promoted_at) if promoted_at else None,
        )


@dataclass
class DiscoveredPattern:
    """A seeded pattern from a discovery run, tagged with its layer."""

    id: str
    original_text: str
    normalized_text: str
    mapped_primitive: Primitive
    confidence: float
    layer: str = Layer.UNIVERSAL.value
    category: str | None = None
    selector_hints: list[SelectorHint] = field(default_factory=list)
    source_journeys: list[str] = field(default_factory=list)
    success_count: int = 0
    fail_count: int = 0

    @property
    def priority(self) -> int:
        return layer_priority(self.layer)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "originalText": self.original_text,
            "normalizedText": self.normalized_text,
            "mappedPrimitive": self.mapped_primitive.to_dict(),
            "confidence": self.confidence,
            "layer": self.layer,
            "selectorHints": [h.to_dict() for h in self.selector_hints],
            "sourceJourneys": list(self.source_journeys),
            "successCount": self.success_count,
            "failCount": self.fail_count,
        }
        if self.category is not None:
            result["category"] = self.category
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DiscoveredPattern:
        hints = [
            SelectorHint.from_dict(h) for h in data.get("selectorHints") or [] if isinstance(h, dict)
        ]
        original_text = str(data.get("originalText") or "")
        normalized_text = str(data.get("normalizedText") or normalize_step_text(original_text))
        category = data.get("category")
        return cls(
            id=str(data.get("id") or derive_pattern_id(normalized_text, prefix="DP")),
            original_text=original_text,
            normalized_text=normalized_text,
            mapped_primitive=resolve_primitive(data.get("mappedPrimitive"), hints),
            confidence=_number(data.get("confidence"), 0.0),
            layer=str(data.get("layer") or Layer.UNIVERSAL.value),
            category=str(category) if category else None,
            selector_hints=hints,
            source_journeys=_string_list(data.get("sourceJourneys")),
            success_count=_count(data.get("successCount")),
            fail_count=_count(data.get("failCount")),
        )


@dataclass(frozen=True)
class PatternMatch:
    """Best match for a step phrase.

    For fuzzy hits ``confidence`` is the stored confidence multiplied by
    the text similarity.
    """

    pattern_id: str
    primitive: Primitive
    confidence: float
    source: str
    """Either "learned" or "discovered"."""

    similarity: float = 1.0
    layer: str | None = None

    @property
    def is_exact(self) -> bool:
        return self.similarity >= 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "patternId": self.pattern_id,
            "primitive": self.primitive.to_dict(),
            "confidence": self.confidence,
            "source": self.source,
            "similarity": self.similarity,
            "layer": self.layer,
        }
