"""Promotion of statistically validated learned patterns to the static tier.

A pattern is promotable only when every threshold in
:class:`~mender.core.config.PromotionCriteria` holds (all inclusive).
Patterns missing at most two criteria with at least two successes are
reported as "near promotion" together with a rough estimate of the
additional successes they need. Everything else needs more data.

Promotion output is a deterministic name, a trigger regex, and an
extraction description that is exhaustive over :class:`PrimitiveType`.
Unrecognized types are emitted as explicit ``blocked`` entries.
"""

from __future__ import annotations

import math
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from mender.core.config import PromotionCriteria
from mender.core.logging import get_logger
from mender.learning.models import LearnedPattern
from mender.learning.primitives import PrimitiveType
from mender.learning.store import PatternStore
from mender.learning.triggers import generate_regex_from_text
from mender.utils.fs import atomic_write_json
from mender.utils.time import utc_now, utc_now_iso

_logger = get_logger("promotion")

NEAR_PROMOTION_MAX_MISSING = 2
NEAR_PROMOTION_MIN_SUCCESS = 2


@dataclass(frozen=True)
class PromotionCheck:
    meets: bool
    missing_criteria: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PromotedPatternDefinition:
    """A promotable pattern rendered for the static library."""

    name: str
    regex: str
    primitive_type: str
    example: str
    extraction: str
    pattern_id: str
    confidence_at_promotion: float
    source_journeys_count: int
    priority: float
    promoted_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NearPromotion:
    pattern: LearnedPattern
    missing_criteria: list[str]
    estimated_uses_needed: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "missing_criteria": list(self.missing_criteria),
            "estimated_uses_needed": self.estimated_uses_needed,
        }


@dataclass(frozen=True)
class PromotionReportStats:
    already_promoted: int = 0
    eligible_for_promotion: int = 0
    near_promotion: int = 0
    needs_more_data: int = 0


@dataclass(frozen=True)
class PromotionReport:
    analyzed_at: str
    total_patterns: int
    promotable: list[PromotedPatternDefinition]
    near_promotion: list[NearPromotion]
    stats: PromotionReportStats

    def to_dict(self) -> dict[str, Any]:
        return {
            "analyzed_at": self.analyzed_at,
            "total_patterns": self.total_patterns,
            "promotable": [p.to_dict() for p in self.promotable],
            "near_promotion": [n.to_dict() for n in self.near_promotion],
            "stats": asdict(self.stats),
        }


@dataclass(frozen=True)
class PromotionOutcome:
    promoted: list[str]
    skipped: list[str]


@dataclass(frozen=True)
class PromotionStats:
    total: int
    promoted: int
    promotable: int
    near_promotion: int
    needs_work: int
    promotion_rate: float


def success_rate(pattern: LearnedPattern) -> float:
    total = pattern.success_count + pattern.fail_count
    return pattern.success_count / (total or 1)


def meets_criteria(
    pattern: LearnedPattern,
    criteria: PromotionCriteria | None = None,
) -> PromotionCheck:
    """Check every promotion threshold and describe the ones that fail."""
    criteria = criteria or PromotionCriteria()
    missing: list[str] = []

    if pattern.confidence < criteria.min_confidence:
        missing.append(
            f"confidence: {pattern.confidence * 100:.1f}% < {criteria.min_confidence * 100:.1f}%"
        )
    if pattern.success_count < criteria.min_success_count:
        missing.append(f"successCount: {pattern.success_count} < {criteria.min_success_count}")
    journeys = len(pattern.source_journeys)
    if journeys < criteria.min_source_journeys:
        missing.append(f"sourceJourneys: {journeys} < {criteria.min_source_journeys}")
    if pattern.fail_count > criteria.max_fail_count:
        missing.append(f"failCount: {pattern.fail_count} > {criteria.max_fail_count}")
    rate = success_rate(pattern)
    if rate < criteria.min_success_rate:
        missing.append(
            f"successRate: {rate * 100:.1f}% < {criteria.min_success_rate * 100:.1f}%"
        )

    return PromotionCheck(meets=not missing, missing_criteria=missing)


def is_near_promotion(pattern: LearnedPattern, check: PromotionCheck) -> bool:
    return (
        not check.meets
        and len(check.missing_criteria) <= NEAR_PROMOTION_MAX_MISSING
        and pattern.success_count >= NEAR_PROMOTION_MIN_SUCCESS
    )


def estimate_uses_needed(
    pattern: LearnedPattern,
    criteria: PromotionCriteria | None = None,
) -> int:
    """Rough number of additional successes before promotion. Never below 1."""
    criteria = criteria or PromotionCriteria()
    needed = [1]
    if pattern.success_count < criteria.min_success_count:
        needed.append(criteria.min_success_count - pattern.success_count)
    if pattern.confidence < criteria.min_confidence:
        target = math.ceil(criteria.min_success_count * (1 + pattern.fail_count / 5))
        needed.append(target - pattern.success_count)
    return max(needed)


_NON_ALNUM = re.compile(r"[^a-z0-9]")


def generate_pattern_name(text: str, primitive_type: str) -> str:
    """Deterministic name: ``llkb-<type>-<camelCase of up to 4 key words>``."""
    words = [
        _NON_ALNUM.sub("", word)
        for word in re.sub(r"[\"']", "", text.lower()).split()
        if len(word) > 2
    ][:4]
    words = [w for w in words if w]
    base = "".join(w if i == 0 else w[:1].upper() + w[1:] for i, w in enumerate(words))
    return f"llkb-{primitive_type}-{base}"


_CLICK_LIKE = {
    PrimitiveType.CLICK,
    PrimitiveType.DBLCLICK,
    PrimitiveType.RIGHT_CLICK,
    PrimitiveType.HOVER,
    PrimitiveType.FOCUS,
    PrimitiveType.CLEAR,
    PrimitiveType.CHECK,
    PrimitiveType.UNCHECK,
    PrimitiveType.UPLOAD,
}
_LOCATOR_ASSERTIONS = {
    PrimitiveType.EXPECT_VISIBLE,
    PrimitiveType.EXPECT_NOT_VISIBLE,
    PrimitiveType.EXPECT_HIDDEN,
    PrimitiveType.EXPECT_CHECKED,
    PrimitiveType.EXPECT_ENABLED,
    PrimitiveType.EXPECT_DISABLED,
    PrimitiveType.WAIT_FOR_VISIBLE,
    PrimitiveType.WAIT_FOR_HIDDEN,
}
_VALUE_ASSERTIONS = {
    PrimitiveType.EXPECT_TEXT,
    PrimitiveType.EXPECT_CONTAINS_TEXT,
    PrimitiveType.EXPECT_VALUE,
    PrimitiveType.EXPECT_COUNT,
}
_PAGE_ASSERTIONS = {
    PrimitiveType.EXPECT_URL,
    PrimitiveType.EXPECT_TITLE,
    PrimitiveType.WAIT_FOR_URL,
    PrimitiveType.WAIT_FOR_RESPONSE,
}
_NO_ARGUMENTS = {
    PrimitiveType.GO_BACK,
    PrimitiveType.GO_FORWARD,
    PrimitiveType.RELOAD,
    PrimitiveType.DISMISS_MODAL,
    PrimitiveType.ACCEPT_ALERT,
    PrimitiveType.DISMISS_ALERT,
    PrimitiveType.WAIT_FOR_NETWORK_IDLE,
    PrimitiveType.WAIT_FOR_LOADING_COMPLETE,
}


def describe_extraction(primitive_type: str) -> str:
    """Describe how a promoted trigger's match groups become a primitive."""
    kind = PrimitiveType.parse(primitive_type)
    if kind is None or kind is PrimitiveType.BLOCKED:
        return f"blocked: Unknown type: {primitive_type}"
    if kind in _CLICK_LIKE:
        return f"Extract target element from matched text, build {kind.value} with locator"
    if kind is PrimitiveType.FILL:
        return "Extract target field and value, build fill with literal value"
    if kind is PrimitiveType.SELECT:
        return "Extract target dropdown and option, build select"
    if kind is PrimitiveType.PRESS:
        return "Extract key name, build press"
    if kind is PrimitiveType.GOTO:
        return "Extract destination URL, build goto"
    if kind in _LOCATOR_ASSERTIONS:
        return f"Extract assertion target, build {kind.value} with locator"
    if kind in _VALUE_ASSERTIONS:
        return f"Extract assertion target and expected value, build {kind.value}"
    if kind in _PAGE_ASSERTIONS:
        return f"Extract expected page pattern, build {kind.value}"
    if kind is PrimitiveType.EXPECT_TOAST:
        return "Extract toast kind and message, build expectToast"
    if kind is PrimitiveType.WAIT_FOR_TIMEOUT:
        return "Extract milliseconds, build waitForTimeout"
    if kind in _NO_ARGUMENTS:
        return f"No extraction, build {kind.value}"
    return f"blocked: Unknown type: {primitive_type}"


def build_definition(pattern: LearnedPattern) -> PromotedPatternDefinition:
    primitive = pattern.mapped_primitive
    primitive_type = (
        str(primitive.params.get("sourceType", "unknown"))
        if primitive.is_blocked
        else primitive.type.value
    )
    return PromotedPatternDefinition(
        name=generate_pattern_name(pattern.original_text, primitive.type.value),
        regex=generate_regex_from_text(pattern.original_text),
        primitive_type=primitive.type.value,
        example=pattern.original_text,
        extraction=describe_extraction(primitive_type),
        pattern_id=pattern.id,
        confidence_at_promotion=pattern.confidence,
        source_journeys_count=len(pattern.source_journeys),
        priority=pattern.success_count * pattern.confidence,
        promoted_at=utc_now_iso(),
    )


def analyze_patterns(
    patterns: list[LearnedPattern],
    criteria: PromotionCriteria | None = None,
) -> PromotionReport:
    """Classify ``patterns`` into promotable, near promotion and the rest."""
    criteria = criteria or PromotionCriteria()
    promotable: list[PromotedPatternDefinition] = []
    near: list[NearPromotion] = []
    already_promoted = 0
    needs_more_data = 0

    for pattern in patterns:
        if pattern.promoted_to_core:
            already_promoted += 1
            continue
        check = meets_criteria(pattern, criteria)
        if check.meets:
            promotable.append(build_definition(pattern))
        elif is_near_promotion(pattern, check):
            near.append(
                NearPromotion(
                    pattern=pattern,
                    missing_criteria=check.missing_criteria,
                    estimated_uses_needed=estimate_uses_needed(pattern, criteria),
                )
            )
        else:
            needs_more_data += 1

    promotable.sort(key=lambda d: d.priority, reverse=True)
    return PromotionReport(
        analyzed_at=utc_now_iso(),
        total_patterns=len(patterns),
        promotable=promotable,
        near_promotion=near,
        stats=PromotionReportStats(
            already_promoted=already_promoted,
            eligible_for_promotion=len(promotable),
            near_promotion=len(near),
            needs_more_data=needs_more_data,
        ),
    )


def analyze_for_promotion(
    store: PatternStore,
    criteria: PromotionCriteria | None = None,
) -> PromotionReport:
    report = analyze_patterns(store.load_learned(bypass_cache=True), criteria)
    _logger.info(
        "promotion.analyzed",
        total=report.total_patterns,
        promotable=report.stats.eligible_for_promotion,
        near_promotion=report.stats.near_promotion,
    )
    return report


def promote_patterns(
    store: PatternStore,
    pattern_ids: list[str] | None = None,
    criteria: PromotionCriteria | None = None,
) -> PromotionOutcome:
    """Mark eligible patterns as promoted.

    Args:
        store: Pattern store to update.
        pattern_ids: Restrict promotion to these ids. None means every
            eligible pattern.
        criteria: Promotion thresholds.

    Returns:
        Ids promoted and ids considered but not eligible.
    """
    criteria = criteria or PromotionCriteria()
    wanted = set(pattern_ids) if pattern_ids is not None else None
    eligible: list[str] = []
    skipped: list[str] = []

    for pattern in store.load_learned(bypass_cache=True):
        if pattern.promoted_to_core:
            continue
        if wanted is not None and pattern.id not in wanted:
            continue
        if meets_criteria(pattern, criteria).meets:
            eligible.append(pattern.id)
        else:
            skipped.append(pattern.id)

    promoted: list[str] = []
    if eligible:
        promoted = store.mark_promoted(
            eligible, lambda p: meets_criteria(p, criteria).meets
        )
        skipped.extend(pid for pid in eligible if pid not in promoted)
    _logger.info("promotion.promoted", promoted=len(promoted), skipped=len(skipped))
    return PromotionOutcome(promoted=promoted, skipped=skipped)


def promotion_stats(
    store: PatternStore,
    criteria: PromotionCriteria | None = None,
) -> PromotionStats:
    report = analyze_for_promotion(store, criteria)
    total = report.total_patterns
    done = report.stats.already_promoted + report.stats.eligible_for_promotion
    return PromotionStats(
        total=total,
        promoted=report.stats.already_promoted,
        promotable=report.stats.eligible_for_promotion,
        near_promotion=report.stats.near_promotion,
        needs_work=report.stats.needs_more_data,
        promotion_rate=done / total if total else 0.0,
    )


def generate_promoted_code(definitions: list[PromotedPatternDefinition]) -> str:
    """Render promotable patterns as a Python module for review."""
    if not definitions:
        return "# No patterns ready for promotion\n"

    lines = [
        '"""Patterns promoted from the learned pattern store.',
        "",
        f"Generated at {utc_now_iso()}. Review before merging into the static library.",
        '"""',
        "",
        "import re",
        "",
        "PROMOTED_PATTERNS = [",
    ]
    for d in definitions:
        blocked = d.extraction.startswith("blocked:")
        lines.append("    {")
        lines.append(f"        \"name\": {d.name!r},")
        lines.append(f"        \"regex\": re.compile({d.regex!r}, re.IGNORECASE),")
        lines.append(f"        \"primitive_type\": {'blocked' if blocked else d.primitive_type!r},")
        lines.append(f"        \"extraction\": {d.extraction!r},")
        if blocked:
            lines.append(f"        \"reason\": {d.extraction.removeprefix('blocked: ')!r},")
        lines.append(f"        \"example\": {d.example!r},")
        lines.append(f"        \"pattern_id\": {d.pattern_id!r},")
        lines.append(f"        \"confidence\": {round(d.confidence_at_promotion, 4)!r},")
        lines.append("    },")
    lines.append("]")
    lines.append("")
    return "\n".join(lines)


@dataclass(frozen=True)
class ExportedReport:
    report_path: Path
    code_path: Path | None


def export_promotion_report(report: PromotionReport, output_dir: Path) -> ExportedReport:
    """Write the JSON report, plus the generated module when anything is promotable."""
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = utc_now().strftime("%Y%m%dT%H%M%S%fZ")
    report_path = output_dir / f"promotion-report-{stamp}.json"
    atomic_write_json(report_path, report.to_dict())

    code_path: Path | None = None
    if report.promotable:
        code_path = output_dir / f"promoted-patterns-{stamp}.py"
        code_path.write_text(generate_promoted_code(report.promotable), encoding="utf-8")

    _logger.info(
        "promotion.report_exported",
        report_path=str(report_path),
        code_path=str(code_path) if code_path else None,
    )
    return ExportedReport(report_path=report_path, code_path=code_path)
