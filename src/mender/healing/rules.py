"""Healing rule table: which fixes may be tried for which failures.

Rules map failure categories to fix types in priority order (lower runs
first). Selection is gated by :class:`~mender.core.config.HealingConfig`:

- the global ``enabled`` flag
- ``allowed_fixes``, an allow-list
- ``forbidden_fixes``, a deny-list that always wins over the allow-list

Categories outside the engine's competence (auth, env, unknown) never
yield a candidate whatever the configuration says.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from mender.core.config import HealingConfig
from mender.healing.models import FailureCategory, FailureClassification


class FixType(str, Enum):
    """Safe fix types the engine knows how to apply."""

    MISSING_AWAIT = "missing-await"
    SELECTOR_REFINE = "selector-refine"
    ADD_EXACT = "add-exact"
    NAVIGATION_WAIT = "navigation-wait"
    WEB_FIRST_ASSERTION = "web-first-assertion"
    TIMEOUT_INCREASE = "timeout-increase"


FORBIDDEN_FIX_TYPES: frozenset[str] = frozenset(
    {"add-sleep", "remove-assertion", "weaken-assertion", "force-click", "bypass-auth"}
)
"""Fixes that are never emitted, even if a caller lists them as allowed."""

UNHEALABLE_CATEGORIES: frozenset[FailureCategory] = frozenset(
    {FailureCategory.AUTH, FailureCategory.ENV, FailureCategory.UNKNOWN}
)


@dataclass(frozen=True)
class HealingRule:
    fix_type: FixType
    applies_to: frozenset[FailureCategory]
    priority: int
    description: str
    enabled_by_default: bool = True


DEFAULT_HEALING_RULES: tuple[HealingRule, ...] = (
    HealingRule(
        FixType.MISSING_AWAIT,
        frozenset({FailureCategory.SELECTOR, FailureCategory.TIMING, FailureCategory.SCRIPT}),
        priority=1,
        description="Add missing await to page actions and assertions",
    ),
    HealingRule(
        FixType.SELECTOR_REFINE,
        frozenset({FailureCategory.SELECTOR}),
        priority=2,
        description="Replace CSS selectors with role, label, text or test id locators",
    ),
    HealingRule(
        FixType.ADD_EXACT,
        frozenset({FailureCategory.SELECTOR}),
        priority=3,
        description="Add exact matching to ambiguous name and text locators",
    ),
    HealingRule(
        FixType.NAVIGATION_WAIT,
        frozenset({FailureCategory.NAVIGATION, FailureCategory.TIMING}),
        priority=4,
        description="Wait for the expected URL or page load after navigation",
    ),
    HealingRule(
        FixType.WEB_FIRST_ASSERTION,
        frozenset({FailureCategory.TIMING, FailureCategory.DATA}),
        priority=5,
        description="Convert one-shot reads into auto-retrying assertions",
    ),
    HealingRule(
        FixType.TIMEOUT_INCREASE,
        frozenset({FailureCategory.TIMING}),
        priority=6,
        description="Raise the timeout of the failing action within a cap",
        enabled_by_default=False,
    ),
)


@dataclass(frozen=True)
class HealingEvaluation:
    can_heal: bool
    applicable_fixes: list[str] = field(default_factory=list)
    reason: str | None = None


def is_category_healable(category: FailureCategory) -> bool:
    return category not in UNHEALABLE_CATEGORIES


def is_fix_forbidden(fix_type: str, config: HealingConfig | None = None) -> bool:
    """True if ``fix_type`` is on the built-in or configured deny-list."""
    if fix_type in FORBIDDEN_FIX_TYPES:
        return True
    return config is not None and fix_type in config.forbidden_fixes


def is_fix_allowed(fix_type: str, config: HealingConfig | None = None) -> bool:
    config = config or HealingConfig()
    return (
        config.enabled
        and fix_type in config.allowed_fixes
        and not is_fix_forbidden(fix_type, config)
    )


def get_applicable_rules(
    classification: FailureClassification,
    config: HealingConfig | None = None,
) -> list[HealingRule]:
    """Rules for the classification's category that the config permits, by priority."""
    config = config or HealingConfig()
    if not config.enabled or not is_category_healable(classification.category):
        return []
    rules = [
        rule for rule in DEFAULT_HEALING_RULES
        if classification.category in rule.applies_to
        and is_fix_allowed(rule.fix_type.value, config)
    ]
    return sorted(rules, key=lambda rule: rule.priority)


def evaluate_healing(
    classification: FailureClassification,
    config: HealingConfig | None = None,
) -> HealingEvaluation:
    config = config or HealingConfig()
    if not config.enabled:
        return HealingEvaluation(can_heal=False, reason="Healing is disabled")
    if not is_category_healable(classification.category):
        return HealingEvaluation(
            can_heal=False,
            reason=f"Category '{classification.category.value}' cannot be healed automatically",
        )
    rules = get_applicable_rules(classification, config)
    if not rules:
        return HealingEvaluation(
            can_heal=False, reason="No applicable healing rules for this failure"
        )
    return HealingEvaluation(
        can_heal=True, applicable_fixes=[rule.fix_type.value for rule in rules]
    )


def get_next_fix(
    classification: FailureClassification,
    attempted_fixes: list[str] | set[str],
    config: HealingConfig | None = None,
) -> str | None:
    """First permitted, not yet attempted fix for the classification.

    Returns:
        The fix type name, or None when healing is disabled, the category
        is unhealable, or every candidate has been attempted.
    """
    attempted = set(attempted_fixes)
    for rule in get_applicable_rules(classification, config):
        if rule.fix_type.value not in attempted:
            return rule.fix_type.value
    return None


_HEALING_ADVICE: dict[FailureCategory, str] = {
    FailureCategory.SELECTOR: (
        "Refine the selector: prefer role, label or test id locators over CSS selectors."
    ),
    FailureCategory.TIMING: (
        "Replace one-shot checks with auto-waiting assertions and wait for the "
        "expected state instead of adding delays."
    ),
    FailureCategory.NAVIGATION: (
        "Wait for the expected URL after navigation actions before asserting."
    ),
    FailureCategory.DATA: (
        "Use retrying assertions and isolate test data so runs do not collide."
    ),
    FailureCategory.ASSERTION: (
        "The assertion itself failed. Review whether the expected value or the "
        "application behavior is wrong; assertions are never weakened automatically."
    ),
    FailureCategory.AUTH: (
        "Check authentication setup: stored session state, credentials and login flow."
    ),
    FailureCategory.ENV: (
        "Check the test environment: base URL, service availability and network access."
    ),
    FailureCategory.SCRIPT: (
        "Fix the test script error: look for missing awaits and invalid API usage."
    ),
    FailureCategory.UNKNOWN: (
        "Inspect the trace and report manually; the failure could not be classified."
    ),
}


def get_healing_recommendation(classification: FailureClassification) -> str:
    return _HEALING_ADVICE[classification.category]


_POST_HEALING_ADVICE: dict[FailureCategory, str] = {
    FailureCategory.SELECTOR: (
        "Consider quarantining the test and adding a stable test id to the target element."
    ),
    FailureCategory.TIMING: (
        "Consider quarantining the test while the flaky timing is investigated."
    ),
    FailureCategory.NAVIGATION: "Verify the navigation flow and expected URLs manually.",
    FailureCategory.DATA: "Review test data setup and isolation between runs.",
}


def get_post_healing_recommendation(
    classification: FailureClassification,
    attempt_count: int,
) -> str:
    advice = _POST_HEALING_ADVICE.get(
        classification.category, "Manual investigation is required."
    )
    return f"Healing exhausted after {attempt_count} attempts. {advice}"
