"""Registry of available fix strategies.

Provides a central place to register and look up strategies by fix
type. The create_default_registry() factory returns a registry with all
built-in strategies pre-registered, and is the default ``apply_fix``
collaborator of the healing loop.
"""

from __future__ import annotations

from dataclasses import dataclass

from mender.core.config import HealingConfig
from mender.core.logging import get_logger
from mender.healing.fixes.base import FixContext, FixStrategy
from mender.healing.models import FailureClassification, FixResult
from mender.healing.rules import evaluate_healing

_logger = get_logger("fix_registry")


class FixRegistry:
    """Registry of fix strategies keyed by fix type.

    Example:
        registry = FixRegistry()
        registry.register(MissingAwaitFix())

        strategy = registry.get_by_name("missing-await")
        result = registry.apply("missing-await", code, FixContext(line_number=12))
    """

    def __init__(self) -> None:
        self._strategies: dict[str, FixStrategy] = {}

    def register(self, strategy: FixStrategy) -> None:
        """Register a strategy, replacing any existing one for the same fix type."""
        self._strategies[strategy.name] = strategy

    def all_strategies(self) -> list[FixStrategy]:
        return list(self._strategies.values())

    def get_by_name(self, name: str) -> FixStrategy | None:
        return self._strategies.get(name)

    def count(self) -> int:
        return len(self._strategies)

    def apply(self, fix_type: str, code: str, context: FixContext) -> FixResult:
        """Run the strategy for ``fix_type``. Unknown types decline."""
        strategy = self.get_by_name(fix_type)
        if strategy is None:
            return FixResult.declined(code, f"Unknown fix type: {fix_type}")
        result = strategy.apply(code, context)
        _logger.debug(
            "fix_registry.strategy_ran",
            fix_type=fix_type,
            applied=result.applied,
            description=result.description,
        )
        return result

    def __call__(self, fix_type: str, code: str, context: FixContext) -> FixResult:
        return self.apply(fix_type, code, context)


def create_default_registry() -> FixRegistry:
    """Create registry with all built-in fix strategies.

    Registers:
    - MissingAwaitFix
    - SelectorRefineFix, AddExactFix
    - NavigationWaitFix
    - WebFirstAssertionFix
    - TimeoutIncreaseFix (opt-in through HealingConfig.allowed_fixes)
    """
    from mender.healing.fixes.navigation import NavigationWaitFix
    from mender.healing.fixes.selector import AddExactFix, SelectorRefineFix
    from mender.healing.fixes.timing import (
        MissingAwaitFix,
        TimeoutIncreaseFix,
        WebFirstAssertionFix,
    )

    registry = FixRegistry()
    registry.register(MissingAwaitFix())
    registry.register(SelectorRefineFix())
    registry.register(AddExactFix())
    registry.register(NavigationWaitFix())
    registry.register(WebFirstAssertionFix())
    registry.register(TimeoutIncreaseFix())
    return registry


@dataclass(frozen=True)
class FixPreview:
    fix_type: str
    description: str
    confidence: float


def preview_healing_fixes(
    code: str,
    classification: FailureClassification,
    config: HealingConfig | None = None,
    registry: FixRegistry | None = None,
) -> list[FixPreview]:
    """Dry-run every applicable strategy and list the ones that would apply."""
    config = config or HealingConfig()
    evaluation = evaluate_healing(classification, config)
    if not evaluation.can_heal:
        return []
    registry = registry or create_default_registry()
    context = FixContext(
        classification=classification, max_timeout_ms=config.max_timeout_increase_ms
    )
    previews: list[FixPreview] = []
    for fix_type in evaluation.applicable_fixes:
        result = registry.apply(fix_type, code, context)
        if result.applied:
            previews.append(FixPreview(fix_type, result.description, result.confidence))
    return previews


def would_fix_apply(
    code: str,
    fix_type: str,
    classification: FailureClassification | None = None,
    registry: FixRegistry | None = None,
) -> bool:
    registry = registry or create_default_registry()
    return registry.apply(fix_type, code, FixContext(classification=classification)).applied
