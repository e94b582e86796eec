"""Fix strategies: text transformations over generated Playwright tests."""

from mender.healing.fixes.base import AriaInfo, BaseFixStrategy, FixContext, FixStrategy
from mender.healing.fixes.navigation import NavigationWaitFix, apply_navigation_fix
from mender.healing.fixes.registry import (
    FixPreview,
    FixRegistry,
    create_default_registry,
    preview_healing_fixes,
    would_fix_apply,
)
from mender.healing.fixes.selector import (
    AddExactFix,
    SelectorRefineFix,
    add_exact_to_locator,
    refine_selector,
)
from mender.healing.fixes.timing import (
    MissingAwaitFix,
    TimeoutIncreaseFix,
    WebFirstAssertionFix,
    add_timeout,
    convert_to_web_first_assertion,
    fix_missing_await,
)

__all__ = [
    "AddExactFix",
    "AriaInfo",
    "BaseFixStrategy",
    "FixContext",
    "FixPreview",
    "FixRegistry",
    "FixStrategy",
    "MissingAwaitFix",
    "NavigationWaitFix",
    "SelectorRefineFix",
    "TimeoutIncreaseFix",
    "WebFirstAssertionFix",
    "add_exact_to_locator",
    "add_timeout",
    "apply_navigation_fix",
    "convert_to_web_first_assertion",
    "create_default_registry",
    "fix_missing_await",
    "preview_healing_fixes",
    "refine_selector",
    "would_fix_apply",
]
