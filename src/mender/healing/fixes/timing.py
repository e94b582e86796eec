"""Timing fixes: missing awaits, web-first assertions and bounded timeouts.

None of these insert fixed delays. Waiting is always expressed through
Playwright's auto-retrying assertions or an explicit, capped timeout on
the failing action.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from mender.healing.fixes.base import BaseFixStrategy, FixContext
from mender.healing.models import FixResult

DEFAULT_TIMEOUT_MS = 5_000
TIMEOUT_MULTIPLIER = 1.5

_AWAIT_PREFIX = r"(?<![\w$.])(await\s+)?"

# expect(...) argument with up to two levels of nested calls
_EXPECT_ARGUMENT = r"\((?:[^()]|\((?:[^()]|\([^()]*\))*\))*\)"

MISSING_AWAIT_PATTERNS: tuple[re.Pattern[str], ...] = (
    # page actions
    re.compile(
        _AWAIT_PREFIX
        + r"(page\.(?:click|fill|type|check|uncheck|selectOption|hover|focus|press|dblclick|dragTo)\s*\()"
    ),
    # expectations
    re.compile(
        _AWAIT_PREFIX
        + r"(expect\s*"
        + _EXPECT_ARGUMENT
        + r"\.(?:toBeVisible|toBeHidden|toHaveText|toContainText|toHaveValue|toHaveURL|toHaveTitle)\s*\()"
    ),
    # locator actions
    re.compile(_AWAIT_PREFIX + r"([a-zA-Z_$][\w$]*\.(?:click|fill|type|check|hover|press)\s*\()"),
)


def fix_missing_await(code: str) -> FixResult:
    """Prefix un-awaited page actions, expectations and locator actions with ``await``."""
    count = 0

    def _add_await(match: re.Match[str]) -> str:
        nonlocal count
        if match.group(1):
            return match.group(0)
        count += 1
        return f"await {match.group(2)}"

    modified = code
    for pattern in MISSING_AWAIT_PATTERNS:
        modified = pattern.sub(_add_await, modified)

    if count == 0:
        return FixResult.declined(code, "No missing await found")
    return FixResult(
        applied=True,
        code=modified,
        description=f"Added {count} missing await statement(s)",
        confidence=0.9,
    )


_READ_THEN_ASSERT = r"^([ \t]*)const\s+(\w+)\s*=\s*await\s+(\w+)\.{read}\s*\(\s*\)\s*;?\s*\n[ \t]*expect\s*\(\s*\2\s*\)\.toBe\s*\(\s*{expected}\s*\)"

_WEB_FIRST_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(
            _READ_THEN_ASSERT.format(read="textContent", expected=r"(['\"][^'\"]+['\"])"),
            re.MULTILINE,
        ),
        "toHaveText",
    ),
    (
        re.compile(
            _READ_THEN_ASSERT.format(read="innerText", expected=r"(['\"][^'\"]+['\"])"),
            re.MULTILINE,
        ),
        "toHaveText",
    ),
    (
        re.compile(_READ_THEN_ASSERT.format(read="isVisible", expected="true"), re.MULTILINE),
        "toBeVisible",
    ),
    (
        re.compile(_READ_THEN_ASSERT.format(read="isHidden", expected="true"), re.MULTILINE),
        "toBeHidden",
    ),
)


def convert_to_web_first_assertion(code: str) -> FixResult:
    """Turn read-then-compare checks into auto-retrying ``expect`` assertions.

    Example:
        const title = await heading.textContent();
        expect(title).toBe('Dashboard')
    becomes:
        await expect(heading).toHaveText('Dashboard')
    """
    count = 0

    def _rewrite(assertion: str) -> Callable[[re.Match[str]], str]:
        def _replace(match: re.Match[str]) -> str:
            nonlocal count
            count += 1
            indent, locator = match.group(1), match.group(3)
            argument = match.group(4) if match.lastindex and match.lastindex >= 4 else ""
            return f"{indent}await expect({locator}).{assertion}({argument})"

        return _replace

    modified = code
    for pattern, assertion in _WEB_FIRST_REWRITES:
        modified = pattern.sub(_rewrite(assertion), modified)

    if count == 0:
        return FixResult.declined(code, "No conversion needed")
    return FixResult(
        applied=True,
        code=modified,
        description="Converted to web-first assertion",
        confidence=0.85,
    )


_TIMEOUT_IN_ERROR = re.compile(r"timeout\s+(\d+)ms", re.IGNORECASE)
_HAS_TIMEOUT = re.compile(r"\btimeout\s*:", re.IGNORECASE)
_ACTIONS = "click|fill|press|type|hover|focus|check|uncheck"
_ACTION_NO_ARGS = re.compile(rf"\.({_ACTIONS})\s*\(\s*\)")
_ACTION_STRING_ARG = re.compile(rf"\.({_ACTIONS})\s*\(\s*(['\"][^'\"]*['\"])\s*\)")
_ACTION_OPTIONS = re.compile(rf"\.({_ACTIONS})\s*\(\s*\{{([^}}]*)\}}\s*\)")
_ASSERTION_NO_ARGS = re.compile(
    r"\.(toBeVisible|toBeHidden|toHaveText|toContainText|toHaveValue)\s*\(\s*\)"
)


def extract_timeout_from_error(error_message: str) -> int | None:
    match = _TIMEOUT_IN_ERROR.search(error_message)
    return int(match.group(1)) if match else None


def suggest_timeout_increase(current_ms: int, max_ms: int = 30_000) -> int:
    return min(round(current_ms * TIMEOUT_MULTIPLIER), max_ms)


def add_timeout(code: str, line_number: int, timeout_ms: int) -> FixResult:
    """Add ``{ timeout: N }`` to the actions and assertions on one line."""
    lines = code.split("\n")
    if line_number < 1 or line_number > len(lines):
        return FixResult.declined(code, "Invalid line number")

    line = lines[line_number - 1]
    if _HAS_TIMEOUT.search(line):
        return FixResult.declined(code, "Timeout already specified")

    option = f"timeout: {timeout_ms}"
    modified = _ACTION_NO_ARGS.sub(lambda m: f".{m.group(1)}({{ {option} }})", line)
    modified = _ACTION_STRING_ARG.sub(
        lambda m: f".{m.group(1)}({m.group(2)}, {{ {option} }})", modified
    )
    modified = _ACTION_OPTIONS.sub(
        lambda m: (
            m.group(0)
            if "timeout" in m.group(2)
            else f".{m.group(1)}({{ {m.group(2).strip()}, {option} }})"
        ),
        modified,
    )
    modified = _ASSERTION_NO_ARGS.sub(lambda m: f".{m.group(1)}({{ {option} }})", modified)

    if modified == line:
        return FixResult.declined(code, "Unable to add timeout")
    lines[line_number - 1] = modified
    return FixResult(
        applied=True,
        code="\n".join(lines),
        description=f"Added timeout: {timeout_ms}ms",
        confidence=0.6,
    )


class MissingAwaitFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "missing-await"

    @property
    def description(self) -> str:
        return "Add missing await to page actions and assertions"

    def apply(self, code: str, context: FixContext) -> FixResult:
        return fix_missing_await(code)


class WebFirstAssertionFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "web-first-assertion"

    @property
    def description(self) -> str:
        return "Convert one-shot reads into auto-retrying assertions"

    def apply(self, code: str, context: FixContext) -> FixResult:
        return convert_to_web_first_assertion(code)


class TimeoutIncreaseFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "timeout-increase"

    @property
    def description(self) -> str:
        return "Raise the timeout of the failing action within a cap"

    def apply(self, code: str, context: FixContext) -> FixResult:
        current = extract_timeout_from_error(context.error_message) or DEFAULT_TIMEOUT_MS
        timeout = suggest_timeout_increase(current, context.max_timeout_ms)
        return add_timeout(code, context.line_number, timeout)
