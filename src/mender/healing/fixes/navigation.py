"""Navigation fix: wait for the expected URL after a navigating action."""

from __future__ import annotations

import re

from mender.healing.fixes.base import BaseFixStrategy, FixContext
from mender.healing.models import FixResult

EXISTING_WAIT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"await\s+page\.waitForURL"),
    re.compile(r"await\s+expect\s*\(\s*page\s*\)\.toHaveURL"),
    re.compile(r"await\s+page\.waitForNavigation"),
    re.compile(r"await\s+page\.waitForLoadState"),
)

_URL_IN_ERROR: tuple[re.Pattern[str], ...] = (
    re.compile(r"Expected\s+URL\s+to\s+match\s+['\"]([^'\"]+)['\"]", re.IGNORECASE),
    re.compile(r"expected\s+['\"]([^'\"]+)['\"]\s+to\s+match", re.IGNORECASE),
    re.compile(r"waiting\s+for\s+URL\s+['\"]([^'\"]+)['\"]", re.IGNORECASE),
)
_GOTO_URL = re.compile(r"page\.goto\s*\(\s*['\"`]([^'\"`]+)['\"`]")
_INDENT = re.compile(r"^(\s*)")


def has_navigation_wait(code: str) -> bool:
    return any(pattern.search(code) for pattern in EXISTING_WAIT_PATTERNS)


def extract_url_from_error(error_message: str) -> str | None:
    for pattern in _URL_IN_ERROR:
        match = pattern.search(error_message)
        if match:
            return match.group(1)
    return None


def extract_url_from_goto(code: str) -> str | None:
    match = _GOTO_URL.search(code)
    return match.group(1) if match else None


def infer_url_pattern(code: str, error_message: str) -> str | None:
    """The expected URL from the error message, else the first ``page.goto`` target."""
    return extract_url_from_error(error_message) or extract_url_from_goto(code)


def to_have_url_statement(url_pattern: str) -> str:
    """``await expect(page).toHaveURL(...)``; patterns with ``*`` or ``\\`` become regex literals."""
    if "*" in url_pattern or "\\" in url_pattern:
        return f"await expect(page).toHaveURL(/{url_pattern}/)"
    return f"await expect(page).toHaveURL('{url_pattern}')"


def _insert_after(code: str, line_number: int, statement: str) -> str | None:
    lines = code.split("\n")
    if line_number < 1 or line_number > len(lines):
        return None
    indent = _INDENT.match(lines[line_number - 1]).group(1)
    lines.insert(line_number, f"{indent}{statement}")
    return "\n".join(lines)


def insert_navigation_wait(code: str, line_number: int, url_pattern: str) -> FixResult:
    """Insert a URL assertion after ``line_number`` unless one is already nearby."""
    lines = code.split("\n")
    if line_number < 1 or line_number > len(lines):
        return FixResult.declined(code, "Invalid line number")

    nearby = "\n".join(lines[max(0, line_number - 2): min(len(lines), line_number + 2)])
    if has_navigation_wait(nearby):
        return FixResult.declined(code, "Navigation wait already exists in context")

    modified = _insert_after(code, line_number, to_have_url_statement(url_pattern))
    return FixResult(
        applied=True,
        code=modified or code,
        description=f"Added toHaveURL assertion for '{url_pattern}'",
        confidence=0.7,
    )


def insert_load_state_wait(code: str, line_number: int) -> FixResult:
    modified = _insert_after(code, line_number, "await page.waitForLoadState('networkidle')")
    if modified is None:
        return FixResult.declined(code, "Invalid line number")
    return FixResult(
        applied=True,
        code=modified,
        description="Added waitForLoadState as fallback",
        confidence=0.5,
    )


def apply_navigation_fix(
    code: str,
    line_number: int,
    error_message: str = "",
    expected_url: str | None = None,
) -> FixResult:
    """Wait for the expected URL, or for network idle when no URL is known."""
    url_pattern = expected_url or infer_url_pattern(code, error_message)
    if url_pattern is None:
        if has_navigation_wait(code):
            return FixResult.declined(code, "Navigation wait already exists")
        return insert_load_state_wait(code, line_number)
    if has_navigation_wait(code):
        return FixResult.declined(code, "Navigation wait already exists")
    return insert_navigation_wait(code, line_number, url_pattern)


class NavigationWaitFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "navigation-wait"

    @property
    def description(self) -> str:
        return "Wait for the expected URL or page load after navigation"

    def apply(self, code: str, context: FixContext) -> FixResult:
        return apply_navigation_fix(code, context.line_number, context.error_message)
