"""Selector fixes: replace brittle CSS selectors with semantic locators.

``selector-refine`` rewrites ``page.locator('<css>')`` calls. With
captured accessibility data the preference order is test id, role plus
name, label, then bare role. Without it, a role is inferred from UI words
in the class or id names and a name from attribute values or class words.

``add-exact`` tightens name and text locators that match too many
elements by adding ``exact: true``.
"""

from __future__ import annotations

import re

from mender.healing.fixes.base import AriaInfo, BaseFixStrategy, FixContext
from mender.healing.models import FixResult

CSS_SELECTOR_PATTERNS: tuple[re.Pattern[str], ...] = (
    # page.locator('.class') or page.locator('#id')
    re.compile(r"page\.locator\s*\(\s*['\"`]([.#][^'\"`]+)['\"`]\s*\)"),
    # page.locator('[attribute]')
    re.compile(r"page\.locator\s*\(\s*['\"`](\[[^\]]+\])['\"`]\s*\)"),
    # page.locator('tag.class')
    re.compile(r"page\.locator\s*\(\s*['\"`]([a-z]+[.#][^'\"`]+)['\"`]\s*\)"),
)

# Substrings of class/id names -> ARIA role. First match wins.
UI_PATTERN_TO_ROLE: dict[str, str] = {
    "button": "button",
    "btn": "button",
    "submit": "button",
    "input": "textbox",
    "textbox": "textbox",
    "checkbox": "checkbox",
    "radio": "radio",
    "select": "combobox",
    "dropdown": "combobox",
    "link": "link",
    "heading": "heading",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "dialog": "dialog",
    "modal": "dialog",
    "alert": "alert",
    "tab": "tab",
    "menu": "menu",
    "menuitem": "menuitem",
    "table": "table",
    "row": "row",
    "cell": "cell",
    "grid": "grid",
    "list": "list",
    "listitem": "listitem",
    "img": "img",
    "image": "img",
    "nav": "navigation",
    "navigation": "navigation",
    "search": "search",
    "main": "main",
    "banner": "banner",
    "footer": "contentinfo",
}

_ATTRIBUTE_NAME = re.compile(r"\[(?:aria-label|title|alt|name)=['\"]([^'\"]+)['\"]\]")
_CLASS_NAME = re.compile(r"\.([a-zA-Z][-a-zA-Z0-9_]*)")
_WORD_SPLIT = re.compile(r"[-_]")


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def extract_css_selector(code: str) -> str | None:
    """Return the first CSS selector passed to ``page.locator``, if any."""
    for pattern in CSS_SELECTOR_PATTERNS:
        match = pattern.search(code)
        if match:
            return match.group(1)
    return None


def infer_role_from_selector(selector: str) -> str | None:
    lowered = selector.lower()
    for pattern, role in UI_PATTERN_TO_ROLE.items():
        if pattern in lowered:
            return role
    return None


def extract_name_from_selector(selector: str) -> str | None:
    """Derive an accessible name from attribute values or class words."""
    match = _ATTRIBUTE_NAME.search(selector)
    if match:
        return match.group(1)
    match = _CLASS_NAME.search(selector)
    if match:
        words = [w for w in _WORD_SPLIT.split(match.group(1)) if w]
        if words and len(words[0]) > 2:
            return " ".join(words)
    return None


def role_locator(
    role: str,
    name: str | None = None,
    exact: bool = False,
    level: int | None = None,
) -> str:
    options: list[str] = []
    if name:
        options.append(f"name: {_quote(name)}")
        if exact:
            options.append("exact: true")
    if level is not None and role == "heading":
        options.append(f"level: {level}")
    if options:
        return f"page.getByRole({_quote(role)}, {{ {', '.join(options)} }})"
    return f"page.getByRole({_quote(role)})"


def label_locator(label: str, exact: bool = False) -> str:
    if exact:
        return f"page.getByLabel({_quote(label)}, {{ exact: true }})"
    return f"page.getByLabel({_quote(label)})"


def text_locator(text: str, exact: bool = False) -> str:
    if exact:
        return f"page.getByText({_quote(text)}, {{ exact: true }})"
    return f"page.getByText({_quote(text)})"


def testid_locator(test_id: str) -> str:
    return f"page.getByTestId({_quote(test_id)})"


def _locator_from_aria(aria: AriaInfo) -> tuple[str, float] | None:
    if aria.test_id:
        return testid_locator(aria.test_id), 1.0
    if aria.role and aria.name:
        return role_locator(aria.role, aria.name, exact=True, level=aria.level), 0.9
    if aria.label:
        return label_locator(aria.label, exact=True), 0.85
    if aria.role:
        return role_locator(aria.role), 0.6
    return None


def _locator_from_css(selector: str) -> tuple[str, float] | None:
    role = infer_role_from_selector(selector)
    name = extract_name_from_selector(selector)
    if role and name:
        return role_locator(role, name), 0.6
    if role:
        return role_locator(role), 0.4
    if name:
        return text_locator(name), 0.3
    return None


def _replace_selector(code: str, selector: str, locator: str) -> str:
    for pattern in CSS_SELECTOR_PATTERNS:
        code = pattern.sub(
            lambda m: locator if m.group(1) == selector else m.group(0),
            code,
        )
    return code


def refine_selector(code: str, aria_info: AriaInfo | None = None) -> FixResult:
    """Replace the first CSS selector (all its occurrences) with a semantic locator."""
    selector = extract_css_selector(code)
    if selector is None:
        return FixResult.declined(code, "No CSS selector found to refine")

    if aria_info is not None:
        inferred = _locator_from_aria(aria_info)
        if inferred is None:
            return FixResult.declined(code, "Unable to generate locator from ARIA info")
    else:
        inferred = _locator_from_css(selector)
        if inferred is None:
            return FixResult.declined(
                code, "Unable to infer semantic locator from CSS selector"
            )

    locator, confidence = inferred
    modified = _replace_selector(code, selector, locator)
    if modified == code:
        return FixResult.declined(code, "Selector replacement left the code unchanged")
    method = locator.split("(", 1)[0]
    source = "ARIA info" if aria_info is not None else "CSS selector pattern"
    return FixResult(
        applied=True,
        code=modified,
        description=f"Replaced CSS selector {selector!r} with {method} from {source}",
        confidence=confidence,
    )


_ROLE_WITH_NAME = re.compile(
    r"page\.getByRole\s*\(\s*['\"](\w+)['\"]\s*,\s*\{\s*name:\s*['\"]([^'\"]+)['\"]\s*\}\s*\)"
)
_LABEL = re.compile(r"page\.getByLabel\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")
_TEXT = re.compile(r"page\.getByText\s*\(\s*['\"]([^'\"]+)['\"]\s*\)")


def add_exact_to_locator(code: str) -> FixResult:
    """Add ``exact: true`` to role-with-name, label and text locators."""
    modified, role_count = _ROLE_WITH_NAME.subn(
        lambda m: role_locator(m.group(1), m.group(2), exact=True), code
    )
    modified, label_count = _LABEL.subn(lambda m: label_locator(m.group(1), exact=True), modified)
    modified, text_count = _TEXT.subn(lambda m: text_locator(m.group(1), exact=True), modified)

    if role_count + label_count + text_count == 0:
        return FixResult.declined(code, "No locator found to add exact option")
    return FixResult(
        applied=True,
        code=modified,
        description="Added exact: true to locator",
        confidence=0.8,
    )


class SelectorRefineFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "selector-refine"

    @property
    def description(self) -> str:
        return "Replace CSS selectors with role, label, text or test id locators"

    def apply(self, code: str, context: FixContext) -> FixResult:
        return refine_selector(code, context.aria_info)


class AddExactFix(BaseFixStrategy):
    @property
    def name(self) -> str:
        return "add-exact"

    @property
    def description(self) -> str:
        return "Add exact matching to ambiguous name and text locators"

    def apply(self, code: str, context: FixContext) -> FixResult:
        return add_exact_to_locator(code)
