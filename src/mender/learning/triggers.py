"""Regular-expression triggers generated from learned step phrases."""

from __future__ import annotations

import re

_DOUBLE_QUOTED = re.compile(r'"[^"]*"')
_SINGLE_QUOTED = re.compile(r"'[^']*'")
_ARTICLE = re.compile(r"\b(the|a|an)\s+")
_LEADING_USER = re.compile(r"^user\s+")
_VERBS = ("click", "fill", "select", "type", "see", "wait")


def generate_regex_from_text(text: str) -> str:
    r"""Turn a step phrase into an anchored matching expression.

    - quoted strings become capture groups
    - the articles "the", "a" and "an" become optional
    - a leading "user" becomes optional
    - common verbs also accept their third-person form ("clicks")

    ``User clicks the "Save" button`` becomes
    ``^(?:user\s+)?clicks? (?:the\s+)?"([^"]+)" button$``.
    """
    # re.escape also escapes spaces; undo that so word rules below apply
    pattern = re.escape(text.lower()).replace("\\ ", " ")

    pattern = _DOUBLE_QUOTED.sub(lambda m: '"([^"]+)"', pattern)
    pattern = _SINGLE_QUOTED.sub(lambda m: "'([^']+)'", pattern)
    pattern = _ARTICLE.sub(lambda m: f"(?:{m.group(1)}\\s+)?", pattern)
    pattern = _LEADING_USER.sub(lambda m: "(?:user\\s+)?", pattern)
    for verb in _VERBS:
        pattern = re.sub(rf"\b{verb}s?\b", lambda m, v=verb: f"{v}s?", pattern)

    return f"^{pattern}$"
