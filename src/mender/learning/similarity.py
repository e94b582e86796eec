"""Text normalization and similarity scoring for step phrases."""

from __future__ import annotations

import difflib
import re

_WHITESPACE = re.compile(r"\s+")


def normalize_step_text(text: str) -> str:
    """Return the canonical matching key for a step phrase.

    Case-folds and collapses whitespace runs to single spaces. Writes and
    lookups both go through this function so keys always agree.
    """
    return _WHITESPACE.sub(" ", text.casefold()).strip()


def calculate_similarity(a: str, b: str) -> float:
    """Similarity of two strings in [0, 1].

    Uses difflib's ratio (2*M / T over matching blocks). Identical strings
    score 1.0; two empty strings also score 1.0.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return difflib.SequenceMatcher(None, a, b, autojunk=False).ratio()
