"""Structured UI actions ("primitives") that step phrases map to.

A primitive is a tagged value: a :class:`PrimitiveType` plus the
parameters that action needs (locator, value, url, ...). Persisted
records come in two shapes:

- rich: ``{"type": "click", "locator": {...}}``
- legacy/discovered: a bare type tag such as ``"click"``, with optional
  selector hints stored beside it

:func:`resolve_primitive` decides between the two by checking whether the
stored value is an object with a string ``type`` and always returns a
Primitive. Tags it cannot map become an explicit ``blocked`` primitive
that records why, so nothing is dropped silently.

Example usage:
    hints = [SelectorHint(strategy="data-testid", value="save-btn", confidence=0.9)]
    primitive = reconstruct_primitive("click", hints)
    primitive.to_dict()
    # {"type": "click", "locator": {"strategy": "testid", "value": "save-btn"}}
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PrimitiveType(str, Enum):
    """Every UI action or assertion a step phrase can map to."""

    # Interactions
    CLICK = "click"
    DBLCLICK = "dblclick"
    RIGHT_CLICK = "rightClick"
    FILL = "fill"
    CHECK = "check"
    UNCHECK = "uncheck"
    SELECT = "select"
    HOVER = "hover"
    CLEAR = "clear"
    FOCUS = "focus"
    PRESS = "press"
    UPLOAD = "upload"

    # Navigation
    GOTO = "goto"
    GO_BACK = "goBack"
    GO_FORWARD = "goForward"
    RELOAD = "reload"

    # Assertions
    EXPECT_VISIBLE = "expectVisible"
    EXPECT_NOT_VISIBLE = "expectNotVisible"
    EXPECT_HIDDEN = "expectHidden"
    EXPECT_TEXT = "expectText"
    EXPECT_CONTAINS_TEXT = "expectContainsText"
    EXPECT_URL = "expectURL"
    EXPECT_TITLE = "expectTitle"
    EXPECT_VALUE = "expectValue"
    EXPECT_CHECKED = "expectChecked"
    EXPECT_ENABLED = "expectEnabled"
    EXPECT_DISABLED = "expectDisabled"
    EXPECT_COUNT = "expectCount"

    # Signals
    EXPECT_TOAST = "expectToast"
    DISMISS_MODAL = "dismissModal"
    ACCEPT_ALERT = "acceptAlert"
    DISMISS_ALERT = "dismissAlert"

    # Waits
    WAIT_FOR_VISIBLE = "waitForVisible"
    WAIT_FOR_HIDDEN = "waitForHidden"
    WAIT_FOR_URL = "waitForURL"
    WAIT_FOR_NETWORK_IDLE = "waitForNetworkIdle"
    WAIT_FOR_TIMEOUT = "waitForTimeout"
    WAIT_FOR_RESPONSE = "waitForResponse"
    WAIT_FOR_LOADING_COMPLETE = "waitForLoadingComplete"

    BLOCKED = "blocked"
    """Unrecognized action. Carries ``reason`` and ``sourceType``."""

    @classmethod
    def parse(cls, value: str) -> PrimitiveType | None:
        """Return the member for ``value``, or None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


# Hint strategy (as captured by discovery) -> locator strategy
SELECTOR_STRATEGY_MAP: dict[str, str] = {
    "data-testid": "testid",
    "data-cy": "testid",
    "data-test": "testid",
    "role": "role",
    "aria-label": "label",
    "css": "css",
    "text": "text",
    "xpath": "css",
}

DEFAULT_LOCATOR: dict[str, str] = {"strategy": "testid", "value": "{{locator}}"}


@dataclass(frozen=True)
class SelectorHint:
    """A selector observed for a discovered pattern."""

    strategy: str
    value: str
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"strategy": self.strategy, "value": self.value, "confidence": self.confidence}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SelectorHint:
        confidence = data.get("confidence")
        return cls(
            strategy=str(data.get("strategy", "")),
            value=str(data.get("value", "")),
            confidence=float(confidence) if isinstance(confidence, int | float) else 0.0,
        )


@dataclass(frozen=True)
class Primitive:
    """A structured UI action: a type tag plus its parameters."""

    type: PrimitiveType
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def is_blocked(self) -> bool:
        return self.type is PrimitiveType.BLOCKED

    @property
    def locator(self) -> dict[str, Any] | None:
        locator = self.params.get("locator")
        return locator if isinstance(locator, dict) else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the rich persisted shape."""
        return {"type": self.type.value, **self.params}

    @classmethod
    def blocked(cls, source_type: str, reason: str | None = None) -> Primitive:
        """Build the explicit marker for an action that cannot be mapped."""
        return cls(
            PrimitiveType.BLOCKED,
            {"reason": reason or f"Unknown type: {source_type}", "sourceType": source_type},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Primitive:
        """Deserialize the rich shape. Unrecognized types become blocked."""
        type_name = str(data.get("type", ""))
        params = {k: v for k, v in data.items() if k != "type"}
        primitive_type = PrimitiveType.parse(type_name)
        if primitive_type is None:
            return cls.blocked(type_name)
        return cls(primitive_type, params)


def build_locator_from_hints(hints: list[SelectorHint] | None) -> dict[str, str]:
    """Pick the highest-confidence hint and convert it to a locator."""
    if not hints:
        return dict(DEFAULT_LOCATOR)
    best = max(hints, key=lambda hint: hint.confidence)
    return {
        "strategy": SELECTOR_STRATEGY_MAP.get(best.strategy, "testid"),
        "value": best.value,
    }


_LOCATOR_ONLY = {
    "click": PrimitiveType.CLICK,
    "dblclick": PrimitiveType.DBLCLICK,
    "rightClick": PrimitiveType.RIGHT_CLICK,
    "check": PrimitiveType.CHECK,
    "uncheck": PrimitiveType.UNCHECK,
    "hover": PrimitiveType.HOVER,
    "clear": PrimitiveType.CLEAR,
    "focus": PrimitiveType.FOCUS,
    "assert": PrimitiveType.EXPECT_VISIBLE,
    "expectVisible": PrimitiveType.EXPECT_VISIBLE,
    "expectNotVisible": PrimitiveType.EXPECT_NOT_VISIBLE,
    "expectHidden": PrimitiveType.EXPECT_HIDDEN,
    "expectChecked": PrimitiveType.EXPECT_CHECKED,
    "expectEnabled": PrimitiveType.EXPECT_ENABLED,
    "expectDisabled": PrimitiveType.EXPECT_DISABLED,
    "waitForVisible": PrimitiveType.WAIT_FOR_VISIBLE,
    "waitForHidden": PrimitiveType.WAIT_FOR_HIDDEN,
}

_NO_PARAMS = {
    "goBack": PrimitiveType.GO_BACK,
    "goForward": PrimitiveType.GO_FORWARD,
    "reload": PrimitiveType.RELOAD,
    "dismissModal": PrimitiveType.DISMISS_MODAL,
    "acceptAlert": PrimitiveType.ACCEPT_ALERT,
    "dismissAlert": PrimitiveType.DISMISS_ALERT,
    "waitForNetworkIdle": PrimitiveType.WAIT_FOR_NETWORK_IDLE,
    "waitForLoadingComplete": PrimitiveType.WAIT_FOR_LOADING_COMPLETE,
}


def _with_locator(
    primitive_type: PrimitiveType, **params: Any
) -> Callable[[dict[str, str]], Primitive]:
    return lambda locator: Primitive(primitive_type, {"locator": locator, **copy.deepcopy(params)})


def _without_locator(
    primitive_type: PrimitiveType, **params: Any
) -> Callable[[dict[str, str]], Primitive]:
    return lambda locator: Primitive(primitive_type, copy.deepcopy(params))


_PARAMETERIZED: dict[str, Callable[[dict[str, str]], Primitive]] = {
    "fill": _with_locator(PrimitiveType.FILL, value={"type": "literal", "value": "{{input}}"}),
    "select": _with_locator(PrimitiveType.SELECT, option="{{option}}"),
    "press": _with_locator(PrimitiveType.PRESS, key="Enter"),
    "keyboard": _with_locator(PrimitiveType.PRESS, key="Escape"),
    "navigate": _without_locator(PrimitiveType.GOTO, url="{{url}}"),
    "goto": _without_locator(PrimitiveType.GOTO, url="{{url}}"),
    "expectText": _with_locator(PrimitiveType.EXPECT_TEXT, text="{{text}}"),
    "expectContainsText": _with_locator(PrimitiveType.EXPECT_CONTAINS_TEXT, text="{{text}}"),
    "expectURL": _without_locator(PrimitiveType.EXPECT_URL, pattern="{{pattern}}"),
    "waitForURL": _without_locator(PrimitiveType.WAIT_FOR_URL, pattern="{{pattern}}"),
    "expectTitle": _without_locator(PrimitiveType.EXPECT_TITLE, title="{{title}}"),
    "expectValue": _with_locator(PrimitiveType.EXPECT_VALUE, value="{{value}}"),
    "expectCount": _with_locator(PrimitiveType.EXPECT_COUNT, count=0),
    "expectToast": _without_locator(PrimitiveType.EXPECT_TOAST, toastType="success"),
    "waitForTimeout": _without_locator(PrimitiveType.WAIT_FOR_TIMEOUT, ms=1000),
    "waitForResponse": _without_locator(PrimitiveType.WAIT_FOR_RESPONSE, urlPattern="{{pattern}}"),
    "upload": _with_locator(PrimitiveType.UPLOAD, files=["{{file}}"]),
}


def reconstruct_primitive(
    type_name: str,
    hints: list[SelectorHint] | None = None,
) -> Primitive:
    """Build a rich primitive from a bare type tag and selector hints.

    Total over all strings: tags without a mapping (including ``drag``)
    return a blocked primitive naming the tag.
    """
    if type_name in _LOCATOR_ONLY:
        return Primitive(_LOCATOR_ONLY[type_name], {"locator": build_locator_from_hints(hints)})
    if type_name in _NO_PARAMS:
        return Primitive(_NO_PARAMS[type_name])
    factory = _PARAMETERIZED.get(type_name)
    if factory is None:
        return Primitive.blocked(type_name)
    return factory(build_locator_from_hints(hints))


def resolve_primitive(
    raw: Any,
    hints: list[SelectorHint] | None = None,
) -> Primitive:
    """Resolve a persisted primitive value of either shape.

    Args:
        raw: An object with a string ``type`` (rich shape) or a bare type
            tag (legacy shape).
        hints: Selector hints used when reconstructing a bare tag.

    Returns:
        The resolved primitive; blocked when ``raw`` has neither shape.
    """
    if isinstance(raw, dict) and isinstance(raw.get("type"), str):
        return Primitive.from_dict(raw)
    if isinstance(raw, str):
        return reconstruct_primitive(raw, hints)
    return Primitive.blocked(type(raw).__name__, reason="Missing or malformed primitive")
