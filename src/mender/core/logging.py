"""Structured logging infrastructure for Mender.

Provides structured logging using structlog with Mender-specific context
such as session_id, journey_id and the current healing attempt. Supports
console output, JSON output, or both (console to stderr, JSON to a
rotating file).

Example usage:
    from mender.core.logging import get_logger, configure_logging, with_context

    # Configure once at startup
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("pattern_store")
    logger.info("pattern_store.loaded", count=12)

    # Correlate every line logged during a healing session
    ctx = HealingContext(journey_id="JRN-0001", test_file="login.spec.ts")
    with with_context(ctx):
        logger.info("healing_loop.started")  # includes session_id, journey_id
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Field name fragments that are never written to logs
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "token_value",
    "secret",
    "password",
    "credential",
    "bearer",
    "authorization",
    "cookie",
})

_current_log_path: Path | None = None


def get_current_log_path() -> Path | None:
    """Get the currently configured log file path, if file logging is on."""
    return _current_log_path


@dataclass(frozen=True)
class HealingContext:
    """Immutable correlation context for one healing session.

    Attributes:
        journey_id: Identifier of the journey whose generated test is healed.
        session_id: Unique id of this healing session (UUID by default).
        test_file: Path of the test file under repair.
        attempt: Current attempt number, None before the first attempt.
    """

    journey_id: str
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    test_file: str | None = None
    attempt: int | None = None

    def with_attempt(self, attempt: int) -> HealingContext:
        """Return a copy of this context for the given attempt number."""
        return replace(self, attempt=attempt)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging (None values dropped)."""
        result: dict[str, Any] = {
            "journey_id": self.journey_id,
            "session_id": self.session_id,
        }
        if self.test_file is not None:
            result["test_file"] = self.test_file
        if self.attempt is not None:
            result["attempt"] = self.attempt
        return result


_current_context: ContextVar[HealingContext | None] = ContextVar(
    "mender_context", default=None
)


def get_current_context() -> HealingContext | None:
    """Get the active HealingContext, if any."""
    return _current_context.get()


@contextmanager
def with_context(ctx: HealingContext) -> Iterator[HealingContext]:
    """Activate ``ctx`` for the duration of a block.

    Args:
        ctx: The HealingContext to use for the block.

    Yields:
        The HealingContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def _sanitize_value(key: str, value: Any) -> Any:
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if pattern in key_lower:
            return "[REDACTED]"
    return value


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields, one level deep."""
    sanitized: EventDict = {}
    for key, value in event_dict.items():
        if isinstance(value, dict):
            sanitized[key] = {k: _sanitize_value(k, v) for k, v in value.items()}
        else:
            sanitized[key] = _sanitize_value(key, value)
    return sanitized


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that merges the active HealingContext.

    Explicitly bound fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


class MenderLogger:
    """Component-bound wrapper around a structlog logger.

    The underlying structlog logger is fetched on every call, so loggers
    created at import time still honor configure_logging() calls made
    later.
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    @property
    def component(self) -> str:
        return self._component

    def bind(self, **context: Any) -> MenderLogger:
        """Create a new logger with additional bound context."""
        new_logger = MenderLogger.__new__(MenderLogger)
        new_logger._component = self._component
        new_logger._context = {**self._context, **context}
        return new_logger

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an exception with traceback. Call from an exception handler."""
        self._get_logger().exception(event, **kw)


def _build_processors(
    renderer: Processor,
    include_timestamps: bool,
    include_context: bool,
) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 20,
    backup_count: int = 3,
    include_timestamps: bool = True,
    include_context: bool = True,
) -> None:
    """Configure Mender structured logging.

    Call once at startup, before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable, "json" for structured, "both"
            for console to stderr plus JSON to ``file_path``.
        file_path: Log file for JSON output. Required when format="both".
        max_file_size_mb: Size at which the log file rotates.
        backup_count: Number of rotated files to keep.
        include_timestamps: Add ISO 8601 UTC timestamps.
        include_context: Merge the active HealingContext into each entry.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    global _current_log_path

    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        handlers.append(console_handler)

    if format in ("json", "both"):
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            _current_log_path = file_path
            file_handler: logging.Handler = RotatingFileHandler(
                file_path,
                maxBytes=max_file_size_mb * 1024 * 1024,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            handlers.append(file_handler)
        else:
            json_handler = logging.StreamHandler(sys.stdout)
            json_handler.setLevel(log_level)
            handlers.append(json_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    # cache_logger_on_first_use=False keeps import-time loggers configurable
    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> MenderLogger:
    """Get a Mender logger for a component.

    Args:
        component: The component name (e.g., "pattern_store", "healing_loop").
        **initial_context: Additional context to bind.

    Returns:
        A MenderLogger bound to the component.
    """
    return MenderLogger(component, **initial_context)


__all__ = [
    "HealingContext",
    "MenderLogger",
    "SENSITIVE_PATTERNS",
    "configure_logging",
    "get_current_context",
    "get_current_log_path",
    "get_logger",
    "with_context",
]
