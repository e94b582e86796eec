"""Bounded self-healing for generated Playwright tests.

A failing test is verified, classified, and repaired with one safe fix
at a time until it passes or the session is declared unfixable. Unsafe
fixes (fixed delays, removed or weakened assertions, forced clicks) are
never emitted, and unhealable categories are never attempted.

Public exports:
- run_healing_loop / HealingLoopOptions: the loop and its inputs
- HealingCircuitBreaker: stops sessions that repeat, degrade or overspend
- ConvergenceDetector: classifies the error-count trend
- get_next_fix / evaluate_healing: the healing rule table
- HealingLogger / SessionStateStore: durable logs and resumable state
- create_default_registry: the built-in fix strategies
"""

from mender.healing.circuit_breaker import (
    CircuitBreakerState,
    CircuitState,
    HealingCircuitBreaker,
    OpenReason,
)
from mender.healing.convergence import (
    ConvergenceDetector,
    ConvergenceState,
    ProgressAction,
    ProgressDecision,
    analyze_progress,
    classify_trend,
)
from mender.healing.fixes import FixContext, FixRegistry, create_default_registry
from mender.healing.loop import (
    CancellationToken,
    HealingLoopOptions,
    extract_line_number,
    run_healing_loop,
)
from mender.healing.models import (
    AttemptResult,
    FailureCategory,
    FailureClassification,
    FixResult,
    HealingAttempt,
    HealingResult,
    HealingStatus,
    TrendDirection,
    VerifyResult,
)
from mender.healing.rules import (
    evaluate_healing,
    get_healing_recommendation,
    get_next_fix,
    get_post_healing_recommendation,
)
from mender.healing.session_log import (
    HealingLog,
    HealingLogger,
    SessionStateStore,
    aggregate_healing_logs,
    clear_session_state,
    format_healing_log,
    load_healing_log,
)

__all__ = [
    # Loop
    "CancellationToken",
    "HealingLoopOptions",
    "extract_line_number",
    "run_healing_loop",
    # Models
    "AttemptResult",
    "FailureCategory",
    "FailureClassification",
    "FixResult",
    "HealingAttempt",
    "HealingResult",
    "HealingStatus",
    "TrendDirection",
    "VerifyResult",
    # Rules
    "evaluate_healing",
    "get_healing_recommendation",
    "get_next_fix",
    "get_post_healing_recommendation",
    # Circuit breaker and convergence
    "CircuitBreakerState",
    "CircuitState",
    "ConvergenceDetector",
    "ConvergenceState",
    "HealingCircuitBreaker",
    "OpenReason",
    "ProgressAction",
    "ProgressDecision",
    "analyze_progress",
    "classify_trend",
    # Fixes
    "FixContext",
    "FixRegistry",
    "create_default_registry",
    # Session log
    "HealingLog",
    "HealingLogger",
    "SessionStateStore",
    "aggregate_healing_logs",
    "clear_session_state",
    "format_healing_log",
    "load_healing_log",
]
