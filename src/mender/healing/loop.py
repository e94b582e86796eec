"""Bounded healing loop for generated Playwright tests.

The loop verifies the test, classifies the failure, and then applies one
permitted fix at a time, re-verifying after each, until the test passes,
the candidate fixes run out, or the circuit breaker stops the session.

Every attempt is written to the heal log and the session state is saved
before the loop continues, so a crash never loses attempt counts and a
restarted run resumes where the last one stopped.

Example usage:
    result = run_healing_loop(HealingLoopOptions(
        journey_id="JRN-0001",
        test_file=Path("tests/login.spec.ts"),
        output_dir=Path(".mender/heal"),
        verify=run_playwright,
        classify=classify_report,
    ))
    if not result.success:
        print(result.recommendation)
"""

from __future__ import annotations

import re
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from mender.core.config import CircuitBreakerConfig, HealingConfig
from mender.core.errors import PatternStoreError, SessionStateError
from mender.core.logging import HealingContext, get_logger, with_context
from mender.healing.circuit_breaker import HealingCircuitBreaker
from mender.healing.convergence import ConvergenceDetector, ProgressAction, analyze_progress
from mender.healing.fixes.base import AriaInfo, FixContext
from mender.healing.fixes.registry import create_default_registry
from mender.healing.models import (
    AttemptResult,
    FailureClassification,
    FixResult,
    HealingAttempt,
    HealingResult,
    HealingStatus,
    VerifyResult,
)
from mender.healing.rules import (
    evaluate_healing,
    get_healing_recommendation,
    get_next_fix,
    get_post_healing_recommendation,
)
from mender.healing.session_log import (
    HealingLogger,
    SessionState,
    SessionStateStore,
    healing_log_path,
    load_healing_log,
)
from mender.learning.primitives import Primitive
from mender.learning.store import PatternStore
from mender.utils.time import Clock

_logger = get_logger("healing_loop")

VerifyFn = Callable[[], VerifyResult]
ClassifyFn = Callable[[VerifyResult], FailureClassification | None]
ApplyFixFn = Callable[[str, str, FixContext], FixResult]


class CancellationToken:
    """Session-scoped cancellation flag.

    Checked by the loop between attempts. An in-flight verify or fix call
    always completes first.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class HealingLoopOptions:
    """Inputs of :func:`run_healing_loop`."""

    journey_id: str
    test_file: Path
    output_dir: Path
    verify: VerifyFn

    classify: ClassifyFn | None = None
    """Turns a failed run into a classification. Defaults to the first
    classification carried in the verify result."""

    apply_fix: ApplyFixFn | None = None
    """Runs a fix strategy by fix type. Defaults to the built-in registry."""

    config: HealingConfig = field(default_factory=HealingConfig)
    breaker_config: CircuitBreakerConfig | None = None
    """Defaults to a breaker bounded by ``config.max_attempts``."""

    store: PatternStore | None = None
    feedback_steps: list[tuple[str, Primitive]] = field(default_factory=list)
    """Step texts and the primitives the generated test used for them."""

    cancellation: CancellationToken | None = None
    resume: bool = True
    aria_info: AriaInfo | None = None
    clock: Clock = time.time


_SPEC_LOCATION = re.compile(r"\.(?:spec|test)\.[cm]?[jt]sx?:(\d+)(?::\d+)?")
_AT_LINE = re.compile(r"at line (\d+)", re.IGNORECASE)
_ANY_LOCATION = re.compile(r":(\d+)(?::\d+)?")


def extract_line_number(error_message: str) -> int:
    """Line of the failure named in an error message, or 1 when none is found.

    Test file locations (``login.spec.ts:42:7``) win over ``at line N``,
    which wins over any other ``:N`` suffix.
    """
    for pattern in (_SPEC_LOCATION, _AT_LINE, _ANY_LOCATION):
        match = pattern.search(error_message)
        if match:
            return int(match.group(1))
    return 1


class _Session:
    """Mutable bookkeeping for one run of the loop."""

    def __init__(self, options: HealingLoopOptions, log: HealingLogger) -> None:
        self.options = options
        self.log = log
        self.config = options.config
        self.breaker_config = options.breaker_config or CircuitBreakerConfig(
            max_attempts=options.config.max_attempts
        )
        self.state_store = SessionStateStore(options.output_dir, clock=options.clock)
        self.breaker = HealingCircuitBreaker(self.breaker_config, clock=options.clock)
        self.detector = ConvergenceDetector()
        self.attempted_fixes: list[str] = []
        self.attempt_count = 0
        self.apply_fix: ApplyFixFn = options.apply_fix or create_default_registry()

    def restore(self, state: SessionState) -> None:
        self.breaker = HealingCircuitBreaker.from_snapshot(
            state.breaker, self.breaker_config, clock=self.options.clock
        )
        self.detector = ConvergenceDetector.from_snapshot(state.convergence)
        self.attempted_fixes = list(state.attempted_fixes)
        self.attempt_count = state.attempt_count

    def persist(self, classification: FailureClassification | None) -> None:
        self.state_store.save(SessionState(
            journey_id=self.options.journey_id,
            attempt_count=self.attempt_count,
            attempted_fixes=list(self.attempted_fixes),
            category=classification.category.value if classification else None,
            breaker=self.breaker.to_snapshot(),
            convergence=self.detector.to_snapshot(),
        ))

    def record(
        self,
        classification: FailureClassification,
        fix_type: str,
        change: str,
        result: AttemptResult,
        started: float,
        evidence: list[str] | None = None,
        error_message: str | None = None,
    ) -> None:
        """Append an attempt to the heal log. Skips get their own entries too."""
        self.log.log_attempt(HealingAttempt(
            attempt=self.log.next_attempt_number,
            failure_type=classification.category.value,
            fix_type=fix_type,
            file=str(self.options.test_file),
            change=change,
            result=result,
            evidence=evidence or [],
            error_message=error_message,
            duration_ms=int((time.monotonic() - started) * 1000),
        ))

    def result(
        self,
        status: HealingStatus,
        recommendation: str | None = None,
        applied_fix: str | None = None,
        modified_code: str | None = None,
        attempts: int | None = None,
    ) -> HealingResult:
        return HealingResult(
            success=status == HealingStatus.HEALED,
            status=status,
            attempts=self.attempt_count if attempts is None else attempts,
            log_path=str(self.log.path),
            applied_fix=applied_fix,
            modified_code=modified_code,
            recommendation=recommendation,
            convergence_trend=self.detector.trend() if self.detector.history else None,
        )


def _classify(options: HealingLoopOptions, result: VerifyResult) -> FailureClassification | None:
    if options.classify is not None:
        return options.classify(result)
    return result.first_classification()


def _feed_back(options: HealingLoopOptions, success: bool) -> None:
    """Report the session outcome for every step mapping the test used."""
    if options.store is None or not options.feedback_steps:
        return
    try:
        for text, primitive in options.feedback_steps:
            if success:
                options.store.record_success(text, primitive, options.journey_id)
            else:
                options.store.record_failure(text, options.journey_id)
    except PatternStoreError:
        _logger.exception("healing_loop.feedback_failed", steps=len(options.feedback_steps))


def run_healing_loop(options: HealingLoopOptions) -> HealingResult:
    """Heal one failing test.

    Terminal statuses:
    - HEALED: the test passes, either already or after a fix
    - NOT_HEALABLE: the failure is unclassifiable or its category is excluded
    - EXHAUSTED: no fix left, attempt budget spent, or the breaker opened
    - FAILED: the test file is missing, or the first verify raised
    - CANCELLED: the cancellation token was set between attempts

    Collaborator exceptions during an attempt are recorded as ``error``
    attempts and the loop moves on.
    """
    ctx = HealingContext(journey_id=options.journey_id, test_file=str(options.test_file))
    with with_context(ctx):
        return _run(options)


def _run(options: HealingLoopOptions) -> HealingResult:
    state_store = SessionStateStore(options.output_dir, clock=options.clock)
    saved: SessionState | None = None
    load_error: SessionStateError | None = None
    if options.resume:
        try:
            saved = state_store.load(options.journey_id)
        except SessionStateError as e:
            load_error = e
    else:
        state_store.clear(options.journey_id)

    previous_log = None
    if saved is not None:
        previous_log = load_healing_log(healing_log_path(options.output_dir, options.journey_id))
    log = HealingLogger(
        options.journey_id,
        options.output_dir,
        max_attempts=options.config.max_attempts,
        log=previous_log,
        clock=options.clock,
    )
    session = _Session(options, log)

    if load_error is not None:
        _logger.error("healing_loop.state_unreadable", error=str(load_error))
        recommendation = (
            f"Saved session state is unreadable ({load_error}). "
            "Clear it to start a fresh session."
        )
        log.mark_failed(recommendation)
        return session.result(HealingStatus.FAILED, recommendation)

    if saved is not None:
        session.restore(saved)
        log.resolve_interrupted()
        _logger.info(
            "healing_loop.resumed",
            attempt_count=session.attempt_count,
            attempted_fixes=session.attempted_fixes,
        )

    test_file = Path(options.test_file)
    if not test_file.exists():
        recommendation = f"Test file not found: {test_file}"
        _logger.error("healing_loop.test_file_missing", path=str(test_file))
        log.mark_failed(recommendation)
        return session.result(HealingStatus.FAILED, recommendation)

    try:
        verify_result = options.verify()
    except Exception as e:
        _logger.exception("healing_loop.verify_failed")
        recommendation = f"Verification failed: {e}"
        log.mark_failed(recommendation)
        return session.result(HealingStatus.FAILED, recommendation)

    if verify_result.passed:
        _logger.info("healing_loop.already_passing")
        state_store.clear(options.journey_id)
        log.mark_healed()
        return session.result(HealingStatus.HEALED, attempts=0)

    classification = _classify(options, verify_result)
    if classification is None:
        recommendation = "Unable to classify the failure. Review the test report manually."
        _logger.warning("healing_loop.unclassified", error=verify_result.first_error)
        log.mark_not_healable(recommendation)
        return session.result(HealingStatus.NOT_HEALABLE, recommendation)

    evaluation = evaluate_healing(classification, options.config)
    if not evaluation.can_heal:
        recommendation = f"{evaluation.reason}. {get_healing_recommendation(classification)}"
        _logger.info(
            "healing_loop.not_healable",
            category=classification.category.value,
            reason=evaluation.reason,
        )
        log.mark_not_healable(recommendation)
        return session.result(HealingStatus.NOT_HEALABLE, recommendation)

    _logger.info(
        "healing_loop.started",
        category=classification.category.value,
        applicable_fixes=evaluation.applicable_fixes,
        max_attempts=options.config.max_attempts,
    )
    code = test_file.read_text(encoding="utf-8")
    last_result = verify_result

    while True:
        if options.cancellation is not None and options.cancellation.is_cancelled:
            recommendation = f"Healing cancelled after {session.attempt_count} attempts."
            _logger.info("healing_loop.cancelled", attempt_count=session.attempt_count)
            session.persist(classification)
            log.mark_cancelled(recommendation)
            return session.result(HealingStatus.CANCELLED, recommendation)

        stop, stop_reason = _check_budget(session)
        if stop:
            return _exhausted(session, classification, stop_reason)

        fix_type = get_next_fix(classification, session.attempted_fixes, options.config)
        if fix_type is None:
            return _exhausted(session, classification, None)
        session.attempted_fixes.append(fix_type)

        context = FixContext(
            line_number=extract_line_number(last_result.first_error),
            error_message=last_result.first_error,
            classification=classification,
            aria_info=options.aria_info,
            max_timeout_ms=options.config.max_timeout_increase_ms,
        )
        started = time.monotonic()
        try:
            fix = session.apply_fix(fix_type, code, context)
        except Exception as e:
            _logger.exception("healing_loop.apply_fix_raised", fix_type=fix_type)
            session.attempt_count += 1
            _record_failure(session, last_result)
            session.record(
                classification, fix_type, "", AttemptResult.ERROR, started,
                error_message=str(e),
            )
            session.persist(classification)
            continue

        if not fix.applied:
            # Declined fixes do not spend a verify cycle or the attempt budget
            _logger.debug("healing_loop.fix_declined", fix_type=fix_type, reason=fix.description)
            if fix.tokens_used:
                session.breaker.record_tokens(fix.tokens_used)
            session.record(
                classification, fix_type, fix.description, AttemptResult.SKIPPED, started
            )
            session.persist(classification)
            continue

        if fix.tokens_used and session.breaker.would_exceed_budget(fix.tokens_used):
            # Spent tokens still count; the breaker opens and the next check stops
            _logger.warning(
                "healing_loop.token_budget_exceeded",
                fix_type=fix_type,
                tokens_used=fix.tokens_used,
                remaining=session.breaker.remaining_token_budget,
            )
            session.breaker.record_tokens(fix.tokens_used)
            session.record(
                classification, fix_type, fix.description, AttemptResult.SKIPPED, started,
                error_message="Token budget exceeded before verification",
            )
            session.persist(classification)
            continue

        # State and a pending entry are durable before the test file changes
        session.attempt_count += 1
        session.persist(classification)
        session.record(
            classification, fix_type, fix.description, AttemptResult.PENDING, started
        )
        code = fix.code
        test_file.write_text(code, encoding="utf-8")

        try:
            new_result = options.verify()
        except Exception as e:
            _logger.exception("healing_loop.verify_raised", fix_type=fix_type)
            _record_failure(session, last_result, fix.tokens_used)
            session.record(
                classification, fix_type, fix.description, AttemptResult.ERROR, started,
                error_message=str(e),
            )
            session.persist(classification)
            continue

        evidence = [new_result.report_path] if new_result.report_path else []
        if new_result.passed:
            session.breaker.record_success()
            session.detector.record(0, [])
            session.record(
                classification, fix_type, fix.description, AttemptResult.PASS, started,
                evidence=evidence,
            )
            _logger.info(
                "healing_loop.healed",
                fix_type=fix_type,
                attempt_count=session.attempt_count,
            )
            session.state_store.clear(options.journey_id)
            log.mark_healed()
            _feed_back(options, success=True)
            return session.result(
                HealingStatus.HEALED,
                applied_fix=fix_type,
                modified_code=code,
            )

        _record_failure(session, new_result, fix.tokens_used)
        session.record(
            classification, fix_type, fix.description, AttemptResult.FAIL, started,
            evidence=evidence,
            error_message=new_result.first_error or None,
        )
        _logger.info(
            "healing_loop.attempt_failed",
            fix_type=fix_type,
            attempt_count=session.attempt_count,
            error_count=new_result.error_count,
            new_errors=len(session.detector.new_errors()),
            fixed_errors=len(session.detector.fixed_errors()),
        )

        # One fix can turn one failure mode into another
        reclassified = _classify(options, new_result)
        if reclassified is not None and reclassified.category != classification.category:
            _logger.info(
                "healing_loop.reclassified",
                from_category=classification.category.value,
                to_category=reclassified.category.value,
            )
            classification = reclassified
        last_result = new_result
        session.persist(classification)


def _record_failure(session: _Session, result: VerifyResult, tokens_used: int = 0) -> None:
    fingerprints = result.error_fingerprints()
    session.breaker.record_attempt(fingerprints, result.error_count, tokens_used)
    session.detector.record(result.error_count, fingerprints)


def _check_budget(session: _Session) -> tuple[bool, str | None]:
    """Whether the session must stop before another attempt, and why.

    A spent attempt budget stops without an extra reason; the post-healing
    recommendation already names the attempt count.
    """
    if session.attempt_count >= session.config.max_attempts:
        return True, None
    if session.breaker.remaining_attempts == 0:
        return True, None
    if not session.breaker.can_attempt():
        return True, f"Circuit breaker open: {session.breaker.open_reason.value}."
    decision = analyze_progress(session.breaker, session.detector)
    if decision.action == ProgressAction.ESCALATE:
        return True, f"{decision.reason}; escalate to manual review."
    if decision.action == ProgressAction.STOP:
        return True, f"{decision.reason}."
    return False, None


def _exhausted(
    session: _Session,
    classification: FailureClassification,
    stop_reason: str | None,
) -> HealingResult:
    recommendation = get_post_healing_recommendation(classification, session.attempt_count)
    if stop_reason:
        recommendation = f"{recommendation} {stop_reason}"
    _logger.info(
        "healing_loop.exhausted",
        attempt_count=session.attempt_count,
        attempted_fixes=session.attempted_fixes,
        reason=stop_reason or "no_fix_left",
    )
    session.persist(classification)
    session.log.mark_exhausted(recommendation)
    _feed_back(session.options, success=False)
    return session.result(HealingStatus.EXHAUSTED, recommendation)
