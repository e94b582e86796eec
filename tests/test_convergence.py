"""Tests for convergence tracking and the verify-result shapes it consumes."""

import pytest

from mender.core.config import CircuitBreakerConfig
from mender.healing.circuit_breaker import HealingCircuitBreaker
from mender.healing.convergence import (
    ConvergenceDetector,
    ProgressAction,
    analyze_progress,
    classify_trend,
    improvement_percent,
)
from mender.healing.models import (
    FailureCategory,
    TrendDirection,
    VerifyResult,
    error_fingerprint,
    normalize_error_message,
)


class TestClassifyTrend:
    """Tests for classify_trend."""

    @pytest.mark.parametrize(
        ("history", "expected"),
        [
            ([5, 5, 5, 5], TrendDirection.STAGNATING),
            ([5, 3, 1, 0], TrendDirection.IMPROVING),
            ([1, 4, 2, 5], TrendDirection.OSCILLATING),
            ([1, 2, 3], TrendDirection.DEGRADING),
            ([5, 3, 4], TrendDirection.STAGNATING),
            ([4, 4, 2], TrendDirection.IMPROVING),
            ([3], TrendDirection.STAGNATING),
            ([], TrendDirection.STAGNATING),
        ],
    )
    def test_trend(self, history, expected):
        """Test trend classification for representative histories."""
        assert classify_trend(history) == expected

    def test_improvement_percent(self):
        """Test the percentage drop from first to last count."""
        assert improvement_percent([10, 5]) == 50.0
        assert improvement_percent([4, 6]) == -50.0
        assert improvement_percent([0, 3]) == 0.0
        assert improvement_percent([]) == 0.0


class TestConvergenceDetector:
    """Tests for ConvergenceDetector."""

    def test_stagnation_and_last_improvement(self):
        """Test the stagnation counter and last improvement index."""
        detector = ConvergenceDetector()
        for count in [5, 5, 5]:
            detector.record(count)
        assert detector.stagnation_count == 2
        assert detector.last_improvement is None

        detector.record(3)
        assert detector.stagnation_count == 0
        assert detector.last_improvement == 4

    def test_converged(self):
        """Test that a zero error count means converged."""
        detector = ConvergenceDetector()
        detector.record(2)
        assert not detector.is_converged()
        detector.record(0)
        assert detector.is_converged()

    def test_new_and_fixed_errors(self):
        """Test fingerprint differences between the last two attempts."""
        detector = ConvergenceDetector()
        detector.record(2, ["fp-a", "fp-b"])
        assert detector.new_errors() == []

        detector.record(2, ["fp-b", "fp-c"])
        assert detector.new_errors() == ["fp-c"]
        assert detector.fixed_errors() == ["fp-a"]

    def test_state(self):
        """Test the serialized state view."""
        detector = ConvergenceDetector()
        for count in [4, 2]:
            detector.record(count)
        assert detector.get_state().to_dict() == {
            "error_count_history": [4, 2],
            "trend": "improving",
            "improvement_percent": 50.0,
        }

    def test_snapshot_round_trip(self):
        """Test that a restored detector keeps counters without replay."""
        detector = ConvergenceDetector()
        detector.record(3, ["fp-a"])
        detector.record(3, ["fp-a"])
        restored = ConvergenceDetector.from_snapshot(detector.to_snapshot())

        assert restored.history == [3, 3]
        assert restored.stagnation_count == 1
        restored.record(1, ["fp-b"])
        assert restored.fixed_errors() == ["fp-a"]
        assert restored.last_improvement == 3

    def test_reset(self):
        """Test that reset clears everything."""
        detector = ConvergenceDetector()
        detector.record(3)
        detector.reset()
        assert detector.history == []
        assert detector.trend() == TrendDirection.STAGNATING


class TestAnalyzeProgress:
    """Tests for analyze_progress."""

    def test_breaker_open_stops(self, clock):
        """Test that an open breaker stops the session first."""
        breaker = HealingCircuitBreaker(CircuitBreakerConfig(), clock=clock)
        breaker.record_attempt(["fp-a"], 1)
        breaker.record_attempt(["fp-a"], 1)
        detector = ConvergenceDetector()
        detector.record(0)

        decision = analyze_progress(breaker, detector)
        assert decision.action == ProgressAction.STOP
        assert decision.reason == "Circuit breaker open: same-error-repeated"

    def test_converged_stops(self, clock):
        """Test that resolved errors stop the session."""
        detector = ConvergenceDetector()
        detector.record(0)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.STOP
        assert decision.reason == "All errors resolved"

    def test_oscillation_escalates(self, clock):
        """Test that oscillating counts escalate to a human."""
        detector = ConvergenceDetector()
        for count in [1, 4, 2, 5]:
            detector.record(count)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.ESCALATE
        assert decision.details["history"] == [1, 4, 2, 5]
        assert decision.reason == "Error counts oscillating - cannot converge"

    def test_degrading_escalates(self, clock):
        """Test that a rising error count escalates after one worse attempt."""
        detector = ConvergenceDetector()
        detector.record(1)
        detector.record(2)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.ESCALATE
        assert decision.reason == "Error count increasing - fixes are making things worse"

    def test_degrading_checked_before_stagnation(self, clock):
        """Test that a degrading history is reported as degrading, not stagnating."""
        detector = ConvergenceDetector()
        for count in [1, 2, 3]:
            detector.record(count)
        assert detector.stagnation_count == 2
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.reason == "Error count increasing - fixes are making things worse"

    def test_stagnation_escalates_after_two_attempts(self, clock):
        """Test that two attempts without improvement escalate."""
        detector = ConvergenceDetector()
        detector.record(3)
        detector.record(3)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.CONTINUE
        assert decision.reason == "Trend is stagnating"

        detector.record(3)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.ESCALATE
        assert decision.reason == "No improvement in last 2 attempts - stagnating"
        assert decision.details["stagnation_count"] == 2

    def test_otherwise_continue(self, clock):
        """Test that other trends continue with the trend named."""
        detector = ConvergenceDetector()
        detector.record(4)
        detector.record(3)
        decision = analyze_progress(HealingCircuitBreaker(clock=clock), detector)
        assert decision.action == ProgressAction.CONTINUE
        assert decision.reason == "Trend is improving"
        assert decision.details["improvement_percent"] == 25.0


class TestVerifyResult:
    """Tests for error fingerprints and verify result parsing."""

    def test_fingerprint_ignores_volatile_parts(self):
        """Test that numbers and quoted values do not change the fingerprint."""
        first = error_fingerprint("Timeout 5000ms exceeded waiting for '#save'")
        second = error_fingerprint("Timeout 30000ms exceeded waiting for \"#submit\"")
        assert first == second
        assert error_fingerprint("Element is detached") != first

    def test_normalize(self):
        """Test the normalized message form."""
        assert normalize_error_message("Found  3 items in 'list'") == "found <n> items in <str>"

    def test_from_dict(self):
        """Test parsing the camelCase verify report."""
        result = VerifyResult.from_dict({
            "status": "failed",
            "failures": {
                "tests": [{"error": "locator not found"}, "timed out"],
                "classifications": {"login works": {"category": "selector", "confidence": 0.8}},
            },
            "reportPath": "report.json",
        })
        assert not result.passed
        assert result.error_count == 2
        assert result.first_error == "locator not found"
        assert result.first_classification().category == FailureCategory.SELECTOR
        assert result.error_fingerprints() == [
            error_fingerprint("locator not found"),
            error_fingerprint("timed out"),
        ]
        assert result.report_path == "report.json"

    def test_explicit_fingerprints(self):
        """Test that runner-supplied fingerprints are used when complete."""
        result = VerifyResult.from_dict({
            "status": "failed",
            "failures": {"tests": [{"error": "x", "fingerprint": "fp-1"}]},
        })
        assert result.error_fingerprints() == ["fp-1"]

    def test_failed_without_messages_counts_one(self):
        """Test that a failed run with no messages still counts one error."""
        assert VerifyResult(status="failed").error_count == 1
        assert VerifyResult.passed_result().error_count == 0
