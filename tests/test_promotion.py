"""Tests for mender.learning.promotion and trigger generation."""

import json
import re

import pytest

from mender.core.config import PromotionCriteria
from mender.learning.primitives import Primitive, PrimitiveType
from mender.learning.promotion import (
    analyze_for_promotion,
    analyze_patterns,
    build_definition,
    describe_extraction,
    estimate_uses_needed,
    export_promotion_report,
    generate_pattern_name,
    generate_promoted_code,
    meets_criteria,
    promote_patterns,
    promotion_stats,
)
from mender.learning.triggers import generate_regex_from_text


class TestMeetsCriteria:
    """Tests for meets_criteria at and around each threshold."""

    def test_all_thresholds_at_boundary(self, make_pattern):
        """Test that values exactly at every boundary are promotable."""
        pattern = make_pattern(confidence=0.9, success_count=5, fail_count=0, journeys=2)
        check = meets_criteria(pattern)
        assert check.meets
        assert check.missing_criteria == []

    def test_fail_count_at_limit(self, make_pattern):
        """Test that exactly max_fail_count failures still passes."""
        pattern = make_pattern(confidence=0.93, success_count=20, fail_count=2, journeys=3)
        assert meets_criteria(pattern).meets

    def test_fail_count_over_limit(self, make_pattern):
        """Test that one failure too many is reported."""
        pattern = make_pattern(confidence=0.93, success_count=40, fail_count=3, journeys=3)
        check = meets_criteria(pattern)
        assert not check.meets
        assert check.missing_criteria == ["failCount: 3 > 2"]

    def test_confidence_below(self, make_pattern):
        """Test the confidence message format."""
        check = meets_criteria(make_pattern(confidence=0.85))
        assert check.missing_criteria == ["confidence: 85.0% < 90.0%"]

    def test_success_count_below(self, make_pattern):
        """Test the success count message format."""
        check = meets_criteria(make_pattern(success_count=4))
        assert check.missing_criteria == ["successCount: 4 < 5"]

    def test_single_journey(self, make_pattern):
        """Test that provenance from one journey is not enough."""
        check = meets_criteria(make_pattern(journeys=1))
        assert check.missing_criteria == ["sourceJourneys: 1 < 2"]

    def test_success_rate_at_boundary(self, make_pattern):
        """Test that a success rate exactly at the minimum passes."""
        criteria = PromotionCriteria(max_fail_count=10)
        pattern = make_pattern(confidence=0.95, success_count=17, fail_count=3)
        assert meets_criteria(pattern, criteria).meets

    def test_success_rate_below(self, make_pattern):
        """Test the success rate message format."""
        criteria = PromotionCriteria(max_fail_count=10)
        pattern = make_pattern(confidence=0.95, success_count=8, fail_count=2)
        check = meets_criteria(pattern, criteria)
        assert check.missing_criteria == ["successRate: 80.0% < 85.0%"]

    def test_custom_criteria(self, make_pattern):
        """Test that custom thresholds are honored."""
        pattern = make_pattern(confidence=0.75, success_count=3, journeys=1)
        criteria = PromotionCriteria(min_confidence=0.7, min_success_count=3, min_source_journeys=1)
        assert meets_criteria(pattern, criteria).meets


class TestAnalyzePatterns:
    """Tests for analyze_patterns."""

    def test_classification(self, make_pattern):
        """Test the promotable, near-promotion and needs-more-data buckets."""
        ready = make_pattern("Click the Save button", confidence=0.95, success_count=10)
        near = make_pattern("Open the menu", confidence=0.8, success_count=4, journeys=2)
        fresh = make_pattern("Close the dialog", confidence=0.5, success_count=1, journeys=1)
        done = make_pattern("Log out", promoted_to_core=True)

        report = analyze_patterns([ready, near, fresh, done])

        assert report.total_patterns == 4
        assert [d.pattern_id for d in report.promotable] == [ready.id]
        assert [n.pattern.id for n in report.near_promotion] == [near.id]
        assert report.near_promotion[0].missing_criteria == [
            "confidence: 80.0% < 90.0%",
            "successCount: 4 < 5",
        ]
        assert report.near_promotion[0].estimated_uses_needed == 1
        assert report.stats.already_promoted == 1
        assert report.stats.eligible_for_promotion == 1
        assert report.stats.near_promotion == 1
        assert report.stats.needs_more_data == 1

    def test_promotable_sorted_by_priority(self, make_pattern):
        """Test that definitions are ordered by successes times confidence."""
        low = make_pattern("a first step", confidence=0.9, success_count=5)
        high = make_pattern("a second step", confidence=0.95, success_count=30)
        report = analyze_patterns([low, high])
        assert [d.pattern_id for d in report.promotable] == [high.id, low.id]

    def test_report_to_dict(self, make_pattern):
        """Test that the report serializes to JSON-compatible data."""
        report = analyze_patterns([make_pattern(), make_pattern("Open menu", success_count=3)])
        data = json.loads(json.dumps(report.to_dict()))
        assert data["total_patterns"] == 2
        assert data["stats"]["eligible_for_promotion"] == 1
        assert data["near_promotion"][0]["missing_criteria"] == ["successCount: 3 < 5"]


class TestEstimateUsesNeeded:
    """Tests for estimate_uses_needed."""

    def test_never_below_one(self, make_pattern):
        """Test that even a ready pattern needs at least one more use."""
        assert estimate_uses_needed(make_pattern(success_count=50)) == 1

    def test_success_gap(self, make_pattern):
        """Test that the success-count gap drives the estimate."""
        assert estimate_uses_needed(make_pattern(success_count=2)) == 3

    def test_failures_raise_estimate(self, make_pattern):
        """Test that failures inflate the confidence-driven target."""
        pattern = make_pattern(confidence=0.6, success_count=5, fail_count=5)
        assert estimate_uses_needed(pattern) == 5


class TestDefinitions:
    """Tests for names, triggers and extraction descriptions."""

    def test_pattern_name(self):
        """Test the deterministic name format."""
        name = generate_pattern_name('Click the "Save" button', "click")
        assert name == "llkb-click-clickTheSaveButton"

    def test_pattern_name_deterministic(self):
        """Test that the same input always gives the same name."""
        assert generate_pattern_name("Open menu", "click") == generate_pattern_name(
            "Open menu", "click"
        )

    def test_regex_from_text(self):
        """Test that quoted values become groups and fillers become optional."""
        regex = generate_regex_from_text('User clicks the "Save" button')
        assert regex == '^(?:user\\s+)?clicks? (?:the\\s+)?"([^"]+)" button$'

        compiled = re.compile(regex, re.IGNORECASE)
        match = compiled.match('click "Cancel" button')
        assert match is not None
        assert match.group(1) == "Cancel"
        assert compiled.match('user clicks the "Save" button')

    @pytest.mark.parametrize(
        "primitive_type", [t.value for t in PrimitiveType if t is not PrimitiveType.BLOCKED]
    )
    def test_every_type_has_extraction(self, primitive_type):
        """Test that every primitive type gets a non-blocked description."""
        assert not describe_extraction(primitive_type).startswith("blocked:")

    def test_unknown_type_is_blocked(self):
        """Test that unknown types produce an explicit blocked description."""
        assert describe_extraction("drag") == "blocked: Unknown type: drag"

    def test_blocked_definition(self, make_pattern):
        """Test that a blocked primitive is carried through as blocked."""
        pattern = make_pattern("Drag the card", mapped_primitive=Primitive.blocked("drag"))
        definition = build_definition(pattern)
        assert definition.extraction == "blocked: Unknown type: drag"

        code = generate_promoted_code([definition])
        assert "'blocked'" in code
        assert "'Unknown type: drag'" in code

    def test_generated_code(self, make_pattern):
        """Test that promotable definitions render as a reviewable module."""
        definition = build_definition(make_pattern('Click the "Save" button'))
        code = generate_promoted_code([definition])
        assert "PROMOTED_PATTERNS = [" in code
        assert definition.name in code
        assert "re.compile(" in code
        compile(code, "<promoted>", "exec")

    def test_generated_code_empty(self):
        """Test the placeholder when nothing is promotable."""
        assert generate_promoted_code([]) == "# No patterns ready for promotion\n"


class TestStoreOperations:
    """Tests for promotion against a pattern store."""

    def test_promote_all_eligible(self, store, make_pattern):
        """Test that only eligible patterns are promoted."""
        ready = make_pattern("Click the Save button")
        weak = make_pattern("Open the menu", confidence=0.6)
        store.save_learned([ready, weak])

        outcome = promote_patterns(store)
        assert outcome.promoted == [ready.id]
        assert outcome.skipped == [weak.id]
        assert store.find("Click the Save button").promoted_to_core

    def test_promote_selected(self, store, make_pattern):
        """Test that an id list restricts promotion."""
        first = make_pattern("Click the Save button")
        second = make_pattern("Click the Cancel button")
        store.save_learned([first, second])

        outcome = promote_patterns(store, [second.id])
        assert outcome.promoted == [second.id]
        assert not store.find("Click the Save button").promoted_to_core

    def test_promote_legacy_record_without_id(self, store):
        """Test that a legacy record stored without an id is promoted and stays promoted."""
        store.learned_path.parent.mkdir(parents=True)
        store.learned_path.write_text(json.dumps({"patterns": [{
            "originalText": "Click the Save button",
            "irPrimitive": "click",
            "confidence": 0.95,
            "successCount": 40,
            "sourceJourneys": ["JRN-0001", "JRN-0002"],
        }]}), encoding="utf-8")

        outcome = promote_patterns(store)
        assert len(outcome.promoted) == 1
        assert outcome.skipped == []
        raw = json.loads(store.learned_path.read_text())["patterns"][0]
        assert raw["promotedToCore"] is True
        assert raw["id"] == outcome.promoted[0]
        assert promote_patterns(store).promoted == []

    def test_analyze_and_stats(self, store, make_pattern):
        """Test analysis and stats read from the store."""
        store.save_learned([
            make_pattern("Click the Save button"),
            make_pattern("Open the menu", promoted_to_core=True),
            make_pattern("Close the dialog", confidence=0.3, success_count=1, journeys=1),
            make_pattern("Log out", confidence=0.5, success_count=1, journeys=1),
        ])
        report = analyze_for_promotion(store)
        assert report.stats.eligible_for_promotion == 1

        stats = promotion_stats(store)
        assert stats.total == 4
        assert stats.promoted == 1
        assert stats.promotable == 1
        assert stats.needs_work == 2
        assert stats.promotion_rate == 0.5

    def test_export_report(self, tmp_path, make_pattern):
        """Test that the report and generated module are written."""
        report = analyze_patterns([make_pattern()])
        exported = export_promotion_report(report, tmp_path / "reports")

        assert exported.report_path.exists()
        assert json.loads(exported.report_path.read_text())["total_patterns"] == 1
        assert exported.code_path is not None
        assert "PROMOTED_PATTERNS" in exported.code_path.read_text()

    def test_export_report_nothing_promotable(self, tmp_path, make_pattern):
        """Test that no module is written when nothing is promotable."""
        report = analyze_patterns([make_pattern(confidence=0.2)])
        exported = export_promotion_report(report, tmp_path)
        assert exported.code_path is None
