"""Tests for mender.learning.matcher."""

import json

import pytest

from mender.core.config import MatchOptions
from mender.learning.matcher import PatternMatcher, match_pattern
from mender.learning.primitives import Primitive, PrimitiveType
from mender.learning.similarity import calculate_similarity


def _discovered(pattern_id: str, text: str, confidence: float, layer: str, tag: str = "click"):
    return {
        "id": pattern_id,
        "originalText": text,
        "mappedPrimitive": tag,
        "confidence": confidence,
        "layer": layer,
        "selectorHints": [{"strategy": "data-testid", "value": pattern_id, "confidence": 1.0}],
    }


@pytest.fixture
def write_discovered(store):
    def _write(*patterns):
        store.discovered_path.parent.mkdir(parents=True, exist_ok=True)
        store.discovered_path.write_text(
            json.dumps({"version": "1.0.0", "patterns": list(patterns)}), encoding="utf-8"
        )

    return _write


class TestLearnedMatching:
    """Tests for matching against learned patterns."""

    def test_exact_match(self, store, make_pattern):
        """Test that an exact normalized hit returns the stored confidence."""
        pattern = make_pattern("Click the Save button", confidence=0.8)
        store.save_learned([pattern])

        match = PatternMatcher(store).match("  click THE save   button")
        assert match is not None
        assert match.pattern_id == pattern.id
        assert match.source == "learned"
        assert match.confidence == 0.8
        assert match.is_exact

    def test_fuzzy_match_scales_confidence(self, store, make_pattern):
        """Test that fuzzy hits report confidence times similarity."""
        store.save_learned([make_pattern("click the save button", confidence=0.9)])

        match = match_pattern(store, "click save button")
        expected_similarity = calculate_similarity("click save button", "click the save button")
        assert match is not None
        assert match.similarity == pytest.approx(expected_similarity)
        assert match.confidence == pytest.approx(0.9 * expected_similarity)
        assert not match.is_exact

    def test_fuzzy_disabled(self, store, make_pattern):
        """Test that use_fuzzy=False only returns exact hits."""
        store.save_learned([make_pattern("click the save button", confidence=0.9)])
        options = MatchOptions(use_fuzzy=False)
        assert match_pattern(store, "click save button", options) is None

    def test_below_similarity_threshold(self, store, make_pattern):
        """Test that dissimilar text does not match."""
        store.save_learned([make_pattern("click the save button", confidence=0.9)])
        assert match_pattern(store, "wait for the dashboard") is None

    def test_promoted_patterns_skipped(self, store, make_pattern):
        """Test that promoted patterns never match."""
        store.save_learned([make_pattern("Click Save", confidence=0.99, promoted_to_core=True)])
        assert match_pattern(store, "Click Save") is None

    def test_low_confidence_skipped(self, store, make_pattern):
        """Test that patterns below min_confidence never match."""
        store.save_learned([make_pattern("Click Save", confidence=0.4)])
        assert match_pattern(store, "Click Save") is None
        assert match_pattern(store, "Click Save", MatchOptions(min_confidence=0.3)) is not None

    def test_blocked_primitives_skipped(self, store, make_pattern):
        """Test that blocked primitives are never returned."""
        store.save_learned([
            make_pattern("Drag the card", confidence=0.9, mapped_primitive=Primitive.blocked("drag"))
        ])
        assert match_pattern(store, "Drag the card") is None

    def test_empty_text(self, store, make_pattern):
        """Test that blank input matches nothing."""
        store.save_learned([make_pattern("Click Save")])
        assert match_pattern(store, "   ") is None

    def test_no_patterns(self, store):
        """Test that an empty store matches nothing."""
        assert PatternMatcher(store).match("Click Save") is None


class TestDiscoveredMatching:
    """Tests for matching against discovered patterns."""

    def test_layer_beats_confidence(self, store, write_discovered):
        """Test that an app-specific exact hit outranks a more confident universal one."""
        write_discovered(
            _discovered("DP-UNI", "Open the menu", 0.9, "universal"),
            _discovered("DP-APP", "Open the menu", 0.6, "app-specific"),
        )
        match = match_pattern(store, "open the menu")
        assert match.pattern_id == "DP-APP"
        assert match.layer == "app-specific"
        assert match.source == "discovered"
        assert match.confidence == 0.6

    def test_confidence_breaks_layer_ties(self, store, write_discovered):
        """Test that within a layer the more confident pattern wins."""
        write_discovered(
            _discovered("DP-A", "Open the menu", 0.7, "framework"),
            _discovered("DP-B", "Open the menu", 0.8, "framework"),
        )
        assert match_pattern(store, "Open the menu").pattern_id == "DP-B"

    def test_exact_beats_fuzzy_across_layers(self, store, write_discovered):
        """Test that an exact universal hit beats a fuzzy app-specific one."""
        write_discovered(
            _discovered("DP-UNI", "Open the menu", 0.7, "universal"),
            _discovered("DP-APP", "Open the main menu", 0.95, "app-specific"),
        )
        match = match_pattern(store, "Open the menu")
        assert match.pattern_id == "DP-UNI"
        assert match.is_exact

    def test_fuzzy_prefers_layer(self, store, write_discovered):
        """Test that fuzzy hits rank by layer before similarity."""
        write_discovered(
            _discovered("DP-UNI", "open the menus", 0.9, "universal"),
            _discovered("DP-FW", "open the menu now", 0.9, "framework"),
        )
        match = match_pattern(store, "open the menu")
        assert match.pattern_id == "DP-FW"
        assert match.similarity < 1.0

    def test_reconstructed_primitive(self, store, write_discovered):
        """Test that tag-only discovered patterns come back as rich primitives."""
        write_discovered(_discovered("DP-1", "Open the menu", 0.9, "framework"))
        match = match_pattern(store, "Open the menu")
        assert match.primitive.type is PrimitiveType.CLICK
        assert match.primitive.locator == {"strategy": "testid", "value": "DP-1"}

    def test_blocked_discovered_skipped(self, store, write_discovered):
        """Test that discovered patterns with unmappable tags never match."""
        write_discovered(_discovered("DP-1", "Drag the card", 0.9, "framework", tag="drag"))
        assert match_pattern(store, "Drag the card") is None


class TestCombinedMatching:
    """Tests for choosing between learned and discovered matches."""

    def test_discovered_wins_when_at_least_as_confident(
        self, store, make_pattern, write_discovered
    ):
        """Test that a tie goes to the discovered match."""
        store.save_learned([make_pattern("Open the menu", confidence=0.8)])
        write_discovered(_discovered("DP-1", "Open the menu", 0.8, "universal"))
        assert match_pattern(store, "Open the menu").source == "discovered"

    def test_learned_wins_when_more_confident(self, store, make_pattern, write_discovered):
        """Test that a more confident learned match is kept."""
        store.save_learned([make_pattern("Open the menu", confidence=0.9)])
        write_discovered(_discovered("DP-1", "Open the menu", 0.8, "app-specific"))
        assert match_pattern(store, "Open the menu").source == "learned"

    def test_learned_only(self, store, make_pattern, write_discovered):
        """Test that a learned hit is returned when discovery has nothing."""
        store.save_learned([make_pattern("Open the menu", confidence=0.9)])
        write_discovered(_discovered("DP-1", "Close the dialog", 0.8, "app-specific"))
        assert match_pattern(store, "Open the menu").source == "learned"
