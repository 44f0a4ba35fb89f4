"""
Unit tests for lexical contradiction detection.

The conflict sweep uses classify_contradiction on memory pairs that already
share an entity, so similarity defaults to 1.0 here.
"""

from graph_memory.utils.interference import (
    classify_contradiction,
    detect_contradiction_signals,
)


class TestNegation:
    def test_negation_asymmetry(self):
        signals = detect_contradiction_signals(
            "Tarun works at Google in London",
            "Tarun never worked at Google in London",
        )
        assert "negation" in [s.signal_type for s in signals]

    def test_both_negated_is_not_asymmetric(self):
        signals = detect_contradiction_signals("Bob does not drink coffee", "Bob does not drink tea")
        assert "negation" not in [s.signal_type for s in signals]

    def test_contractions_count_as_negation(self):
        signals = detect_contradiction_signals("Maya likes sushi for dinner", "Maya doesn't like sushi for dinner")
        assert "negation" in [s.signal_type for s in signals]


class TestAntonyms:
    def test_antonym_pair(self):
        signals = detect_contradiction_signals("The user prefers dark mode", "The user prefers light mode")
        antonym = [s for s in signals if s.signal_type == "antonym"]
        assert antonym
        assert "dark vs light" in antonym[0].detail

    def test_text_mentioning_both_states_ignored(self):
        signals = detect_contradiction_signals(
            "Notifications can be enabled or disabled in settings",
            "Notifications are disabled for this account",
        )
        assert "antonym" not in [s.signal_type for s in signals]

    def test_preference_flip(self):
        assert "antonym" in classify_contradiction("Sam loves jazz concerts", "Sam hates jazz concerts")


class TestTemporal:
    def test_supersession_in_either_text(self):
        assert "temporal" in classify_contradiction("Alice lives in Berlin", "Alice no longer lives in Berlin")
        assert "temporal" in classify_contradiction("Alice moved to Paris last spring", "Alice lives in Berlin")


class TestClassifier:
    def test_unrelated_statements_not_flagged(self):
        assert classify_contradiction("Alice lives in Berlin", "Alice has two cats") == []

    def test_empty_text(self):
        assert detect_contradiction_signals("", "anything") == []

    def test_low_similarity_suppresses_signals(self):
        signals = detect_contradiction_signals("The user prefers dark mode", "The user prefers light mode", similarity=0.2)
        assert signals == []
