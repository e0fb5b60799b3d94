"""Tests for near-duplicate question detection."""

from types import SimpleNamespace

import pytest

from unbuilt.conversations.deduplication import (
    QueryDeduplicator,
    calculate_similarity,
    cosine_similarity,
    jaccard_similarity,
    tokenize,
)


def msg(role, content):
    return SimpleNamespace(role=role, content=content)


class TestSimilarity:
    """Tests for the text similarity measures."""

    def test_tokenize_drops_punctuation_and_single_letters(self):
        assert tokenize("What's a TAM, really?") == ["what", "tam", "really"]

    def test_identical_text(self):
        assert calculate_similarity("How big is the market?", "how big is the market") == 1.0

    def test_unrelated_text(self):
        assert calculate_similarity("pricing strategy", "hiring engineers") == 0.0

    def test_partial_overlap(self):
        """Half-overlapping word sets sit between the extremes."""
        a, b = "market size estimate", "market size competitors"

        assert jaccard_similarity(a, b) == pytest.approx(0.5)
        assert cosine_similarity(a, b) == pytest.approx(2 / 3)
        # Mean above the boost threshold is scaled up
        assert calculate_similarity(a, b) == pytest.approx((0.5 + 2 / 3) / 2 * 1.32)

    def test_empty_text(self):
        assert calculate_similarity("", "") == 0.0


class TestQueryDeduplicator:
    """Tests for finding reusable answers."""

    def test_returns_following_assistant_reply(self):
        dedup = QueryDeduplicator()
        history = [
            msg("user", "How big is the market?"),
            msg("assistant", "About $2B."),
        ]

        match = dedup.find_similar("how big is the market", history)

        assert match.cached_response == "About $2B."
        assert match.matched_query == "How big is the market?"
        assert match.similarity == 1.0

    def test_unanswered_question_is_ignored(self):
        """A matching question without a reply cannot be reused."""
        dedup = QueryDeduplicator()
        history = [msg("user", "How big is the market?")]

        assert dedup.find_similar("How big is the market?", history) is None

    def test_below_threshold(self):
        dedup = QueryDeduplicator()
        history = [msg("user", "Who are the competitors?"), msg("assistant", "Acme.")]

        assert dedup.find_similar("What should I charge?", history) is None

    def test_stats(self):
        """Hits, misses and savings are tracked."""
        dedup = QueryDeduplicator()
        history = [msg("user", "Who are the competitors?"), msg("assistant", "Acme.")]

        dedup.find_similar("Who are the competitors?", history)
        dedup.find_similar("Something else entirely", history)

        stats = dedup.stats()
        assert stats["total_queries"] == 2
        assert stats["cache_hits"] == 1
        assert stats["cache_misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["cost_savings"] == 0.05
