"""Tests for suggested question generation."""

from types import SimpleNamespace

from unbuilt.conversations.questions import (
    AnalysisData,
    GeneratedQuestion,
    are_similar_questions,
    deduplicate_questions,
    discussed_topics,
    filter_existing_questions,
    generate_follow_up_questions,
    generate_initial_questions,
)


def msg(content, role="user"):
    return SimpleNamespace(role=role, content=content)


class TestInitialQuestions:
    """Tests for the first suggestions of a conversation."""

    def test_default_mix(self):
        """Market validation leads, and every category but one extra appears."""
        questions = generate_initial_questions(AnalysisData(query="pet care"))

        assert len(questions) == 5
        assert [q.category for q in questions] == [
            "market_validation",
            "market_validation",
            "execution_strategy",
            "competitive_analysis",
            "risk_assessment",
        ]
        assert [q.priority for q in questions] == [90, 85, 80, 75, 70]

    def test_low_feasibility_raises_risk(self):
        """Low feasibility adds a second, higher-priority risk question."""
        questions = generate_initial_questions(AnalysisData(query="fusion", feasibility_rating="low"))

        categories = [q.category for q in questions]
        assert categories.count("risk_assessment") == 2
        assert "competitive_analysis" not in categories

    def test_relevance_uses_innovation_score(self):
        questions = generate_initial_questions(AnalysisData(query="x", innovation_score=90))

        market = [q for q in questions if q.category == "market_validation"]
        assert market[0].priority == 100
        assert market[0].relevance_score == 77.0


class TestFollowUps:
    """Tests for follow-up suggestions."""

    def test_topic_counts(self):
        topics = discussed_topics([msg("Who is the main competitor in this market?")])

        assert topics["market_validation"] == 1
        assert topics["competitive_analysis"] == 1
        assert topics["risk_assessment"] == 0

    def test_untouched_categories_preferred(self):
        """Once the market is discussed, other categories move ahead."""
        analysis = AnalysisData(query="pet care", top_gaps=[{"title": "Pet telehealth"}])

        questions = generate_follow_up_questions(analysis, [msg("What about the market?")])

        assert "market_validation" not in {q.category for q in questions}
        assert questions[0].category == "execution_strategy"
        assert "Pet telehealth" in questions[0].text

    def test_heavily_discussed_category_skipped(self):
        analysis = AnalysisData(query="pet care")
        history = [msg("competitor competition advantage differentiation")]

        questions = generate_follow_up_questions(analysis, history)

        assert "competitive_analysis" not in {q.category for q in questions}

    def test_already_asked_question_skipped(self):
        """Templates close to a user's earlier question are not suggested again."""
        analysis = AnalysisData(query="pet care")
        history = [msg("What's the minimum viable product for this opportunity?")]

        texts = [q.text for q in generate_follow_up_questions(analysis, history)]

        assert "What's the minimum viable product for this opportunity?" not in texts


class TestDeduplication:
    """Tests for suggestion deduplication."""

    def test_similar_questions(self):
        assert are_similar_questions("What is the market size?", "What's the market size?") is True
        assert are_similar_questions("What is the market size?", "Who should I hire first?") is False

    def test_deduplicate_keeps_first(self):
        questions = [
            GeneratedQuestion("What is the market size?", "market_validation", 90),
            GeneratedQuestion("What's the market size?", "market_validation", 80),
            GeneratedQuestion("Who should I hire first?", "execution_strategy", 70),
        ]

        assert [q.priority for q in deduplicate_questions(questions)] == [90, 70]

    def test_filter_existing(self):
        questions = [GeneratedQuestion("What is the market size?", "market_validation", 90)]

        assert filter_existing_questions(questions, ["What's the market size?"]) == []
