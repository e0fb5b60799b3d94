"""Tests for content moderation."""

import pytest

from unbuilt.conversations.moderation import ContentModerator


@pytest.fixture
def moderator():
    return ContentModerator()


class TestModerate:
    """Tests for moderating user messages."""

    def test_business_question_approved(self, moderator):
        result = moderator.moderate("How should I price a subscription for small bakeries?")

        assert result.approved is True
        assert result.categories == []
        assert result.severity == "low"

    def test_self_harm_is_critical(self, moderator):
        """Self harm blocks and requires review."""
        result = moderator.moderate("Sometimes I want to die")

        assert result.approved is False
        assert result.severity == "critical"
        assert result.requires_review is True
        assert "self_harm" in result.reason

    def test_scam_blocked(self, moderator):
        result = moderator.moderate("Act now and pay with a gift card")

        assert result.approved is False
        assert result.categories == ["scam"]
        assert result.severity == "high"

    def test_spam_is_flagged_but_approved(self, moderator):
        """Medium severity without review still passes."""
        result = moderator.moderate("Is this market real?????")

        assert result.approved is True
        assert result.categories == ["spam"]
        assert result.severity == "medium"

    def test_financial_advice_only_flags(self, moderator):
        """Investment talk is tagged without raising severity."""
        result = moderator.moderate("Should I invest in this idea myself?")

        assert result.approved is True
        assert result.categories == ["financial_advice"]
        assert result.severity == "low"

    def test_sexual_content_needs_review(self, moderator):
        """Medium severity with review is not approved."""
        result = moderator.moderate("A marketplace for nude photos")

        assert result.approved is False
        assert result.severity == "medium"


class TestAIResponses:
    """Tests for moderating generated replies."""

    def test_only_self_harm_and_violence_checked(self, moderator):
        """Spam-like replies are not blocked."""
        assert moderator.moderate_ai_response("Click here for LIMITED TIME offers!!!!!").approved is True

    def test_violence_blocked(self, moderator):
        result = moderator.moderate_ai_response("They were planning to attack the site")

        assert result.approved is False
        assert result.categories == ["violence"]
        assert result.requires_review is True


class TestReports:
    """Tests for message reports."""

    @pytest.mark.parametrize("category,severity", [
        ("harmful", "critical"),
        ("inappropriate", "high"),
        ("inaccurate", "medium"),
        ("spam", "medium"),
        ("other", "low"),
        ("unknown", "low"),
    ])
    def test_category_severity(self, moderator, category, severity):
        assert moderator.category_severity(category) == severity

    def test_report_message(self, moderator):
        """Reports return an id that names the message."""
        report = moderator.report_message("msg-1", "user-1", "harmful", "Dangerous advice")

        assert report["success"] is True
        assert report["report_id"].startswith("report_")
        assert report["report_id"].endswith("_msg-1")
        assert report["severity"] == "critical"
