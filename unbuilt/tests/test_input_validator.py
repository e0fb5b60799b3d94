"""Tests for chat input validation."""

import pytest

from unbuilt.conversations.input_validator import InputValidator, MALICIOUS_CONTENT


@pytest.fixture
def validator():
    return InputValidator()


class TestValidate:
    """Tests for the ordered validation checks."""

    def test_empty(self, validator):
        result = validator.validate("   ")

        assert result.is_valid is False
        assert result.reason == "Message cannot be empty"

    def test_length_depends_on_tier(self, validator):
        """Free users get 500 characters, pro users 1000."""
        message = "x" * 501

        free = validator.validate(message, "free")
        assert free.is_valid is False
        assert "500" in free.reason
        assert len(free.sanitized) == 500

        assert validator.validate(message, "pro").is_valid is True

    def test_event_handler(self, validator):
        result = validator.validate('<img src=x onerror=alert(1)>')

        assert result.is_valid is False
        assert result.reason == MALICIOUS_CONTENT
        assert result.severity == "high"

    def test_bare_script_tag(self, validator):
        """A script with almost nothing around it is rejected."""
        result = validator.validate("<script>alert(1)</script>")

        assert result.is_valid is False
        assert result.severity == "high"

    @pytest.mark.parametrize("message", [
        "SELECT name FROM users",
        "javascript:alert(1)",
        "read ../../etc/passwd",
        "run this; rm everything",
    ])
    def test_malicious_patterns(self, validator, message):
        result = validator.validate(message)

        assert result.is_valid is False
        assert result.reason == MALICIOUS_CONTENT

    def test_suspicious_keyword(self, validator):
        """Manipulation phrases are rejected with medium severity."""
        result = validator.validate("Please act as my cofounder")

        assert result.is_valid is False
        assert result.severity == "medium"

    def test_html_is_stripped(self, validator):
        result = validator.validate("<b>Who</b> are the competitors?")

        assert result.is_valid is True
        assert result.sanitized == "Who are the competitors?"

    def test_whitespace_normalized(self, validator):
        """Runs of spaces collapse and blank lines are capped at one."""
        result = validator.validate("Line   one\n\n\n\nLine two  ")

        assert result.sanitized == "Line one\n\nLine two"

    def test_nothing_left_after_stripping(self, validator):
        result = validator.validate("<b></b>")

        assert result.is_valid is False
        assert result.reason == "Message contains no valid content after sanitization"


class TestHelpers:
    """Tests for repetition detection and display escaping."""

    def test_repeated_characters(self, validator):
        assert validator.detect_excessive_repetition("whaaaaaaaaaaaaat") is True

    def test_repeated_words(self, validator):
        assert validator.detect_excessive_repetition("market market market growth") is True

    def test_normal_text(self, validator):
        text = "Which distribution channels work best for selling premium coffee subscriptions online"
        assert validator.detect_excessive_repetition(text) is False

    def test_sanitize_for_display(self, validator):
        assert validator.sanitize_for_display("<a href='/x'>") == "&lt;a href=&#x27;&#x2F;x&#x27;&gt;"
