"""Tests for log redaction and request IDs."""

import pytest

from unbuilt.core.logging import mask_email, redact_sensitive


class TestRedaction:
    """Tests for secret redaction in log events."""

    def test_secret_keys(self):
        event = redact_sensitive({"password": "hunter22", "refresh_token": "abc", "user_id": "u1"})

        assert event == {"password": "[REDACTED]", "refresh_token": "[REDACTED]", "user_id": "u1"}

    def test_token_counters_are_kept(self):
        assert redact_sensitive({"tokens_used": 150})["tokens_used"] == 150

    def test_inline_secrets(self):
        """Secrets inside free text are replaced, the rest is kept."""
        text = redact_sensitive("GET /ws/plans?token=eyJabc.def&plan=1 with Bearer eyJxyz")

        assert text == "GET /ws/plans?token=[REDACTED]&plan=1 with Bearer [REDACTED]"

    def test_nested_values(self):
        event = redact_sensitive({"details": [{"api_key": "sk-ant-123"}, "key sk-ant-abc-def"]})

        assert event == {"details": [{"api_key": "[REDACTED]"}, "key sk-ant-[REDACTED]"]}

    @pytest.mark.parametrize("value,masked", [
        ("founder@example.com", "f***@example.com"),
        ("@example.com", "[REDACTED]"),
        ("not-an-email", "[REDACTED]"),
    ])
    def test_mask_email(self, value, masked):
        assert mask_email(value) == masked

    def test_email_key_is_masked(self):
        assert redact_sensitive({"email": "founder@example.com"}) == {"email": "f***@example.com"}


class TestRequestID:
    """Tests for the request ID middleware."""

    def test_generated_id(self, client):
        response = client.get("/")

        assert response.headers["x-request-id"]

    def test_incoming_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["x-request-id"] == "req-123"
