"""Tests for authentication module."""

import pytest
from datetime import datetime, timedelta

from fastapi import HTTPException

from unbuilt.core.auth import (
    AuthContext,
    authenticate_user,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    register_user,
    verify_password,
)
from unbuilt.core.config import settings
from unbuilt.core.errors import AccountLocked, AuthenticationFailed, ConflictError


class TestJWTTokens:
    """Tests for JWT token functions."""

    def test_create_access_token_returns_string(self):
        """Access token should be a string."""
        token = create_access_token("user-123", "a@example.com", "free")
        assert isinstance(token, str)
        assert len(token) > 0

    def test_decode_access_token(self):
        """Should be able to decode a valid access token."""
        token = create_access_token("user-123", "a@example.com", "pro")
        payload = decode_token(token)

        assert payload.sub == "user-123"
        assert payload.email == "a@example.com"
        assert payload.plan == "pro"
        assert payload.type == "access"

    def test_create_refresh_token(self):
        """Refresh token should be decodable and carry no plan."""
        payload = decode_token(create_refresh_token("user-123"))

        assert payload.sub == "user-123"
        assert payload.type == "refresh"
        assert payload.plan is None

    def test_refresh_tokens_are_unique(self):
        """Two refresh tokens issued back to back should differ."""
        assert create_refresh_token("user-123") != create_refresh_token("user-123")

    def test_decode_invalid_token_raises_exception(self):
        """Invalid tokens should raise HTTPException."""
        with pytest.raises(HTTPException) as exc_info:
            decode_token("invalid-token")

        assert exc_info.value.status_code == 401


class TestTokenExpiration:
    """Tests for token expiration."""

    def test_access_token_has_expiration(self):
        """Access token should have expiration time."""
        payload = decode_token(create_access_token("user", "a@example.com", "free"))

        assert payload.exp is not None
        assert payload.exp.replace(tzinfo=None) > datetime.utcnow()

    def test_refresh_token_expires_later(self):
        """Refresh token should expire later than access token."""
        access_payload = decode_token(create_access_token("user", "a@example.com", "free"))
        refresh_payload = decode_token(create_refresh_token("user"))

        assert refresh_payload.exp > access_payload.exp


class TestPasswordHashing:
    """Tests for PBKDF2 password hashes."""

    def test_hash_round_trip(self):
        """The original password verifies, a different one does not."""
        stored = hash_password("s3cret-password", iterations=1000)

        assert verify_password("s3cret-password", stored) is True
        assert verify_password("wrong-password", stored) is False

    def test_hashes_are_salted(self):
        """Hashing the same password twice gives different strings."""
        assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)

    def test_malformed_hash_does_not_verify(self):
        """Garbage or foreign-scheme hashes are rejected."""
        assert verify_password("x", "not-a-hash") is False
        assert verify_password("x", "bcrypt$1000$abc$def") is False


class TestAuthContext:
    """Tests for AuthContext class."""

    def test_tier_normalizes_legacy_plans(self):
        """Legacy plan names map onto current tiers."""
        assert AuthContext(user_id="u", email="e", plan="business").tier == "enterprise"
        assert AuthContext(user_id="u", email="e", plan="premium").tier == "pro"
        assert AuthContext(user_id="u", email="e", plan="unknown").tier == "free"

    def test_defaults(self):
        """Default values should be set correctly."""
        ctx = AuthContext(user_id="u", email="e")

        assert ctx.plan == "free"
        assert ctx.is_admin is False


class TestRegistration:
    """Tests for account creation."""

    def test_register_normalizes_email(self, db_session):
        """Emails are stored trimmed and lowercased on the free plan."""
        user = register_user(db_session, "  Founder@Example.COM ", "long-enough-password")

        assert user.email == "founder@example.com"
        assert user.plan == "free"
        assert user.search_count == 0

    def test_duplicate_email_conflicts(self, db_session):
        """A second account with the same email is rejected."""
        register_user(db_session, "dup@example.com", "long-enough-password")

        with pytest.raises(ConflictError):
            register_user(db_session, "DUP@example.com", "another-password")


class TestLockout:
    """Tests for failed-login lockout."""

    def test_successful_login_resets_counter(self, db_session, user):
        """A correct password clears earlier failures and stamps last_login."""
        user.failed_login_attempts = 2

        authenticated = authenticate_user(db_session, user.email, "correct-horse-battery")

        assert authenticated.failed_login_attempts == 0
        assert authenticated.last_login is not None

    def test_wrong_password_reports_remaining_attempts(self, db_session, user):
        """Each failure counts down the remaining attempts."""
        with pytest.raises(AuthenticationFailed) as exc_info:
            authenticate_user(db_session, user.email, "wrong")

        assert user.failed_login_attempts == 1
        assert exc_info.value.details["remaining_attempts"] == settings.max_failed_logins - 1

    def test_account_locks_at_threshold(self, db_session, user):
        """The threshold failure locks the account, after which even the right password is refused."""
        for _ in range(settings.max_failed_logins):
            with pytest.raises(AuthenticationFailed):
                authenticate_user(db_session, user.email, "wrong")

        assert user.account_locked is True
        assert user.lockout_expires > datetime.utcnow()

        with pytest.raises(AccountLocked):
            authenticate_user(db_session, user.email, "correct-horse-battery")

    def test_expired_lockout_unlocks(self, db_session, user):
        """A lock whose expiry has passed is lifted on the next login."""
        user.account_locked = True
        user.failed_login_attempts = settings.max_failed_logins
        user.lockout_expires = datetime.utcnow() - timedelta(minutes=1)

        authenticated = authenticate_user(db_session, user.email, "correct-horse-battery")

        assert authenticated.account_locked is False
        assert authenticated.lockout_expires is None

    def test_unknown_email_fails_generically(self, db_session):
        """Unknown accounts get the same error as bad passwords."""
        with pytest.raises(AuthenticationFailed) as exc_info:
            authenticate_user(db_session, "nobody@example.com", "whatever")

        assert exc_info.value.message == "Invalid email or password"
