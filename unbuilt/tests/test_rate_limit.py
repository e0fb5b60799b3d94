"""Tests for request throttling, usage quotas and LLM cost."""

import time
from datetime import datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from unbuilt.core.errors import LimitExceeded
from unbuilt.core.rate_limit import (
    InMemoryRateLimiter,
    RateLimitMiddleware,
    calculate_cost,
)
from unbuilt.services.usage import (
    consume_export,
    consume_search,
    remaining_searches,
    reset_monthly_usage,
)


class TestInMemoryRateLimiter:
    """Tests for the sliding-window limiter."""

    def test_counts_down_remaining(self):
        limiter = InMemoryRateLimiter()

        results = [limiter.is_allowed("ip:10.0.0.1:POST:/api/search", 3) for _ in range(4)]

        assert results == [(True, 2), (True, 1), (True, 0), (False, 0)]

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter()
        for _ in range(3):
            limiter.is_allowed("ip:10.0.0.1:POST:/api/search", 3)

        assert limiter.is_allowed("ip:10.0.0.2:POST:/api/search", 3) == (True, 2)

    def test_expired_entries_leave_the_window(self):
        """Requests older than the window stop counting."""
        limiter = InMemoryRateLimiter()
        limiter.hits["login"].extend([time.time() - 120, time.time() - 61])

        assert limiter.is_allowed("login", 2) == (True, 1)

    def test_idle_callers_are_forgotten(self):
        """Keys with no hits inside the window are dropped on the next sweep."""
        limiter = InMemoryRateLimiter()
        limiter.hits["ip:10.0.0.9:GET /api/plans"].append(time.time() - 300)
        limiter.last_sweep = time.time() - 120

        limiter.is_allowed("ip:10.0.0.1:POST /api/search", 3)

        assert list(limiter.hits) == ["ip:10.0.0.1:POST /api/search"]

    def test_reset_clears_key(self):
        limiter = InMemoryRateLimiter()
        for _ in range(3):
            limiter.is_allowed("login", 3)

        limiter.reset("login")

        assert limiter.is_allowed("login", 3) == (True, 2)


class TestRateLimitMiddleware:
    """Tests for the middleware against a throwaway app."""

    @pytest.fixture
    def limited_client(self, monkeypatch):
        monkeypatch.setitem(RateLimitMiddleware.DEFAULT_LIMITS, "POST /api/search", 2)
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, use_redis=False)

        @app.post("/api/search")
        def search():
            return {"ok": True}

        @app.get("/health")
        def health():
            return {"status": "healthy"}

        return TestClient(app)

    def test_third_search_is_throttled(self, limited_client):
        first = limited_client.post("/api/search")
        limited_client.post("/api/search")
        third = limited_client.post("/api/search")

        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.json()["type"] == "rate_limited"
        assert third.headers["Retry-After"] == "60"

    def test_tokens_are_limited_separately(self, limited_client):
        for _ in range(2):
            limited_client.post("/api/search")

        response = limited_client.post("/api/search", headers={"Authorization": "Bearer other-user"})

        assert response.status_code == 200

    def test_health_is_exempt(self, limited_client):
        for _ in range(5):
            response = limited_client.get("/health")

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


class TestEndpointLimits:
    """Tests for per-endpoint limit lookup."""

    def test_ids_are_normalized(self):
        """UUID path segments collapse to a wildcard."""
        path = "/api/conversations/analysis/4b1c0a52-9a7e-4e0b-8f27-0f6c6f1f2a11/messages"
        assert RateLimitMiddleware._normalize(path) == "/api/conversations/analysis/*/messages"

    def test_known_endpoints_have_limits(self):
        """Search, auth, chat and export routes carry their own limits."""
        limits = RateLimitMiddleware.DEFAULT_LIMITS
        assert "POST /api/search" in limits
        assert limits["POST /api/auth/login"] == 10
        assert limits["POST /api/conversations/analysis/*/messages"] == 20
        assert limits["GET /api/plans/*/export"] == 10


class TestUsageQuotas:
    """Tests for monthly search and export quotas."""

    def test_free_plan_blocks_sixth_search(self, user):
        """Free users get five searches a month."""
        for _ in range(5):
            consume_search(user)

        with pytest.raises(LimitExceeded) as exc_info:
            consume_search(user)

        assert exc_info.value.used == 5
        assert exc_info.value.limit == 5
        assert exc_info.value.details["upgrade_required"] is True
        assert remaining_searches(user) == 0

    def test_pro_plan_is_unlimited(self, make_user):
        """Paid tiers report -1 remaining and never block."""
        pro = make_user(plan="pro")
        for _ in range(20):
            consume_search(pro)

        assert remaining_searches(pro) == -1

    def test_counters_reset_in_new_month(self, user):
        """A stored reset date from an earlier month zeroes the counters."""
        user.search_count = 5
        user.export_count = 3
        user.last_reset_date = datetime(2025, 1, 15)

        assert reset_monthly_usage(user, now=datetime(2025, 2, 1)) is True
        assert user.search_count == 0
        assert user.export_count == 0

    def test_same_month_keeps_counters(self, user):
        """No reset happens within the same month."""
        user.search_count = 2
        user.last_reset_date = datetime(2025, 3, 1)

        assert reset_monthly_usage(user, now=datetime(2025, 3, 31)) is False
        assert user.search_count == 2

    def test_export_quota(self, user):
        """Free users get three exports a month."""
        for _ in range(3):
            consume_export(user)

        with pytest.raises(LimitExceeded):
            consume_export(user)


class TestCostCalculation:
    """Tests for per-call LLM cost."""

    def test_sonnet_pricing(self):
        # $3 in and $15 out per million tokens
        assert calculate_cost("claude-sonnet-4-20250514", 1000, 1000) == pytest.approx(0.018)

    def test_haiku_pricing(self):
        assert calculate_cost("claude-3-5-haiku-20241022", 10_000, 2_000) == pytest.approx(0.016)

    def test_unknown_model_falls_back_to_sonnet(self):
        assert calculate_cost("claude-next", 1000, 1000) == calculate_cost("claude-sonnet-4-20250514", 1000, 1000)

    def test_offline_replies_cost_nothing(self):
        assert calculate_cost("claude-sonnet-4-20250514", 0, 0) == 0.0
