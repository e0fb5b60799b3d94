"""Per-minute request throttling and LLM cost accounting.

Monthly search and export quotas live in ``unbuilt.services.usage``; this
module only guards against bursts. Counters sit in Redis so every worker
shares them, with a process-local fallback while Redis is down.
"""

import hashlib
import re
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional, Tuple

import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from unbuilt.core.config import settings
from unbuilt.core.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60
ID_SEGMENT = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}")


class InMemoryRateLimiter:
    """Sliding window kept in process memory."""

    def __init__(self):
        self.hits: Dict[str, Deque[float]] = defaultdict(deque)
        self.last_sweep = time.time()

    def is_allowed(self, key: str, limit: int, window_seconds: int = WINDOW_SECONDS) -> Tuple[bool, int]:
        """Record a hit if there is room. Returns (allowed, remaining)."""
        now = time.time()
        if now - self.last_sweep >= window_seconds:
            self.sweep(now, window_seconds)
        hits = self.hits[key]
        while hits and hits[0] <= now - window_seconds:
            hits.popleft()

        if len(hits) >= limit:
            return False, 0
        hits.append(now)
        return True, limit - len(hits)

    def sweep(self, now: float, window_seconds: int = WINDOW_SECONDS) -> None:
        """Forget callers with no hits inside the window."""
        for key in [k for k, hits in self.hits.items() if not hits or hits[-1] <= now - window_seconds]:
            del self.hits[key]
        self.last_sweep = now

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.hits.clear()
        else:
            self.hits.pop(key, None)


class RedisRateLimiter:
    """The same window over a Redis sorted set, evaluated atomically."""

    SCRIPT = """
    local key, limit, window, now = KEYS[1], tonumber(ARGV[1]), tonumber(ARGV[2]), tonumber(ARGV[3])
    redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
    local used = redis.call('ZCARD', key)
    redis.call('EXPIRE', key, window)
    if used >= limit then
        return {0, 0}
    end
    redis.call('ZADD', key, now, ARGV[4])
    return {1, limit - used - 1}
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.client = redis.from_url(
            redis_url or settings.redis_url,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
        self._script = self.client.register_script(self.SCRIPT)

    def is_allowed(self, key: str, limit: int, window_seconds: int = WINDOW_SECONDS) -> Tuple[bool, int]:
        now = time.time()
        allowed, remaining = self._script(
            keys=[f"ratelimit:{key}"],
            args=[limit, window_seconds, now, f"{now}:{time.perf_counter_ns()}"],
        )
        return bool(allowed), int(remaining)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Throttle each caller per route, keyed by bearer token or client IP."""

    # Requests per minute by "METHOD path", ids replaced with *
    DEFAULT_LIMITS = {
        "POST /api/search": settings.search_rate_limit,
        "POST /api/auth/login": 10,
        "POST /api/auth/register": 5,
        "POST /api/conversations/analysis/*/messages": 20,
        "GET /api/plans/*/export": 10,
        "DEFAULT": settings.default_rate_limit,
    }

    EXEMPT_PATHS = {"/", "/health", "/docs", "/redoc", "/openapi.json"}

    def __init__(self, app, use_redis: bool = True):
        super().__init__(app)
        self.fallback = InMemoryRateLimiter()
        self.redis_limiter = RedisRateLimiter() if use_redis else None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        route = f"{request.method} {self._normalize(request.url.path)}"
        limit = self.DEFAULT_LIMITS.get(route, self.DEFAULT_LIMITS["DEFAULT"])
        key = f"{self._caller(request)}:{route}"
        allowed, remaining = self._check(key, limit)

        if not allowed:
            logger.info("rate_limit_exceeded", route=route, limit=limit)
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down.", "type": "rate_limited"},
                headers={"X-RateLimit-Limit": str(limit), "X-RateLimit-Remaining": "0", "Retry-After": str(WINDOW_SECONDS)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _check(self, key: str, limit: int) -> Tuple[bool, int]:
        if self.redis_limiter is not None:
            try:
                return self.redis_limiter.is_allowed(key, limit)
            except (redis.ConnectionError, redis.TimeoutError) as e:
                logger.warning("rate_limit_redis_unavailable", error=str(e))
        return self.fallback.is_allowed(key, limit)

    @staticmethod
    def _caller(request: Request) -> str:
        authorization = request.headers.get("authorization", "")
        if authorization.lower().startswith("bearer "):
            # Raw tokens never become Redis keys
            return "token:" + hashlib.sha256(authorization[7:].encode()).hexdigest()[:16]
        return "ip:" + (request.client.host if request.client else "unknown")

    @staticmethod
    def _normalize(path: str) -> str:
        return ID_SEGMENT.sub("*", path)


# USD per million tokens
MODEL_PRICING = {
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
}
DEFAULT_PRICING = MODEL_PRICING["claude-sonnet-4-20250514"]


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """USD cost of one LLM call, priced as Sonnet when the model is unknown."""
    pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
    return round((input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000, 6)
