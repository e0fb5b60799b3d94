"""Redis caching layer for AI gap analyses.

Provides:
- Gap analysis caching keyed by query + filters
- Graceful degradation: Redis outages behave like cache misses
"""

import hashlib
import json
from typing import Any, Optional

import redis

from .config import settings
from .logging import get_logger

logger = get_logger(__name__)

# Cache key prefixes
GAP_ANALYSIS_PREFIX = "cache:gaps:"


class RedisCache:
    """Redis cache client with high-level caching operations."""

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        """Lazy-initialize Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_timeout=2,
                socket_connect_timeout=2,
            )
        return self._client

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (redis.ConnectionError, redis.TimeoutError):
            return False

    def get_json(self, key: str) -> Optional[Any]:
        """Decoded value, or None on a miss, a bad payload or an outage."""
        try:
            raw = self.client.get(key)
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("cache_unavailable", op="get", error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache_corrupt_entry", key=key)
            return None

    def set_json(self, key: str, value: Any, ttl: int) -> bool:
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
            return True
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("cache_unavailable", op="set", error=str(e))
            return False

    # =========================================================================
    # Gap Analysis Caching
    # =========================================================================

    @staticmethod
    def gap_analysis_key(query: str, filters: Optional[dict] = None) -> str:
        """Stable key for a query and its filters (case and whitespace insensitive)."""
        normalized = " ".join(query.lower().split())
        payload = json.dumps({"q": normalized, "f": filters or {}}, sort_keys=True)
        return f"{GAP_ANALYSIS_PREFIX}{hashlib.sha256(payload.encode()).hexdigest()}"

    def get_gap_analysis(self, query: str, filters: Optional[dict] = None) -> Optional[list]:
        return self.get_json(self.gap_analysis_key(query, filters))

    def set_gap_analysis(self, query: str, filters: Optional[dict], gaps: list) -> bool:
        return self.set_json(
            self.gap_analysis_key(query, filters),
            gaps,
            settings.search_cache_ttl_seconds,
        )


# Global cache instance
cache = RedisCache()
