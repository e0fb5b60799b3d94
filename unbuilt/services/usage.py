"""Plan quota enforcement for searches and exports."""

from datetime import datetime
from typing import Optional

from unbuilt.core.config import PLAN_LIMITS, normalize_tier
from unbuilt.core.errors import LimitExceeded
from unbuilt.core.logging import get_logger
from unbuilt.core.models import User

logger = get_logger(__name__)


def reset_monthly_usage(user: User, now: Optional[datetime] = None) -> bool:
    """Zero the usage counters when the stored reset month is not the current one."""
    now = now or datetime.utcnow()
    last = user.last_reset_date
    if last and (last.year, last.month) == (now.year, now.month):
        return False

    user.search_count = 0
    user.export_count = 0
    user.last_reset_date = now
    logger.info("usage_counters_reset", user_id=str(user.id))
    return True


def _limit(user: User, key: str) -> int:
    return PLAN_LIMITS[normalize_tier(user.plan)][key]


def remaining_searches(user: User) -> int:
    """Searches left this month, or -1 for unlimited."""
    limit = _limit(user, "searches")
    if limit == -1:
        return -1
    return max(0, limit - (user.search_count or 0))


def consume_search(user: User, now: Optional[datetime] = None) -> None:
    """Count one search against the user's plan, failing when the quota is spent."""
    reset_monthly_usage(user, now)
    limit = _limit(user, "searches")
    used = user.search_count or 0

    if limit != -1 and used >= limit:
        logger.info("search_limit_reached", user_id=str(user.id), used=used, limit=limit)
        raise LimitExceeded(
            f"Search limit reached. Your {normalize_tier(user.plan)} plan allows {limit} searches per month.",
            used=used,
            limit=limit,
            upgrade_required=True,
        )
    user.search_count = used + 1


def consume_export(user: User, now: Optional[datetime] = None) -> None:
    """Count one plan export against the user's plan."""
    reset_monthly_usage(user, now)
    limit = _limit(user, "exports")
    used = user.export_count or 0

    if limit != -1 and used >= limit:
        logger.info("export_limit_reached", user_id=str(user.id), used=used, limit=limit)
        raise LimitExceeded(
            f"Export limit reached. Your {normalize_tier(user.plan)} plan allows {limit} exports per month.",
            used=used,
            limit=limit,
            upgrade_required=True,
        )
    user.export_count = used + 1
