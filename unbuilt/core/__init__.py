"""Core infrastructure for the Unbuilt API."""

from .config import settings, PLAN_LIMITS, CONVERSATION_LIMITS, normalize_tier
from .database import get_db, init_db
from .errors import (
    UnbuiltError,
    ValidationFailed,
    AuthenticationFailed,
    PermissionDenied,
    NotFoundError,
    ConflictError,
    AccountLocked,
    LimitExceeded,
)
from .models import (
    User,
    Search,
    SearchResult,
    ActionPlan,
    PlanPhase,
    PlanTask,
    TaskDependency,
    PlanStatus,
    TaskStatus,
)

__all__ = [
    "settings",
    "PLAN_LIMITS",
    "CONVERSATION_LIMITS",
    "normalize_tier",
    "get_db",
    "init_db",
    # Errors
    "UnbuiltError",
    "ValidationFailed",
    "AuthenticationFailed",
    "PermissionDenied",
    "NotFoundError",
    "ConflictError",
    "AccountLocked",
    "LimitExceeded",
    # Models
    "User",
    "Search",
    "SearchResult",
    "ActionPlan",
    "PlanPhase",
    "PlanTask",
    "TaskDependency",
    "PlanStatus",
    "TaskStatus",
]
