"""Domain exceptions raised by services and mapped to HTTP responses by the API."""

from typing import Any, Optional


class UnbuiltError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = 400
    error_type: str = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "type": self.error_type}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(UnbuiltError):
    status_code = 400
    error_type = "validation_error"


class AuthenticationFailed(UnbuiltError):
    status_code = 401
    error_type = "authentication_error"


class PermissionDenied(UnbuiltError):
    status_code = 403
    error_type = "permission_denied"


class NotFoundError(UnbuiltError):
    status_code = 404
    error_type = "not_found"


class ConflictError(UnbuiltError):
    status_code = 409
    error_type = "conflict"


class AccountLocked(UnbuiltError):
    status_code = 423
    error_type = "account_locked"


class LimitExceeded(UnbuiltError):
    """Raised when a plan quota or conversation limit is exhausted."""

    status_code = 429
    error_type = "limit_exceeded"

    def __init__(self, message: str, used: int = 0, limit: int = 0, **details: Any):
        super().__init__(message, {"used": used, "limit": limit, **details})
        self.used = used
        self.limit = limit
