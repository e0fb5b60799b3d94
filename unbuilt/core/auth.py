"""Authentication and authorization module.

Implements:
- Password hashing (PBKDF2-SHA256 with per-user salt)
- JWT access/refresh tokens
- Account lockout after repeated failed logins
- FastAPI dependencies for the current user, admin-only and plan-gated routes
"""

import base64
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, Security, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

from unbuilt.core.config import settings, normalize_tier
from unbuilt.core.errors import AccountLocked, AuthenticationFailed, ConflictError
from unbuilt.core.logging import get_logger, user_id_var
from unbuilt.core.models import User

logger = get_logger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # User ID
    email: Optional[str] = None
    plan: Optional[str] = None  # Absent on refresh tokens
    exp: datetime
    type: str = "access"


class AuthContext(BaseModel):
    """Current authenticated user passed to endpoints."""
    user_id: str
    email: str
    plan: str = "free"
    is_admin: bool = False

    @property
    def tier(self) -> str:
        return normalize_tier(self.plan)

    @property
    def user_uuid(self) -> UUID:
        return UUID(self.user_id)


# =============================================================================
# Password Hashing
# =============================================================================

PASSWORD_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """Hash a password as ``scheme$iterations$salt$digest``."""
    iterations = iterations or settings.password_hash_iterations
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return "$".join([
        PASSWORD_SCHEME,
        str(iterations),
        base64.b64encode(salt).decode(),
        base64.b64encode(digest).decode(),
    ])


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify a password against its stored hash."""
    try:
        scheme, iterations, salt_b64, digest_b64 = stored_hash.split("$")
    except ValueError:
        return False
    if scheme != PASSWORD_SCHEME:
        return False

    salt = base64.b64decode(salt_b64)
    expected = base64.b64decode(digest_b64)
    actual = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, int(iterations))
    return secrets.compare_digest(actual, expected)


# =============================================================================
# JWT Functions
# =============================================================================

def create_access_token(user_id: str, email: str, plan: str) -> str:
    """Create a JWT access token."""
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "email": email,
        "plan": plan,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: str) -> str:
    """Create a JWT refresh token."""
    expire = datetime.utcnow() + timedelta(days=settings.refresh_token_expire_days)
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "refresh",
        # Unique per issue so two refreshes in the same second differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> TokenPayload:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return TokenPayload(**payload)
    except JWTError as e:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def issue_tokens(user: User) -> dict:
    """Build the token response body for a user."""
    return {
        "access_token": create_access_token(str(user.id), user.email, user.plan),
        "refresh_token": create_refresh_token(str(user.id)),
        "token_type": "bearer",
        "expires_in": settings.access_token_expire_minutes * 60,
    }


# =============================================================================
# Registration, Login and Lockout
# =============================================================================

def register_user(db: Session, email: str, password: str, name: Optional[str] = None) -> User:
    """Create a new free-tier account."""
    email = email.strip().lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("An account with this email already exists")

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        plan="free",
        last_reset_date=datetime.utcnow(),
    )
    db.add(user)
    db.flush()

    logger.info("user_registered", user_id=str(user.id))
    return user


def authenticate_user(db: Session, email: str, password: str) -> User:
    """Check credentials, applying account lockout rules."""
    email = email.strip().lower()
    user = db.query(User).filter(User.email == email).first()

    if not user or not user.is_active:
        raise AuthenticationFailed("Invalid email or password")

    now = datetime.utcnow()
    if user.account_locked:
        if user.lockout_expires and user.lockout_expires <= now:
            _unlock(user)
        else:
            logger.warning("login_blocked_locked_account", user_id=str(user.id))
            raise AccountLocked(
                "Account is temporarily locked due to too many failed login attempts",
                {"lockout_expires": user.lockout_expires.isoformat() if user.lockout_expires else None},
            )

    if not verify_password(password, user.password_hash):
        record_failed_login(user, now)
        raise AuthenticationFailed(
            "Invalid email or password",
            {"remaining_attempts": max(0, settings.max_failed_logins - user.failed_login_attempts)},
        )

    _unlock(user)
    user.last_login = now
    logger.info("user_logged_in", user_id=str(user.id))
    return user


def record_failed_login(user: User, now: Optional[datetime] = None) -> None:
    """Increment the failure counter and lock the account at the threshold."""
    now = now or datetime.utcnow()
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    user.last_failed_login = now

    if user.failed_login_attempts >= settings.max_failed_logins:
        user.account_locked = True
        user.lockout_expires = now + timedelta(minutes=settings.lockout_minutes)
        logger.warning(
            "account_locked",
            user_id=str(user.id),
            failed_attempts=user.failed_login_attempts,
            lockout_expires=user.lockout_expires.isoformat(),
        )
    else:
        logger.info("login_failed", user_id=str(user.id), failed_attempts=user.failed_login_attempts)


def _unlock(user: User) -> None:
    user.failed_login_attempts = 0
    user.last_failed_login = None
    user.account_locked = False
    user.lockout_expires = None


# =============================================================================
# FastAPI Security Dependencies
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


def context_from_token(token: str) -> AuthContext:
    """Resolve an access token to an auth context for an active user."""
    from unbuilt.core.database import get_db

    token_payload = decode_token(token)
    if token_payload.type != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")

    try:
        user_uuid = UUID(token_payload.sub)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    with get_db() as db:
        user = db.query(User).filter(User.id == user_uuid, User.is_active == True).first()
        if not user:
            raise HTTPException(status_code=401, detail="User not found or inactive")

        return AuthContext(
            user_id=str(user.id),
            email=user.email,
            plan=user.plan,
            is_admin=user.is_admin,
        )


async def get_optional_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[AuthContext]:
    """Get optional authentication context (for public endpoints)."""
    if not credentials:
        return None
    auth = context_from_token(credentials.credentials)
    user_id_var.set(auth.user_id)
    return auth


async def get_current_auth(
    auth: Optional[AuthContext] = Depends(get_optional_auth),
) -> AuthContext:
    """Get current authentication context or fail with 401."""
    if not auth:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide a Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth


async def require_admin(auth: AuthContext = Depends(get_current_auth)) -> AuthContext:
    """Dependency that only admits administrators."""
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return auth


def require_plan(allowed_plans: list[str]):
    """Dependency factory to require one of the given subscription tiers."""
    async def check_plan(auth: AuthContext = Depends(get_current_auth)) -> AuthContext:
        if auth.tier not in allowed_plans:
            raise HTTPException(
                status_code=403,
                detail=f"This feature requires one of: {', '.join(allowed_plans)}",
            )
        return auth
    return check_plan
