"""Registration, login, token refresh and the current user."""

from fastapi import APIRouter, Depends, HTTPException

from unbuilt.api.deps import load_user, parse_uuid
from unbuilt.api.schemas import (
    AuthResponse, LoginRequest, RefreshRequest, RegisterRequest, TokenResponse,
    user_to_response,
)
from unbuilt.core.auth import (
    AuthContext,
    authenticate_user,
    decode_token,
    get_current_auth,
    issue_tokens,
    register_user,
)
from unbuilt.core.database import get_db
from unbuilt.core.errors import AuthenticationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import User
from unbuilt.services.usage import remaining_searches

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest):
    """Create a free-tier account and sign it in."""
    if "@" not in body.email:
        raise HTTPException(status_code=400, detail="Invalid email address")

    with get_db() as db:
        user = register_user(db, body.email, body.password, body.name)
        return AuthResponse(user=user_to_response(user), **issue_tokens(user))


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest):
    with get_db() as db:
        try:
            user = authenticate_user(db, body.email, body.password)
        except AuthenticationFailed:
            # Keep the failed-attempt counter before the session rolls back
            db.commit()
            raise
        return AuthResponse(user=user_to_response(user), **issue_tokens(user))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest):
    """Exchange a refresh token for a new token pair."""
    payload = decode_token(body.refresh_token)
    if payload.type != "refresh":
        raise HTTPException(status_code=401, detail="Invalid token type")

    with get_db() as db:
        user = db.query(User).filter(User.id == parse_uuid(payload.sub, "user"), User.is_active == True).first()
        if not user:
            raise HTTPException(status_code=401, detail="User not found or inactive")

        logger.info("token_refreshed", user_id=str(user.id))
        return TokenResponse(**issue_tokens(user))


@router.get("/me")
async def me(auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        user = load_user(db, auth)
        return {
            **user_to_response(user).model_dump(),
            "remaining_searches": remaining_searches(user),
        }
