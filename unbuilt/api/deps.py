"""Helpers shared by the API routers."""

import uuid
from enum import Enum
from typing import Optional, Type, TypeVar

from fastapi import HTTPException
from sqlalchemy.orm import Session

from unbuilt.core.auth import AuthContext
from unbuilt.core.models import User

E = TypeVar("E", bound=Enum)


def parse_uuid(value: str, label: str = "resource") -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} ID format")


def parse_optional_uuid(value: Optional[str], label: str = "resource") -> Optional[uuid.UUID]:
    return parse_uuid(value, label) if value else None


def parse_enum(enum_cls: Type[E], value: str) -> E:
    try:
        return enum_cls(value.lower())
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Valid values: {[s.value for s in enum_cls]}",
        )


def load_user(db: Session, auth: AuthContext) -> User:
    """Fetch the authenticated user's row inside the current session."""
    user = db.query(User).filter(User.id == auth.user_uuid).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user
