# app/security.py
"""Security dependencies resolving the authenticated caller from an API key."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.user import UserRole
from app.utils.apikey import find_valid_key
from app.utils.errors import error_response
from app.utils.time import utcnow


@dataclass(frozen=True)
class Caller:
    """Identity of the user behind the current request, passed by value to services."""

    user_id: int
    role: UserRole

    @property
    def actor(self) -> str:
        return f"user:{self.user_id}"


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_caller(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> Caller:
    """Validate the API key and return the caller identity it is bound to."""

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )

    key = find_valid_key(db, token)
    if key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid or expired API key"),
        )

    user = key.user
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("USER_INACTIVE", "API key owner is inactive."),
        )

    key.last_used_at = utcnow()
    db.commit()
    return Caller(user_id=user.id, role=user.role)


__all__ = ["Caller", "require_caller"]
