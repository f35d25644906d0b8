"""Lookups against the profile service's user records."""
from sqlalchemy.orm import Session

from app.models.user import User, UserRole
from app.utils.errors import NotFound


def get_user(db: Session, user_id: int) -> User:
    """Return an active user or raise ``NotFound``."""

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFound("User not found.", code="USER_NOT_FOUND", details={"id": user_id})
    return user


def get_provider(db: Session, user_id: int) -> User:
    """Return an active user holding the provider role."""

    user = db.get(User, user_id)
    if user is None or not user.is_active or user.role != UserRole.PROVIDER:
        raise NotFound("Provider profile not found.", code="PROVIDER_NOT_FOUND", details={"id": user_id})
    return user


def get_client(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None or not user.is_active or user.role != UserRole.CLIENT:
        raise NotFound("Client not found.", code="CLIENT_NOT_FOUND", details={"id": user_id})
    return user


__all__ = ["get_client", "get_provider", "get_user"]
