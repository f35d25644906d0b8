"""User model."""
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Enum as SqlEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class UserRole(str, PyEnum):
    """Marketplace role of an account."""

    CLIENT = "CLIENT"
    PROVIDER = "PROVIDER"


class User(Base):
    """Marketplace account, owned by the profile service and read here for identity."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    role: Mapped[UserRole] = mapped_column(SqlEnum(UserRole), nullable=False, default=UserRole.CLIENT)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
