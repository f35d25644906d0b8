"""Payment model definitions."""
import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class PaymentStatus(str, enum.Enum):
    """Possible statuses for a payment."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentGateway(str, enum.Enum):
    """External systems a payment can be settled through."""

    STRIPE = "STRIPE"
    WIPAY = "WIPAY"


IN_FLIGHT_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})
TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})

_IN_FLIGHT_PREDICATE = text("status IN ('PENDING', 'PROCESSING')")


class Payment(Base):
    """One attempt to settle a milestone through an external gateway."""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_positive_amount"),
        Index("ix_payments_created_at", "created_at"),
        Index("ix_payments_status", "status"),
        Index("ix_payments_client_id", "client_id"),
        Index("ix_payments_provider_id", "provider_id"),
        Index(
            "uq_payments_milestone_in_flight",
            "milestone_id",
            unique=True,
            sqlite_where=_IN_FLIGHT_PREDICATE,
            postgresql_where=_IN_FLIGHT_PREDICATE,
        ),
    )

    contract_id: Mapped[int] = mapped_column(ForeignKey("contracts.id"), nullable=False, index=True)
    milestone_id: Mapped[int] = mapped_column(ForeignKey("milestones.id"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    provider_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    gateway: Mapped[PaymentGateway] = mapped_column(SqlEnum(PaymentGateway), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SqlEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING
    )
    external_reference: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    checkout_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    contract = relationship("Contract", back_populates="payments")
    milestone = relationship("Milestone", back_populates="payments")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES
