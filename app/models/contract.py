"""Contract model definitions."""
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ContractStatus(str, PyEnum):
    """Lifecycle of an agreement between a client and a provider."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    SIGNED = "SIGNED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_CONTRACT_STATUSES = frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED})


class Contract(Base):
    """Agreement between one client and one provider, settled through milestones."""

    __tablename__ = "contracts"
    __table_args__ = (
        CheckConstraint("client_id <> provider_id", name="ck_contract_distinct_parties"),
        CheckConstraint(
            "total_amount IS NULL OR total_amount > 0",
            name="ck_contract_positive_total_amount",
        ),
        Index("ix_contracts_status", "status"),
        Index("ix_contracts_client_id", "client_id"),
        Index("ix_contracts_provider_id", "provider_id"),
    )

    client_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    provider_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    document_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[ContractStatus] = mapped_column(
        SqlEnum(ContractStatus), nullable=False, default=ContractStatus.DRAFT
    )
    signed_by_client: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    signed_by_provider: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    provider_signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    milestones = relationship(
        "Milestone",
        back_populates="contract",
        order_by="Milestone.id",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "Payment",
        back_populates="contract",
        order_by="Payment.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CONTRACT_STATUSES
