"""Milestone model definitions."""
from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, Date, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class MilestoneStatus(str, PyEnum):
    """Possible statuses for a milestone."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    PAID = "PAID"


# Position of each status along the only allowed direction.
MILESTONE_STATUS_ORDER = {
    MilestoneStatus.PENDING: 0,
    MilestoneStatus.COMPLETED: 1,
    MilestoneStatus.PAID: 2,
}


class Milestone(Base):
    """Priced sub-deliverable of a contract and the unit of payment."""

    __tablename__ = "milestones"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_milestone_positive_amount"),)

    contract_id: Mapped[int] = mapped_column(ForeignKey("contracts.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[MilestoneStatus] = mapped_column(
        SqlEnum(MilestoneStatus), nullable=False, default=MilestoneStatus.PENDING
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    contract = relationship("Contract", back_populates="milestones")
    payments = relationship(
        "Payment", back_populates="milestone", order_by="Payment.id", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}
