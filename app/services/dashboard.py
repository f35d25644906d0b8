"""Read-only projections of a caller's contracts and payments."""
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models import Contract, ContractStatus, Payment, PaymentStatus
from app.security import Caller


def list_contracts(
    db: Session,
    caller: Caller,
    *,
    status: ContractStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Contract]:
    """Contracts where the caller is client or provider, newest first."""

    stmt = select(Contract).where(
        or_(Contract.client_id == caller.user_id, Contract.provider_id == caller.user_id)
    )
    if status is not None:
        stmt = stmt.where(Contract.status == status)
    stmt = stmt.order_by(Contract.created_at.desc(), Contract.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt))


def list_payments(
    db: Session,
    caller: Caller,
    *,
    status: PaymentStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Payment]:
    """Payments the caller made or is receiving, newest first."""

    stmt = select(Payment).where(
        or_(Payment.client_id == caller.user_id, Payment.provider_id == caller.user_id)
    )
    if status is not None:
        stmt = stmt.where(Payment.status == status)
    stmt = stmt.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt))


__all__ = ["list_contracts", "list_payments"]
