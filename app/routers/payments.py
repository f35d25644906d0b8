"""Milestone payment endpoints."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.schemas.payment import PaymentCreate, PaymentSessionRead, PaymentStatusRead
from app.security import Caller, require_caller
from app.services import payments as payments_service

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentSessionRead, status_code=status.HTTP_201_CREATED)
def initiate_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> PaymentSessionRead:
    """Open a gateway checkout for a milestone; the client finishes paying at the gateway."""

    return payments_service.initiate_payment(db, caller, payload.milestone_id, payload.gateway)


@router.get("/{payment_id}", response_model=PaymentStatusRead)
def get_payment_status(
    payment_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> PaymentStatusRead:
    return payments_service.get_payment_status(db, payment_id, caller)
