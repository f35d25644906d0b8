"""Dashboard views scoped to the authenticated caller."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.contract import Contract, ContractStatus
from app.models.payment import Payment, PaymentStatus
from app.schemas.contract import ContractRead
from app.schemas.payment import PaymentRead
from app.security import Caller, require_caller
from app.services import dashboard as dashboard_service

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/contracts", response_model=list[ContractRead])
def my_contracts(
    status: ContractStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> list[Contract]:
    return dashboard_service.list_contracts(db, caller, status=status, limit=limit, offset=offset)


@router.get("/payments", response_model=list[PaymentRead])
def my_payments(
    status: PaymentStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> list[Payment]:
    return dashboard_service.list_payments(db, caller, status=status, limit=limit, offset=offset)
