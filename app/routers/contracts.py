"""Contract lifecycle endpoints."""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.db import get_db
from app.models.contract import Contract
from app.models.milestone import Milestone
from app.schemas.contract import ContractCreate, ContractDetail, ContractRead, ContractUpdate
from app.schemas.milestone import MilestoneCreate, MilestoneRead
from app.security import Caller, require_caller
from app.services import contracts as contracts_service
from app.services import milestones as milestones_service

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.post("", response_model=ContractRead, status_code=status.HTTP_201_CREATED)
def create_contract(
    payload: ContractCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.create_contract(db, caller, payload)


@router.get("/{contract_id}", response_model=ContractDetail)
def get_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    """Full view of a contract with its milestones and payments."""

    return contracts_service.get_contract(db, contract_id, caller)


@router.put("/{contract_id}", response_model=ContractRead)
def update_contract(
    contract_id: int,
    payload: ContractUpdate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.update_contract(db, contract_id, caller, payload)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Response:
    contracts_service.delete_contract(db, contract_id, caller)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{contract_id}/send", response_model=ContractRead)
def send_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.send_contract(db, contract_id, caller)


@router.post("/{contract_id}/sign", response_model=ContractRead)
def sign_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.sign_contract(db, contract_id, caller)


@router.post("/{contract_id}/cancel", response_model=ContractRead)
def cancel_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.cancel_contract(db, contract_id, caller)


@router.post("/{contract_id}/complete", response_model=ContractRead)
def complete_contract(
    contract_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Contract:
    return contracts_service.complete_contract(db, contract_id, caller)


@router.post(
    "/{contract_id}/milestones",
    response_model=MilestoneRead,
    status_code=status.HTTP_201_CREATED,
)
def add_milestone(
    contract_id: int,
    payload: MilestoneCreate,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_caller),
) -> Milestone:
    return milestones_service.add_milestone(db, contract_id, caller, payload)
