"""Milestone ledger services."""
import logging

from sqlalchemy.orm import Session

from app.models import Contract, ContractStatus, Milestone, MilestoneStatus
from app.models.milestone import MILESTONE_STATUS_ORDER
from app.schemas.milestone import MilestoneCreate, MilestoneUpdate
from app.security import Caller
from app.services import ledger
from app.services.authorization import require_provider
from app.utils.audit import log_audit
from app.utils.errors import InvalidTransition
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

_DETAIL_FIELDS = ("title", "description", "amount", "due_date")
_REQUIRED_DETAILS = ("title", "amount")


def _invalid(milestone: Milestone, message: str, *, code: str | None = None) -> InvalidTransition:
    return InvalidTransition(
        message,
        entity="Milestone",
        entity_id=milestone.id,
        current_status=milestone.status,
        code=code,
    )


def _ensure_contract_signed(contract: Contract) -> None:
    if contract.status != ContractStatus.SIGNED:
        raise InvalidTransition(
            "Milestones can only change while the contract is signed.",
            entity="Contract",
            entity_id=contract.id,
            current_status=contract.status,
            code="CONTRACT_NOT_SIGNED",
        )


def add_milestone(db: Session, contract_id: int, caller: Caller, payload: MilestoneCreate) -> Milestone:
    """Add a priced milestone to a signed contract (provider only)."""

    def _work() -> Milestone:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        require_provider(caller, contract, action="add milestones")
        _ensure_contract_signed(contract)
        milestone = Milestone(
            contract_id=contract.id,
            title=payload.title,
            description=payload.description,
            amount=payload.amount,
            due_date=payload.due_date,
            status=MilestoneStatus.PENDING,
        )
        db.add(milestone)
        db.flush()
        log_audit(
            db,
            actor=caller.actor,
            action="MILESTONE_CREATED",
            entity="Milestone",
            entity_id=milestone.id,
            data={"contract_id": contract.id, "amount": milestone.amount},
        )
        return milestone

    milestone = ledger.run_atomic(db, _work)
    logger.info(
        "Milestone created",
        extra={"milestone_id": milestone.id, "contract_id": contract_id, "amount": milestone.amount},
    )
    return milestone


def mark_completed(db: Session, milestone_id: int, caller: Caller) -> Milestone:
    """Provider attests the work is done: PENDING -> COMPLETED."""

    def _work() -> Milestone:
        milestone = ledger.get_milestone(db, milestone_id, for_update=True)
        contract = milestone.contract
        require_provider(caller, contract, action="complete milestones")
        if milestone.status != MilestoneStatus.PENDING:
            raise _invalid(milestone, "Only pending milestones can be marked completed.")
        _ensure_contract_signed(contract)
        milestone.status = MilestoneStatus.COMPLETED
        milestone.completed_at = utcnow()
        log_audit(
            db,
            actor=caller.actor,
            action="MILESTONE_COMPLETED",
            entity="Milestone",
            entity_id=milestone.id,
            data={"contract_id": contract.id},
        )
        return milestone

    milestone = ledger.run_atomic(db, _work)
    logger.info("Milestone completed", extra={"milestone_id": milestone.id})
    return milestone


def update_milestone(db: Session, milestone_id: int, caller: Caller, payload: MilestoneUpdate) -> Milestone:
    """Apply ``PUT /milestones/{id}``.

    ``status`` may only request COMPLETED (PAID belongs to payment
    reconciliation); detail fields are editable while the milestone is pending
    and no payment is in flight.
    """

    changes = payload.model_dump(exclude_unset=True)
    requested_status = changes.pop("status", None)
    details = {
        field: changes[field]
        for field in _DETAIL_FIELDS
        if field in changes and (changes[field] is not None or field not in _REQUIRED_DETAILS)
    }

    if requested_status is not None:
        current = ledger.get_milestone(db, milestone_id)
        require_provider(caller, current.contract, action="update milestones")
        if requested_status == MilestoneStatus.PAID:
            raise _invalid(current, "Milestones are marked paid by payment confirmation only.", code="PAID_BY_GATEWAY")
        if MILESTONE_STATUS_ORDER[requested_status] < MILESTONE_STATUS_ORDER[current.status]:
            raise _invalid(current, "Milestone status cannot move backwards.")

    milestone = None
    if details:
        milestone = _edit_details(db, milestone_id, caller, details)
    if requested_status == MilestoneStatus.COMPLETED:
        milestone = mark_completed(db, milestone_id, caller)
    if milestone is None:
        milestone = ledger.get_milestone(db, milestone_id)
        require_provider(caller, milestone.contract, action="update milestones")
    return milestone


def _edit_details(db: Session, milestone_id: int, caller: Caller, details: dict) -> Milestone:
    def _work() -> Milestone:
        milestone = ledger.get_milestone(db, milestone_id, for_update=True)
        contract = milestone.contract
        require_provider(caller, contract, action="update milestones")
        _ensure_contract_signed(contract)
        if milestone.status != MilestoneStatus.PENDING:
            raise _invalid(milestone, "Only pending milestones can be edited.")
        if ledger.in_flight_payment(db, milestone.id, for_update=True) is not None:
            raise _invalid(milestone, "A payment for this milestone is in progress.", code="PAYMENT_IN_PROGRESS")
        for field, value in details.items():
            setattr(milestone, field, value)
        log_audit(
            db,
            actor=caller.actor,
            action="MILESTONE_UPDATED",
            entity="Milestone",
            entity_id=milestone.id,
            data={"fields": sorted(details)},
        )
        return milestone

    return ledger.run_atomic(db, _work)


def delete_milestone(db: Session, milestone_id: int, caller: Caller) -> None:
    """Remove an unpaid milestone (provider only) along with its failed payment attempts."""

    def _work() -> int:
        milestone = ledger.get_milestone(db, milestone_id, for_update=True)
        contract = milestone.contract
        require_provider(caller, contract, action="delete milestones")
        if milestone.status == MilestoneStatus.PAID:
            raise _invalid(milestone, "Cannot delete a milestone that has been paid.", code="MILESTONE_PAID")
        _ensure_contract_signed(contract)
        if ledger.in_flight_payment(db, milestone.id, for_update=True) is not None:
            raise _invalid(milestone, "A payment for this milestone is in progress.", code="PAYMENT_IN_PROGRESS")
        log_audit(
            db,
            actor=caller.actor,
            action="MILESTONE_DELETED",
            entity="Milestone",
            entity_id=milestone.id,
            data={"contract_id": contract.id, "amount": milestone.amount},
        )
        db.delete(milestone)
        return contract.id

    contract_id = ledger.run_atomic(db, _work)
    logger.info("Milestone deleted", extra={"milestone_id": milestone_id, "contract_id": contract_id})


def all_milestones_paid(milestones: list[Milestone]) -> bool:
    """Return True when there is at least one milestone and all are paid."""

    return len(milestones) > 0 and all(m.status == MilestoneStatus.PAID for m in milestones)


__all__ = [
    "add_milestone",
    "all_milestones_paid",
    "delete_milestone",
    "mark_completed",
    "update_milestone",
]
