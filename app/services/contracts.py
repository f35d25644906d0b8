"""Contract lifecycle services."""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.models import Contract, ContractStatus, MilestoneStatus, UserRole
from app.models.payment import IN_FLIGHT_PAYMENT_STATUSES
from app.schemas.contract import ContractCreate, ContractUpdate
from app.security import Caller
from app.services import identity, ledger
from app.services.authorization import authorize, require_provider
from app.services.milestones import all_milestones_paid
from app.utils.audit import log_audit
from app.utils.errors import DomainError, InvalidTransition
from app.utils.time import utcnow

logger = logging.getLogger(__name__)

_EDITABLE_STATUSES = (ContractStatus.DRAFT, ContractStatus.SENT)
_DELETABLE_STATUSES = (ContractStatus.DRAFT, ContractStatus.SENT, ContractStatus.CANCELLED)
_REQUIRED_TERMS = ("title", "description")


def _audit(db: Session, *, caller: Caller | None, action: str, contract: Contract, data: dict[str, Any]) -> None:
    log_audit(
        db,
        actor=caller.actor if caller else "system",
        action=action,
        entity="Contract",
        entity_id=contract.id,
        data=data,
    )


def _invalid(contract: Contract, message: str, *, code: str | None = None) -> InvalidTransition:
    return InvalidTransition(
        message,
        entity="Contract",
        entity_id=contract.id,
        current_status=contract.status,
        code=code,
    )


def _ensure_not_terminal(contract: Contract, *, action: str) -> None:
    if contract.is_terminal:
        raise _invalid(contract, f"Cannot {action} a {contract.status.value.lower()} contract.", code="CONTRACT_CLOSED")


def create_contract(db: Session, caller: Caller, payload: ContractCreate) -> Contract:
    """Create a DRAFT contract between the caller and the named counterparty."""

    if caller.role == UserRole.CLIENT:
        if payload.provider_id is None:
            raise DomainError("provider_id is required.", code="COUNTERPARTY_REQUIRED")
        client_id = caller.user_id
        provider_id = identity.get_provider(db, payload.provider_id).id
    else:
        if payload.client_id is None:
            raise DomainError("client_id is required.", code="COUNTERPARTY_REQUIRED")
        provider_id = caller.user_id
        client_id = identity.get_client(db, payload.client_id).id

    if client_id == provider_id:
        raise DomainError("A contract needs two distinct parties.", code="SAME_PARTY")

    contract = Contract(
        client_id=client_id,
        provider_id=provider_id,
        title=payload.title,
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_amount=payload.total_amount,
        document_url=str(payload.document_url) if payload.document_url else None,
        status=ContractStatus.DRAFT,
        signed_by_client=False,
        signed_by_provider=False,
    )
    db.add(contract)
    db.flush()
    _audit(
        db,
        caller=caller,
        action="CONTRACT_CREATED",
        contract=contract,
        data={"client_id": client_id, "provider_id": provider_id, "total_amount": contract.total_amount},
    )
    db.commit()
    db.refresh(contract)
    logger.info(
        "Contract created",
        extra={"contract_id": contract.id, "client_id": client_id, "provider_id": provider_id},
    )
    return contract


def get_contract(db: Session, contract_id: int, caller: Caller) -> Contract:
    """Return a contract the caller is party to."""

    contract = ledger.get_contract(db, contract_id)
    authorize(caller, contract)
    return contract


def send_contract(db: Session, contract_id: int, caller: Caller) -> Contract:
    """Move a draft to SENT so the counterparty can review it."""

    def _work() -> Contract:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        authorize(caller, contract)
        if contract.status == ContractStatus.SENT:
            return contract
        if contract.status != ContractStatus.DRAFT:
            raise _invalid(contract, "Only draft contracts can be sent.")
        contract.status = ContractStatus.SENT
        _audit(db, caller=caller, action="CONTRACT_SENT", contract=contract, data={"status": "SENT"})
        return contract

    contract = ledger.run_atomic(db, _work)
    logger.info("Contract sent", extra={"contract_id": contract.id})
    return contract


def sign_contract(db: Session, contract_id: int, caller: Caller) -> Contract:
    """Set the caller's own signature; the second signature moves the contract to SIGNED.

    Signing again is a no-op.
    """

    def _work() -> Contract:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        roles = authorize(caller, contract)
        _ensure_not_terminal(contract, action="sign")

        now = utcnow()
        if roles.is_client:
            if contract.signed_by_client:
                return contract
            contract.signed_by_client = True
            contract.client_signed_at = now
        else:
            if contract.signed_by_provider:
                return contract
            contract.signed_by_provider = True
            contract.provider_signed_at = now

        if contract.signed_by_client and contract.signed_by_provider:
            contract.status = ContractStatus.SIGNED
            contract.signed_at = now

        _audit(
            db,
            caller=caller,
            action="CONTRACT_SIGNED",
            contract=contract,
            data={
                "party": "client" if roles.is_client else "provider",
                "status": contract.status.value,
            },
        )
        return contract

    contract = ledger.run_atomic(db, _work)
    logger.info(
        "Contract signature recorded",
        extra={
            "contract_id": contract.id,
            "status": contract.status.value,
            "signed_by_client": contract.signed_by_client,
            "signed_by_provider": contract.signed_by_provider,
        },
    )
    return contract


def update_contract(db: Session, contract_id: int, caller: Caller, payload: ContractUpdate) -> Contract:
    """Edit terms during the quoting phase (provider only, DRAFT or SENT).

    Any change to the terms withdraws existing signatures.
    """

    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field not in _REQUIRED_TERMS
    }
    if "document_url" in changes and changes["document_url"] is not None:
        changes["document_url"] = str(changes["document_url"])

    def _work() -> Contract:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        require_provider(caller, contract, action="update the contract")
        if contract.status not in _EDITABLE_STATUSES:
            raise _invalid(contract, "Contract terms can only change before signature.")

        applied = {field: value for field, value in changes.items() if getattr(contract, field) != value}
        if not applied:
            return contract
        for field, value in applied.items():
            setattr(contract, field, value)
        if contract.start_date and contract.end_date and contract.end_date < contract.start_date:
            raise DomainError("end_date must not be before start_date.", code="INVALID_DATES")

        if contract.signed_by_client or contract.signed_by_provider:
            contract.signed_by_client = False
            contract.signed_by_provider = False
            contract.client_signed_at = None
            contract.provider_signed_at = None

        _audit(
            db,
            caller=caller,
            action="CONTRACT_UPDATED",
            contract=contract,
            data={"fields": sorted(applied)},
        )
        return contract

    contract = ledger.run_atomic(db, _work)
    logger.info("Contract updated", extra={"contract_id": contract.id})
    return contract


def cancel_contract(db: Session, contract_id: int, caller: Caller) -> Contract:
    """Cancel from any non-terminal state; either party may cancel."""

    def _work() -> Contract:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        roles = authorize(caller, contract)
        _ensure_not_terminal(contract, action="cancel")
        previous = contract.status
        contract.status = ContractStatus.CANCELLED
        contract.cancelled_at = utcnow()
        _audit(
            db,
            caller=caller,
            action="CONTRACT_CANCELLED",
            contract=contract,
            data={"previous_status": previous.value, "by": "client" if roles.is_client else "provider"},
        )
        return contract

    contract = ledger.run_atomic(db, _work)
    logger.info("Contract cancelled", extra={"contract_id": contract.id})
    return contract


def complete_contract(db: Session, contract_id: int, caller: Caller) -> Contract:
    """Close a SIGNED contract.

    The provider may complete at any time; the client only once every
    milestone has been paid.
    """

    def _work() -> Contract:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        roles = authorize(caller, contract)
        if contract.status != ContractStatus.SIGNED:
            raise _invalid(contract, "Only signed contracts can be completed.")

        all_paid = all_milestones_paid(list(contract.milestones))
        if not roles.is_provider and not all_paid:
            raise _invalid(
                contract,
                "The client can complete a contract only once every milestone is paid.",
                code="MILESTONES_OUTSTANDING",
            )

        contract.status = ContractStatus.COMPLETED
        contract.completed_at = utcnow()
        _audit(
            db,
            caller=caller,
            action="CONTRACT_COMPLETED",
            contract=contract,
            data={"all_milestones_paid": all_paid, "by": "provider" if roles.is_provider else "client"},
        )
        return contract

    contract = ledger.run_atomic(db, _work)
    logger.info("Contract completed", extra={"contract_id": contract.id})
    return contract


def delete_contract(db: Session, contract_id: int, caller: Caller) -> None:
    """Delete an unsigned or cancelled contract with its unpaid milestones and failed payments."""

    def _work() -> None:
        contract = ledger.get_contract(db, contract_id, for_update=True)
        authorize(caller, contract)
        if contract.status not in _DELETABLE_STATUSES:
            raise _invalid(contract, "Only draft, sent or cancelled contracts can be deleted.")
        if any(m.status == MilestoneStatus.PAID for m in contract.milestones):
            raise _invalid(contract, "Contract has paid milestones.", code="PAID_MILESTONES")
        if any(p.status in IN_FLIGHT_PAYMENT_STATUSES for p in contract.payments):
            raise _invalid(contract, "Contract has a payment in progress.", code="PAYMENT_IN_PROGRESS")

        _audit(
            db,
            caller=caller,
            action="CONTRACT_DELETED",
            contract=contract,
            data={
                "status": contract.status.value,
                "milestones": len(contract.milestones),
                "payments": len(contract.payments),
            },
        )
        db.delete(contract)

    ledger.run_atomic(db, _work)
    logger.info("Contract deleted", extra={"contract_id": contract_id})


__all__ = [
    "cancel_contract",
    "complete_contract",
    "create_contract",
    "delete_contract",
    "get_contract",
    "send_contract",
    "sign_contract",
    "update_contract",
]
