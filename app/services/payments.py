"""Payment orchestration: open gateway sessions for milestones and report status."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import Contract, ContractStatus, Milestone, MilestoneStatus, Payment, PaymentGateway, PaymentStatus
from app.schemas.payment import PaymentSessionRead, PaymentStatusRead
from app.security import Caller
from app.services import identity, ledger, reconciliation
from app.services.authorization import authorize, require_client
from app.services.gateways import GatewaySession, get_gateway, resolve_gateway_name
from app.utils.audit import log_audit
from app.utils.errors import DomainError, InvalidTransition

logger = logging.getLogger(__name__)

_PAYABLE_CONTRACT_STATUSES = (ContractStatus.SIGNED, ContractStatus.COMPLETED)


def _payment_in_progress(milestone_id: int, current_status: MilestoneStatus) -> InvalidTransition:
    return InvalidTransition(
        "A payment for this milestone is already in progress.",
        entity="Milestone",
        entity_id=milestone_id,
        current_status=current_status,
        code="PAYMENT_IN_PROGRESS",
    )


def _check_payable(db: Session, caller: Caller, milestone: Milestone, *, for_update: bool = False) -> Contract:
    """Raise unless ``caller`` is the client and the milestone can take a new payment."""

    contract = milestone.contract
    require_client(caller, contract, action="pay milestones")
    if contract.status not in _PAYABLE_CONTRACT_STATUSES:
        raise InvalidTransition(
            "Payments require a signed contract.",
            entity="Contract",
            entity_id=contract.id,
            current_status=contract.status,
            code="CONTRACT_NOT_SIGNED",
        )
    if milestone.status == MilestoneStatus.PAID:
        raise InvalidTransition(
            "Milestone is already paid.",
            entity="Milestone",
            entity_id=milestone.id,
            current_status=milestone.status,
            code="MILESTONE_PAID",
        )
    if ledger.in_flight_payment(db, milestone.id, for_update=for_update) is not None:
        raise _payment_in_progress(milestone.id, milestone.status)
    return contract


def initiate_payment(
    db: Session,
    caller: Caller,
    milestone_id: int,
    gateway: str | PaymentGateway | None = None,
) -> PaymentSessionRead:
    """Create a Payment for a milestone and open a checkout at the gateway.

    Caller and milestone are checked before the gateway adapter is built, so
    outsiders and unknown milestones never learn which gateways are enabled.
    The PENDING row is committed before the gateway is called so the in-flight
    guard holds while the session is being opened. A gateway failure marks the
    attempt FAILED, which lets the client retry with a fresh Payment.
    """

    _check_payable(db, caller, ledger.get_milestone(db, milestone_id))
    gateway_name = resolve_gateway_name(gateway)
    adapter = get_gateway(gateway_name)
    payer = identity.get_user(db, caller.user_id)

    def _create() -> Payment:
        milestone = ledger.get_milestone(db, milestone_id, for_update=True)
        contract = _check_payable(db, caller, milestone, for_update=True)

        payment = Payment(
            contract_id=contract.id,
            milestone_id=milestone.id,
            client_id=contract.client_id,
            provider_id=contract.provider_id,
            amount=milestone.amount,
            gateway=gateway_name,
            status=PaymentStatus.PENDING,
        )
        db.add(payment)
        db.flush()
        log_audit(
            db,
            actor=caller.actor,
            action="PAYMENT_INITIATED",
            entity="Payment",
            entity_id=payment.id,
            data={"milestone_id": milestone.id, "amount": payment.amount, "gateway": gateway_name.value},
        )
        return payment

    try:
        payment = ledger.run_atomic(db, _create)
    except IntegrityError as exc:
        # Another process won the partial unique index race.
        milestone = ledger.get_milestone(db, milestone_id)
        raise _payment_in_progress(milestone.id, milestone.status) from exc

    logger.info(
        "Payment initiated",
        extra={"payment_id": payment.id, "milestone_id": milestone_id, "gateway": gateway_name.value},
    )

    description = f"Milestone #{payment.milestone_id} of contract #{payment.contract_id}"
    try:
        session = adapter.open_session(payment, payer, description)
    except Exception as exc:
        reason = exc.message if isinstance(exc, DomainError) else type(exc).__name__
        _mark_open_failed(db, payment.id, reason)
        raise

    payment = _record_session(db, payment.id, session)
    return PaymentSessionRead(
        payment_id=payment.id,
        gateway=payment.gateway,
        status=payment.status,
        external_reference=session.external_reference,
        client_secret=session.client_secret,
        redirect_url=session.redirect_url,
    )


def _mark_open_failed(db: Session, payment_id: int, reason: str) -> None:
    def _work() -> None:
        payment = ledger.get_payment(db, payment_id, for_update=True)
        if payment.is_terminal:
            return
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = reason[:255]
        log_audit(
            db,
            actor="system",
            action="PAYMENT_FAILED",
            entity="Payment",
            entity_id=payment.id,
            data={"reason": payment.failure_reason, "source": "open_session"},
        )

    ledger.run_atomic(db, _work)
    logger.warning("Gateway session could not be opened", extra={"payment_id": payment_id, "reason": reason})


def _record_session(db: Session, payment_id: int, session: GatewaySession) -> Payment:
    def _work() -> Payment:
        payment = ledger.get_payment(db, payment_id, for_update=True)
        payment.external_reference = session.external_reference
        payment.checkout_url = session.redirect_url
        if payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.PROCESSING
        return payment

    payment = ledger.run_atomic(db, _work)
    logger.info(
        "Gateway session opened",
        extra={"payment_id": payment.id, "gateway": payment.gateway.value, "status": payment.status.value},
    )
    return payment


def get_payment_status(db: Session, payment_id: int, caller: Caller) -> PaymentStatusRead:
    """Return a payment's status, polling the gateway first while it is still open."""

    payment = ledger.get_payment(db, payment_id)
    authorize(caller, payment, entity="Payment")

    if not payment.is_terminal and payment.external_reference:
        try:
            adapter = get_gateway(payment.gateway)
            reported = adapter.fetch_status(payment.external_reference)
            reconciliation.reconcile(
                db, payment.external_reference, reported, payment.gateway, source="poll"
            )
        except DomainError as exc:
            logger.warning(
                "Gateway status poll failed",
                extra={"payment_id": payment.id, "gateway": payment.gateway.value, "code": exc.code},
            )
        payment = ledger.get_payment(db, payment_id)

    return to_status_view(payment)


def to_status_view(payment: Payment) -> PaymentStatusRead:
    return PaymentStatusRead(
        payment_id=payment.id,
        milestone_id=payment.milestone_id,
        contract_id=payment.contract_id,
        amount=payment.amount,
        gateway=payment.gateway,
        status=payment.status,
        completed_at=payment.completed_at,
        failure_reason=payment.failure_reason,
    )


__all__ = ["get_payment_status", "initiate_payment", "to_status_view"]
