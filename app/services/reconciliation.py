"""Idempotent application of gateway reports to payments and milestones."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.models import Milestone, MilestoneStatus, Payment, PaymentGateway, PaymentStatus
from app.services import ledger
from app.services.gateways import GatewayOutcome, normalize_status
from app.utils.audit import log_audit
from app.utils.time import utcnow

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    UNKNOWN = "UNKNOWN"
    ALREADY_FINAL = "ALREADY_FINAL"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    payment_id: int | None = None
    payment_status: PaymentStatus | None = None


def reconcile(
    db: Session,
    external_reference: str,
    reported_status: str,
    gateway: PaymentGateway,
    *,
    source: str = "callback",
) -> ReconcileResult:
    """Apply a gateway's report about ``external_reference`` exactly once.

    Completion flips the Payment to COMPLETED and its Milestone to PAID in the
    same commit. Terminal payments are left untouched, so replays and late
    contradicting reports are no-ops.
    """

    payment = ledger.find_payment_by_reference(db, external_reference)
    if payment is None:
        logger.warning(
            "Gateway report for unknown reference",
            extra={"gateway": gateway.value, "reported_status": reported_status, "source": source},
        )
        return ReconcileResult(ReconcileOutcome.UNKNOWN)

    if payment.gateway != gateway:
        logger.warning(
            "Gateway report from unexpected gateway",
            extra={"payment_id": payment.id, "gateway": gateway.value, "expected": payment.gateway.value},
        )
        return ReconcileResult(ReconcileOutcome.UNKNOWN, payment.id, payment.status)

    outcome = normalize_status(payment.gateway, reported_status)
    payment_id = payment.id
    milestone_id = payment.milestone_id

    def _work() -> ReconcileResult:
        # Lock order: milestone, then payment.
        milestone = ledger.get_milestone(db, milestone_id, for_update=True)
        current = ledger.get_payment(db, payment_id, for_update=True)
        if current.is_terminal:
            return ReconcileResult(ReconcileOutcome.ALREADY_FINAL, current.id, current.status)
        if outcome == GatewayOutcome.PROCESSING:
            return ReconcileResult(ReconcileOutcome.IGNORED, current.id, current.status)

        now = utcnow()
        if outcome == GatewayOutcome.COMPLETED:
            _complete(current, milestone, now)
            result = ReconcileResult(ReconcileOutcome.COMPLETED, current.id, current.status)
        else:
            current.status = PaymentStatus.FAILED
            current.failure_reason = f"Gateway reported '{reported_status}'"
            result = ReconcileResult(ReconcileOutcome.FAILED, current.id, current.status)

        log_audit(
            db,
            actor=f"gateway:{gateway.value.lower()}",
            action=f"PAYMENT_{result.outcome.value}",
            entity="Payment",
            entity_id=current.id,
            data={
                "milestone_id": current.milestone_id,
                "reported_status": reported_status,
                "source": source,
                "external_reference": external_reference,
            },
        )
        return result

    result = ledger.run_atomic(db, _work)

    log = logger.info if result.outcome != ReconcileOutcome.ALREADY_FINAL else logger.debug
    log(
        "Gateway report reconciled",
        extra={
            "payment_id": payment_id,
            "gateway": gateway.value,
            "reported_status": reported_status,
            "outcome": result.outcome.value,
            "source": source,
        },
    )
    return result


def _complete(payment: Payment, milestone: Milestone, now: datetime) -> None:
    payment.status = PaymentStatus.COMPLETED
    payment.completed_at = now
    payment.failure_reason = None
    if milestone.status != MilestoneStatus.PAID:
        milestone.status = MilestoneStatus.PAID
        milestone.paid_at = now
        if milestone.completed_at is None:
            milestone.completed_at = now
