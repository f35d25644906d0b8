"""Services handling gateway callbacks: Stripe webhooks and WiPay redirects."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import stripe
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import PaymentGateway
from app.services import gateways, ledger
from app.services.psp_stripe import StripeClient
from app.services.reconciliation import ReconcileOutcome, ReconcileResult, reconcile
from app.utils.errors import DomainError, GatewayNotConfigured

logger = logging.getLogger(__name__)

STRIPE_PAYMENT_EVENTS = frozenset(
    {
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "payment_intent.canceled",
    }
)


def handle_stripe_webhook(db: Session, payload: bytes, sig_header: str | None) -> dict[str, object]:
    """Verify a Stripe webhook and reconcile PaymentIntent outcomes."""

    settings = get_settings()
    if not settings.STRIPE_ENABLED:
        logger.warning("Stripe webhook received while Stripe is disabled")
        raise GatewayNotConfigured("Stripe integration is disabled.", code="STRIPE_DISABLED")

    if not sig_header:
        raise DomainError("Stripe-Signature header is required.", code="STRIPE_SIGNATURE_MISSING")

    try:
        client = StripeClient(settings)
        event = client.construct_webhook_event(payload, sig_header)
    except RuntimeError as exc:  # configuration issue
        logger.error("Stripe webhook configuration error", exc_info=True)
        raise GatewayNotConfigured(str(exc), code="STRIPE_NOT_CONFIGURED") from exc
    except stripe.SignatureVerificationError as exc:
        logger.warning("Stripe signature verification failed")
        raise DomainError("Invalid Stripe signature.", code="STRIPE_SIGNATURE_INVALID") from exc
    except ValueError as exc:
        logger.warning("Stripe webhook payload could not be parsed")
        raise DomainError("Invalid Stripe webhook payload.", code="STRIPE_EVENT_INVALID") from exc

    event_type = event["type"]
    logger.info("Stripe webhook received", extra={"event_type": event_type, "event_id": event["id"]})

    if event_type not in STRIPE_PAYMENT_EVENTS:
        logger.info("Unhandled Stripe event type", extra={"event_type": event_type})
        return {"received": True, "outcome": ReconcileOutcome.IGNORED.value}

    payment_intent = event["data"]["object"]
    result = reconcile(
        db,
        payment_intent["id"],
        event_type,
        PaymentGateway.STRIPE,
        source="stripe_webhook",
    )
    return {"received": True, "outcome": result.outcome.value}


@dataclass(frozen=True)
class WiPayCallbackResult:
    result: ReconcileResult
    reported_status: str | None


def handle_wipay_callback(
    db: Session,
    *,
    order_id: str | None,
    transaction_id: str | None,
    reported_status: str | None,
) -> WiPayCallbackResult:
    """Reconcile a WiPay checkout redirect.

    The redirect is unauthenticated, so with ``WIPAY_VERIFY_CALLBACKS`` on the
    status is taken from WiPay's status API instead of the query string.
    """

    reference = transaction_id
    if not reference:
        payment_id = gateways.payment_id_from_order(order_id)
        if payment_id is not None:
            payment = ledger.find_payment_by_id(db, payment_id)
            reference = payment.external_reference if payment is not None else None

    if not reference:
        logger.warning("WiPay callback without a usable reference", extra={"order_id": order_id})
        return WiPayCallbackResult(ReconcileResult(ReconcileOutcome.UNKNOWN), reported_status)

    status_to_apply = reported_status
    if get_settings().WIPAY_VERIFY_CALLBACKS:
        try:
            status_to_apply = gateways.get_gateway(PaymentGateway.WIPAY).fetch_status(reference)
        except DomainError as exc:
            logger.warning(
                "WiPay callback verification failed",
                extra={"order_id": order_id, "code": exc.code},
            )
            payment = ledger.find_payment_by_reference(db, reference)
            return WiPayCallbackResult(
                ReconcileResult(
                    ReconcileOutcome.IGNORED,
                    payment.id if payment else None,
                    payment.status if payment else None,
                ),
                reported_status,
            )

    result = reconcile(
        db,
        reference,
        status_to_apply or "",
        PaymentGateway.WIPAY,
        source="wipay_callback",
    )
    return WiPayCallbackResult(result, status_to_apply)


__all__ = ["STRIPE_PAYMENT_EVENTS", "WiPayCallbackResult", "handle_stripe_webhook", "handle_wipay_callback"]
