"""Stripe SDK wrapper for milestone PaymentIntents and webhook verification."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import stripe

from app.config import Settings

if TYPE_CHECKING:  # pragma: no cover - hints only
    from app.models import Payment


class StripeClient:
    """Wrapper around the Stripe Python SDK to isolate PSP concerns."""

    def __init__(self, settings: Settings) -> None:
        """Initialise the client and set the API key when enabled."""

        self.settings = settings
        self._ensure_enabled()
        self._secret_key = settings.STRIPE_SECRET_KEY
        self._webhook_secret = settings.STRIPE_WEBHOOK_SECRET

        if not self._secret_key:
            raise RuntimeError("Stripe secret key is missing; configure STRIPE_SECRET_KEY.")

        stripe.api_key = self._secret_key
        if not isinstance(stripe.default_http_client, stripe.RequestsClient):
            stripe.default_http_client = stripe.RequestsClient(timeout=settings.GATEWAY_TIMEOUT_SECONDS)

    def _ensure_enabled(self) -> None:
        if not self.settings.STRIPE_ENABLED:
            raise RuntimeError("Stripe integration is disabled; enable STRIPE_ENABLED to proceed.")

    def create_milestone_payment_intent(self, payment: "Payment", description: str) -> stripe.PaymentIntent:
        """Create a PaymentIntent for a milestone payment.

        ``payment.amount`` is already in the smallest currency unit. The metadata
        lets webhook events be traced back to the payment, milestone and contract.
        """

        metadata: Dict[str, Any] = {
            "payment_id": str(payment.id),
            "milestone_id": str(payment.milestone_id),
            "contract_id": str(payment.contract_id),
        }
        return stripe.PaymentIntent.create(
            amount=payment.amount,
            currency=self.settings.STRIPE_CURRENCY,
            description=description,
            metadata=metadata,
            automatic_payment_methods={"enabled": True},
            idempotency_key=f"milestone-payment-{payment.id}",
        )

    def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        return stripe.PaymentIntent.retrieve(payment_intent_id)

    def construct_webhook_event(self, payload: bytes, sig_header: str) -> stripe.Event:
        """Verify and construct a Stripe webhook event."""

        if not self._webhook_secret:
            raise RuntimeError(
                "Stripe webhook secret is missing; configure STRIPE_WEBHOOK_SECRET for verification."
            )

        return stripe.Webhook.construct_event(payload, sig_header, self._webhook_secret)
