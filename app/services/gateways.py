"""Gateway adapters behind a single interface for the payment services.

Each adapter opens a checkout session for a Payment, fetches the gateway's
current status for a reference and maps gateway status strings onto
:class:`GatewayOutcome`.
"""
from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Protocol

import httpx
import stripe

from app.config import Settings, get_settings
from app.models import Payment, PaymentGateway, User
from app.services.psp_stripe import StripeClient
from app.services.psp_wipay import WiPayClient, WiPayError
from app.utils.errors import GatewayNotConfigured, GatewayUnavailable

logger = logging.getLogger(__name__)


class GatewayOutcome(str, enum.Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PROCESSING = "PROCESSING"


@dataclass(frozen=True)
class GatewaySession:
    external_reference: str
    client_secret: str | None = None
    redirect_url: str | None = None


class Gateway(Protocol):
    name: PaymentGateway

    def open_session(self, payment: Payment, payer: User, description: str) -> GatewaySession: ...

    def fetch_status(self, reference: str) -> str: ...

    def close(self) -> None: ...

    @staticmethod
    def normalize_status(reported: str) -> GatewayOutcome: ...


_STRIPE_COMPLETED = {"succeeded", "payment_intent.succeeded"}
_STRIPE_FAILED = {"canceled", "payment_failed", "payment_intent.payment_failed", "payment_intent.canceled"}

_WIPAY_COMPLETED = {"success", "successful", "completed"}
_WIPAY_FAILED = {"failed", "declined", "error", "cancelled", "canceled"}


class StripeGateway:
    name = PaymentGateway.STRIPE

    def __init__(self, client: StripeClient) -> None:
        self.client = client

    def close(self) -> None:
        """The Stripe SDK keeps no per-client connections."""

    def open_session(self, payment: Payment, payer: User, description: str) -> GatewaySession:
        try:
            intent = self.client.create_milestone_payment_intent(payment, description)
        except stripe.StripeError as exc:
            raise GatewayUnavailable(
                "Stripe could not create the payment.",
                details={"gateway": self.name.value, "reason": exc.user_message or type(exc).__name__},
            ) from exc
        return GatewaySession(external_reference=intent["id"], client_secret=intent.get("client_secret"))

    def fetch_status(self, reference: str) -> str:
        try:
            intent = self.client.retrieve_payment_intent(reference)
        except stripe.StripeError as exc:
            raise GatewayUnavailable(
                "Stripe status lookup failed.", details={"gateway": self.name.value}
            ) from exc
        return str(intent["status"])

    @staticmethod
    def normalize_status(reported: str) -> GatewayOutcome:
        value = (reported or "").strip().lower()
        if value in _STRIPE_COMPLETED:
            return GatewayOutcome.COMPLETED
        if value in _STRIPE_FAILED:
            return GatewayOutcome.FAILED
        return GatewayOutcome.PROCESSING


class WiPayGateway:
    name = PaymentGateway.WIPAY

    def __init__(self, client: WiPayClient) -> None:
        self.client = client

    def close(self) -> None:
        self.client.close()

    def open_session(self, payment: Payment, payer: User, description: str) -> GatewaySession:
        try:
            checkout = self.client.create_checkout(
                order_id=order_id_for(payment),
                amount=payment.amount,
                payer_name=payer.full_name or payer.username,
                payer_email=payer.email,
                reason=description,
            )
        except (httpx.HTTPError, WiPayError, ValueError) as exc:
            raise GatewayUnavailable(
                "WiPay could not create the checkout.",
                details={"gateway": self.name.value, "reason": str(exc) or type(exc).__name__},
            ) from exc
        return GatewaySession(external_reference=checkout["transaction_id"], redirect_url=checkout["url"])

    def fetch_status(self, reference: str) -> str:
        try:
            return self.client.get_transaction_status(reference)
        except (httpx.HTTPError, WiPayError, ValueError) as exc:
            raise GatewayUnavailable(
                "WiPay status lookup failed.", details={"gateway": self.name.value}
            ) from exc

    @staticmethod
    def normalize_status(reported: str) -> GatewayOutcome:
        value = (reported or "").strip().lower()
        if value in _WIPAY_COMPLETED:
            return GatewayOutcome.COMPLETED
        if value in _WIPAY_FAILED:
            return GatewayOutcome.FAILED
        return GatewayOutcome.PROCESSING


_ADAPTERS = {PaymentGateway.STRIPE: StripeGateway, PaymentGateway.WIPAY: WiPayGateway}


def normalize_status(name: PaymentGateway, reported: str) -> GatewayOutcome:
    """Map a raw status string from ``name`` onto a :class:`GatewayOutcome`."""

    return _ADAPTERS[name].normalize_status(reported)


def order_id_for(payment: Payment) -> str:
    """WiPay order id echoed back on the redirect callback."""

    return f"payment-{payment.id}"


def payment_id_from_order(order_id: str | None) -> int | None:
    if not order_id or not order_id.startswith("payment-"):
        return None
    suffix = order_id[len("payment-"):]
    return int(suffix) if suffix.isdigit() else None


def resolve_gateway_name(requested: str | PaymentGateway | None, settings: Settings | None = None) -> PaymentGateway:
    settings = settings or get_settings()
    raw = requested.value if isinstance(requested, PaymentGateway) else requested
    try:
        return PaymentGateway((raw or settings.DEFAULT_GATEWAY).upper())
    except ValueError:
        raise GatewayNotConfigured(
            "Unknown payment gateway.", code="GATEWAY_UNKNOWN", details={"gateway": raw}
        ) from None


_instances: dict[PaymentGateway, Gateway] = {}
_instances_lock = threading.Lock()


def _build_gateway(name: PaymentGateway, settings: Settings) -> Gateway:
    try:
        if name == PaymentGateway.STRIPE:
            return StripeGateway(StripeClient(settings))
        return WiPayGateway(WiPayClient(settings))
    except RuntimeError as exc:
        logger.warning("Payment gateway not configured", extra={"gateway": name.value})
        raise GatewayNotConfigured(str(exc), details={"gateway": name.value}) from exc


def get_gateway(name: PaymentGateway, settings: Settings | None = None) -> Gateway:
    """Return the adapter for ``name`` or raise ``GatewayNotConfigured``.

    Adapters built from the application settings are created once per process
    and reused; an explicit ``settings`` builds a fresh, uncached adapter.
    """

    if settings is not None:
        return _build_gateway(name, settings)
    with _instances_lock:
        adapter = _instances.get(name)
        if adapter is None:
            adapter = _build_gateway(name, get_settings())
            _instances[name] = adapter
        return adapter


def close_gateways() -> None:
    """Close the cached adapters and their HTTP clients."""

    with _instances_lock:
        adapters = list(_instances.values())
        _instances.clear()
    for adapter in adapters:
        adapter.close()


__all__ = [
    "Gateway",
    "GatewayOutcome",
    "GatewaySession",
    "StripeGateway",
    "WiPayGateway",
    "close_gateways",
    "get_gateway",
    "normalize_status",
    "order_id_for",
    "payment_id_from_order",
    "resolve_gateway_name",
]
