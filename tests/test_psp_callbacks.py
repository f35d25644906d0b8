"""Stripe webhook and WiPay redirect callback tests."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from uuid import uuid4

import pytest

from app.config import settings
from app.models import Milestone, MilestoneStatus, Payment, PaymentGateway, PaymentStatus

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def stripe_enabled(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_ENABLED", True)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)


@pytest.fixture
def make_payment(db_session, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, _ = parties["provider"]

    def _factory(gateway: PaymentGateway, reference: str) -> Payment:
        contract = make_contract(client_user, provider_user, milestones=(12500,))
        milestone = contract.milestones[0]
        payment = Payment(
            contract_id=contract.id,
            milestone_id=milestone.id,
            client_id=client_user.id,
            provider_id=provider_user.id,
            amount=milestone.amount,
            gateway=gateway,
            status=PaymentStatus.PROCESSING,
            external_reference=reference,
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    return _factory


def _stripe_event(event_type: str, payment_intent_id: str) -> bytes:
    event = {
        "id": f"evt_{uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {"object": {"id": payment_intent_id, "object": "payment_intent", "status": "succeeded"}},
    }
    return json.dumps(event).encode()


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _state(db_session, payment: Payment) -> tuple[PaymentStatus, MilestoneStatus]:
    db_session.expire_all()
    return (
        db_session.get(Payment, payment.id).status,
        db_session.get(Milestone, payment.milestone_id).status,
    )


@pytest.mark.anyio
async def test_stripe_succeeded_event_completes_payment(client, stripe_enabled, make_payment, db_session):
    payment = make_payment(PaymentGateway.STRIPE, "pi_webhook_ok")
    payload = _stripe_event("payment_intent.succeeded", "pi_webhook_ok")

    response = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert response.status_code == 200, response.text
    assert response.json() == {"received": True, "outcome": "COMPLETED"}
    assert _state(db_session, payment) == (PaymentStatus.COMPLETED, MilestoneStatus.PAID)

    replay = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert replay.status_code == 200
    assert replay.json()["outcome"] == "ALREADY_FINAL"


@pytest.mark.anyio
async def test_stripe_failed_event_fails_payment_only(client, stripe_enabled, make_payment, db_session):
    payment = make_payment(PaymentGateway.STRIPE, "pi_webhook_failed")
    payload = _stripe_event("payment_intent.payment_failed", "pi_webhook_failed")

    response = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "FAILED"
    assert _state(db_session, payment) == (PaymentStatus.FAILED, MilestoneStatus.PENDING)


@pytest.mark.anyio
async def test_stripe_unknown_reference_is_acknowledged(client, stripe_enabled):
    payload = _stripe_event("payment_intent.succeeded", "pi_never_seen")

    response = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "UNKNOWN"


@pytest.mark.anyio
async def test_stripe_unhandled_event_type_is_acknowledged(client, stripe_enabled):
    payload = _stripe_event("charge.refunded", "pi_irrelevant")

    response = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "IGNORED"


@pytest.mark.anyio
async def test_stripe_signature_is_required_and_verified(client, stripe_enabled, make_payment, db_session):
    payment = make_payment(PaymentGateway.STRIPE, "pi_webhook_forged")
    payload = _stripe_event("payment_intent.succeeded", "pi_webhook_forged")

    missing = await client.post("/psp/stripe/webhook", content=payload)
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "STRIPE_SIGNATURE_MISSING"

    forged = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload, "whsec_wrong")}
    )
    assert forged.status_code == 400
    assert forged.json()["error"]["code"] == "STRIPE_SIGNATURE_INVALID"
    assert _state(db_session, payment) == (PaymentStatus.PROCESSING, MilestoneStatus.PENDING)


@pytest.mark.anyio
async def test_stripe_webhook_rejected_when_disabled(client):
    payload = _stripe_event("payment_intent.succeeded", "pi_disabled")

    response = await client.post(
        "/psp/stripe/webhook", content=payload, headers={"Stripe-Signature": _sign(payload)}
    )
    assert response.status_code == 503
    assert response.json()["error"]["code"] == "STRIPE_DISABLED"


@pytest.mark.anyio
async def test_wipay_callback_trusts_verified_status_over_query(client, make_payment, fake_gateways, db_session):
    payment = make_payment(PaymentGateway.WIPAY, "wipay_txn_verified")
    fake_gateways[PaymentGateway.WIPAY].statuses["wipay_txn_verified"] = "failed"

    response = await client.get(
        "/psp/wipay/callback",
        params={"order_id": f"payment-{payment.id}", "transaction_id": "wipay_txn_verified", "status": "success"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "FAILED"
    assert body["payment_id"] == payment.id
    assert _state(db_session, payment) == (PaymentStatus.FAILED, MilestoneStatus.PENDING)


@pytest.mark.anyio
async def test_wipay_callback_completes_payment(client, make_payment, fake_gateways, db_session):
    payment = make_payment(PaymentGateway.WIPAY, "wipay_txn_ok")
    fake_gateways[PaymentGateway.WIPAY].statuses["wipay_txn_ok"] = "success"

    response = await client.get(
        "/psp/wipay/callback",
        params={"order_id": f"payment-{payment.id}", "transaction_id": "wipay_txn_ok", "status": "success"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    assert _state(db_session, payment) == (PaymentStatus.COMPLETED, MilestoneStatus.PAID)


@pytest.mark.anyio
async def test_wipay_callback_uses_query_status_when_verification_is_off(
    client, make_payment, monkeypatch, db_session
):
    monkeypatch.setattr(settings, "WIPAY_VERIFY_CALLBACKS", False)
    payment = make_payment(PaymentGateway.WIPAY, "wipay_txn_unverified")

    response = await client.get(
        "/psp/wipay/callback",
        params={"order_id": f"payment-{payment.id}", "transaction_id": "wipay_txn_unverified", "status": "success"},
    )
    assert response.json()["outcome"] == "COMPLETED"
    assert _state(db_session, payment) == (PaymentStatus.COMPLETED, MilestoneStatus.PAID)


@pytest.mark.anyio
async def test_wipay_callback_resolves_reference_from_order_id(client, make_payment, fake_gateways, db_session):
    payment = make_payment(PaymentGateway.WIPAY, "wipay_txn_by_order")
    fake_gateways[PaymentGateway.WIPAY].statuses["wipay_txn_by_order"] = "successful"

    response = await client.get("/psp/wipay/callback", params={"order_id": f"payment-{payment.id}"})
    assert response.json()["outcome"] == "COMPLETED"


@pytest.mark.anyio
async def test_wipay_callback_redirects_when_configured(client, make_payment, fake_gateways, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_STATUS_REDIRECT_URL", "https://app.tradeworks.tt/payment-status")
    payment = make_payment(PaymentGateway.WIPAY, "wipay_txn_redirect")
    fake_gateways[PaymentGateway.WIPAY].statuses["wipay_txn_redirect"] = "success"

    response = await client.get(
        "/psp/wipay/callback",
        params={"order_id": f"payment-{payment.id}", "transaction_id": "wipay_txn_redirect"},
    )
    assert response.status_code == 303
    assert response.headers["location"] == (
        f"https://app.tradeworks.tt/payment-status?payment_id={payment.id}&status=COMPLETED"
    )


@pytest.mark.anyio
async def test_wipay_callback_with_unknown_order_is_acknowledged(client, fake_gateways):
    response = await client.get("/psp/wipay/callback", params={"order_id": "payment-424242"})
    assert response.status_code == 200
    assert response.json()["outcome"] == "UNKNOWN"
