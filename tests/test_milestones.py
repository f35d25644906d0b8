"""Milestone ledger tests."""
import pytest

from app.models import ContractStatus, Milestone, MilestoneStatus, Payment, PaymentGateway, PaymentStatus
from app.security import Caller
from app.services import milestones as milestones_service
from app.utils.errors import InvalidTransition


def _reload(db_session, milestone_id: int) -> Milestone | None:
    db_session.expire_all()
    return db_session.get(Milestone, milestone_id)


@pytest.mark.anyio
async def test_provider_adds_milestone_to_signed_contract(client, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(client_user, provider_user)

    response = await client.post(
        f"/contracts/{contract.id}/milestones",
        json={"title": "Demolition", "amount": 45000, "due_date": "2026-11-30"},
        headers=provider_headers,
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["amount"] == 45000
    assert body["contract_id"] == contract.id


@pytest.mark.anyio
async def test_milestones_require_signed_contract_and_provider(client, parties, make_contract):
    client_user, client_headers = parties["client"]
    provider_user, provider_headers = parties["provider"]
    draft = make_contract(client_user, provider_user, status=ContractStatus.DRAFT)
    signed = make_contract(client_user, provider_user)

    unsigned = await client.post(
        f"/contracts/{draft.id}/milestones", json={"title": "Early", "amount": 100}, headers=provider_headers
    )
    assert unsigned.status_code == 409
    assert unsigned.json()["error"]["code"] == "CONTRACT_NOT_SIGNED"

    by_client = await client.post(
        f"/contracts/{signed.id}/milestones", json={"title": "Mine", "amount": 100}, headers=client_headers
    )
    assert by_client.status_code == 403

    invalid_amount = await client.post(
        f"/contracts/{signed.id}/milestones", json={"title": "Free", "amount": 0}, headers=provider_headers
    )
    assert invalid_amount.status_code == 422


@pytest.mark.anyio
async def test_mark_completed_and_no_regression(client, parties, make_contract, db_session):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(client_user, provider_user, milestones=(20000,))
    milestone_id = contract.milestones[0].id

    completed = await client.put(
        f"/milestones/{milestone_id}", json={"status": "COMPLETED"}, headers=provider_headers
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "COMPLETED"
    assert completed.json()["completed_at"] is not None

    backwards = await client.put(f"/milestones/{milestone_id}", json={"status": "PENDING"}, headers=provider_headers)
    assert backwards.status_code == 409
    assert backwards.json()["error"]["details"]["current_status"] == "COMPLETED"

    again = await client.put(f"/milestones/{milestone_id}", json={"status": "COMPLETED"}, headers=provider_headers)
    assert again.status_code == 409

    assert _reload(db_session, milestone_id).status == MilestoneStatus.COMPLETED


@pytest.mark.anyio
async def test_paid_is_never_set_through_the_api(client, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(client_user, provider_user, milestones=(20000,))

    response = await client.put(
        f"/milestones/{contract.milestones[0].id}", json={"status": "PAID"}, headers=provider_headers
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "PAID_BY_GATEWAY"


def test_mark_completed_on_paid_milestone_raises(db_session, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, _ = parties["provider"]
    contract = make_contract(
        client_user, provider_user, milestones=(20000,), milestone_status=MilestoneStatus.PAID
    )
    caller = Caller(user_id=provider_user.id, role=provider_user.role)

    with pytest.raises(InvalidTransition) as excinfo:
        milestones_service.mark_completed(db_session, contract.milestones[0].id, caller)

    assert excinfo.value.details["current_status"] == "PAID"
    assert _reload(db_session, contract.milestones[0].id).status == MilestoneStatus.PAID


@pytest.mark.anyio
async def test_edit_details_only_while_pending(client, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    pending = make_contract(client_user, provider_user, milestones=(20000,))
    done = make_contract(
        client_user, provider_user, milestones=(20000,), milestone_status=MilestoneStatus.COMPLETED
    )

    edited = await client.put(
        f"/milestones/{pending.milestones[0].id}",
        json={"title": "Rough-in plumbing", "amount": 25000},
        headers=provider_headers,
    )
    assert edited.status_code == 200
    assert edited.json()["title"] == "Rough-in plumbing"
    assert edited.json()["amount"] == 25000

    refused = await client.put(
        f"/milestones/{done.milestones[0].id}", json={"amount": 1}, headers=provider_headers
    )
    assert refused.status_code == 409


@pytest.mark.anyio
async def test_edit_and_delete_blocked_while_payment_in_flight(client, parties, make_contract, db_session):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(client_user, provider_user, milestones=(20000,))
    milestone = contract.milestones[0]
    db_session.add(
        Payment(
            contract_id=contract.id,
            milestone_id=milestone.id,
            client_id=client_user.id,
            provider_id=provider_user.id,
            amount=milestone.amount,
            gateway=PaymentGateway.WIPAY,
            status=PaymentStatus.PROCESSING,
            external_reference="wipay_inflight_1",
        )
    )
    db_session.commit()

    edit = await client.put(f"/milestones/{milestone.id}", json={"amount": 1}, headers=provider_headers)
    assert edit.status_code == 409
    assert edit.json()["error"]["code"] == "PAYMENT_IN_PROGRESS"

    delete = await client.delete(f"/milestones/{milestone.id}", headers=provider_headers)
    assert delete.status_code == 409
    assert delete.json()["error"]["code"] == "PAYMENT_IN_PROGRESS"


@pytest.mark.anyio
async def test_delete_milestone_drops_failed_payments(client, parties, make_contract, db_session):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(client_user, provider_user, milestones=(20000,))
    milestone = contract.milestones[0]
    failed = Payment(
        contract_id=contract.id,
        milestone_id=milestone.id,
        client_id=client_user.id,
        provider_id=provider_user.id,
        amount=milestone.amount,
        gateway=PaymentGateway.STRIPE,
        status=PaymentStatus.FAILED,
        failure_reason="card declined",
    )
    db_session.add(failed)
    db_session.commit()
    failed_id = failed.id

    response = await client.delete(f"/milestones/{milestone.id}", headers=provider_headers)
    assert response.status_code == 204
    assert _reload(db_session, milestone.id) is None
    assert db_session.get(Payment, failed_id) is None


@pytest.mark.anyio
async def test_paid_milestone_cannot_be_deleted(client, parties, make_contract):
    client_user, _ = parties["client"]
    provider_user, provider_headers = parties["provider"]
    contract = make_contract(
        client_user, provider_user, milestones=(20000,), milestone_status=MilestoneStatus.PAID
    )

    response = await client.delete(f"/milestones/{contract.milestones[0].id}", headers=provider_headers)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "MILESTONE_PAID"
