from app.models.audit import AuditLog
from app.utils.audit import log_audit, sanitize_payload_for_audit


def test_audit_log_masks_sensitive_fields(db_session):
    payload = {
        "checkout_url": "https://sandbox.wipayfinancial.com/checkout/abc123?token=secret",
        "client_secret": "pi_3Nabcdef_secret_ZYXW9876",
        "external_reference": "pi_3Nabcdef1234",
        "email": "sensitive@example.com",
        "amount": 15000,
        "nested": [{"payer_email": "payer@example.com"}],
    }

    log_audit(
        db_session,
        actor="test",
        action="MASK_TEST",
        entity="Payment",
        entity_id=1,
        data=payload,
    )
    db_session.commit()

    entry = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "MASK_TEST")
        .order_by(AuditLog.id.desc())
        .first()
    )
    assert entry is not None
    assert entry.data_json["checkout_url"] == "https://sandbox.wipayfinancial.com/checkout/abc123?***"
    assert entry.data_json["client_secret"] == "***9876"
    assert entry.data_json["external_reference"] == "***1234"
    assert entry.data_json["email"] == "***@example.com"
    assert entry.data_json["amount"] == 15000
    assert entry.data_json["nested"][0]["payer_email"] == "***@example.com"


def test_short_and_missing_values():
    masked = sanitize_payload_for_audit({"client_secret": "abc", "email": "nobody", "checkout_url": None})

    assert masked == {"client_secret": "***", "email": "***", "checkout_url": None}
