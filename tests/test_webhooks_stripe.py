from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.backend.app import models as dbm
from src.backend.app.main import app

client = TestClient(app)

SENT = {"status": "queued", "provider_id": "SMwelcome"}


@pytest.fixture(autouse=True)
def _stripe_env(monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setenv("TWILIO_MASTER_NUMBER", "+15550001000")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://api.example.com")


def _post(event):
    with patch("src.backend.app.main.construct_event", return_value=event):
        return client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})


def _checkout_event(**obj):
    session = {
        "id": "cs_1",
        "mode": "subscription",
        "customer": "cus_1",
        "subscription": "sub_1",
        "customer_details": {"email": "New@Owner.com", "phone": "(555) 444-1212", "name": "Nia"},
        "metadata": {"plan": "pro"},
    }
    session.update(obj)
    return {"type": "checkout.session.completed", "data": {"object": session}}


def test_missing_signature():
    r = client.post("/webhooks/stripe", content=b"{}")
    assert r.status_code == 400
    assert r.json()["detail"] == "missing_signature"


def test_invalid_signature():
    with patch("src.backend.app.main.construct_event", side_effect=ValueError("bad sig")):
        r = client.post("/webhooks/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=abc"})
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_signature"


def test_checkout_provisions_business_once(db):
    with patch("src.backend.app.provisioning.twilio_purchase_number", return_value="+15557770000") as buy, \
            patch("src.backend.app.provisioning.twilio_configure_webhooks", return_value="PN1") as hooks, \
            patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = _post(_checkout_event())
        assert r.status_code == 200
        assert r.json() == {"received": True}
        # Stripe retries deliver the same session again
        assert _post(_checkout_event()).status_code == 200

    buy.assert_called_once()
    hooks.assert_called_once_with(
        "+15557770000",
        "https://api.example.com/webhooks/twilio/sms",
        "https://api.example.com/webhooks/twilio/voice",
    )
    business = db.query(dbm.Business).one()
    assert business.owner_email == "new@owner.com"
    assert business.owner_phone == "+15554441212"
    assert business.twilio_number == "+15557770000"
    assert business.stripe_customer_id == "cus_1"
    assert business.subscription_plan == "pro"
    assert business.onboarding_step == "welcome"
    assert business.onboarding_complete is False
    assert business.api_key

    sms.assert_called_once()
    to, body = sms.call_args.args[:2]
    assert to == "+15554441212"
    assert "+15557770000" in body
    assert body.startswith("🎉 Welcome to GhostOps!")
    assert sms.call_args.kwargs["from_number"] == "+15550001000"


def test_provisioning_failure_returns_500(db):
    with patch("src.backend.app.provisioning.twilio_purchase_number", side_effect=RuntimeError("no numbers")):
        r = _post(_checkout_event())
    assert r.status_code == 500
    assert db.query(dbm.Business).count() == 0


def test_payment_link_checkout_marks_invoice_paid(db, business):
    db.add(dbm.Invoice(
        business_id=business.id,
        contact_name="John",
        contact_phone="+15551234567",
        amount_cents=50000,
        status="sent",
        stripe_payment_link_id="plink_9",
    ))
    db.commit()
    event = _checkout_event(mode="payment", payment_link="plink_9", amount_total=50000)
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = _post(event)
    assert r.status_code == 200
    db.expire_all()
    assert db.query(dbm.Invoice).one().status == "paid"
    assert sms.call_args.args[0] == business.owner_phone


def test_subscription_lifecycle(db, make_business):
    business = make_business(stripe_customer_id="cus_1")
    updated = {
        "type": "customer.subscription.updated",
        "data": {"object": {
            "id": "sub_2",
            "customer": "cus_1",
            "status": "past_due",
            "current_period_end": 1800000000,
            "items": {"data": [{"price": {"lookup_key": "agency"}}]},
        }},
    }
    assert _post(updated).status_code == 200
    db.expire_all()
    business = db.get(dbm.Business, business.id)
    assert business.subscription_status == "past_due"
    assert business.subscription_plan == "agency"
    assert business.subscription_current_period_end == 1800000000

    deleted = {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_2", "customer": "cus_1"}}}
    assert _post(deleted).status_code == 200
    db.expire_all()
    business = db.get(dbm.Business, business.id)
    assert business.subscription_status == "canceled"
    assert business.subscription_canceled_at


def test_unhandled_event_is_acknowledged():
    r = _post({"type": "invoice.finalized", "data": {"object": {}}})
    assert r.status_code == 200
    assert r.json() == {"received": True}
