from unittest.mock import patch

from fastapi.testclient import TestClient

from src.backend.app import models as dbm
from src.backend.app.main import app

client = TestClient(app)

SENT = {"status": "queued", "provider_id": "SMlead"}


def _lead(business, **extra):
    body = {"business_id": business.id, "phone": "(555) 222-3333", "name": "Jane Doe", "message": "Need a quote for a leaky faucet"}
    body.update(extra)
    return body


def test_lead_is_texted_back_and_recorded(db, business):
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = client.post("/webhooks/leads", json=_lead(business, form_data={"zip": "10001"}))
    assert r.status_code == 200
    out = r.json()
    assert out["status"] == "success"
    assert isinstance(out["response_time_ms"], int)
    to, body = sms.call_args.args[:2]
    assert to == "+15552223333"
    assert body.startswith("Hi Jane! Thanks for reaching out to Acme Plumbing.")
    assert out["message_preview"] == body[:50]

    lead = db.query(dbm.Lead).one()
    assert lead.id == out["lead_id"]
    assert lead.status == "responded"
    assert lead.responded_at is not None
    assert lead.source_details_json == '{"zip": "10001"}'
    msgs = db.query(dbm.Message).filter(dbm.Message.conversation_id == lead.conversation_id).order_by(dbm.Message.id).all()
    assert [(m.direction, m.intent) for m in msgs] == [("inbound", None), ("outbound", "speed_to_lead")]
    assert db.query(dbm.Contact).one().name == "Jane Doe"


def test_lead_found_by_business_number(db, business):
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT):
        r = client.post("/webhooks/leads", json={"twilio_number": business.twilio_number, "phone": "5552223333"})
    assert r.status_code == 200
    assert r.json()["status"] == "success"


def test_lead_for_paused_business_is_skipped(db, business):
    business.is_paused = True
    db.commit()
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = client.post("/webhooks/leads", json=_lead(business))
    assert r.json() == {"status": "skipped", "reason": "disabled_or_paused"}
    sms.assert_not_called()
    assert db.query(dbm.Lead).count() == 0


def test_lead_with_speed_to_lead_disabled_is_skipped(db, business):
    business.speed_to_lead_enabled = False
    db.commit()
    r = client.post("/webhooks/leads", json=_lead(business))
    assert r.json()["status"] == "skipped"


def test_lead_rejects_unknown_business_and_bad_phone(business):
    r = client.post("/webhooks/leads", json={"business_id": 9999, "phone": "5552223333"})
    assert r.status_code == 400
    assert r.json()["detail"] == "business_not_found"
    r = client.post("/webhooks/leads", json=_lead(business, phone="12"))
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_phone"


def test_lead_secret_header_is_enforced(business, monkeypatch):
    monkeypatch.setenv("LEADS_WEBHOOK_SECRET", "s3cret")
    r = client.post("/webhooks/leads", json=_lead(business))
    assert r.status_code == 401
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT):
        r = client.post("/webhooks/leads", json=_lead(business), headers={"x-ghostops-secret": "s3cret"})
    assert r.status_code == 200


def test_lead_send_failure_marks_lead_failed(db, business):
    with patch("src.backend.app.messaging.twilio_send_sms", side_effect=RuntimeError("twilio down")):
        r = client.post("/webhooks/leads", json=_lead(business))
    assert r.json()["status"] == "failed"
    assert db.query(dbm.Lead).one().status == "failed"


def test_lead_webhook_is_rate_limited(business, monkeypatch):
    monkeypatch.setattr("src.backend.app.main.LEAD_RATE_PER_MINUTE", 1)
    monkeypatch.setattr("src.backend.app.main.LEAD_RATE_BURST", 0)
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT):
        assert client.post("/webhooks/leads", json=_lead(business)).status_code == 200
        r = client.post("/webhooks/leads", json=_lead(business))
    assert r.status_code == 429
