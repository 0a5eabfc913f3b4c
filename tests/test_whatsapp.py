import hashlib
import hmac
import json
from unittest.mock import patch

from fastapi.testclient import TestClient

from src.backend.app import models as dbm
from src.backend.app.integrations.whatsapp_cloud import parse_webhook_payload, wa_id
from src.backend.app.main import WHATSAPP_UNKNOWN_OWNER, app
from src.backend.app.orchestrator import OWNER_HELP

client = TestClient(app)

WA_SENT = {"status": "sent", "provider_id": "wamid.out"}


def _delivery(sender, text, kind="text"):
    message = {"from": sender, "id": "wamid.in", "type": kind}
    if kind == "text":
        message["text"] = {"body": text}
    elif kind == "button":
        message["button"] = {"text": text}
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {
            "metadata": {"phone_number_id": "PNID"},
            "contacts": [{"profile": {"name": "Pat"}, "wa_id": sender}],
            "messages": [message],
        }}]}],
    }


def test_verification_handshake(monkeypatch):
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "tok")
    params = {"hub.mode": "subscribe", "hub.verify_token": "tok", "hub.challenge": "12345"}
    r = client.get("/webhooks/whatsapp", params=params)
    assert r.status_code == 200
    assert r.text == "12345"
    params["hub.verify_token"] = "nope"
    assert client.get("/webhooks/whatsapp", params=params).status_code == 403


def test_verification_fails_without_configured_token(monkeypatch):
    monkeypatch.delenv("WHATSAPP_VERIFY_TOKEN", raising=False)
    params = {"hub.mode": "subscribe", "hub.verify_token": "", "hub.challenge": "1"}
    assert client.get("/webhooks/whatsapp", params=params).status_code == 403


def test_owner_message_is_answered_over_whatsapp(db, business):
    with patch("src.backend.app.main.send_whatsapp_message", return_value=WA_SENT) as send, \
            patch("src.backend.app.main.mark_as_read", return_value=True) as read, \
            patch("src.backend.app.messaging.twilio_send_sms") as sms:
        r = client.post("/webhooks/whatsapp", json=_delivery("15550001111", "help"))
    assert r.json() == {"status": "ok"}
    send.assert_called_once_with("15550001111", OWNER_HELP, "PNID")
    read.assert_called_once_with("wamid.in", "PNID")
    sms.assert_not_called()

    conv = db.query(dbm.Conversation).one()
    assert conv.source == "whatsapp"
    assert conv.is_owner is True
    msgs = db.query(dbm.Message).order_by(dbm.Message.id).all()
    assert [(m.direction, m.intent) for m in msgs] == [("inbound", None), ("outbound", "help")]
    assert msgs[1].twilio_sid == "wamid.out"
    assert db.query(dbm.DailyStat).one().owner_messages == 1


def test_unknown_sender_is_told_to_register(db, business):
    with patch("src.backend.app.main.send_whatsapp_message", return_value=WA_SENT) as send, \
            patch("src.backend.app.main.mark_as_read", return_value=True):
        r = client.post("/webhooks/whatsapp", json=_delivery("15557770000", "status"))
    assert r.json() == {"status": "unknown_owner"}
    send.assert_called_once_with("15557770000", WHATSAPP_UNKNOWN_OWNER, "PNID")
    assert db.query(dbm.Message).count() == 0


def test_status_updates_are_ignored(business):
    payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.out", "status": "delivered"}]}}]}]}
    with patch("src.backend.app.main.send_whatsapp_message") as send:
        r = client.post("/webhooks/whatsapp", json=payload)
    assert r.json() == {"status": "ignored"}
    send.assert_not_called()


def test_send_failure_is_acknowledged(db, business):
    with patch("src.backend.app.main.send_whatsapp_message", side_effect=RuntimeError("whatsapp not configured")), \
            patch("src.backend.app.main.mark_as_read", return_value=False):
        r = client.post("/webhooks/whatsapp", json=_delivery("15550001111", "help"))
    assert r.status_code == 200
    assert r.json() == {"status": "error"}


def test_payload_signature_is_checked(business, monkeypatch):
    monkeypatch.setenv("WHATSAPP_APP_SECRET", "appsecret")
    raw = json.dumps({"entry": []}).encode()
    r = client.post("/webhooks/whatsapp", content=raw, headers={"content-type": "application/json", "x-hub-signature-256": "sha256=bad"})
    assert r.status_code == 403
    good = "sha256=" + hmac.new(b"appsecret", raw, hashlib.sha256).hexdigest()
    r = client.post("/webhooks/whatsapp", content=raw, headers={"content-type": "application/json", "x-hub-signature-256": good})
    assert r.json() == {"status": "ignored"}


def test_parse_button_reply_and_wa_id():
    parsed = parse_webhook_payload(_delivery("15550001111", "Yes", kind="button"))
    assert parsed["text"] == "Yes"
    assert parsed["from_name"] == "Pat"
    assert parse_webhook_payload({"entry": []}) is None
    assert wa_id("+1 (555) 000-1111") == "15550001111"
