import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from src.backend.app import models as dbm
from src.backend.app.reviews import ASK_WHO, handle_review_request

SENT = {"status": "queued", "provider_id": "SMrev"}


def _ai(details):
    ai = MagicMock()
    ai.extract_json = AsyncMock(return_value=details)
    return ai


def test_name_and_phone_in_one_message(db, business):
    ai = _ai(None)
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        out = asyncio.run(handle_review_request(db, business, "ask John 555-123-4567 for a review", ai=ai))
    to, body = sms.call_args.args[:2]
    assert to == "+15551234567"
    assert body.startswith("Hi John! Thanks for choosing Acme Plumbing.")
    assert out["reply"] == "Got it! I sent a review request to John. ✅"
    ai.extract_json.assert_not_called()
    assert db.query(dbm.Contact).one().name == "John"


def test_phone_only_asks_model_for_name(db, business):
    ai = _ai({"name": "Maria", "phone": None})
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        asyncio.run(handle_review_request(db, business, "get a review from 555-123-4567", ai=ai))
    assert sms.call_args.args[0] == "+15551234567"
    assert sms.call_args.args[1].startswith("Hi Maria!")


def test_known_contact_by_name(db, business):
    db.add(dbm.Contact(business_id=business.id, name="Sarah", phone="+15557654321"))
    db.commit()
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        asyncio.run(handle_review_request(db, business, "Ask Sarah for a review", ai=_ai(None)))
    assert sms.call_args.args[0] == "+15557654321"


def test_unknown_recipient_asks_who(db, business):
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        out = asyncio.run(handle_review_request(db, business, "ask for a review", ai=_ai({"error": "none"})))
    sms.assert_not_called()
    assert out["reply"] == ASK_WHO
