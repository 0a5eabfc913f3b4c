import asyncio
from unittest.mock import AsyncMock, patch

from src.backend.app import models as dbm
from src.backend.app.ai import AIClient
from src.backend.app.conversations import get_or_create_conversation, save_message
from src.backend.app.messaging import send_sms
from src.backend.app.orchestrator import (
    CUSTOMER_HELP,
    MISSED_CALL_TRIGGER,
    OWNER_HELP,
    handle_general_chat,
    orchestrate,
)

CUSTOMER_PHONE = "+15552223333"


def _run(db, business, text, is_owner, phone, conversation=None, media=None):
    return asyncio.run(orchestrate(db, business, conversation, text, media or [], is_owner, phone))


def test_owner_help(db, business):
    r = _run(db, business, "help", True, business.owner_phone)
    assert r == {"reply": OWNER_HELP, "intent": "help", "actions": []}


def test_customer_is_limited_to_help_and_chat(db, business):
    assert _run(db, business, "help", False, CUSTOMER_PHONE)["reply"] == CUSTOMER_HELP
    r = _run(db, business, "invoice me $500 please", False, CUSTOMER_PHONE)
    assert r["intent"] == "general_chat"
    assert r["reply"] == "Thanks for your message! Someone from Acme Plumbing will get back to you shortly."
    assert db.query(dbm.Invoice).count() == 0


def test_owner_chat_fallback_without_model(db, business):
    r = _run(db, business, "tell me a joke", True, business.owner_phone)
    assert r["intent"] == "general_chat"
    assert r["reply"].startswith("Sorry, I'm having trouble right now.")


def test_pause_and_resume(db, business):
    r = _run(db, business, "pause", True, business.owner_phone)
    assert r["intent"] == "paused"
    assert business.is_paused is True

    r = _run(db, business, "do you work weekends?", False, CUSTOMER_PHONE)
    assert r == {"reply": None, "intent": "paused", "actions": []}

    r = _run(db, business, "resume", True, business.owner_phone)
    assert r["intent"] == "resumed"
    assert business.is_paused is False


def test_opt_out_suppresses_later_texts(db, business):
    r = _run(db, business, "STOP", False, CUSTOMER_PHONE)
    assert r["reply"] is None
    contact = db.query(dbm.Contact).filter(dbm.Contact.phone == CUSTOMER_PHONE).one()
    assert contact.opted_out is True

    with patch("src.backend.app.messaging.twilio_send_sms") as sms:
        assert send_sms(db, business, CUSTOMER_PHONE, "promo")["status"] == "suppressed"
        sms.assert_not_called()

    r = _run(db, business, "START", False, CUSTOMER_PHONE)
    assert "Reply STOP to opt out" in r["reply"]
    db.refresh(contact)
    assert contact.opted_out is False


def test_missed_call_fallback_text(db, business):
    with patch.object(AIClient, "generate", new=AsyncMock(return_value=None)):
        r = _run(db, business, MISSED_CALL_TRIGGER, False, CUSTOMER_PHONE)
    assert r["intent"] == "missed_call_recovery"
    assert r["reply"].startswith("Sorry we missed your call! This is Acme Plumbing.")


def test_general_chat_sends_history_without_duplicate_inbound(db, business):
    conv, _ = get_or_create_conversation(db, business, CUSTOMER_PHONE, False)
    save_message(db, conv, "inbound", "Do you fix water heaters?")
    save_message(db, conv, "outbound", "Yes we do!", ai_generated=True)
    save_message(db, conv, "inbound", "How soon can you come?")
    history = db.query(dbm.Message).order_by(dbm.Message.id).all()

    ai = AIClient(api_key="k")
    ai.generate = AsyncMock(return_value="We can come tomorrow morning.")
    r = asyncio.run(handle_general_chat(business, "How soon can you come?", history, False, ai))

    assert r["reply"] == "We can come tomorrow morning."
    messages = ai.generate.await_args.args[1]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "How soon can you come?"
    assert "Service business" in ai.generate.await_args.args[0]


def test_stats_query_for_owner(db, business):
    r = _run(db, business, "how much did I make", True, business.owner_phone)
    assert r["intent"] == "stats_query"
    assert "💰 Revenue: $0" in r["reply"]


def test_pending_context_is_dropped_when_reply_is_unrelated(db, business):
    conv, _ = get_or_create_conversation(db, business, business.owner_phone, True)
    conv.context_json = '{"awaiting": "invoice_phone", "invoice": {"name": "Bob", "amount_cents": 5000}}'
    db.commit()
    r = _run(db, business, "help", True, business.owner_phone, conversation=conv)
    assert r["intent"] == "help"
    db.refresh(conv)
    assert conv.context_json is None


def test_status_command_summarises_today(db, business):
    db.add(dbm.Invoice(business_id=business.id, contact_phone=CUSTOMER_PHONE, amount_cents=25000, status="overdue"))
    db.add(dbm.Invoice(business_id=business.id, contact_phone=CUSTOMER_PHONE, amount_cents=5000, status="paid"))
    db.commit()
    r = _run(db, business, "Status", True, business.owner_phone)
    assert r["intent"] == "status_query"
    lines = r["reply"].split("\n")
    assert lines[0] == "📊 Acme Plumbing: ACTIVE ✅"
    assert lines[-1] == "📋 1 unpaid invoices ($250)"


def test_customer_cannot_run_status(db, business):
    r = _run(db, business, "status", False, CUSTOMER_PHONE)
    assert r["intent"] == "general_chat"
