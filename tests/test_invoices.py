import asyncio
import json
from unittest.mock import patch

from src.backend.app import models as dbm
from src.backend.app.conversations import get_or_create_conversation
from src.backend.app.invoices import (
    USAGE_HINT,
    handle_invoice,
    mark_invoice_paid,
    parse_invoice_command,
    query_invoices,
)
from src.backend.app.orchestrator import orchestrate

LINK = {"id": "plink_123", "url": "https://buy.stripe.com/test_123"}
SENT = {"status": "queued", "provider_id": "SM123"}


def _stat(db, business_id, field):
    row = db.query(dbm.DailyStat).filter(dbm.DailyStat.business_id == business_id).first()
    return getattr(row, field) if row is not None else 0


def test_parse_invoice_command():
    assert parse_invoice_command("invoice John $500 for plumbing repair") == {
        "name": "John",
        "phone": None,
        "amount": 500.0,
        "description": "plumbing repair",
    }
    parsed = parse_invoice_command("Invoice Mary Jane $49.99")
    assert parsed["name"] == "Mary Jane"
    assert parsed["amount"] == 49.99
    assert parsed["description"] is None
    assert parse_invoice_command("bill John for the job") is None


def test_invoice_to_known_contact(db, business):
    db.add(dbm.Contact(business_id=business.id, name="John", phone="+15551234567"))
    db.commit()
    with patch("src.backend.app.invoices.create_payment_link", return_value=LINK) as link, \
            patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = asyncio.run(handle_invoice(db, business, "invoice john $500 for drain cleaning", "invoice_create"))

    assert r["reply"].startswith("Done! Invoice sent to john for $500.")
    link.assert_called_once()
    assert link.call_args.args[0] == 50000
    to, body = sms.call_args.args[:2]
    assert to == "+15551234567"
    assert "drain cleaning: $500" in body
    assert LINK["url"] in body

    inv = db.query(dbm.Invoice).one()
    assert inv.status == "sent"
    assert inv.amount_cents == 50000
    assert inv.stripe_payment_link_id == "plink_123"
    assert r["actions"] == [{"type": "invoice_created", "invoice_id": inv.id}]
    assert _stat(db, business.id, "invoices_sent") == 1
    assert _stat(db, business.id, "invoices_amount_sent") == 50000


def test_invoice_asks_for_phone_then_completes(db, business):
    conv, _ = get_or_create_conversation(db, business, business.owner_phone, True)
    r = asyncio.run(handle_invoice(db, business, "invoice Dana $120.50 for tile work", "invoice_create", conv))
    assert r["reply"] == "Got it - $120.50 for Dana. What's their phone number so I can send the invoice?"
    assert json.loads(conv.context_json)["awaiting"] == "invoice_phone"

    with patch("src.backend.app.invoices.create_payment_link", return_value=LINK), \
            patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        r = asyncio.run(orchestrate(db, business, conv, "it's (555) 867-5309", [], True, business.owner_phone))

    assert r["intent"] == "invoice_create"
    assert sms.call_args.args[0] == "+15558675309"
    inv = db.query(dbm.Invoice).one()
    assert inv.contact_name == "Dana"
    assert inv.amount_cents == 12050
    db.refresh(conv)
    assert conv.context_json is None
    contact = db.query(dbm.Contact).filter(dbm.Contact.phone == "+15558675309").one()
    assert contact.name == "Dana"


def test_unparseable_invoice_returns_usage_hint(db, business):
    r = asyncio.run(handle_invoice(db, business, "invoice somebody something", "invoice_create"))
    assert r["reply"] == USAGE_HINT


def test_sms_failure_keeps_invoice_and_dead_letters(db, business):
    db.add(dbm.Contact(business_id=business.id, name="Pat", phone="+15551112222"))
    db.commit()
    with patch("src.backend.app.invoices.create_payment_link", return_value=LINK), \
            patch("src.backend.app.messaging.twilio_send_sms", side_effect=RuntimeError("twilio down")):
        r = asyncio.run(handle_invoice(db, business, "invoice Pat $75", "invoice_create"))
    assert r["reply"] == USAGE_HINT
    assert db.query(dbm.Invoice).count() == 1
    dead = db.query(dbm.DeadLetter).one()
    assert dead.provider == "twilio"
    assert "twilio down" in dead.reason


def test_query_invoices(db, business):
    assert query_invoices(db, business)["reply"] == "No unpaid invoices. You're all caught up! 💰"
    db.add_all([
        dbm.Invoice(business_id=business.id, contact_name="Al", contact_phone="+15550000001", amount_cents=10000, status="sent"),
        dbm.Invoice(business_id=business.id, contact_name="Bo", contact_phone="+15550000002", amount_cents=2550, status="overdue"),
        dbm.Invoice(business_id=business.id, contact_name="Cy", contact_phone="+15550000003", amount_cents=9900, status="paid"),
    ])
    db.commit()
    r = query_invoices(db, business)
    assert r["intent"] == "invoice_query"
    assert r["reply"].startswith("2 unpaid invoices ($125.50 total):")
    assert "⚠️ Bo: $25.50" in r["reply"]
    assert "Cy" not in r["reply"]


def test_mark_invoice_paid_notifies_owner(db, business):
    inv = dbm.Invoice(
        business_id=business.id,
        contact_name="John",
        contact_phone="+15551234567",
        amount_cents=50000,
        description="Drain cleaning",
        status="sent",
        stripe_payment_link_id="plink_123",
    )
    db.add(inv)
    db.commit()
    with patch("src.backend.app.messaging.twilio_send_sms", return_value=SENT) as sms:
        paid = mark_invoice_paid(db, "plink_123", 50000)
    assert paid.id == inv.id
    assert paid.status == "paid"
    assert paid.paid_at
    to, body = sms.call_args.args[:2]
    assert to == business.owner_phone
    assert body == '💰 Payment received! John paid $500.00 for "Drain cleaning"'
    assert _stat(db, business.id, "invoices_paid") == 1
    assert _stat(db, business.id, "revenue_cents") == 50000
    assert mark_invoice_paid(db, "plink_unknown", 100) is None
