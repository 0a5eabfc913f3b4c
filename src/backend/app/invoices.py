import re
import time
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .contacts import find_by_name, upsert_contact
from .conversations import set_context
from .events import emit_event
from .integrations.payments_stripe import create_payment_link
from .messaging import send_sms
from .stats import bump_daily_stat
from .utils import extract_phone, format_dollars, normalize_phone

logger = logging.getLogger(__name__)

UNPAID_STATUSES = dbm.INVOICE_UNPAID_STATUSES

USAGE_HINT = "Couldn't create that invoice. Try: 'invoice [name] $[amount] for [service]'"

EXTRACT_PROMPT = (
    "Extract invoice details from the message.\n"
    'Respond as JSON: {"name": "customer name", "phone": "phone if mentioned", '
    '"amount": number in dollars, "description": "service description"}\n'
    "If phone not mentioned, leave it null."
)

_QUICK_RE = re.compile(r"^invoice\s+(.+?)\s+\$(\d+(?:\.\d{1,2})?)(?:\s+for\b)?\s*(.*)$", re.IGNORECASE | re.DOTALL)


def _reply(text: str, intent: str = "invoice_create", actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": text, "intent": intent, "actions": actions or []}


def parse_invoice_command(message: str) -> Optional[Dict[str, Any]]:
    """`invoice <name> $<amount>[ for] <description>` without a model call."""
    m = _QUICK_RE.match((message or "").strip())
    if not m:
        return None
    return {
        "name": m.group(1).strip(),
        "phone": None,
        "amount": float(m.group(2)),
        "description": m.group(3).strip() or None,
    }


def _to_cents(amount: Any) -> int:
    try:
        return int(round(float(amount) * 100))
    except (TypeError, ValueError):
        return 0


def query_invoices(db: Session, business: dbm.Business) -> Dict[str, Any]:
    rows = (
        db.query(dbm.Invoice)
        .filter(dbm.Invoice.business_id == business.id, dbm.Invoice.status.in_(UNPAID_STATUSES))
        .order_by(dbm.Invoice.created_at.desc(), dbm.Invoice.id.desc())
        .limit(10)
        .all()
    )
    if not rows:
        return _reply("No unpaid invoices. You're all caught up! 💰", "invoice_query")
    total = sum(r.amount_cents for r in rows)
    lines = []
    for r in rows[:5]:
        icon = "⚠️" if r.status == "overdue" else "📋"
        lines.append(f"{icon} {r.contact_name or r.contact_phone}: {format_dollars(r.amount_cents)}")
    plural = "s" if len(rows) > 1 else ""
    return _reply(
        f"{len(rows)} unpaid invoice{plural} ({format_dollars(total)} total):\n"
        + "\n".join(lines)
        + "\n\nWant me to send reminders?",
        "invoice_query",
    )


def issue_invoice(
    db: Session,
    business: dbm.Business,
    name: Optional[str],
    phone: str,
    amount_cents: int,
    description: Optional[str],
) -> dbm.Invoice:
    """Create the payment link, store the invoice and text it to the customer.

    Raises when Stripe or Twilio fail; the invoice row is kept if only the SMS failed.
    """
    link = create_payment_link(
        amount_cents,
        description or f"Invoice from {business.name or 'GhostOps Business'}",
        {"business_id": str(business.id), "contact_phone": phone},
    )
    now = int(time.time())
    inv = dbm.Invoice(
        business_id=business.id,
        contact_name=name,
        contact_phone=phone,
        amount_cents=amount_cents,
        description=description,
        status="sent",
        stripe_payment_link=link["url"],
        stripe_payment_link_id=link["id"],
        sent_at=now,
        created_at=now,
    )
    db.add(inv)
    db.commit()
    upsert_contact(db, business.id, phone=phone, name=name)
    body = (
        f"Hi {name or 'there'}! Here's your invoice from {business.name or 'us'}:\n\n"
        f"{description or 'Services'}: {format_dollars(amount_cents)}\n\n"
        f"Pay securely here: {link['url']}\n\n"
        "Thanks for your business!"
    )
    result = send_sms(db, business, phone, body)
    if result.get("status") != "sent":
        raise RuntimeError(f"invoice sms {result.get('status')}")
    bump_daily_stat(db, business.id, "invoices_sent")
    bump_daily_stat(db, business.id, "invoices_amount_sent", amount_cents)
    emit_event("InvoiceSent", {"business_id": business.id, "invoice_id": inv.id, "amount_cents": amount_cents})
    return inv


def _issue_and_reply(
    db: Session,
    business: dbm.Business,
    name: Optional[str],
    phone: str,
    amount_cents: int,
    description: Optional[str],
) -> Dict[str, Any]:
    try:
        inv = issue_invoice(db, business, name, phone, amount_cents, description)
    except Exception as e:
        logger.exception("invoice_create_failed", extra={"business_id": business.id}, exc_info=e)
        return _reply(USAGE_HINT)
    return _reply(
        f"Done! Invoice sent to {name or phone} for {format_dollars(amount_cents)}.\n"
        "They'll get a payment link via text. I'll remind them in 3 days if unpaid. ✅",
        actions=[{"type": "invoice_created", "invoice_id": inv.id}],
    )


async def create_invoice(
    db: Session,
    business: dbm.Business,
    message: str,
    conversation: Optional[dbm.Conversation] = None,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    details = parse_invoice_command(message)
    if details is None:
        extracted = await (ai or AIClient()).extract_json(EXTRACT_PROMPT, message, max_tokens=200)
        details = extracted if isinstance(extracted, dict) else None
    if not details:
        return _reply(USAGE_HINT)
    amount_cents = _to_cents(details.get("amount"))
    if amount_cents <= 0:
        return _reply(USAGE_HINT)
    name = (details.get("name") or "").strip() or None
    description = (details.get("description") or "").strip() or None
    phone = normalize_phone(details.get("phone"))
    if not phone and name:
        contact = find_by_name(db, business.id, name)
        if contact is not None and contact.phone:
            phone = contact.phone
    if not phone:
        set_context(db, conversation, {
            "awaiting": "invoice_phone",
            "invoice": {"name": name, "amount_cents": amount_cents, "description": description},
        })
        return _reply(
            f"Got it - {format_dollars(amount_cents)} for {name or 'them'}. "
            "What's their phone number so I can send the invoice?"
        )
    return _issue_and_reply(db, business, name, phone, amount_cents, description)


def complete_pending_invoice(
    db: Session,
    business: dbm.Business,
    conversation: dbm.Conversation,
    message: str,
    context: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """Finish an invoice that was waiting on a phone number; None if the message has none."""
    phone = extract_phone(message)
    draft = context.get("invoice") or {}
    if not phone or not draft.get("amount_cents"):
        return None
    set_context(db, conversation, None)
    return _issue_and_reply(
        db, business, draft.get("name"), phone, int(draft["amount_cents"]), draft.get("description")
    )


async def handle_invoice(
    db: Session,
    business: dbm.Business,
    message: str,
    intent: str,
    conversation: Optional[dbm.Conversation] = None,
) -> Dict[str, Any]:
    if intent == "invoice_query":
        return query_invoices(db, business)
    return await create_invoice(db, business, message, conversation)


def mark_invoice_paid(db: Session, payment_link_id: str, amount_cents: int) -> Optional[dbm.Invoice]:
    inv = (
        db.query(dbm.Invoice)
        .filter(dbm.Invoice.stripe_payment_link_id == payment_link_id)
        .first()
    )
    if inv is None:
        logger.info("invoice_paid_unknown_link", extra={"payment_link_id": payment_link_id})
        return None
    inv.status = "paid"
    inv.paid_at = int(time.time())
    db.commit()
    bump_daily_stat(db, inv.business_id, "invoices_paid")
    bump_daily_stat(db, inv.business_id, "revenue_cents", int(amount_cents or 0))
    emit_event("InvoicePaid", {"business_id": inv.business_id, "invoice_id": inv.id, "amount_cents": amount_cents})
    business = db.get(dbm.Business, inv.business_id)
    if business is not None and business.owner_phone and business.twilio_number:
        send_sms(
            db,
            business,
            business.owner_phone,
            f'💰 Payment received! {inv.contact_name or inv.contact_phone} paid '
            f'${int(amount_cents or 0) / 100:.2f} for "{inv.description or "services"}"',
        )
    return inv
