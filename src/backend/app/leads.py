import json
import time
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .contacts import upsert_contact
from .conversations import get_or_create_conversation, save_message
from .events import emit_event
from .messaging import send_sms

logger = logging.getLogger(__name__)


def _lead_prompt(business: dbm.Business) -> str:
    return (
        f"You are the friendly assistant for {business.name or 'a local service business'}"
        f" ({business.industry or 'service business'}).\n"
        "A new lead just came in. Write ONE short text message (under 300 characters) that:\n"
        "1. Greets them by first name if known\n"
        "2. Thanks them for reaching out and references what they asked about\n"
        "3. Asks one question to move toward booking\n"
        f"Voice: {business.brand_voice or 'professional and friendly'}. At most one emoji, no links."
    )


def fallback_reply(business: dbm.Business, name: Optional[str]) -> str:
    first = (name or "").split(" ")[0].strip()
    greeting = f"Hi {first}!" if first else "Hi there!"
    return (
        f"{greeting} Thanks for reaching out to {business.name or 'us'}. "
        "We got your request. What's a good time to chat about what you need?"
    )


async def generate_lead_reply(
    business: dbm.Business,
    name: Optional[str],
    message: Optional[str],
    source: str,
    form_data: Optional[Dict[str, Any]] = None,
    ai: Optional[AIClient] = None,
) -> str:
    details = [f"Source: {source}"]
    if name:
        details.append(f"Name: {name}")
    if message:
        details.append(f"Their message: {message}")
    for key, value in (form_data or {}).items():
        details.append(f"{key}: {value}")
    reply = await (ai or AIClient()).generate(
        _lead_prompt(business), [{"role": "user", "content": "\n".join(details)}], max_tokens=200
    )
    return reply or fallback_reply(business, name)


async def handle_lead(
    db: Session,
    business: dbm.Business,
    phone: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
    message: Optional[str] = None,
    source: str = "web_form",
    form_data: Optional[Dict[str, Any]] = None,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    """Record an inbound lead and text it back right away."""
    source = (source or "web_form")[:32]
    lead = dbm.Lead(
        business_id=business.id,
        phone=phone,
        name=name,
        email=email,
        source=source,
        message=message,
        source_details_json=json.dumps(form_data) if form_data else None,
        status="new",
    )
    db.add(lead)
    db.commit()
    upsert_contact(db, business.id, phone=phone, name=name, email=email)
    conv, _ = get_or_create_conversation(db, business, phone, False, source=source)
    if message:
        save_message(db, conv, "inbound", message)

    reply = await generate_lead_reply(business, name, message, source, form_data, ai=ai)
    sent = send_sms(db, business, phone, reply)
    status = sent.get("status")
    if status != "suppressed":
        save_message(db, conv, "outbound", reply, ai_generated=True, intent="speed_to_lead", twilio_sid=sent.get("provider_id"))

    lead.status = {"sent": "responded", "suppressed": "suppressed"}.get(status, "failed")
    lead.conversation_id = conv.id
    if lead.status == "responded":
        lead.responded_at = int(time.time())
    db.commit()
    emit_event("LeadResponded", {"business_id": business.id, "lead_id": lead.id, "status": lead.status, "source": source})
    logger.info("lead_handled", extra={"business_id": business.id, "lead_id": lead.id, "status": lead.status})
    return {"status": "success" if lead.status == "responded" else lead.status, "lead_id": lead.id, "message_preview": reply[:50]}
