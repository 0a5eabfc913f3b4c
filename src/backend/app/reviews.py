import re
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .contacts import find_by_name, upsert_contact
from .events import emit_event
from .messaging import send_sms
from .stats import bump_daily_stat
from .utils import extract_phone, normalize_phone

logger = logging.getLogger(__name__)

EXTRACT_PROMPT = (
    "Extract customer name and/or phone number from this message.\n"
    'Respond as JSON: {"name": "...", "phone": "..."} or {"error": "..."} if not found.'
)

ASK_WHO = "Who should I send the review request to? Give me a name or phone number."

# "ask John Smith ...", "review request to Maria ..."
_NAME_RE = re.compile(r"\b(?i:ask|text|to)\s+([A-Z][a-zA-Z'-]+(?:\s+[A-Z][a-zA-Z'-]+)?)")


def _reply(text: str, actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": text, "intent": "review_request", "actions": actions or []}


def review_message(business: dbm.Business, name: Optional[str]) -> str:
    greeting = f"Hi {name}!" if name else "Hi!"
    body = f"{greeting} Thanks for choosing {business.name or 'us'}. Would you mind leaving us a quick review?"
    if business.google_review_url:
        body += f" {business.google_review_url}"
    return body + " It really helps! 🙏"


async def handle_review_request(
    db: Session,
    business: dbm.Business,
    message: str,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    phone = extract_phone(message)
    m = _NAME_RE.search(message or "")
    name: Optional[str] = m.group(1) if m else None
    if phone is None or name is None:
        details = await (ai or AIClient()).extract_json(EXTRACT_PROMPT, message, max_tokens=100)
        if isinstance(details, dict) and not details.get("error"):
            name = name or (str(details.get("name") or "").strip() or None)
            phone = phone or normalize_phone(details.get("phone"))
    if phone is None and name:
        contact = find_by_name(db, business.id, name)
        if contact is not None:
            phone = contact.phone
    if not phone:
        return _reply(ASK_WHO)
    result = send_sms(db, business, phone, review_message(business, name))
    if result.get("status") != "sent":
        return _reply(f"Couldn't text {name or phone} just now. Try again in a bit?")
    upsert_contact(db, business.id, phone=phone, name=name)
    bump_daily_stat(db, business.id, "review_requests")
    emit_event("ReviewRequested", {"business_id": business.id, "to": phone})
    return _reply(
        f"Got it! I sent a review request to {name or phone}. ✅",
        [{"type": "review_requested", "to": phone}],
    )
