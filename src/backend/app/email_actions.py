import logging
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .contacts import find_by_name, upsert_contact
from .conversations import set_context
from .integrations.gmail import get_message_headers, search_messages, send_message
from .integrations.google_oauth import connect_url, get_access_token, has_tokens
from .utils import extract_email, fmt_day

logger = logging.getLogger(__name__)

QUERY_PROMPT = (
    "Extract the person's name or email the user is asking about.\n"
    'Respond as JSON: {"query": "from:name OR subject containing name", "name": "the person"}'
)

SEND_PROMPT = (
    "Extract email details from the message.\n"
    'Respond as JSON: {"to": "email or name", "subject": "...", "body": "the message content"}\n'
    "If only a name is given, note we'll need to look up their email.\n"
    "Generate a professional but friendly email body based on the user's intent."
)


def _reply(text: str, intent: str, actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": text, "intent": intent, "actions": actions or []}


def _preview(body: str) -> str:
    return body[:100] + "..." if len(body) > 100 else body


def _summary_line(headers: Dict[str, str]) -> str:
    subject = headers.get("Subject") or "No subject"
    try:
        day = fmt_day(parsedate_to_datetime(headers.get("Date") or ""))
    except (TypeError, ValueError):
        day = "Recently"
    return f"• {day}: {subject}"


async def _query(token: str, message: str, ai: AIClient) -> Dict[str, Any]:
    details = await ai.extract_json(QUERY_PROMPT, message, max_tokens=100)
    try:
        if not isinstance(details, dict) or not details.get("query"):
            raise ValueError("no email query")
        name = details.get("name") or details["query"]
        ids = search_messages(token, str(details["query"]), max_results=5)
        if not ids:
            return _reply(f"No recent emails from {name} found.", "email_query")
        lines = [_summary_line(get_message_headers(token, mid)) for mid in ids[:3]]
    except Exception as e:
        logger.warning("email_query_failed", extra={"error": str(e)[:200]})
        return _reply("Couldn't search emails. Try again?", "email_query")
    return _reply(f"Recent emails from {name}:\n" + "\n".join(lines) + "\n\nWant me to reply to any?", "email_query")


def _deliver(token: str, to_email: str, label: str, subject: str, body: str) -> Dict[str, Any]:
    try:
        send_message(token, to_email, subject, body)
    except Exception as e:
        logger.warning("email_send_failed", extra={"error": str(e)[:200]})
        return _reply("Couldn't send that email. Check the address and try again.", "email_send")
    return _reply(
        f'Sent to {label}:\n"{_preview(body)}" ✅',
        "email_send",
        [{"type": "email_sent", "to": to_email}],
    )


async def _send(
    db: Session,
    business: dbm.Business,
    token: str,
    message: str,
    conversation: Optional[dbm.Conversation],
    ai: AIClient,
) -> Dict[str, Any]:
    details = await ai.extract_json(SEND_PROMPT, message, max_tokens=300)
    if not isinstance(details, dict) or not details.get("to") or not details.get("body"):
        return _reply("Couldn't send that email. Check the address and try again.", "email_send")
    to = str(details["to"]).strip()
    subject = str(details.get("subject") or f"Message from {business.name or 'us'}")
    body = str(details["body"])
    to_email = to if "@" in to else None
    if to_email is None:
        contact = find_by_name(db, business.id, to)
        to_email = contact.email if contact is not None else None
    if not to_email:
        set_context(db, conversation, {
            "awaiting": "email_address",
            "email": {"name": to, "subject": subject, "body": body},
        })
        return _reply(f"I don't have an email for {to}. What's their email address?", "email_send")
    return _deliver(token, to_email, to, subject, body)


def _token_or_prompt(db: Session, business: dbm.Business, intent: str):
    token = get_access_token(db, business) if has_tokens(business) else None
    if token:
        return token, None
    return None, _reply(
        f"I need access to your Gmail first. Tap this link to connect Google: {connect_url(business.id)}",
        intent,
    )


async def handle_email(
    db: Session,
    business: dbm.Business,
    message: str,
    intent: str,
    conversation: Optional[dbm.Conversation] = None,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    token, prompt = _token_or_prompt(db, business, intent)
    if prompt is not None:
        return prompt
    client = ai or AIClient()
    if intent == "email_send":
        return await _send(db, business, token, message, conversation, client)
    return await _query(token, message, client)


def complete_pending_email(
    db: Session,
    business: dbm.Business,
    conversation: dbm.Conversation,
    message: str,
    context: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """Send an email that was waiting on an address; None if the message has none."""
    address = extract_email(message)
    draft = context.get("email") or {}
    if not address or not draft.get("body"):
        return None
    set_context(db, conversation, None)
    token, prompt = _token_or_prompt(db, business, "email_send")
    if prompt is not None:
        return prompt
    if draft.get("name"):
        upsert_contact(db, business.id, name=draft["name"], email=address)
    return _deliver(token, address, draft.get("name") or address, draft.get("subject") or "", draft["body"])
