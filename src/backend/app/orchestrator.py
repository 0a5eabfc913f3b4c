import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .analytics import ph_capture
from .calendar_actions import handle_calendar
from .contacts import set_opt_out
from .conversations import get_context, get_history, set_context
from .email_actions import complete_pending_email, handle_email
from .events import emit_event
from .intents import CUSTOMER_INTENTS, control_command, detect_intent
from .invoices import complete_pending_invoice, handle_invoice
from .metrics_counters import INTENTS_ROUTED
from .onboarding import handle_onboarding, reset_onboarding
from .reviews import handle_review_request
from .social import handle_draft_reply, handle_social_post
from .stats import handle_stats_query, handle_status_query

logger = logging.getLogger(__name__)

MISSED_CALL_TRIGGER = "__MISSED_CALL__"

OWNER_HELP = (
    "Here's what I can do:\n\n"
    '📅 Calendar: "what\'s my day" / "add meeting Monday 2pm"\n'
    '📧 Email: "what did [name] email me" / "email [name] about..."\n'
    '💰 Invoice: "invoice [name] $500 for [service]"\n'
    '📱 Social: Send a photo + "post to instagram"\n'
    '📊 Stats: "how much did I make this month"\n'
    '⭐ Reviews: "ask [name] for a review"\n\n'
    "Just text me like you'd text an assistant!"
)

CUSTOMER_HELP = (
    "Hi! I'm the AI assistant here. I can help you:\n"
    "• Answer questions about our services\n"
    "• Book an appointment\n"
    "• Get you to the right person\n\n"
    "How can I help?"
)

_PENDING = {
    "invoice_phone": complete_pending_invoice,
    "email_address": complete_pending_email,
    "social_approval": handle_draft_reply,
}


def _result(reply: Optional[str], intent: str, actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": reply, "intent": intent, "actions": actions or []}


def help_text(is_owner: bool) -> str:
    return OWNER_HELP if is_owner else CUSTOMER_HELP


async def handle_missed_call(business: dbm.Business, ai: Optional[AIClient] = None) -> Dict[str, Any]:
    name = business.name or "this business"
    system = (
        f"You are a friendly AI assistant for {name}.\n"
        "Someone just called but couldn't reach us. Write a short, friendly text message to:\n"
        "1. Apologize for missing their call\n"
        "2. Ask how you can help\n"
        "3. Mention you can answer questions or help book an appointment\n\n"
        "Keep it under 160 characters if possible. Be warm and professional."
    )
    reply = await (ai or AIClient()).generate(
        system, [{"role": "user", "content": "Generate a missed call text-back message"}], max_tokens=200
    )
    if not reply:
        reply = (
            f"Sorry we missed your call! This is {business.name or 'us'}. "
            "How can we help? We can answer questions or book an appointment."
        )
    return _result(reply, "missed_call_recovery")


async def handle_general_chat(
    business: dbm.Business,
    message: str,
    history: Sequence[dbm.Message],
    is_owner: bool,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    name = business.name or "this business"
    if is_owner:
        system = (
            f"You are a helpful AI assistant for {name}.\n"
            "The business owner is texting you. Help them with anything they need.\n"
            "Be concise - this is SMS, keep responses short."
        )
    else:
        system = (
            f"You are a friendly AI assistant for {name}.\n"
            "A customer is texting. Answer their questions, help them book appointments,\n"
            "or get them to the right person. Be helpful but concise - this is SMS.\n"
            f"Business info: {business.description or 'Service business'}"
        )
    recent = list(history)[-10:]
    # The webhook stores the inbound message before routing
    if recent and recent[-1].direction == "inbound" and recent[-1].content == message:
        recent = recent[:-1]
    messages: List[Dict[str, str]] = [
        {"role": "user" if m.direction == "inbound" else "assistant", "content": m.content}
        for m in recent
        if m.content
    ]
    messages.append({"role": "user", "content": message})
    reply = await (ai or AIClient()).generate(system, messages, max_tokens=300)
    if not reply:
        reply = (
            "Sorry, I'm having trouble right now. Text 'help' to see what I can do."
            if is_owner
            else f"Thanks for your message! Someone from {business.name or 'our team'} will get back to you shortly."
        )
    return _result(reply, "general_chat")


def _control(
    db: Session,
    business: dbm.Business,
    command: str,
    phone: str,
) -> Optional[Dict[str, Any]]:
    if command == "restart":
        reset_onboarding(db, business)
        return handle_onboarding(db, business, "")
    if command == "pause":
        business.is_paused = True
        db.commit()
        emit_event("BusinessPaused", {"business_id": business.id})
        return _result("Paused. ⏸️ I won't auto-reply to customers until you text 'resume'.", "paused")
    if command == "resume":
        business.is_paused = False
        db.commit()
        emit_event("BusinessResumed", {"business_id": business.id})
        return _result("Back on! ▶️ I'm answering your customers again.", "resumed")
    if command == "opt_out":
        set_opt_out(db, business.id, phone, True)
        emit_event("ContactOptedOut", {"business_id": business.id, "phone": phone})
        return _result(None, "opt_out")
    if command == "opt_in":
        set_opt_out(db, business.id, phone, False)
        emit_event("ContactOptedIn", {"business_id": business.id, "phone": phone})
        return _result(
            f"You're subscribed to messages from {business.name or 'us'} again. Reply STOP to opt out.",
            "opt_in",
        )
    return None


def _resume_pending(
    db: Session,
    business: dbm.Business,
    conversation: Optional[dbm.Conversation],
    message: str,
) -> Optional[Dict[str, Any]]:
    context = get_context(conversation)
    awaiting = context.get("awaiting")
    if not awaiting:
        return None
    handler = _PENDING.get(awaiting)
    result = handler(db, business, conversation, message, context) if handler else None
    if result is None:
        set_context(db, conversation, None)
    return result


async def _dispatch(
    db: Session,
    business: dbm.Business,
    conversation: Optional[dbm.Conversation],
    message: str,
    media_urls: Sequence[str],
    is_owner: bool,
    intent: str,
    history: Sequence[dbm.Message],
) -> Dict[str, Any]:
    if intent in ("calendar_query", "calendar_add"):
        return await handle_calendar(db, business, message, intent)
    if intent in ("email_query", "email_send"):
        return await handle_email(db, business, message, intent, conversation)
    if intent in ("invoice_create", "invoice_query"):
        return await handle_invoice(db, business, message, intent, conversation)
    if intent in ("social_post", "social_schedule"):
        return await handle_social_post(db, business, message, media_urls, intent, conversation)
    if intent == "status_query":
        return handle_status_query(db, business)
    if intent == "stats_query":
        return handle_stats_query(db, business)
    if intent == "review_request":
        return await handle_review_request(db, business, message)
    if intent == "help":
        return _result(help_text(is_owner), "help")
    return await handle_general_chat(business, message, history, is_owner)


def _record(result: Dict[str, Any], business: dbm.Business, is_owner: bool) -> Dict[str, Any]:
    sender = "owner" if is_owner else "customer"
    INTENTS_ROUTED.labels(intent=result["intent"], sender=sender).inc()
    ph_capture("intent.routed", distinct_id=str(business.id), properties={"intent": result["intent"], "sender": sender})
    return result


async def orchestrate(
    db: Session,
    business: dbm.Business,
    conversation: Optional[dbm.Conversation],
    message: str,
    media_urls: Optional[Sequence[str]] = None,
    is_owner: bool = False,
    phone: str = "",
) -> Dict[str, Any]:
    """Route one inbound message to a handler and return {reply, intent, actions}.

    A None reply means nothing should be sent back.
    """
    media_urls = list(media_urls or [])
    message = message or ""
    if message == MISSED_CALL_TRIGGER:
        return _record(await handle_missed_call(business), business, is_owner)

    command = control_command(message, is_owner)
    if command:
        controlled = _control(db, business, command, phone)
        if controlled is not None:
            return _record(controlled, business, is_owner)

    if is_owner and not business.onboarding_complete:
        return _record(handle_onboarding(db, business, message), business, is_owner)

    if not is_owner and business.is_paused:
        return _record(_result(None, "paused"), business, is_owner)

    if is_owner:
        pending = _resume_pending(db, business, conversation, message)
        if pending is not None:
            return _record(pending, business, is_owner)

    history = get_history(db, conversation.id, limit=20) if conversation is not None else []
    intent = await detect_intent(message, media_urls, is_owner, history)
    if not is_owner and intent not in CUSTOMER_INTENTS:
        intent = "general_chat"
    logger.info("intent_detected", extra={"business_id": business.id, "intent": intent, "is_owner": is_owner})
    result = await _dispatch(db, business, conversation, message, media_urls, is_owner, intent, history)
    return _record(result, business, is_owner)
