import time
from typing import Any, Dict

from sqlalchemy.orm import Session

from . import models as dbm
from .events import emit_event
from .integrations.google_oauth import connect_url
from .utils import EMAIL_RE

INDUSTRIES = {
    "1": "home_services",
    "2": "construction",
    "3": "auto_services",
    "4": "professional_services",
    "5": "other",
}

MISSED_CALL_QUESTION = (
    "Last question: Want me to handle your missed calls? "
    "When someone calls and you can't answer, I'll text them back instantly.\n\n"
    "Reply 'yes' or 'no'"
)


def _reply(text: str) -> Dict[str, Any]:
    return {"reply": text, "intent": "onboarding", "actions": []}


def _advance(db: Session, business: dbm.Business, step: str) -> None:
    business.onboarding_step = step
    db.commit()


def _welcome(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    _advance(db, business, "business_name")
    return _reply(
        "Hey! I'm your GhostOps AI assistant. 👻\n\n"
        "Let's get you set up in 2 minutes.\n\n"
        "What's your business name?"
    )


def _business_name(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    name = message.strip()
    business.name = name
    _advance(db, business, "email")
    return _reply(f'Got it - "{name}"! ✅\n\nWhat\'s your business email?')


def _email(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    email = message.strip()
    if not EMAIL_RE.match(email):
        return _reply("That doesn't look like a valid email. Try again?")
    business.email = email.lower()
    _advance(db, business, "industry")
    return _reply(
        "Perfect! ✅\n\n"
        "What type of business are you?\n\n"
        "1. Home Services (plumber, HVAC, etc)\n"
        "2. Construction/Remodeling\n"
        "3. Auto Services\n"
        "4. Professional Services\n"
        "5. Other\n\n"
        "Just reply with the number or describe it."
    )


def _industry(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    answer = message.strip()
    business.industry = INDUSTRIES.get(answer) or answer.lower()
    _advance(db, business, "google_connect")
    return _reply(
        "Great! ✅\n\n"
        "Now let's connect your Google account so I can manage your calendar and reviews.\n\n"
        f"Tap here to connect: {connect_url(business.id)}\n\n"
        "Once you've connected, just text me 'done'."
    )


def _google_connect(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    if message.strip().lower() == "skip":
        _advance(db, business, "missed_calls")
        return _reply("No problem - you can connect Google later.\n\n" + MISSED_CALL_QUESTION)
    db.refresh(business)
    if business.google_connected:
        _advance(db, business, "missed_calls")
        return _reply("Google connected! ✅\n\n" + MISSED_CALL_QUESTION)
    return _reply(
        "I don't see the connection yet. "
        "Make sure you completed the Google sign-in, then text me 'done'.\n\n"
        "Or text 'skip' to set this up later."
    )


def _missed_calls(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    enabled = message.strip().lower() in ("yes", "y", "yeah", "yep")
    business.missed_call_enabled = enabled
    business.onboarding_step = "complete"
    business.onboarding_complete = True
    business.onboarded_at = int(time.time())
    db.commit()
    emit_event("OnboardingCompleted", {"business_id": business.id, "missed_call_enabled": enabled})
    note = (
        "✅ Missed call text-back is ON\n"
        if enabled
        else "Missed call text-back is off (you can enable it later)\n"
    )
    return _reply(
        "You're all set! 🎉\n\n"
        + note
        + "\nI'm working for you 24/7 now. Here's what I can do:\n\n"
        "📅 'what's my day' - see your schedule\n"
        "💰 'invoice [name] $[amount]' - send invoices\n"
        "📧 'email [name]...' - draft and send emails\n"
        "📱 Send a photo - I'll create social posts\n"
        "📊 'how much did I make' - see your stats\n"
        "⭐ 'ask [name] for review' - request reviews\n\n"
        "Just text me like you'd text an employee. 👻"
    )


_HANDLERS = {
    "welcome": _welcome,
    "business_name": _business_name,
    "email": _email,
    "industry": _industry,
    "google_connect": _google_connect,
    "missed_calls": _missed_calls,
}


def handle_onboarding(db: Session, business: dbm.Business, message: str) -> Dict[str, Any]:
    """Advance the owner's setup step machine by one message."""
    step = business.onboarding_step or "welcome"
    handler = _HANDLERS.get(step)
    if handler is None:
        return _reply("Something went wrong with setup. Text 'restart' to begin again.")
    return handler(db, business, message or "")


def reset_onboarding(db: Session, business: dbm.Business) -> None:
    business.onboarding_step = "welcome"
    business.onboarding_complete = False
    db.commit()
