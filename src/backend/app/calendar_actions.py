import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient
from .integrations.calendar_google import create_event, fetch_events
from .integrations.google_oauth import connect_url, get_access_token, has_tokens
from .utils import business_tz, fmt_day, fmt_time

logger = logging.getLogger(__name__)


def _reply(text: str, intent: str, actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": text, "intent": intent, "actions": actions or []}


def calendar_range(message: str, now: datetime) -> Tuple[datetime, datetime]:
    """Query window picked from the message; `now` must be timezone-aware."""
    lower = (message or "").lower()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if "today" in lower or "my day" in lower:
        return start_of_today, start_of_today + timedelta(days=1)
    if "tomorrow" in lower:
        start = start_of_today + timedelta(days=1)
        return start, start + timedelta(days=1)
    if "week" in lower:
        return start_of_today, now + timedelta(days=7)
    return start_of_today, start_of_today + timedelta(days=1)


def _query(token: str, message: str, now: datetime) -> Dict[str, Any]:
    time_min, time_max = calendar_range(message, now)
    try:
        events = fetch_events(token, time_min, time_max)
    except Exception as e:
        logger.warning("calendar_query_failed", extra={"error": str(e)[:200]})
        return _reply("Couldn't access your calendar. Try reconnecting Google.", "calendar_query")
    if not events:
        return _reply("Your calendar is clear! No appointments scheduled.", "calendar_query")
    lines = []
    for ev in events:
        when = "All day" if ev["all_day"] else fmt_time(ev["start"])
        lines.append(f"{when} - {ev['title']}")
    plural = "s" if len(events) > 1 else ""
    return _reply(f"You have {len(events)} appointment{plural}:\n" + "\n".join(lines), "calendar_query")


async def _add(token: str, business: dbm.Business, message: str, now: datetime, ai: Optional[AIClient]) -> Dict[str, Any]:
    prompt = (
        "Extract calendar event details from the message.\n"
        f"Today is {now.strftime('%A, %B')} {now.day}, {now.year}.\n"
        'Respond as JSON: {"title": "...", "date": "YYYY-MM-DD", "time": "HH:MM", "duration_minutes": 60}\n'
        "If any field is unclear, make reasonable assumptions. Default duration is 60 minutes."
    )
    details = await (ai or AIClient()).extract_json(prompt, message, max_tokens=200)
    try:
        if not isinstance(details, dict):
            raise ValueError("no event details")
        start = datetime.strptime(f"{details['date']} {details['time']}", "%Y-%m-%d %H:%M").replace(tzinfo=now.tzinfo)
        end = start + timedelta(minutes=int(details.get("duration_minutes") or 60))
        title = str(details.get("title") or "Appointment")
        created = create_event(token, title, start, end, business.timezone or "America/New_York")
    except Exception as e:
        logger.warning("calendar_add_failed", extra={"business_id": business.id, "error": str(e)[:200]})
        return _reply(
            "Couldn't add that to your calendar. Try being more specific with the date and time.",
            "calendar_add",
        )
    return _reply(
        f'Added to calendar: "{title}" on {fmt_day(start, long_weekday=True)} at {fmt_time(start)} ✅',
        "calendar_add",
        [{"type": "calendar_event_created", "event_id": created["id"]}],
    )


async def handle_calendar(
    db: Session,
    business: dbm.Business,
    message: str,
    intent: str,
    now: Optional[datetime] = None,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    token = get_access_token(db, business) if has_tokens(business) else None
    if not token:
        return _reply(
            f"I don't have access to your calendar yet. Tap this link to connect Google: {connect_url(business.id)}",
            intent,
        )
    now = now or datetime.now(business_tz(business.timezone))
    if intent == "calendar_add":
        return await _add(token, business, message, now, ai)
    return _query(token, message, now)
