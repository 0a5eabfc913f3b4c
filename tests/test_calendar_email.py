import asyncio
import json
import time
from datetime import datetime
from unittest.mock import AsyncMock, patch
from zoneinfo import ZoneInfo

from src.backend.app import models as dbm
from src.backend.app.ai import AIClient
from src.backend.app.calendar_actions import calendar_range, handle_calendar
from src.backend.app.conversations import get_context, get_or_create_conversation
from src.backend.app.crypto import encrypt_text
from src.backend.app.email_actions import complete_pending_email, handle_email

NY = ZoneInfo("America/New_York")
NOW = datetime(2026, 10, 14, 9, 0, tzinfo=NY)


def _connect_google(db, business):
    business.google_access_token_enc = encrypt_text("access-token")
    business.google_token_expires_at = int(time.time()) + 3600
    business.google_connected = True
    db.commit()


def _ai(reply):
    ai = AIClient(api_key="k")
    ai.generate = AsyncMock(return_value=reply)
    return ai


def test_calendar_range():
    start = NOW.replace(hour=0)
    assert calendar_range("what's my day", NOW) == (start, datetime(2026, 10, 15, tzinfo=NY))
    assert calendar_range("tomorrow?", NOW) == (datetime(2026, 10, 15, tzinfo=NY), datetime(2026, 10, 16, tzinfo=NY))
    assert calendar_range("this week", NOW) == (start, datetime(2026, 10, 21, 9, 0, tzinfo=NY))


def test_calendar_without_google_sends_connect_link(db, business):
    r = asyncio.run(handle_calendar(db, business, "what's my day", "calendar_query", NOW))
    assert r["reply"].startswith("I don't have access to your calendar yet.")
    assert f"/auth/google/start?business={business.id}" in r["reply"]


def test_calendar_query_lists_events(db, business):
    _connect_google(db, business)
    events = [
        {"id": "e1", "title": "Estimate - Smith", "start": datetime(2026, 10, 14, 9, 0, tzinfo=NY), "all_day": False},
        {"id": "e2", "title": "Supplier day", "start": datetime(2026, 10, 14, tzinfo=NY), "all_day": True},
    ]
    with patch("src.backend.app.calendar_actions.fetch_events", return_value=events) as fetch:
        r = asyncio.run(handle_calendar(db, business, "what's my day", "calendar_query", NOW))
    assert fetch.call_args.args[0] == "access-token"
    assert r["reply"] == "You have 2 appointments:\n9:00 AM - Estimate - Smith\nAll day - Supplier day"

    with patch("src.backend.app.calendar_actions.fetch_events", return_value=[]):
        r = asyncio.run(handle_calendar(db, business, "what's my day", "calendar_query", NOW))
    assert r["reply"] == "Your calendar is clear! No appointments scheduled."


def test_calendar_add_uses_extracted_details(db, business):
    _connect_google(db, business)
    ai = _ai('```json\n{"title": "Estimate with Bob", "date": "2026-10-16", "time": "14:00", "duration_minutes": 90}\n```')
    with patch("src.backend.app.calendar_actions.create_event", return_value={"id": "ev-1", "link": ""}) as create:
        r = asyncio.run(handle_calendar(db, business, "add meeting with Bob friday 2pm", "calendar_add", NOW, ai))
    token, title, start, end, tz = create.call_args.args
    assert (token, title, tz) == ("access-token", "Estimate with Bob", "America/New_York")
    assert start == datetime(2026, 10, 16, 14, 0, tzinfo=NY)
    assert (end - start).seconds == 90 * 60
    assert r["reply"] == 'Added to calendar: "Estimate with Bob" on Friday, Oct 16 at 2:00 PM ✅'
    assert r["actions"] == [{"type": "calendar_event_created", "event_id": "ev-1"}]


def test_calendar_add_with_unusable_reply(db, business):
    _connect_google(db, business)
    r = asyncio.run(handle_calendar(db, business, "add meeting", "calendar_add", NOW, _ai("sure thing!")))
    assert r["reply"].startswith("Couldn't add that to your calendar.")


def test_email_without_google_prompts_connect(db, business):
    r = asyncio.run(handle_email(db, business, "email Bob about tomorrow", "email_send"))
    assert r["reply"].startswith("I need access to your Gmail first. Tap this link to connect Google:")


def test_email_query_summarizes_messages(db, business):
    _connect_google(db, business)
    ai = _ai(json.dumps({"query": "from:sarah", "name": "Sarah"}))
    headers = {"Subject": "Quote for bathroom", "Date": "Mon, 12 Oct 2026 10:00:00 -0400"}
    with patch("src.backend.app.email_actions.search_messages", return_value=["m1"]) as search, \
            patch("src.backend.app.email_actions.get_message_headers", return_value=headers):
        r = asyncio.run(handle_email(db, business, "what did sarah email me", "email_query", None, ai))
    assert search.call_args.args[:2] == ("access-token", "from:sarah")
    assert r["reply"] == "Recent emails from Sarah:\n• Mon, Oct 12: Quote for bathroom\n\nWant me to reply to any?"


def test_email_send_waits_for_address_then_sends(db, business):
    _connect_google(db, business)
    conv, _ = get_or_create_conversation(db, business, business.owner_phone, True)
    ai = _ai(json.dumps({"to": "Bob", "subject": "Running late", "body": "Hi Bob, running 15 minutes late."}))
    r = asyncio.run(handle_email(db, business, "email Bob that I'm running late", "email_send", conv, ai))
    assert r["reply"] == "I don't have an email for Bob. What's their email address?"
    context = get_context(conv)
    assert context["awaiting"] == "email_address"

    with patch("src.backend.app.email_actions.send_message", return_value="gm-1") as send:
        r = complete_pending_email(db, business, conv, "it's Bob@Example.com", context)
    send.assert_called_once_with("access-token", "bob@example.com", "Running late", "Hi Bob, running 15 minutes late.")
    assert r["reply"] == 'Sent to Bob:\n"Hi Bob, running 15 minutes late." ✅'
    assert conv.context_json is None
    contact = db.query(dbm.Contact).one()
    assert (contact.name, contact.email) == ("Bob", "bob@example.com")


def test_email_send_to_known_contact(db, business):
    _connect_google(db, business)
    db.add(dbm.Contact(business_id=business.id, name="Ann", email="ann@example.com"))
    db.commit()
    ai = _ai(json.dumps({"to": "ann", "subject": "Invoice", "body": "Thanks Ann!"}))
    with patch("src.backend.app.email_actions.send_message", side_effect=RuntimeError("403")):
        r = asyncio.run(handle_email(db, business, "email ann thanks", "email_send", None, ai))
    assert r["reply"] == "Couldn't send that email. Check the address and try again."
