import asyncio

from src.backend.app import models as dbm
from src.backend.app.orchestrator import orchestrate


def _owner_says(db, business, text):
    return asyncio.run(orchestrate(db, business, None, text, [], True, business.owner_phone))


def test_full_onboarding_flow(db, make_business):
    business = make_business(name=None, onboarding_step="welcome", onboarding_complete=False)

    r = _owner_says(db, business, "hi")
    assert r["intent"] == "onboarding"
    assert "What's your business name?" in r["reply"]

    r = _owner_says(db, business, "  Acme Plumbing ")
    assert business.name == "Acme Plumbing"
    assert r["reply"].startswith('Got it - "Acme Plumbing"!')

    r = _owner_says(db, business, "not-an-email")
    assert r["reply"] == "That doesn't look like a valid email. Try again?"
    assert business.onboarding_step == "email"

    r = _owner_says(db, business, "Owner@Acme.com")
    assert business.email == "owner@acme.com"
    assert "What type of business are you?" in r["reply"]

    r = _owner_says(db, business, "1")
    assert business.industry == "home_services"
    assert f"/auth/google/start?business={business.id}" in r["reply"]

    r = _owner_says(db, business, "done")
    assert "I don't see the connection yet" in r["reply"]
    assert business.onboarding_step == "google_connect"

    r = _owner_says(db, business, "skip")
    assert r["reply"].startswith("No problem - you can connect Google later.")
    assert business.onboarding_step == "missed_calls"

    r = _owner_says(db, business, "yes")
    assert "You're all set!" in r["reply"]
    assert "✅ Missed call text-back is ON" in r["reply"]
    db.refresh(business)
    assert business.onboarding_complete is True
    assert business.onboarding_step == "complete"
    assert business.missed_call_enabled is True
    assert business.onboarded_at


def test_free_text_industry_and_declined_missed_calls(db, make_business):
    business = make_business(onboarding_step="industry", onboarding_complete=False)
    _owner_says(db, business, "Dog Grooming")
    assert business.industry == "dog grooming"

    business.onboarding_step = "missed_calls"
    db.commit()
    r = _owner_says(db, business, "nah")
    assert "Missed call text-back is off" in r["reply"]
    assert business.missed_call_enabled is False
    assert business.onboarding_complete is True


def test_google_step_advances_once_connected(db, make_business):
    business = make_business(onboarding_step="google_connect", onboarding_complete=False)
    business.google_connected = True
    db.commit()
    r = _owner_says(db, business, "done")
    assert r["reply"].startswith("Google connected! ✅")
    assert business.onboarding_step == "missed_calls"


def test_restart_resets_onboarding(db, business):
    r = _owner_says(db, business, "restart")
    assert r["intent"] == "onboarding"
    assert "What's your business name?" in r["reply"]
    refreshed = db.get(dbm.Business, business.id)
    assert refreshed.onboarding_complete is False
    assert refreshed.onboarding_step == "business_name"
