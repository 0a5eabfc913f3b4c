from unittest.mock import patch

import jwt
from fastapi.testclient import TestClient

from src.backend.app import models as dbm
from src.backend.app.main import app
from src.backend.app.stats import bump_daily_stat

client = TestClient(app)

API = {"Authorization": "ApiKey test-api-key"}


def _bearer(claims):
    claims = {"aud": "authenticated", "sub": "user-1", **claims}
    return {"Authorization": f"Bearer {jwt.encode(claims, 'dev_secret', algorithm='HS256')}"}


def test_health_endpoints():
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/live").json() == {"status": "live"}
    assert client.get("/ready").json() == {"status": "ready"}
    r = client.get("/metrics/prometheus")
    assert r.status_code == 200
    assert "ghostops_sms_sent_total" in r.text


def test_requires_credentials(business):
    assert client.get("/api/business").status_code == 401
    assert client.get("/api/business", headers={"Authorization": "ApiKey nope"}).status_code == 401
    assert client.get("/api/business", headers={"Authorization": "Basic abc"}).status_code == 401
    bad = jwt.encode({"business_id": business.id, "aud": "authenticated"}, "wrong", algorithm="HS256")
    assert client.get("/api/business", headers={"Authorization": f"Bearer {bad}"}).status_code == 401


def test_business_profile_hides_secrets(business):
    r = client.get("/api/business", headers=API)
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "Acme Plumbing"
    assert data["twilio_number"] == business.twilio_number
    for hidden in ("api_key", "stripe_customer_id", "google_access_token_enc", "meta_page_token_enc"):
        assert hidden not in data


def test_jwt_by_claim_and_by_email(business):
    assert client.get("/api/business", headers=_bearer({"business_id": business.id})).json()["id"] == business.id
    by_meta = _bearer({"app_metadata": {"business_id": str(business.id)}})
    assert client.get("/api/business", headers=by_meta).status_code == 200
    assert client.get("/api/business", headers=_bearer({"email": "OWNER@acme.test"})).status_code == 200
    assert client.get("/api/business", headers=_bearer({"email": "stranger@x.test"})).status_code == 401


def test_update_business_only_touches_editable_fields(db, business):
    r = client.put(
        "/api/business",
        headers=API,
        json={"name": "Acme Plumbing & Heating", "brand_voice": "playful", "twilio_number": "+15550000000"},
    )
    assert r.status_code == 200
    assert r.json() == {"success": True}
    db.expire_all()
    b = db.get(dbm.Business, business.id)
    assert b.name == "Acme Plumbing & Heating"
    assert b.brand_voice == "playful"
    assert b.twilio_number == business.twilio_number
    assert b.industry is None


def test_conversations_and_messages_are_scoped(db, business, make_business):
    other = make_business(twilio_number="+15550008888", api_key="other-key", owner_email="o@other.test")
    mine = dbm.Conversation(business_id=business.id, phone="+15552223333", context_json='{"awaiting": "invoice_phone"}')
    theirs = dbm.Conversation(business_id=other.id, phone="+15552224444")
    db.add_all([mine, theirs])
    db.commit()
    db.add(dbm.Message(conversation_id=mine.id, business_id=business.id, direction="inbound", content="hi"))
    db.commit()

    r = client.get("/api/conversations", headers=API)
    assert [c["id"] for c in r.json()["conversations"]] == [mine.id]
    assert r.json()["conversations"][0]["context"] == {"awaiting": "invoice_phone"}
    assert client.get(f"/api/conversations/{mine.id}", headers=API).json()["phone"] == "+15552223333"
    assert client.get(f"/api/conversations/{theirs.id}", headers=API).status_code == 404

    msgs = client.get(f"/api/messages/{mine.id}", headers=API).json()["messages"]
    assert [m["content"] for m in msgs] == ["hi"]
    assert client.get(f"/api/messages/{theirs.id}", headers=API).status_code == 404


def test_invoices_and_stats(db, business):
    inv = dbm.Invoice(business_id=business.id, contact_name="Al", contact_phone="+15550000001", amount_cents=12500)
    db.add(inv)
    db.commit()
    bump_daily_stat(db, business.id, "customer_messages", 3)
    bump_daily_stat(db, business.id, "owner_messages", 2)
    bump_daily_stat(db, business.id, "revenue_cents", 12500)

    invoices = client.get("/api/invoices", headers=API).json()["invoices"]
    assert [i["amount_cents"] for i in invoices] == [12500]
    assert client.get(f"/api/invoices/{inv.id}", headers=API).json()["contact_name"] == "Al"
    assert client.get("/api/invoices/999", headers=API).status_code == 404

    stats = client.get("/api/stats?days=7", headers=API).json()
    assert stats["totals"]["messages"] == 5
    assert stats["totals"]["revenue"] == 12500
    assert len(stats["daily"]) == 1
    assert client.get("/api/stats?days=0", headers=API).status_code == 422


def test_social_endpoints(db, business):
    db.add(dbm.ScheduledPost(
        business_id=business.id, platform="instagram", content="New deck!", hashtags_json='["#decks"]', scheduled_for=0
    ))
    db.add(dbm.MediaAsset(business_id=business.id, storage_path="p/1.jpg", public_url="https://cdn/1.jpg"))
    db.commit()
    posts = client.get("/api/social", headers=API).json()["posts"]
    assert posts[0]["hashtags"] == ["#decks"]
    assert client.get("/api/social/best-time?platform=Facebook", headers=API).json() == {
        "platform": "Facebook",
        "day": "thursday",
        "hour": 13,
    }
    media = client.get("/api/media", headers=API).json()["media"]
    assert [m["public_url"] for m in media] == ["https://cdn/1.jpg"]


def test_checkout():
    with patch("src.backend.app.main.create_checkout_session", return_value={"id": "cs_1", "url": "https://checkout/x"}) as create:
        r = client.post("/checkout", json={"plan": "pro"})
    assert r.json() == {"url": "https://checkout/x"}
    create.assert_called_once_with("pro")

    with patch("src.backend.app.main.create_checkout_session", side_effect=RuntimeError("stripe not configured")):
        r = client.post("/checkout", json={})
    assert r.status_code == 500
    assert r.json() == {"error": "stripe not configured"}
