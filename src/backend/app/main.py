from fastapi import FastAPI, Depends, Response, Request, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import text as _sql_text
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import hmac
import html
import json
import logging
import os
import time as _time

import sentry_sdk as _sentry

from .db import get_db
from . import models as dbm
from .auth import BusinessContext, get_business_context, require_cron_secret
from .conversations import get_or_create_conversation, save_message
from .events import emit_event
from .integrations.google_oauth import build_auth_url, exchange_code, fetch_user_email, store_tokens
from .integrations.payments_stripe import construct_event, create_checkout_session
from .integrations.sms_twilio import twilio_verify_signature
from .integrations.whatsapp_cloud import (
    mark_as_read,
    parse_webhook_payload,
    send_whatsapp_message,
    verify_challenge,
    verify_payload_signature,
)
from .invoices import mark_invoice_paid
from .leads import handle_lead
from .media import cleanup_old_media, get_unused_media, store_media
from .messaging import send_sms
from .metrics_counters import WEBHOOK_EVENTS
from .orchestrator import MISSED_CALL_TRIGGER, orchestrate
from .provisioning import apply_subscription_change, provision_business
from .rate_limit import check_and_increment
from .scheduler import run_tick
from .social import best_posting_time
from .stats import bump_daily_stat, stats_window
from .utils import normalize_phone

logger = logging.getLogger(__name__)

app = FastAPI(title="GhostOps Backend", version="0.1.0")

_dsn = os.getenv("SENTRY_DSN", "").strip()
if _dsn:
    _sentry.init(
        dsn=_dsn,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        release=os.getenv("SENTRY_RELEASE", None),
        environment=os.getenv("SENTRY_ENVIRONMENT", os.getenv("ENVIRONMENT", None)),
    )

cors_default = "http://localhost:3000,http://localhost:3002,https://app.ghostops.ai,https://ghostops.ai"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", cors_default).split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# Response compression for large JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=1024)

# Inbound SMS per business per minute, plus burst allowance
SMS_RATE_PER_MINUTE = 120
SMS_RATE_BURST = 30
LEAD_RATE_PER_MINUTE = 30
LEAD_RATE_BURST = 10

WHATSAPP_UNKNOWN_OWNER = (
    "Welcome to GhostOps! It looks like you haven't set up your account yet. "
    "Visit our dashboard to get started."
)

TWIML_EMPTY = "<Response></Response>"
TWIML_REJECT = "<Response><Reject/></Response>"
TWIML_HANGUP = "<Response><Hangup/></Response>"
TWIML_MISSED = (
    "<Response><Say>Sorry, we missed your call. We just texted you - please check your messages.</Say>"
    "<Hangup/></Response>"
)

# Columns never returned by the dashboard API
_PRIVATE_BUSINESS_FIELDS = {
    "api_key",
    "stripe_customer_id",
    "google_access_token_enc",
    "google_refresh_token_enc",
    "meta_page_token_enc",
}

EDITABLE_BUSINESS_FIELDS = ("name", "email", "industry", "brand_voice", "morning_briefing_enabled")


def _twiml(body: str, status_code: int = 200) -> Response:
    return Response(content=body, media_type="text/xml", status_code=status_code)


def _to_dict(row: Any, exclude: Optional[set] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for col in row.__table__.columns:
        if exclude and col.name in exclude:
            continue
        val = getattr(row, col.name)
        if col.name.endswith("_json"):
            try:
                out[col.name[: -len("_json")]] = json.loads(val) if val else None
            except ValueError:
                out[col.name[: -len("_json")]] = None
            continue
        out[col.name] = val
    return out


def _page(title: str, heading: str, lines: List[str]) -> str:
    body = "".join(f"<p>{line}</p>" for line in lines)
    return (
        f"<html><head><title>{title}</title>"
        '<meta name="viewport" content="width=device-width, initial-scale=1"></head>'
        '<body style="font-family: system-ui; padding: 40px; text-align: center;">'
        f"<h1>{heading}</h1>{body}</body></html>"
    )


async def _form_payload(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {k: str(v) for k, v in form.items()}


def _signature_ok(request: Request, payload: Dict[str, str]) -> bool:
    if os.getenv("TWILIO_VALIDATE_SIGNATURE", "1") != "1" or not os.getenv("TWILIO_AUTH_TOKEN"):
        return True
    # Behind a proxy Twilio signs the public URL, not the one we see
    base = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
    url = f"{base}{request.url.path}" if base else str(request.url)
    return twilio_verify_signature(url, payload, request.headers.get("X-Twilio-Signature", ""))


def _business_by_number(db: Session, number: str) -> Optional[dbm.Business]:
    if not number:
        return None
    return db.query(dbm.Business).filter(dbm.Business.twilio_number == number).first()


@app.get("/health", tags=["Health"])
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/ready", tags=["Health"])
def ready(db: Session = Depends(get_db)) -> Dict[str, str]:
    try:
        db.execute(_sql_text("SELECT 1"))
        return {"status": "ready"}
    except Exception:
        raise HTTPException(status_code=503, detail="not_ready")


@app.get("/live", tags=["Health"])
def live() -> Dict[str, str]:
    return {"status": "live"}


@app.get("/metrics/prometheus", tags=["Health"])
def prometheus_metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.post("/webhooks/twilio/sms", tags=["Webhooks"])
async def twilio_sms_webhook(request: Request, db: Session = Depends(get_db)) -> Response:
    payload = await _form_payload(request)
    if not _signature_ok(request, payload):
        WEBHOOK_EVENTS.labels(provider="twilio_sms", status="bad_signature").inc()
        raise HTTPException(status_code=403, detail="invalid_signature")
    try:
        from_raw = payload.get("From", "")
        sender = normalize_phone(from_raw) or from_raw
        to = payload.get("To", "")
        body = payload.get("Body", "")
        message_sid = payload.get("MessageSid")
        business = _business_by_number(db, to)
        if business is None:
            WEBHOOK_EVENTS.labels(provider="twilio_sms", status="unknown_number").inc()
            return _twiml(TWIML_EMPTY)
        ok_rl, _ = check_and_increment(
            str(business.id), "sms_inbound", max_per_minute=SMS_RATE_PER_MINUTE, burst=SMS_RATE_BURST
        )
        if not ok_rl:
            logger.warning("sms_rate_limited", extra={"business_id": business.id})
            WEBHOOK_EVENTS.labels(provider="twilio_sms", status="rate_limited").inc()
            return _twiml(TWIML_EMPTY)
        is_owner = bool(business.owner_phone) and sender == business.owner_phone

        media_urls: List[str] = []
        try:
            num_media = int(payload.get("NumMedia") or 0)
        except ValueError:
            num_media = 0
        for i in range(num_media):
            url = payload.get(f"MediaUrl{i}")
            if url:
                media_urls.append(store_media(db, business.id, url, payload.get(f"MediaContentType{i}"), message_sid))

        conv, _ = get_or_create_conversation(db, business, sender, is_owner)
        save_message(db, conv, "inbound", body, is_owner=is_owner, media_urls=media_urls, twilio_sid=message_sid)

        result = await orchestrate(db, business, conv, body, media_urls, is_owner, sender)
        reply = result.get("reply")
        if reply:
            sent = send_sms(db, business, sender, reply, from_number=to)
            save_message(
                db,
                conv,
                "outbound",
                reply,
                is_owner=is_owner,
                ai_generated=True,
                intent=result.get("intent"),
                twilio_sid=sent.get("provider_id"),
            )
        bump_daily_stat(db, business.id, "owner_messages" if is_owner else "customer_messages")
        WEBHOOK_EVENTS.labels(provider="twilio_sms", status="ok").inc()
        return _twiml(TWIML_EMPTY)
    except Exception as e:
        logger.exception("twilio_sms_webhook_failed", exc_info=e)
        db.rollback()
        WEBHOOK_EVENTS.labels(provider="twilio_sms", status="error").inc()
        return _twiml(TWIML_EMPTY, status_code=500)


@app.post("/webhooks/twilio/voice", tags=["Webhooks"])
async def twilio_voice_webhook(request: Request, db: Session = Depends(get_db)) -> Response:
    payload = await _form_payload(request)
    if not _signature_ok(request, payload):
        WEBHOOK_EVENTS.labels(provider="twilio_voice", status="bad_signature").inc()
        raise HTTPException(status_code=403, detail="invalid_signature")
    try:
        from_raw = payload.get("From", "")
        caller = normalize_phone(from_raw) or from_raw
        to = payload.get("To", "")
        business = _business_by_number(db, to)
        if business is None:
            WEBHOOK_EVENTS.labels(provider="twilio_voice", status="unknown_number").inc()
            return _twiml(TWIML_REJECT)
        call = dbm.MissedCall(business_id=business.id, phone=caller, call_sid=payload.get("CallSid"), status="pending")
        db.add(call)
        db.commit()
        texted = False
        if business.missed_call_enabled:
            result = await orchestrate(db, business, None, MISSED_CALL_TRIGGER, [], False, caller)
            reply = result.get("reply") or ""
            sent = send_sms(db, business, caller, reply, from_number=to)
            conv, _ = get_or_create_conversation(db, business, caller, False, source="missed_call")
            save_message(
                db,
                conv,
                "outbound",
                reply,
                ai_generated=True,
                intent=result.get("intent"),
                twilio_sid=sent.get("provider_id"),
            )
            texted = sent.get("status") == "sent"
            call.status = "texted" if texted else "failed"
            call.texted_at = int(_time.time()) if texted else None
            call.conversation_id = conv.id
        else:
            call.status = "disabled"
        db.commit()
        bump_daily_stat(db, business.id, "missed_calls")
        emit_event("MissedCallHandled", {"business_id": business.id, "status": call.status})
        WEBHOOK_EVENTS.labels(provider="twilio_voice", status="ok").inc()
        return _twiml(TWIML_MISSED if texted else TWIML_HANGUP)
    except Exception as e:
        logger.exception("twilio_voice_webhook_failed", exc_info=e)
        db.rollback()
        WEBHOOK_EVENTS.labels(provider="twilio_voice", status="error").inc()
        return _twiml(TWIML_HANGUP)


class LeadRequest(BaseModel):
    business_id: Optional[int] = None
    twilio_number: Optional[str] = None
    phone: str
    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    source: str = "web_form"
    form_data: Optional[Dict[str, Any]] = None


@app.post("/webhooks/leads", tags=["Webhooks"])
async def lead_webhook(req: LeadRequest, request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    started = _time.monotonic()
    secret = os.getenv("LEADS_WEBHOOK_SECRET", "")
    if secret and not hmac.compare_digest(request.headers.get("x-ghostops-secret", ""), secret):
        raise HTTPException(status_code=401, detail="unauthorized")
    business = None
    if req.business_id is not None:
        business = db.get(dbm.Business, req.business_id)
    elif req.twilio_number:
        business = _business_by_number(db, normalize_phone(req.twilio_number) or req.twilio_number)
    if business is None:
        WEBHOOK_EVENTS.labels(provider="leads", status="unknown_business").inc()
        raise HTTPException(status_code=400, detail="business_not_found")
    phone = normalize_phone(req.phone)
    if phone is None:
        raise HTTPException(status_code=400, detail="invalid_phone")
    if business.is_paused or not business.speed_to_lead_enabled:
        WEBHOOK_EVENTS.labels(provider="leads", status="skipped").inc()
        return {"status": "skipped", "reason": "disabled_or_paused"}
    ok_rl, _ = check_and_increment(str(business.id), "lead_inbound", max_per_minute=LEAD_RATE_PER_MINUTE, burst=LEAD_RATE_BURST)
    if not ok_rl:
        WEBHOOK_EVENTS.labels(provider="leads", status="rate_limited").inc()
        raise HTTPException(status_code=429, detail="rate_limited")
    try:
        out = await handle_lead(
            db,
            business,
            phone,
            name=(req.name or "").strip() or None,
            email=(req.email or "").strip().lower() or None,
            message=req.message,
            source=req.source,
            form_data=req.form_data,
        )
    except Exception as e:
        logger.exception("lead_webhook_failed", extra={"business_id": business.id}, exc_info=e)
        db.rollback()
        WEBHOOK_EVENTS.labels(provider="leads", status="error").inc()
        raise HTTPException(status_code=500, detail="lead_failed")
    WEBHOOK_EVENTS.labels(provider="leads", status="ok").inc()
    out["response_time_ms"] = int((_time.monotonic() - started) * 1000)
    return out


@app.get("/webhooks/whatsapp", tags=["Webhooks"])
def whatsapp_verify(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    if not verify_challenge(mode, token):
        raise HTTPException(status_code=403, detail="verification_failed")
    return PlainTextResponse(challenge or "")


@app.post("/webhooks/whatsapp", tags=["Webhooks"])
async def whatsapp_webhook(request: Request, db: Session = Depends(get_db)) -> Dict[str, str]:
    raw = await request.body()
    if not verify_payload_signature(raw, request.headers.get("x-hub-signature-256")):
        WEBHOOK_EVENTS.labels(provider="whatsapp", status="bad_signature").inc()
        raise HTTPException(status_code=403, detail="invalid_signature")
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid_payload")
    parsed = parse_webhook_payload(payload) if isinstance(payload, dict) else None
    if parsed is None or not parsed["text"].strip():
        return {"status": "ignored"}
    # Meta redelivers anything that is not a 200, so failures are logged and acknowledged
    try:
        phone_id = parsed["phone_number_id"]
        owner_phone = normalize_phone("+" + parsed["from"]) or "+" + parsed["from"]
        mark_as_read(parsed["message_id"], phone_id)
        business = (
            db.query(dbm.Business)
            .filter(dbm.Business.owner_phone == owner_phone)
            .order_by(dbm.Business.id.asc())
            .first()
        )
        if business is None:
            send_whatsapp_message(parsed["from"], WHATSAPP_UNKNOWN_OWNER, phone_id)
            WEBHOOK_EVENTS.labels(provider="whatsapp", status="unknown_owner").inc()
            return {"status": "unknown_owner"}
        conv, _ = get_or_create_conversation(db, business, owner_phone, True, source="whatsapp")
        save_message(db, conv, "inbound", parsed["text"], is_owner=True)
        result = await orchestrate(db, business, conv, parsed["text"], [], True, owner_phone)
        reply = result.get("reply")
        if reply:
            sent = send_whatsapp_message(parsed["from"], reply, phone_id)
            save_message(
                db,
                conv,
                "outbound",
                reply,
                is_owner=True,
                ai_generated=True,
                intent=result.get("intent"),
                twilio_sid=sent.get("provider_id"),
            )
        bump_daily_stat(db, business.id, "owner_messages")
        WEBHOOK_EVENTS.labels(provider="whatsapp", status="ok").inc()
        return {"status": "ok"}
    except Exception as e:
        logger.exception("whatsapp_webhook_failed", exc_info=e)
        db.rollback()
        WEBHOOK_EVENTS.labels(provider="whatsapp", status="error").inc()
        return {"status": "error"}


@app.post("/webhooks/stripe", tags=["Webhooks"])
async def stripe_webhook(request: Request, db: Session = Depends(get_db)) -> Dict[str, bool]:
    raw = await request.body()
    sig = request.headers.get("stripe-signature", "")
    secret = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    if not sig or not secret:
        raise HTTPException(status_code=400, detail="missing_signature")
    try:
        event = construct_event(raw, sig, secret)
    except Exception as e:
        logger.warning("stripe_signature_invalid", extra={"error": str(e)[:200]})
        WEBHOOK_EVENTS.labels(provider="stripe", status="bad_signature").inc()
        raise HTTPException(status_code=400, detail="invalid_signature")
    if hasattr(event, "to_dict"):
        event = event.to_dict()
    etype = str(event.get("type") or "")
    obj = (event.get("data") or {}).get("object") or {}

    if etype == "checkout.session.completed":
        email = obj.get("customer_email") or (obj.get("customer_details") or {}).get("email")
        if obj.get("mode") == "subscription" and email:
            try:
                provision_business(db, obj)
            except Exception as e:
                logger.exception("provision_failed", extra={"session": obj.get("id")}, exc_info=e)
                db.rollback()
                WEBHOOK_EVENTS.labels(provider="stripe", status="error").inc()
                raise HTTPException(status_code=500, detail="provision_failed")
        if obj.get("payment_link"):
            mark_invoice_paid(db, str(obj["payment_link"]), int(obj.get("amount_total") or 0))
    elif etype in ("customer.subscription.created", "customer.subscription.updated", "customer.subscription.deleted"):
        apply_subscription_change(db, obj, etype)
    elif etype in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        logger.info("stripe_payment_intent", extra={"type": etype, "id": obj.get("id")})
    else:
        logger.info("stripe_event_ignored", extra={"type": etype})
    WEBHOOK_EVENTS.labels(provider="stripe", status="ok").inc()
    return {"received": True}


class CheckoutRequest(BaseModel):
    plan: Optional[str] = "starter"


@app.post("/checkout", tags=["Billing"])
def checkout(req: CheckoutRequest):
    try:
        session = create_checkout_session(req.plan or "starter")
    except Exception as e:
        logger.exception("checkout_failed", exc_info=e)
        return JSONResponse({"error": str(e)[:200]}, status_code=500)
    return {"url": session["url"]}


@app.get("/auth/google/start", tags=["Integrations"])
def google_auth_start(business: Optional[str] = Query(default=None), db: Session = Depends(get_db)):
    if not business:
        raise HTTPException(status_code=400, detail="missing_business")
    try:
        row = db.get(dbm.Business, int(business))
    except ValueError:
        row = None
    if row is None:
        raise HTTPException(status_code=404, detail="business_not_found")
    return RedirectResponse(url=build_auth_url(row.id))


@app.get("/auth/google/callback", tags=["Integrations"])
def google_auth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    if error:
        return HTMLResponse(_page("Connection Failed", "Connection Failed", [
            f"There was an error connecting your Google account: {html.escape(error)}",
            "You can try again by texting your GhostOps number.",
        ]))
    if not code or not state:
        raise HTTPException(status_code=400, detail="missing_parameters")
    error_page = _page("Connection Error", "Something went wrong", [
        "We couldn't connect your Google account. Please try again.",
        "Text your GhostOps number for help.",
    ])
    try:
        business = db.get(dbm.Business, int(state))
    except ValueError:
        business = None
    if business is None:
        return HTMLResponse(error_page, status_code=404)
    try:
        tokens = exchange_code(code)
        email = fetch_user_email(str(tokens.get("access_token") or ""))
        store_tokens(db, business, tokens, email)
    except Exception as e:
        logger.exception("google_oauth_callback_failed", extra={"business_id": business.id}, exc_info=e)
        return HTMLResponse(error_page, status_code=500)
    emit_event("GoogleConnected", {"business_id": business.id})
    if business.owner_phone and business.twilio_number:
        send_sms(
            db,
            business,
            business.owner_phone,
            "Google connected! ✅ I can now manage your calendar and emails. Text me 'done' to continue setup.",
        )
    return HTMLResponse(_page("Connected!", "✅ Google Connected!", [
        "Your calendar and email are now linked to GhostOps.",
        "You can close this window and return to your text conversation.",
    ]))


def _current_business(db: Session, ctx: BusinessContext) -> dbm.Business:
    business = db.get(dbm.Business, ctx.business_id)
    if business is None:
        raise HTTPException(status_code=404, detail="business_not_found")
    return business


@app.get("/api/conversations", tags=["Dashboard"])
def list_conversations(db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    rows = (
        db.query(dbm.Conversation)
        .filter(dbm.Conversation.business_id == ctx.business_id)
        .order_by(dbm.Conversation.last_message_at.desc(), dbm.Conversation.id.desc())
        .limit(50)
        .all()
    )
    return {"conversations": [_to_dict(r) for r in rows]}


@app.get("/api/conversations/{conversation_id}", tags=["Dashboard"])
def get_conversation(conversation_id: int, db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    row = db.get(dbm.Conversation, conversation_id)
    if row is None or row.business_id != ctx.business_id:
        raise HTTPException(status_code=404, detail="not_found")
    return _to_dict(row)


@app.get("/api/messages/{conversation_id}", tags=["Dashboard"])
def list_messages(conversation_id: int, db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    conv = db.get(dbm.Conversation, conversation_id)
    if conv is None or conv.business_id != ctx.business_id:
        raise HTTPException(status_code=404, detail="not_found")
    rows = (
        db.query(dbm.Message)
        .filter(dbm.Message.conversation_id == conversation_id)
        .order_by(dbm.Message.created_at.asc(), dbm.Message.id.asc())
        .all()
    )
    return {"messages": [_to_dict(r) for r in rows]}


@app.get("/api/invoices", tags=["Dashboard"])
def list_invoices(db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    rows = (
        db.query(dbm.Invoice)
        .filter(dbm.Invoice.business_id == ctx.business_id)
        .order_by(dbm.Invoice.created_at.desc(), dbm.Invoice.id.desc())
        .limit(100)
        .all()
    )
    return {"invoices": [_to_dict(r) for r in rows]}


@app.get("/api/invoices/{invoice_id}", tags=["Dashboard"])
def get_invoice(invoice_id: int, db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    row = db.get(dbm.Invoice, invoice_id)
    if row is None or row.business_id != ctx.business_id:
        raise HTTPException(status_code=404, detail="not_found")
    return _to_dict(row)


@app.get("/api/stats", tags=["Dashboard"])
def get_stats(
    days: int = Query(default=7, ge=1, le=365),
    db: Session = Depends(get_db),
    ctx: BusinessContext = Depends(get_business_context),
):
    return stats_window(db, ctx.business_id, days)


@app.get("/api/social", tags=["Dashboard"])
def list_social(db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    rows = (
        db.query(dbm.ScheduledPost)
        .filter(dbm.ScheduledPost.business_id == ctx.business_id)
        .order_by(dbm.ScheduledPost.created_at.desc(), dbm.ScheduledPost.id.desc())
        .limit(50)
        .all()
    )
    return {"posts": [_to_dict(r) for r in rows]}


@app.get("/api/social/best-time", tags=["Dashboard"])
def social_best_time(
    platform: str = Query(default="instagram"),
    db: Session = Depends(get_db),
    ctx: BusinessContext = Depends(get_business_context),
):
    business = _current_business(db, ctx)
    return {"platform": platform, **best_posting_time(db, business.id, platform.lower(), business.timezone)}


@app.get("/api/media", tags=["Dashboard"])
def list_unused_media(
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
    ctx: BusinessContext = Depends(get_business_context),
):
    return {"media": [_to_dict(r) for r in get_unused_media(db, ctx.business_id, limit)]}


@app.get("/api/business", tags=["Dashboard"])
def get_business(db: Session = Depends(get_db), ctx: BusinessContext = Depends(get_business_context)):
    return _to_dict(_current_business(db, ctx), exclude=_PRIVATE_BUSINESS_FIELDS)


class BusinessUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    industry: Optional[str] = None
    brand_voice: Optional[str] = None
    morning_briefing_enabled: Optional[bool] = None


@app.put("/api/business", tags=["Dashboard"])
def update_business(
    req: BusinessUpdate,
    db: Session = Depends(get_db),
    ctx: BusinessContext = Depends(get_business_context),
):
    business = _current_business(db, ctx)
    for key, val in req.model_dump(exclude_unset=True).items():
        if key in EDITABLE_BUSINESS_FIELDS:
            setattr(business, key, val)
    db.commit()
    return {"success": True}


@app.post("/cron/tick", tags=["Scheduler"], dependencies=[Depends(require_cron_secret)])
def cron_tick(db: Session = Depends(get_db)):
    return run_tick(db)


@app.post("/cron/media-cleanup", tags=["Scheduler"], dependencies=[Depends(require_cron_secret)])
def cron_media_cleanup(days_old: int = Query(default=90, ge=1), db: Session = Depends(get_db)):
    removed = 0
    for (business_id,) in db.query(dbm.Business.id).all():
        removed += cleanup_old_media(db, business_id, days_old)
    return {"removed": removed}
