import os
import secrets
import time
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from . import models as dbm
from .events import emit_event
from .integrations.sms_twilio import twilio_configure_webhooks, twilio_purchase_number
from .messaging import send_sms
from .utils import normalize_phone

logger = logging.getLogger(__name__)


def welcome_text(twilio_number: str) -> str:
    return (
        "🎉 Welcome to GhostOps!\n\n"
        f"Your AI assistant number is:\n{twilio_number}\n\n"
        "Save this number and text it anytime. Try these commands:\n\n"
        "• \"what's my day\"\n"
        "• \"invoice John 500\"\n"
        "• \"post to instagram\"\n"
        "• \"email my accountant\"\n\n"
        "Your customers can also text this number - I'll handle them 24/7 and notify you of important things.\n\n"
        "Text your new number now to get started!"
    )


def _session_email(session: Dict[str, Any]) -> Optional[str]:
    details = session.get("customer_details") or {}
    email = session.get("customer_email") or details.get("email")
    return str(email).strip().lower() if email else None


def provision_business(db: Session, session: Dict[str, Any]) -> Optional[dbm.Business]:
    """Buy a number, wire its webhooks, create the business and text the owner.

    Replayed checkout events for a known Stripe customer are ignored.
    """
    email = _session_email(session)
    if not email:
        return None
    details = session.get("customer_details") or {}
    customer_id = str(session.get("customer") or "") or None
    if customer_id:
        existing = db.query(dbm.Business).filter(dbm.Business.stripe_customer_id == customer_id).first()
        if existing is not None:
            logger.info("provision_skipped_existing", extra={"business_id": existing.id})
            return existing

    number = twilio_purchase_number()
    base = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
    twilio_configure_webhooks(number, f"{base}/webhooks/twilio/sms", f"{base}/webhooks/twilio/voice")

    business = dbm.Business(
        owner_email=email,
        owner_phone=normalize_phone(details.get("phone")),
        owner_name=details.get("name") or None,
        twilio_number=number,
        api_key=secrets.token_urlsafe(32),
        stripe_customer_id=customer_id,
        subscription_id=str(session.get("subscription") or "") or None,
        subscription_status="active",
        subscription_plan=(session.get("metadata") or {}).get("plan"),
        onboarding_step="welcome",
        onboarding_complete=False,
    )
    db.add(business)
    db.commit()
    emit_event("BusinessProvisioned", {"business_id": business.id, "twilio_number": number})
    logger.info("business_provisioned", extra={"business_id": business.id})

    if business.owner_phone:
        send_sms(
            db,
            business,
            business.owner_phone,
            welcome_text(number),
            from_number=os.getenv("TWILIO_MASTER_NUMBER") or number,
        )
    return business


def apply_subscription_change(db: Session, subscription: Dict[str, Any], event_type: str) -> Optional[dbm.Business]:
    customer_id = str(subscription.get("customer") or "")
    business = db.query(dbm.Business).filter(dbm.Business.stripe_customer_id == customer_id).first() if customer_id else None
    if business is None:
        logger.info("subscription_business_not_found", extra={"customer": customer_id})
        return None
    if event_type == "customer.subscription.deleted":
        business.subscription_status = "canceled"
        business.subscription_canceled_at = int(time.time())
    else:
        items = ((subscription.get("items") or {}).get("data")) or []
        price = (items[0].get("price") or {}) if items else {}
        business.subscription_status = subscription.get("status")
        business.subscription_plan = price.get("lookup_key") or "unknown"
        business.subscription_id = subscription.get("id")
        period_end = subscription.get("current_period_end")
        business.subscription_current_period_end = int(period_end) if period_end else None
    db.commit()
    emit_event("SubscriptionChanged", {"business_id": business.id, "status": business.subscription_status})
    return business
