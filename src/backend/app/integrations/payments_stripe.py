from typing import Any, Dict, Optional
import os

import stripe as _stripe

# Subscription plans sold on the landing page (amounts in cents, for display)
PLANS: Dict[str, Dict[str, Any]] = {
    "starter": {"name": "Starter", "price": 7900, "price_env": "STRIPE_STARTER_PRICE_ID"},
    "pro": {"name": "Pro", "price": 19700, "price_env": "STRIPE_PRO_PRICE_ID"},
    "agency": {"name": "Agency", "price": 49900, "price_env": "STRIPE_AGENCY_PRICE_ID"},
}


def _stripe_client():
    secret = os.getenv("STRIPE_SECRET_KEY", "")
    if not secret:
        raise RuntimeError("stripe not configured")
    _stripe.api_key = secret
    return _stripe


def create_payment_link(amount_cents: int, description: str, metadata: Dict[str, str]) -> Dict[str, str]:
    s = _stripe_client()
    price = s.Price.create(
        currency="usd",
        unit_amount=int(amount_cents),
        product_data={"name": description},
    )
    link = s.PaymentLink.create(
        line_items=[{"price": price["id"], "quantity": 1}],
        metadata=metadata,
    )
    return {"id": str(link["id"]), "url": str(link["url"])}


def create_checkout_session(plan: str, app_url: Optional[str] = None) -> Dict[str, str]:
    s = _stripe_client()
    key = plan if plan in PLANS else "starter"
    price_id = os.getenv(PLANS[key]["price_env"], "")
    if not price_id:
        raise RuntimeError(f"stripe price not configured for plan {key}")
    base = (app_url or os.getenv("APP_URL", "http://localhost:3002")).rstrip("/")
    session = s.checkout.Session.create(
        mode="subscription",
        payment_method_types=["card"],
        line_items=[{"price": price_id, "quantity": 1}],
        phone_number_collection={"enabled": True},
        success_url=f"{base}/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}/#pricing",
        metadata={"plan": key},
        allow_promotion_codes=True,
        billing_address_collection="required",
    )
    return {"id": str(session["id"]), "url": str(session["url"])}


def construct_event(payload: bytes, signature: str, secret: str):
    return _stripe.Webhook.construct_event(payload, signature, secret)
