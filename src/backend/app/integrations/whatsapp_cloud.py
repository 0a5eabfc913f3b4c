import os
import re
import hmac
import hashlib
from typing import Any, Dict, Optional

import httpx

from .social_meta import _full_url


def _credentials(phone_number_id: Optional[str] = None) -> tuple[str, str]:
    phone_id = phone_number_id or os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    token = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    if not (phone_id and token):
        raise RuntimeError("whatsapp not configured")
    return phone_id, token


def wa_id(phone: str) -> str:
    """Cloud API addresses are bare digits: '+1 555-123-4567' -> '15551234567'."""
    return re.sub(r"\D", "", phone or "")


def send_whatsapp_message(to: str, body: str, phone_number_id: Optional[str] = None) -> Dict[str, Any]:
    phone_id, token = _credentials(phone_number_id)
    payload = {"messaging_product": "whatsapp", "to": wa_id(to), "type": "text", "text": {"body": body}}
    with httpx.Client(timeout=20) as client:
        r = client.post(_full_url(f"{phone_id}/messages"), json=payload, headers={"Authorization": f"Bearer {token}"})
        r.raise_for_status()
        j = r.json()
    messages = j.get("messages") or [{}]
    return {"status": "sent", "provider_id": messages[0].get("id", "")}


def mark_as_read(message_id: str, phone_number_id: Optional[str] = None) -> bool:
    """Blue ticks for the sender; best-effort."""
    try:
        phone_id, token = _credentials(phone_number_id)
        r = httpx.post(
            _full_url(f"{phone_id}/messages"),
            json={"messaging_product": "whatsapp", "status": "read", "message_id": message_id},
            headers={"Authorization": f"Bearer {token}"},
            timeout=10,
        )
        return r.status_code < 400
    except (RuntimeError, httpx.HTTPError):
        return False


def verify_challenge(mode: Optional[str], token: Optional[str]) -> bool:
    expected = os.getenv("WHATSAPP_VERIFY_TOKEN", "")
    return bool(expected) and mode == "subscribe" and token is not None and hmac.compare_digest(token, expected)


def verify_payload_signature(raw: bytes, signature: Optional[str]) -> bool:
    """X-Hub-Signature-256 check; skipped when no app secret is configured."""
    secret = os.getenv("WHATSAPP_APP_SECRET", "")
    if not secret:
        return True
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature[len("sha256="):], expected)


def parse_webhook_payload(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """First inbound message of a webhook delivery, or None for status updates."""
    try:
        value = payload["entry"][0]["changes"][0]["value"]
    except (KeyError, IndexError, TypeError):
        return None
    messages = value.get("messages") or []
    if not messages:
        return None
    message = messages[0]
    contact = (value.get("contacts") or [{}])[0]
    kind = message.get("type")
    text = ""
    if kind == "text":
        text = (message.get("text") or {}).get("body", "")
    elif kind == "button":
        text = (message.get("button") or {}).get("text", "")
    elif kind == "interactive":
        text = ((message.get("interactive") or {}).get("button_reply") or {}).get("title", "")
    elif kind == "image":
        text = (message.get("image") or {}).get("caption", "")
    return {
        "phone_number_id": (value.get("metadata") or {}).get("phone_number_id"),
        "from": message.get("from", ""),
        "from_name": (contact.get("profile") or {}).get("name") or "Unknown",
        "message_id": message.get("id", ""),
        "type": kind,
        "text": text or "",
    }
