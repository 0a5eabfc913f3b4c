from typing import Dict, List
import base64
from email.message import EmailMessage

import httpx

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"


def _headers(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


def encode_raw(to: str, subject: str, body: str) -> str:
    """RFC 2822 message as unpadded base64url, the shape messages.send expects."""
    msg = EmailMessage()
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")


def search_messages(access_token: str, query: str, max_results: int = 5) -> List[str]:
    r = httpx.get(
        f"{GMAIL_API}/messages",
        headers=_headers(access_token),
        params={"q": query, "maxResults": max_results},
        timeout=20,
    )
    r.raise_for_status()
    return [str(m.get("id")) for m in (r.json().get("messages") or []) if m.get("id")]


def get_message_headers(access_token: str, message_id: str) -> Dict[str, str]:
    r = httpx.get(
        f"{GMAIL_API}/messages/{message_id}",
        headers=_headers(access_token),
        params=[("format", "metadata"), ("metadataHeaders", "Subject"), ("metadataHeaders", "From"), ("metadataHeaders", "Date")],
        timeout=20,
    )
    r.raise_for_status()
    headers = (r.json().get("payload") or {}).get("headers") or []
    return {str(h.get("name")): str(h.get("value") or "") for h in headers if h.get("name")}


def send_message(access_token: str, to: str, subject: str, body: str) -> str:
    r = httpx.post(
        f"{GMAIL_API}/messages/send",
        headers=_headers(access_token),
        json={"raw": encode_raw(to, subject, body)},
        timeout=20,
    )
    r.raise_for_status()
    return str(r.json().get("id") or "")
