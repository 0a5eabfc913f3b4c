from typing import Any, Dict, Optional
import logging
import os
import time
import urllib.parse as _url

import httpx
from sqlalchemy.orm import Session

from .. import models as dbm
from ..crypto import decrypt_text, encrypt_text

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/business.manage",
    "https://www.googleapis.com/auth/userinfo.email",
]


def _google_oauth_creds() -> tuple[str, str]:
    return os.getenv("GOOGLE_CLIENT_ID", ""), os.getenv("GOOGLE_CLIENT_SECRET", "")


def _redirect_uri() -> str:
    base = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
    return os.getenv("GOOGLE_REDIRECT_URI", f"{base}/auth/google/callback")


def connect_url(business_id: int) -> str:
    """Link texted to the owner; it redirects to Google consent."""
    base = os.getenv("PUBLIC_BASE_URL", "https://api.ghostops.ai").rstrip("/")
    return f"{base}/auth/google/start?business={business_id}"


def build_auth_url(business_id: int) -> str:
    client_id, _ = _google_oauth_creds()
    params = {
        "client_id": client_id,
        "redirect_uri": _redirect_uri(),
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
        "state": str(business_id),
    }
    return f"{AUTH_URL}?{_url.urlencode(params)}"


def exchange_code(code: str) -> Dict[str, Any]:
    client_id, client_secret = _google_oauth_creds()
    if not (client_id and client_secret):
        raise RuntimeError("google not configured")
    data = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": _redirect_uri(),
        "grant_type": "authorization_code",
    }
    r = httpx.post(TOKEN_URL, data=data, timeout=15)
    r.raise_for_status()
    return r.json()


def fetch_user_email(access_token: str) -> Optional[str]:
    r = httpx.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}, timeout=15)
    r.raise_for_status()
    return r.json().get("email")


def store_tokens(db: Session, business: dbm.Business, tokens: Dict[str, Any], email: Optional[str] = None) -> None:
    now = int(time.time())
    business.google_access_token_enc = encrypt_text(str(tokens.get("access_token") or ""))
    # Google only returns a refresh token on first consent; keep the old one otherwise
    if tokens.get("refresh_token"):
        business.google_refresh_token_enc = encrypt_text(str(tokens["refresh_token"]))
    business.google_token_expires_at = now + int(tokens.get("expires_in") or 3600)
    business.google_scope = str(tokens.get("scope") or "")
    if email:
        business.google_email = email
    business.google_connected = True
    business.google_connected_at = now
    db.commit()


def has_tokens(business: dbm.Business) -> bool:
    return bool(business.google_access_token_enc or business.google_refresh_token_enc)


def refresh_google_token(db: Session, business: dbm.Business) -> bool:
    """Refresh the access token; a failed refresh marks Google disconnected."""
    client_id, client_secret = _google_oauth_creds()
    refresh_token = decrypt_text(business.google_refresh_token_enc)
    if not refresh_token:
        return False
    try:
        r = httpx.post(
            TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            timeout=15,
        )
        r.raise_for_status()
        j = r.json()
        access = str(j.get("access_token") or "")
        if not access:
            raise RuntimeError("google refresh returned no access token")
        business.google_access_token_enc = encrypt_text(access)
        business.google_token_expires_at = int(time.time()) + int(j.get("expires_in") or 3600)
        db.commit()
        return True
    except Exception as exc:
        logger.warning("google_token_refresh_failed", extra={"business_id": business.id, "error": str(exc)[:200]})
        business.google_connected = False
        db.commit()
        return False


def get_access_token(db: Session, business: dbm.Business) -> Optional[str]:
    access = decrypt_text(business.google_access_token_enc) or ""
    exp = int(business.google_token_expires_at or 0)
    if access and exp - int(time.time()) > 60:
        return access
    if refresh_google_token(db, business):
        return decrypt_text(business.google_access_token_enc)
    return None
