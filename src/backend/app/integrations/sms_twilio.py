import os
import hmac
import hashlib
import base64
from typing import Dict, Any, Optional, Tuple
import httpx

_API = "https://api.twilio.com/2010-04-01"


def _credentials(account_sid: Optional[str] = None, auth_token: Optional[str] = None) -> Tuple[str, str]:
    account_sid = account_sid or os.getenv("TWILIO_ACCOUNT_SID", "")
    auth_token = auth_token or os.getenv("TWILIO_AUTH_TOKEN", "")
    if not (account_sid and auth_token):
        raise RuntimeError("twilio not configured")
    return account_sid, auth_token


def twilio_send_sms(
    to_e164: str,
    body: str,
    from_number: Optional[str] = None,
    account_sid: Optional[str] = None,
    auth_token: Optional[str] = None,
) -> Dict[str, Any]:
    account_sid, auth_token = _credentials(account_sid, auth_token)
    from_number = from_number or os.getenv("TWILIO_MASTER_NUMBER", "")
    if not (from_number and to_e164):
        raise RuntimeError("twilio not configured")
    url = f"{_API}/Accounts/{account_sid}/Messages.json"
    data = {"To": to_e164, "From": from_number, "Body": body}
    with httpx.Client(timeout=20) as client:
        r = client.post(url, data=data, auth=(account_sid, auth_token))
        r.raise_for_status()
        j = r.json()
        return {"status": j.get("status", "queued"), "provider_id": j.get("sid", "")}


def twilio_verify_signature(url: str, payload: Dict[str, Any], signature: str) -> bool:
    """X-Twilio-Signature: base64 HMAC-SHA1 of the URL plus sorted form key/values."""
    token = os.getenv("TWILIO_AUTH_TOKEN", "")
    if not token or not signature:
        return False
    s = url + "".join([f"{k}{v}" for k, v in sorted(payload.items())])
    mac = hmac.new(token.encode(), s.encode(), hashlib.sha1).digest()
    expected = base64.b64encode(mac).decode()
    return hmac.compare_digest(signature, expected)


def twilio_fetch_media(media_url: str) -> Tuple[bytes, str]:
    """Download MMS media; Twilio media URLs need account basic auth and redirect to a CDN."""
    account_sid, auth_token = _credentials()
    with httpx.Client(timeout=30, follow_redirects=True) as client:
        r = client.get(media_url, auth=(account_sid, auth_token))
        r.raise_for_status()
        return r.content, r.headers.get("content-type", "application/octet-stream")


def twilio_purchase_number(area_code: Optional[str] = None) -> str:
    account_sid, auth_token = _credentials()
    params: Dict[str, Any] = {"SmsEnabled": "true", "VoiceEnabled": "true", "PageSize": 1}
    if area_code:
        params["AreaCode"] = area_code
    with httpx.Client(timeout=20, auth=(account_sid, auth_token)) as client:
        r = client.get(f"{_API}/Accounts/{account_sid}/AvailablePhoneNumbers/US/Local.json", params=params)
        r.raise_for_status()
        nums = (r.json() or {}).get("available_phone_numbers") or []
        if not nums or not nums[0].get("phone_number"):
            raise RuntimeError("no phone numbers available")
        r2 = client.post(
            f"{_API}/Accounts/{account_sid}/IncomingPhoneNumbers.json",
            data={"PhoneNumber": nums[0]["phone_number"], "FriendlyName": "GhostOps Business Line"},
        )
        r2.raise_for_status()
        return str(r2.json().get("phone_number") or nums[0]["phone_number"])


def twilio_configure_webhooks(phone_number: str, sms_url: str, voice_url: str) -> str:
    """Point a purchased number's SMS and voice webhooks at this service; returns the number SID."""
    account_sid, auth_token = _credentials()
    with httpx.Client(timeout=20, auth=(account_sid, auth_token)) as client:
        r = client.get(f"{_API}/Accounts/{account_sid}/IncomingPhoneNumbers.json", params={"PhoneNumber": phone_number})
        r.raise_for_status()
        numbers = (r.json() or {}).get("incoming_phone_numbers") or []
        if not numbers:
            raise RuntimeError(f"phone number not found: {phone_number}")
        sid = str(numbers[0].get("sid"))
        r2 = client.post(
            f"{_API}/Accounts/{account_sid}/IncomingPhoneNumbers/{sid}.json",
            data={"SmsUrl": sms_url, "SmsMethod": "POST", "VoiceUrl": voice_url, "VoiceMethod": "POST"},
        )
        r2.raise_for_status()
        return sid
