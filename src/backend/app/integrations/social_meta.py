import os
from typing import Any, Dict, Optional, Tuple

import httpx


def _api_version() -> str:
    version = os.getenv("FB_GRAPH_API_VERSION", "").strip()
    if not version:
        return "v18.0"
    if not version.startswith("v"):
        version = f"v{version}"
    return version


def _full_url(path: str) -> str:
    return f"https://graph.facebook.com/{_api_version()}/{path.lstrip('/')}"


def _request(method: str, path: str, *, params: Optional[Dict[str, Any]] = None, data: Optional[Dict[str, Any]] = None, timeout: int = 20) -> Tuple[bool, Dict[str, Any]]:
    """Graph call returning (ok, payload); errors are reported, never raised."""
    try:
        resp = httpx.request(method.upper(), _full_url(path), params=params, data=data, headers={"Accept": "application/json"}, timeout=timeout)
    except httpx.HTTPError as exc:
        return False, {"detail": str(exc)[:200], "kind": "network"}
    try:
        payload = resp.json()
    except ValueError:
        payload = {}
    if resp.status_code >= 400:
        body = payload or {}
        detail = body.get("error") or body or (resp.text or "")
        return False, {"detail": detail, "status_code": resp.status_code}
    return True, payload or {}


def publish_instagram_photo(ig_user_id: str, access_token: str, image_url: str, caption: str) -> Tuple[bool, Dict[str, Any]]:
    """Two-step container publish: create the media container, then publish it."""
    ok, created = _request("POST", f"{ig_user_id}/media", data={
        "image_url": image_url,
        "caption": caption,
        "access_token": access_token,
    })
    if not ok:
        return False, created
    creation_id = str(created.get("id") or "")
    if not creation_id:
        return False, {"detail": "missing_creation_id"}
    return _request("POST", f"{ig_user_id}/media_publish", data={
        "creation_id": creation_id,
        "access_token": access_token,
    })


def publish_facebook_post(page_id: str, access_token: str, message: str, image_url: Optional[str] = None) -> Tuple[bool, Dict[str, Any]]:
    if image_url:
        return _request("POST", f"{page_id}/photos", data={
            "url": image_url,
            "caption": message,
            "access_token": access_token,
        })
    return _request("POST", f"{page_id}/feed", data={"message": message, "access_token": access_token})


def fetch_instagram_insights(media_id: str, access_token: str) -> Tuple[bool, Dict[str, int]]:
    ok, payload = _request("GET", f"{media_id}/insights", params={
        "metric": "likes,comments,shares,reach",
        "access_token": access_token,
    })
    if not ok:
        return False, {}
    out: Dict[str, int] = {}
    for item in payload.get("data") or []:
        values = item.get("values") or [{}]
        out[str(item.get("name"))] = int(values[0].get("value") or 0)
    return True, out
