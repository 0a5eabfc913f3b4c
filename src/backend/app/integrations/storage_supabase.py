import logging
import os
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)


def _config() -> Optional[Dict[str, str]]:
    supabase_url = os.getenv("SUPABASE_URL", "").rstrip("/")
    service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    bucket = os.getenv("SUPABASE_MEDIA_BUCKET", "media")
    if not supabase_url or not service_key or not bucket:
        return None
    return {"url": supabase_url, "key": service_key, "bucket": bucket}


def upload_object(object_path: str, data: bytes, content_type: str) -> str:
    """Upload to a public bucket and return the object's public URL."""
    cfg = _config()
    if cfg is None:
        raise RuntimeError("supabase storage not configured")
    headers = {
        "Authorization": f"Bearer {cfg['key']}",
        "apikey": cfg["key"],
        "Content-Type": content_type or "application/octet-stream",
        "x-upsert": "true",
    }
    r = httpx.post(f"{cfg['url']}/storage/v1/object/{cfg['bucket']}/{object_path}", content=data, headers=headers, timeout=30)
    if r.status_code not in (200, 201):
        logger.warning(
            "supabase_upload_failed",
            extra={"path": object_path, "status": r.status_code, "body": r.text[:200]},
        )
        r.raise_for_status()
    return f"{cfg['url']}/storage/v1/object/public/{cfg['bucket']}/{object_path}"


def delete_object(object_path: str) -> bool:
    cfg = _config()
    if cfg is None:
        return False
    headers = {"Authorization": f"Bearer {cfg['key']}", "apikey": cfg["key"]}
    r = httpx.request(
        "DELETE",
        f"{cfg['url']}/storage/v1/object/{cfg['bucket']}",
        headers=headers,
        json={"prefixes": [object_path]},
        timeout=20,
    )
    return r.status_code in (200, 204)
