import time
import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from . import models as dbm
from .integrations.sms_twilio import twilio_fetch_media
from .integrations.storage_supabase import delete_object, upload_object

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
    "video/webm": ".webm",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "application/pdf": ".pdf",
}


def extension_for(content_type: Optional[str]) -> str:
    return _EXTENSIONS.get((content_type or "").lower(), ".bin")


def store_media(
    db: Session,
    business_id: int,
    media_url: str,
    content_type: Optional[str],
    message_sid: Optional[str],
) -> str:
    """Copy an MMS attachment into our bucket and index it.

    Returns the stored public URL, or the original Twilio URL if anything fails.
    """
    try:
        data, fetched_type = twilio_fetch_media(media_url)
        ctype = content_type or fetched_type or "application/octet-stream"
        path = f"businesses/{business_id}/media/{message_sid or 'mms'}_{int(time.time() * 1000)}{extension_for(ctype)}"
        public_url = upload_object(path, data, ctype)
        db.add(
            dbm.MediaAsset(
                business_id=business_id,
                message_sid=message_sid,
                storage_path=path,
                public_url=public_url,
                original_url=media_url,
                content_type=ctype,
                is_video=ctype.startswith("video/"),
                is_image=ctype.startswith("image/"),
                used_in_post=False,
            )
        )
        db.commit()
        return public_url
    except Exception as e:
        db.rollback()
        logger.warning("media_store_failed", extra={"business_id": business_id, "error": str(e)[:200]})
        return media_url


def get_unused_media(db: Session, business_id: int, limit: int = 10) -> List[dbm.MediaAsset]:
    return (
        db.query(dbm.MediaAsset)
        .filter(dbm.MediaAsset.business_id == business_id, dbm.MediaAsset.used_in_post.is_(False))
        .order_by(dbm.MediaAsset.created_at.desc(), dbm.MediaAsset.id.desc())
        .limit(limit)
        .all()
    )


def mark_media_used(db: Session, media_ids: Sequence[int]) -> int:
    if not media_ids:
        return 0
    now = int(time.time())
    rows = db.query(dbm.MediaAsset).filter(dbm.MediaAsset.id.in_(list(media_ids))).all()
    for row in rows:
        row.used_in_post = True
        row.used_at = now
    db.commit()
    return len(rows)


def mark_urls_used(db: Session, business_id: int, urls: Sequence[str]) -> int:
    if not urls:
        return 0
    ids = [
        r.id
        for r in db.query(dbm.MediaAsset)
        .filter(dbm.MediaAsset.business_id == business_id, dbm.MediaAsset.public_url.in_(list(urls)))
        .all()
    ]
    return mark_media_used(db, ids)


def cleanup_old_media(db: Session, business_id: int, days_old: int = 90) -> int:
    cutoff = int(time.time()) - days_old * 86400
    rows = (
        db.query(dbm.MediaAsset)
        .filter(
            dbm.MediaAsset.business_id == business_id,
            dbm.MediaAsset.created_at < cutoff,
            dbm.MediaAsset.used_in_post.is_(False),
        )
        .all()
    )
    for row in rows:
        try:
            delete_object(row.storage_path)
        except Exception as e:
            logger.warning("media_delete_failed", extra={"path": row.storage_path, "error": str(e)[:200]})
        db.delete(row)
    db.commit()
    return len(rows)
