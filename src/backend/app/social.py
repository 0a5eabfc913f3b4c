import re
import json
import time
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from . import models as dbm
from .ai import AIClient, parse_json_reply
from .conversations import set_context
from .crypto import decrypt_text
from .events import emit_event
from .integrations.social_meta import publish_facebook_post, publish_instagram_photo
from .media import mark_urls_used
from .stats import bump_daily_stat
from .utils import business_tz, fmt_day, fmt_time

logger = logging.getLogger(__name__)

PLATFORM_SPECS: Dict[str, Dict[str, int]] = {
    "instagram": {"max_length": 2200, "hashtag_limit": 30},
    "facebook": {"max_length": 63206, "hashtag_limit": 5},
    "linkedin": {"max_length": 3000, "hashtag_limit": 5},
    "tiktok": {"max_length": 2200, "hashtag_limit": 8},
    "youtube": {"title_max": 100, "description_max": 5000},
}

DEFAULT_BEST_TIMES: Dict[str, Dict[str, Any]] = {
    "instagram": {"day": "wednesday", "hour": 11},
    "facebook": {"day": "thursday", "hour": 13},
    "linkedin": {"day": "tuesday", "hour": 10},
    "tiktok": {"day": "tuesday", "hour": 19},
}
FALLBACK_BEST_TIME = {"day": "wednesday", "hour": 10}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_VIDEO_RE = re.compile(r"\.(mp4|mov|avi|webm)$", re.IGNORECASE)
_TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", re.IGNORECASE)
_PLATFORM_KEYWORDS = (
    ("instagram", re.compile(r"instagram|\big\b")),
    ("facebook", re.compile(r"facebook|\bfb\b")),
    ("linkedin", re.compile(r"linkedin")),
    ("tiktok", re.compile(r"tiktok|tik tok")),
    ("youtube", re.compile(r"youtube|\byt\b")),
)

WHEN_PROMPT = "When should I post? Try 'tomorrow 10am' or 'Monday 2pm'"


def _reply(text: str, intent: str, actions: Optional[list] = None) -> Dict[str, Any]:
    return {"reply": text, "intent": intent, "actions": actions or []}


def has_video(media_urls: Optional[Sequence[str]]) -> bool:
    return any(_VIDEO_RE.search(u or "") or "video" in (u or "") for u in (media_urls or []))


def detect_target_platforms(message: str, video: bool) -> List[str]:
    lower = (message or "").lower()
    found = [name for name, pattern in _PLATFORM_KEYWORDS if pattern.search(lower)]
    if found:
        return found
    return ["instagram", "tiktok", "facebook"] if video else ["instagram", "facebook"]


def _normalize_hashtags(tags: Any) -> List[str]:
    if isinstance(tags, str):
        tags = tags.split()
    out: List[str] = []
    for t in tags or []:
        t = str(t).strip().replace(" ", "")
        if not t:
            continue
        out.append(t if t.startswith("#") else f"#{t}")
    return out


def fit_to_platform(post: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp content and hashtags to the platform's limits."""
    platform = str(post.get("platform") or "").lower()
    spec = PLATFORM_SPECS.get(platform, {})
    content = str(post.get("content") or "")
    hashtags = _normalize_hashtags(post.get("hashtags"))
    if "max_length" in spec:
        content = content[: spec["max_length"]]
        hashtags = hashtags[: spec["hashtag_limit"]]
    elif "description_max" in spec:
        content = content[: spec["description_max"]]
    fitted = {**post, "platform": platform, "content": content, "hashtags": hashtags}
    if platform == "youtube" and fitted.get("title"):
        fitted["title"] = str(fitted["title"])[: spec["title_max"]]
    return fitted


def _fallback_posts(business: dbm.Business, platforms: Sequence[str]) -> List[Dict[str, Any]]:
    tag = "#" + re.sub(r"\s", "", business.industry or "business")
    return [
        {"platform": p, "content": f"Check out our latest work! {business.name or ''}".strip(), "hashtags": [tag]}
        for p in platforms
    ]


async def generate_posts(
    business: dbm.Business,
    message: str,
    media_urls: Sequence[str],
    platforms: Sequence[str],
    video: bool,
    ai: Optional[AIClient] = None,
) -> List[Dict[str, Any]]:
    media_context = (
        "The owner sent a VIDEO. Generate content suitable for video posts (Reels, TikTok, etc.)"
        if video
        else f"The owner sent {len(media_urls)} PHOTO(s). Generate content for image posts."
    )
    system = (
        "You are an expert social media manager. Generate platform-specific posts.\n\n"
        f"Business: {business.name or 'Service Business'}\n"
        f"Industry: {business.industry or 'home services'}\n"
        f"Brand voice: {business.brand_voice or 'friendly, professional, local'}\n"
        f"Location: {business.location or 'local area'}\n\n"
        f"{media_context}\n\n"
        f'Owner\'s message/context: "{message}"\n\n'
        "For each platform, consider character limits, platform-specific hashtag usage, "
        "tone, calls to action and the opening hook.\n\n"
        "Respond as JSON array:\n"
        '[{"platform": "instagram", "content": "...", "hashtags": ["...", "..."], "format": "reel|post|story"}]'
    )
    reply = await (ai or AIClient()).generate(
        system,
        [{"role": "user", "content": f"Generate posts for these platforms: {', '.join(platforms)}"}],
        max_tokens=2000,
    )
    parsed = parse_json_reply(reply)
    posts = [p for p in parsed if isinstance(p, dict) and p.get("content")] if isinstance(parsed, list) else []
    if not posts:
        posts = _fallback_posts(business, platforms)
    return [fit_to_platform(p) for p in posts]


def parse_schedule_time(message: str, now: datetime) -> Optional[datetime]:
    """`tomorrow` or a weekday name (never today), at an optional h[:mm] [am|pm]; 10:00 by default."""
    lower = (message or "").lower()
    target: Optional[datetime] = None
    if "tomorrow" in lower:
        target = now + timedelta(days=1)
    else:
        for idx, day in enumerate(WEEKDAYS):
            if day in lower:
                days_until = (idx - now.weekday()) % 7 or 7
                target = now + timedelta(days=days_until)
                break
    if target is None:
        return None
    hour, minute = 10, 0
    m = _TIME_RE.search(lower)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2) or 0)
        period = (m.group(3) or "").lower()
        if period == "pm" and hour < 12:
            hour += 12
        if period == "am" and hour == 12:
            hour = 0
        if hour > 23 or minute > 59:
            hour, minute = 10, 0
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _first_media(media_urls: Sequence[str], platform: str) -> Optional[str]:
    if not media_urls:
        return None
    if platform == "instagram":
        images = [u for u in media_urls if not has_video([u])]
        return images[0] if images else None
    return media_urls[0]


def schedule_posts(
    db: Session,
    business: dbm.Business,
    posts: Sequence[Dict[str, Any]],
    when: datetime,
    media_urls: Sequence[str],
    draft_id: Optional[int] = None,
) -> Dict[str, Any]:
    rows = []
    for post in posts:
        row = dbm.ScheduledPost(
            business_id=business.id,
            draft_id=draft_id,
            platform=post["platform"],
            content=post["content"],
            hashtags_json=json.dumps(post.get("hashtags") or []),
            media_url=_first_media(media_urls, post["platform"]),
            scheduled_for=int(when.timestamp()),
            status="scheduled",
        )
        db.add(row)
        rows.append(row)
    db.commit()
    emit_event("PostsScheduled", {"business_id": business.id, "count": len(rows), "scheduled_for": int(when.timestamp())})
    platforms = ", ".join(p["platform"] for p in posts)
    return _reply(
        f"Scheduled! Your posts will go live {fmt_day(when)}, {fmt_time(when)} on {platforms}. ✅",
        "social_schedule",
        [{"type": "posts_scheduled", "post_ids": [r.id for r in rows]}],
    )


def _caption(post: dbm.ScheduledPost) -> str:
    try:
        tags = json.loads(post.hashtags_json or "[]")
    except ValueError:
        tags = []
    return f"{post.content}\n\n{' '.join(tags)}".strip() if tags else post.content


def publish_post(db: Session, business: dbm.Business, post: dbm.ScheduledPost) -> str:
    """Publish one post now; returns its new status (posted, failed or skipped)."""
    token = decrypt_text(business.meta_page_token_enc)
    if post.platform == "instagram" and token and business.meta_ig_user_id and post.media_url and not has_video([post.media_url]):
        ok, payload = publish_instagram_photo(business.meta_ig_user_id, token, post.media_url, _caption(post))
    elif post.platform == "facebook" and token and business.meta_page_id:
        ok, payload = publish_facebook_post(business.meta_page_id, token, _caption(post), post.media_url)
    else:
        post.status = "skipped"
        post.error = "not_connected" if post.platform in ("instagram", "facebook") else "unsupported_platform"
        db.commit()
        return post.status
    if not ok:
        post.status = "failed"
        post.error = str(payload.get("detail") or payload)[:500]
        db.commit()
        logger.warning("social_publish_failed", extra={"business_id": business.id, "platform": post.platform})
        return post.status
    now = int(time.time())
    post.status = "posted"
    post.external_id = str(payload.get("id") or payload.get("post_id") or "")
    post.posted_at = now
    post.error = None
    db.add(
        dbm.PostEngagement(
            business_id=business.id,
            platform=post.platform,
            external_id=post.external_id,
            content_preview=post.content[:100],
            status="tracking",
            posted_at=now,
        )
    )
    db.commit()
    bump_daily_stat(db, business.id, "posts_published")
    if post.media_url:
        mark_urls_used(db, business.id, [post.media_url])
    emit_event("PostPublished", {"business_id": business.id, "platform": post.platform, "external_id": post.external_id})
    return post.status


async def handle_social_post(
    db: Session,
    business: dbm.Business,
    message: str,
    media_urls: Optional[Sequence[str]],
    intent: str,
    conversation: Optional[dbm.Conversation] = None,
    now: Optional[datetime] = None,
    ai: Optional[AIClient] = None,
) -> Dict[str, Any]:
    media_urls = list(media_urls or [])
    lower = (message or "").lower()
    if not media_urls and "post" not in lower:
        return _reply("Send me a photo or video and I'll create posts for your social media!", intent)
    now = now or datetime.now(business_tz(business.timezone))
    video = has_video(media_urls)
    platforms = detect_target_platforms(message, video)
    if intent == "social_schedule" or "schedule" in lower:
        when = parse_schedule_time(message, now)
        if when is None:
            return _reply(WHEN_PROMPT, "social_schedule")
        posts = await generate_posts(business, message, media_urls, platforms, video, ai)
        return schedule_posts(db, business, posts, when, media_urls)
    posts = await generate_posts(business, message, media_urls, platforms, video, ai)
    draft = dbm.SocialDraft(
        business_id=business.id,
        posts_json=json.dumps(posts),
        media_urls_json=json.dumps(media_urls),
        status="pending_approval",
    )
    db.add(draft)
    db.commit()
    set_context(db, conversation, {"awaiting": "social_approval", "draft_id": draft.id})
    previews = "\n\n".join(f'📱 {p["platform"].upper()}:\n"{p["content"][:100]}..."' for p in posts)
    return _reply(
        f"Got it! Here's what I'd post:\n\n{previews}\n\n"
        "Reply:\n"
        '• "post now" to publish immediately\n'
        '• "schedule tomorrow 10am" to schedule\n'
        '• "cancel" to discard',
        intent,
        [{"type": "social_draft_created", "draft_id": draft.id}],
    )


def _publish_draft(db: Session, business: dbm.Business, draft: dbm.SocialDraft) -> Dict[str, Any]:
    posts = json.loads(draft.posts_json or "[]")
    media_urls = json.loads(draft.media_urls_json or "[]")
    now = int(time.time())
    outcome: Dict[str, List[str]] = defaultdict(list)
    for post in posts:
        row = dbm.ScheduledPost(
            business_id=business.id,
            draft_id=draft.id,
            platform=post["platform"],
            content=post["content"],
            hashtags_json=json.dumps(post.get("hashtags") or []),
            media_url=_first_media(media_urls, post["platform"]),
            scheduled_for=now,
            status="scheduled",
        )
        db.add(row)
        db.commit()
        outcome[publish_post(db, business, row)].append(post["platform"])
    draft.status = "published"
    db.commit()
    lines = []
    if outcome["posted"]:
        lines.append(f"Posted to {', '.join(outcome['posted'])}! ✅")
    if outcome["failed"]:
        lines.append(f"Couldn't post to {', '.join(outcome['failed'])}. I'll keep a copy in your dashboard.")
    if outcome["skipped"]:
        lines.append(f"Skipped {', '.join(outcome['skipped'])} (account not connected).")
    return _reply("\n".join(lines) or "Nothing to post.", "social_post")


def handle_draft_reply(
    db: Session,
    business: dbm.Business,
    conversation: dbm.Conversation,
    message: str,
    context: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """Resolve a pending draft from the owner's reply; None when the reply is about something else."""
    lower = (message or "").strip().lower()
    draft = db.get(dbm.SocialDraft, int(context.get("draft_id") or 0))
    if draft is None or draft.business_id != business.id or draft.status != "pending_approval":
        return None
    if lower.startswith("post now"):
        set_context(db, conversation, None)
        return _publish_draft(db, business, draft)
    if lower.startswith("schedule"):
        when = parse_schedule_time(message, now or datetime.now(business_tz(business.timezone)))
        if when is None:
            return _reply(WHEN_PROMPT, "social_schedule")
        set_context(db, conversation, None)
        draft.status = "scheduled"
        db.commit()
        return schedule_posts(
            db, business, json.loads(draft.posts_json or "[]"), when, json.loads(draft.media_urls_json or "[]"), draft.id
        )
    if lower in ("cancel", "discard", "no"):
        set_context(db, conversation, None)
        draft.status = "discarded"
        db.commit()
        return _reply("Okay, I tossed that draft. 🗑️", "social_post")
    return None


def engagement_rate(likes: int, comments: int, shares: int, reach: int) -> float:
    if not reach:
        return 0.0
    return (likes + comments + shares) / reach * 100


def best_posting_time(db: Session, business_id: int, platform: str, tz_name: Optional[str] = None) -> Dict[str, Any]:
    rows = (
        db.query(dbm.PostEngagement)
        .filter(dbm.PostEngagement.business_id == business_id, dbm.PostEngagement.platform == platform)
        .order_by(dbm.PostEngagement.engagement_rate.desc())
        .limit(20)
        .all()
    )
    if not rows:
        return dict(DEFAULT_BEST_TIMES.get(platform, FALLBACK_BEST_TIME))
    tz = business_tz(tz_name) if tz_name else timezone.utc
    by_hour: Dict[int, float] = defaultdict(float)
    by_day: Dict[str, float] = defaultdict(float)
    for r in rows:
        posted = datetime.fromtimestamp(int(r.posted_at), tz)
        by_hour[posted.hour] += float(r.engagement_rate or 0)
        by_day[WEEKDAYS[posted.weekday()]] += float(r.engagement_rate or 0)
    return {
        "day": max(by_day.items(), key=lambda kv: kv[1])[0],
        "hour": max(by_hour.items(), key=lambda kv: kv[1])[0],
    }
