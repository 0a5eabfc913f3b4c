import time
import logging
from typing import Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from . import models as dbm
from .crypto import decrypt_text
from .events import emit_event
from .integrations.social_meta import fetch_instagram_insights
from .messaging import send_sms
from .metrics_counters import SCHED_TICKS
from .social import engagement_rate, publish_post

logger = logging.getLogger(__name__)

DAY = 86400
REMINDER_INTERVAL_DAYS = 3
# Wait between attempts when a reminder could not be delivered
REMINDER_RETRY_SECONDS = DAY
OVERDUE_AFTER_DAYS = 7
POST_WINDOW_SECONDS = 15 * 60
ENGAGEMENT_TRACK_DAYS = 7


def _reminder_text(inv: dbm.Invoice, business: dbm.Business, days_since_sent: int) -> str:
    amount = f"${inv.amount_cents / 100:.2f}"
    name = inv.contact_name or "there"
    if days_since_sent > OVERDUE_AFTER_DAYS:
        return (
            f"Hi {name}, this is a friendly reminder about your invoice "
            f"for {amount} from {business.name or 'us'}.\n\n"
            f"It's now {days_since_sent} days overdue. Please pay at your earliest convenience:\n"
            f"{inv.stripe_payment_link}\n\n"
            "Questions? Just reply to this text."
        )
    return (
        f"Hi {name}! Quick reminder about your invoice "
        f"for {amount} from {business.name or 'us'}.\n\n"
        f"Pay here: {inv.stripe_payment_link}\n\n"
        "Thanks! 🙏"
    )


def run_invoice_reminders(db: Session, now: Optional[int] = None) -> int:
    """Text customers whose invoice has gone 3+ days without payment or a reminder."""
    now = int(now or time.time())
    cutoff = now - REMINDER_INTERVAL_DAYS * DAY
    last_touch = func.coalesce(dbm.Invoice.last_reminder_at, dbm.Invoice.sent_at, dbm.Invoice.created_at)
    rows = (
        db.query(dbm.Invoice)
        .filter(
            dbm.Invoice.status.in_(("sent", "viewed")),
            last_touch <= cutoff,
            or_(
                dbm.Invoice.last_reminder_attempt_at.is_(None),
                dbm.Invoice.last_reminder_attempt_at <= now - REMINDER_RETRY_SECONDS,
            ),
        )
        .order_by(dbm.Invoice.id.asc())
        .all()
    )
    sent = 0
    for inv in rows:
        business = db.get(dbm.Business, inv.business_id)
        if business is None:
            continue
        days_since_sent = (now - int(inv.sent_at or inv.created_at)) // DAY
        result = send_sms(db, business, inv.contact_phone, _reminder_text(inv, business, days_since_sent))
        inv.last_reminder_attempt_at = now
        if days_since_sent > OVERDUE_AFTER_DAYS:
            inv.status = "overdue"
        if result.get("status") == "sent":
            inv.last_reminder_at = now
            inv.reminder_count = int(inv.reminder_count or 0) + 1
            sent += 1
        else:
            logger.warning("invoice_reminder_failed", extra={"invoice_id": inv.id, "status": result.get("status")})
        db.commit()
    SCHED_TICKS.labels(job="invoice_reminders").inc()
    return sent


def run_scheduled_posts(db: Session, now: Optional[int] = None) -> Dict[str, int]:
    now = int(now or time.time())
    rows = (
        db.query(dbm.ScheduledPost)
        .filter(dbm.ScheduledPost.status == "scheduled", dbm.ScheduledPost.scheduled_for <= now + POST_WINDOW_SECONDS)
        .order_by(dbm.ScheduledPost.scheduled_for.asc())
        .all()
    )
    counts = {"posted": 0, "failed": 0, "skipped": 0}
    for post in rows:
        business = db.get(dbm.Business, post.business_id)
        if business is None:
            continue
        try:
            status = publish_post(db, business, post)
        except Exception as e:
            logger.exception("scheduled_post_error", extra={"post_id": post.id}, exc_info=e)
            post.status = "failed"
            post.error = str(e)[:500]
            db.commit()
            status = "failed"
        counts[status] = counts.get(status, 0) + 1
        if status == "posted" and business.owner_phone:
            send_sms(db, business, business.owner_phone, f"📱 Your {post.platform} post just went live! ✅")
    SCHED_TICKS.labels(job="scheduled_posts").inc()
    return counts


def poll_engagement(db: Session, now: Optional[int] = None) -> int:
    now = int(now or time.time())
    rows = (
        db.query(dbm.PostEngagement)
        .filter(
            dbm.PostEngagement.status == "tracking",
            dbm.PostEngagement.platform == "instagram",
            dbm.PostEngagement.posted_at >= now - ENGAGEMENT_TRACK_DAYS * DAY,
        )
        .all()
    )
    updated = 0
    for row in rows:
        business = db.get(dbm.Business, row.business_id)
        token = decrypt_text(business.meta_page_token_enc) if business is not None else None
        if not token or not row.external_id:
            continue
        ok, metrics = fetch_instagram_insights(row.external_id, token)
        if not ok:
            continue
        row.likes = metrics.get("likes", 0)
        row.comments = metrics.get("comments", 0)
        row.shares = metrics.get("shares", 0)
        row.reach = metrics.get("reach", 0)
        row.engagement_rate = engagement_rate(row.likes, row.comments, row.shares, row.reach)
        row.last_checked = now
        updated += 1
    db.commit()
    SCHED_TICKS.labels(job="engagement").inc()
    return updated


def run_tick(db: Session, now: Optional[int] = None) -> Dict[str, object]:
    now = int(now or time.time())
    out = {
        "reminders_sent": run_invoice_reminders(db, now),
        "posts": run_scheduled_posts(db, now),
        "engagement_updated": poll_engagement(db, now),
    }
    emit_event("SchedulerTick", {"ts": now, "reminders_sent": out["reminders_sent"]})
    return out
