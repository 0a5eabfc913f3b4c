from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import time
from sqlalchemy import func, update
from sqlalchemy import text as _sql_text
from sqlalchemy.orm import Session
from . import models as dbm
from .utils import format_dollars

STAT_FIELDS = (
    "customer_messages",
    "owner_messages",
    "missed_calls",
    "new_leads",
    "invoices_sent",
    "invoices_amount_sent",
    "invoices_paid",
    "revenue_cents",
    "review_requests",
    "posts_published",
)


# Creates the day's row if missing; a concurrent first bump for the same day is a no-op
_ENSURE_ROW_SQL = (
    "INSERT INTO daily_stats (business_id, date, "
    + ", ".join(STAT_FIELDS)
    + ", updated_at) VALUES (:b, :d, "
    + ", ".join("0" for _ in STAT_FIELDS)
    + ", :ts) ON CONFLICT (business_id, date) DO NOTHING"
)


def today_utc(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).date().isoformat()


def bump_daily_stat(db: Session, business_id: int, field: str, by: int = 1, now: Optional[datetime] = None) -> None:
    """Atomically add `by` to one counter of today's row (UTC)."""
    if field not in STAT_FIELDS:
        raise ValueError(f"unknown daily stat: {field}")
    day = today_utc(now)
    ts = int(time.time())
    db.execute(_sql_text(_ENSURE_ROW_SQL), {"b": business_id, "d": day, "ts": ts})
    column = getattr(dbm.DailyStat, field)
    db.execute(
        update(dbm.DailyStat)
        .where(dbm.DailyStat.business_id == business_id, dbm.DailyStat.date == day)
        .values({field: func.coalesce(column, 0) + int(by), "updated_at": ts}),
        execution_options={"synchronize_session": False},
    )
    db.commit()


def monthly_summary(db: Session, business_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    invoices = (
        db.query(dbm.Invoice)
        .filter(dbm.Invoice.business_id == business_id, dbm.Invoice.created_at >= int(month_start.timestamp()))
        .all()
    )
    paid = [i for i in invoices if i.status == "paid"]
    unpaid = [i for i in invoices if i.status != "paid"]
    rows = (
        db.query(dbm.DailyStat)
        .filter(dbm.DailyStat.business_id == business_id, dbm.DailyStat.date >= month_start.date().isoformat())
        .all()
    )
    return {
        "month": now.strftime("%B"),
        "revenue_cents": sum(i.amount_cents for i in paid),
        "unpaid_count": len(unpaid),
        "unpaid_cents": sum(i.amount_cents for i in unpaid),
        "messages": sum((r.customer_messages or 0) + (r.owner_messages or 0) for r in rows),
        "missed_calls": sum(r.missed_calls or 0 for r in rows),
        "new_leads": sum(r.new_leads or 0 for r in rows),
    }


def format_monthly_stats(summary: Dict[str, Any]) -> str:
    return (
        f"{summary['month']} stats:\n"
        f"💰 Revenue: {format_dollars(summary['revenue_cents'])}\n"
        f"📋 Unpaid: {summary['unpaid_count']} invoices ({format_dollars(summary['unpaid_cents'])})\n"
        f"💬 Messages: {summary['messages']}\n"
        f"📞 Missed calls recovered: {summary['missed_calls']}\n"
        f"🎯 New leads: {summary['new_leads']}"
    )


def handle_stats_query(db: Session, business: dbm.Business) -> Dict[str, Any]:
    return {"reply": format_monthly_stats(monthly_summary(db, business.id)), "intent": "stats_query", "actions": []}


def handle_status_query(db: Session, business: dbm.Business, now: Optional[datetime] = None) -> Dict[str, Any]:
    """One-screen snapshot for the owner's `status` command."""
    day = today_utc(now)
    row = (
        db.query(dbm.DailyStat)
        .filter(dbm.DailyStat.business_id == business.id, dbm.DailyStat.date == day)
        .first()
    )
    unpaid_count, unpaid_cents = (
        db.query(func.count(dbm.Invoice.id), func.coalesce(func.sum(dbm.Invoice.amount_cents), 0))
        .filter(dbm.Invoice.business_id == business.id, dbm.Invoice.status.in_(dbm.INVOICE_UNPAID_STATUSES))
        .one()
    )
    scheduled = (
        db.query(func.count(dbm.ScheduledPost.id))
        .filter(dbm.ScheduledPost.business_id == business.id, dbm.ScheduledPost.status == "scheduled")
        .scalar()
    )
    leads = int(row.new_leads or 0) if row is not None else 0
    messages = int((row.customer_messages or 0) + (row.owner_messages or 0)) if row is not None else 0
    state = "PAUSED ⏸️" if business.is_paused else "ACTIVE ✅"
    reply = (
        f"📊 {business.name or 'Your business'}: {state}\n"
        f"📥 {leads} new leads today\n"
        f"💬 {messages} messages today\n"
        f"📅 {scheduled or 0} posts scheduled\n"
        f"📋 {unpaid_count} unpaid invoices ({format_dollars(unpaid_cents)})"
    )
    return {"reply": reply, "intent": "status_query", "actions": []}


def _row_dict(r: dbm.DailyStat) -> Dict[str, Any]:
    out: Dict[str, Any] = {"id": r.id, "business_id": r.business_id, "date": r.date, "updated_at": r.updated_at}
    for f in STAT_FIELDS:
        out[f] = int(getattr(r, f) or 0)
    return out


def stats_window(db: Session, business_id: int, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Daily rows for the last `days` days (newest first) plus dashboard totals."""
    since = ((now or datetime.now(timezone.utc)) - timedelta(days=days)).date().isoformat()
    rows = (
        db.query(dbm.DailyStat)
        .filter(dbm.DailyStat.business_id == business_id, dbm.DailyStat.date >= since)
        .order_by(dbm.DailyStat.date.desc())
        .all()
    )
    daily: List[Dict[str, Any]] = [_row_dict(r) for r in rows]
    totals = {
        "messages": sum(d["customer_messages"] + d["owner_messages"] for d in daily),
        "revenue": sum(d["revenue_cents"] for d in daily),
        "missed_calls": sum(d["missed_calls"] for d in daily),
        "new_leads": sum(d["new_leads"] for d in daily),
        "invoices_sent": sum(d["invoices_sent"] for d in daily),
        "invoices_paid": sum(d["invoices_paid"] for d in daily),
    }
    return {"daily": daily, "totals": totals}
