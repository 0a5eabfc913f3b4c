from typing import Optional
from sqlalchemy import String, Boolean, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base
import time


def _now() -> int:
    return int(time.time())


class Business(Base):
    __tablename__ = "businesses"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    brand_voice: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), default="America/New_York")
    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    owner_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    twilio_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True, index=True)
    api_key: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True, index=True)
    # Billing
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    subscription_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    subscription_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    subscription_plan: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    subscription_current_period_end: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    subscription_canceled_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Onboarding + behaviour
    onboarding_step: Mapped[str] = mapped_column(String(32), default="welcome")
    onboarding_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    onboarded_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    missed_call_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    speed_to_lead_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    morning_briefing_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)
    google_review_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    # Google (tokens encrypted at rest)
    google_connected: Mapped[bool] = mapped_column(Boolean, default=False)
    google_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    google_access_token_enc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    google_refresh_token_enc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    google_token_expires_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    google_scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    google_connected_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Meta (Facebook page + linked Instagram business account)
    meta_page_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    meta_ig_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    meta_page_token_enc: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now)


class Contact(Base):
    __tablename__ = "contacts"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    opted_out: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[int] = mapped_column(Integer, default=_now)


class Conversation(Base):
    __tablename__ = "conversations"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    phone: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(16), default="active")
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    source: Mapped[str] = mapped_column(String(32), default="sms")
    context_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now)


class Message(Base):
    __tablename__ = "messages"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(ForeignKey("conversations.id"), index=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    direction: Mapped[str] = mapped_column(String(16))  # inbound | outbound
    content: Mapped[str] = mapped_column(Text, default="")
    media_urls_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    intent: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    twilio_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)


class MissedCall(Base):
    __tablename__ = "missed_calls"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    phone: Mapped[str] = mapped_column(String(32))
    call_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending | texted | disabled | failed
    conversation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    texted_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now)


INVOICE_UNPAID_STATUSES = ("sent", "viewed", "overdue")


class Invoice(Base):
    __tablename__ = "invoices"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str] = mapped_column(String(32))
    amount_cents: Mapped[int] = mapped_column(Integer)
    description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="sent", index=True)  # sent | viewed | overdue | paid
    stripe_payment_link: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    stripe_payment_link_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    sent_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    paid_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_reminder_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_reminder_attempt_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reminder_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)


class DailyStat(Base):
    __tablename__ = "daily_stats"
    __table_args__ = (UniqueConstraint("business_id", "date", name="uq_daily_stats_business_date"),)
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    date: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD (UTC)
    customer_messages: Mapped[int] = mapped_column(Integer, default=0)
    owner_messages: Mapped[int] = mapped_column(Integer, default=0)
    missed_calls: Mapped[int] = mapped_column(Integer, default=0)
    new_leads: Mapped[int] = mapped_column(Integer, default=0)
    invoices_sent: Mapped[int] = mapped_column(Integer, default=0)
    invoices_amount_sent: Mapped[int] = mapped_column(Integer, default=0)
    invoices_paid: Mapped[int] = mapped_column(Integer, default=0)
    revenue_cents: Mapped[int] = mapped_column(Integer, default=0)
    review_requests: Mapped[int] = mapped_column(Integer, default=0)
    posts_published: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[int] = mapped_column(Integer, default=_now)


class MediaAsset(Base):
    __tablename__ = "media"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    message_sid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    storage_path: Mapped[str] = mapped_column(String(512))
    public_url: Mapped[str] = mapped_column(String(1024), index=True)
    original_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    content_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_video: Mapped[bool] = mapped_column(Boolean, default=False)
    is_image: Mapped[bool] = mapped_column(Boolean, default=False)
    used_in_post: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)


class SocialDraft(Base):
    __tablename__ = "social_drafts"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    posts_json: Mapped[str] = mapped_column(Text)
    media_urls_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="pending_approval")  # pending_approval | published | scheduled | discarded
    created_at: Mapped[int] = mapped_column(Integer, default=_now)


class ScheduledPost(Base):
    __tablename__ = "scheduled_posts"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    draft_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    platform: Mapped[str] = mapped_column(String(32))
    content: Mapped[str] = mapped_column(Text)
    hashtags_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    scheduled_for: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[str] = mapped_column(String(16), default="scheduled", index=True)  # scheduled | posted | failed | skipped
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    posted_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)


class PostEngagement(Base):
    __tablename__ = "post_engagement"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    platform: Mapped[str] = mapped_column(String(32), index=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    content_preview: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="tracking")
    likes: Mapped[int] = mapped_column(Integer, default=0)
    comments: Mapped[int] = mapped_column(Integer, default=0)
    shares: Mapped[int] = mapped_column(Integer, default=0)
    reach: Mapped[int] = mapped_column(Integer, default=0)
    engagement_rate: Mapped[float] = mapped_column(default=0.0)
    posted_at: Mapped[int] = mapped_column(Integer, default=_now)
    last_checked: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Lead(Base):
    __tablename__ = "leads"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), index=True)
    phone: Mapped[str] = mapped_column(String(32), index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(32), default="web_form")
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_details_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="new")  # new | responded | failed | suppressed
    conversation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    responded_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now, index=True)


class EventLedger(Base):
    __tablename__ = "events_ledger"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ts: Mapped[int] = mapped_column(Integer, default=_now)
    business_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(64))
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class DeadLetter(Base):
    __tablename__ = "dead_letters"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    business_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    provider: Mapped[str] = mapped_column(String(32))
    reason: Mapped[str] = mapped_column(Text)
    attempts: Mapped[int] = mapped_column(Integer, default=1)
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, default=_now)
