from typing import Any, Dict, List, Optional, Tuple
import json
import time
from sqlalchemy.orm import Session
from . import models as dbm
from .stats import bump_daily_stat


def get_or_create_conversation(
    db: Session,
    business: dbm.Business,
    phone: str,
    is_owner: bool,
    source: str = "sms",
) -> Tuple[dbm.Conversation, bool]:
    """Active conversation for (business, phone); a new customer thread counts as a lead."""
    now = int(time.time())
    conv = (
        db.query(dbm.Conversation)
        .filter(
            dbm.Conversation.business_id == business.id,
            dbm.Conversation.phone == phone,
            dbm.Conversation.status == "active",
        )
        .order_by(dbm.Conversation.id.desc())
        .first()
    )
    if conv is not None:
        conv.last_message_at = now
        db.commit()
        return conv, False
    conv = dbm.Conversation(
        business_id=business.id,
        phone=phone,
        status="active",
        is_owner=is_owner,
        source=source,
        created_at=now,
        last_message_at=now,
    )
    db.add(conv)
    db.commit()
    if not is_owner:
        bump_daily_stat(db, business.id, "new_leads")
    return conv, True


def save_message(
    db: Session,
    conversation: dbm.Conversation,
    direction: str,
    content: str,
    *,
    is_owner: bool = False,
    media_urls: Optional[List[str]] = None,
    ai_generated: bool = False,
    intent: Optional[str] = None,
    twilio_sid: Optional[str] = None,
) -> dbm.Message:
    msg = dbm.Message(
        conversation_id=conversation.id,
        business_id=conversation.business_id,
        direction=direction,
        content=content or "",
        media_urls_json=json.dumps(media_urls) if media_urls else None,
        phone=conversation.phone,
        is_owner=is_owner,
        ai_generated=ai_generated,
        intent=intent,
        twilio_sid=twilio_sid,
    )
    db.add(msg)
    db.commit()
    return msg


def get_history(db: Session, conversation_id: int, limit: int = 20) -> List[dbm.Message]:
    rows = (
        db.query(dbm.Message)
        .filter(dbm.Message.conversation_id == conversation_id)
        .order_by(dbm.Message.created_at.desc(), dbm.Message.id.desc())
        .limit(limit)
        .all()
    )
    return list(reversed(rows))


def get_context(conversation: Optional[dbm.Conversation]) -> Dict[str, Any]:
    if conversation is None or not conversation.context_json:
        return {}
    try:
        data = json.loads(conversation.context_json)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def set_context(db: Session, conversation: Optional[dbm.Conversation], context: Optional[Dict[str, Any]]) -> None:
    if conversation is None:
        return
    conversation.context_json = json.dumps(context) if context else None
    db.commit()
