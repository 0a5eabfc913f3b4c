from typing import Dict, Any, Optional
import json
import logging
from sqlalchemy.orm import Session
from .events import emit_event
from .analytics import ph_capture
from .metrics_counters import SMS_SENT
from . import models as dbm
from .integrations.sms_twilio import twilio_send_sms

logger = logging.getLogger(__name__)


def _is_suppressed(db: Session, business_id: int, phone: str) -> bool:
    contact = (
        db.query(dbm.Contact)
        .filter(dbm.Contact.business_id == business_id, dbm.Contact.phone == phone, dbm.Contact.opted_out.is_(True))
        .first()
    )
    return contact is not None


def send_sms(
    db: Session,
    business: dbm.Business,
    to: str,
    body: str,
    from_number: Optional[str] = None,
) -> Dict[str, Any]:
    """Send one SMS on behalf of a business.

    Opted-out recipients are suppressed. Provider failures are recorded as a
    dead letter and reported in the result rather than raised.
    """
    if to != business.owner_phone and _is_suppressed(db, business.id, to):
        emit_event("MessageFailed", {"business_id": business.id, "to": to, "failure_code": "suppressed"})
        SMS_SENT.labels(status="suppressed").inc()
        return {"status": "suppressed"}
    try:
        result = twilio_send_sms(to, body, from_number=from_number or business.twilio_number)
    except Exception as e:
        logger.exception("sms_send_failed", extra={"business_id": business.id}, exc_info=e)
        db.add(
            dbm.DeadLetter(
                business_id=business.id,
                provider="twilio",
                reason=str(e)[:500],
                attempts=1,
                payload=json.dumps({"to": to, "body": body[:320]}),
            )
        )
        db.commit()
        emit_event("MessageFailed", {"business_id": business.id, "to": to, "failure_code": "provider_error"})
        SMS_SENT.labels(status="failed").inc()
        return {"status": "failed", "error": str(e)[:200]}
    emit_event("MessageSent", {"business_id": business.id, "to": to, "provider_id": result.get("provider_id")})
    ph_capture("sms.sent", distinct_id=str(business.id), properties={"provider_id": result.get("provider_id", "")})
    SMS_SENT.labels(status="sent").inc()
    return {**result, "provider_status": result.get("status"), "status": "sent"}
