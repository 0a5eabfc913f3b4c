from datetime import datetime, timezone
from typing import Dict, Any
import json
import logging
import os
import time

import redis
from sqlalchemy import text as _sa_text

logger = logging.getLogger(__name__)

_redis_client = None


def _get_redis():
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    url = os.getenv("REDIS_URL")
    if not url:
        return None
    try:
        _redis_client = redis.Redis.from_url(url, decode_responses=True)
        _redis_client.ping()
    except Exception:
        _redis_client = None
    return _redis_client


def emit_event(name: str, payload: Dict[str, Any]) -> None:
    """Log a domain event, fan it out on Redis and append it to events_ledger.

    Delivery is best-effort: a Redis or ledger failure never reaches the caller.
    """
    event = {
        "name": name,
        "ts": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info("event %s", name, extra={"event_name": name, "event_payload": payload})
    client = _get_redis()
    if client is not None:
        try:
            client.publish("ghostops.events", json.dumps(event, default=str))
        except Exception:
            logger.warning("event_publish_failed", extra={"event_name": name})
    try:
        from .db import engine  # local import to avoid circulars at startup

        with engine.begin() as conn:
            conn.execute(
                _sa_text("INSERT INTO events_ledger (ts, business_id, name, payload) VALUES (:ts, :business_id, :name, :payload)"),
                {
                    "ts": int(time.time()),
                    "business_id": str(payload.get("business_id", "")),
                    "name": name,
                    "payload": json.dumps(payload, default=str),
                },
            )
    except Exception:
        logger.warning("event_ledger_write_failed", extra={"event_name": name})
