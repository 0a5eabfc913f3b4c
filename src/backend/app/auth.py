from dataclasses import dataclass
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import os
import logging
import jwt

from .db import get_db
from . import models as dbm

logger = logging.getLogger(__name__)


@dataclass
class BusinessContext:
    business_id: int
    auth: str  # jwt | api_key
    subject: Optional[str] = None


def _decode_bearer(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        os.getenv("JWT_SECRET", "dev_secret"),
        algorithms=["HS256"],
        audience=os.getenv("JWT_AUDIENCE", "authenticated"),
    )


def _business_from_claims(db: Session, payload: Dict[str, Any]) -> Optional[dbm.Business]:
    # Resolve business: explicit claim, then app_metadata.business_id, then owner email
    raw_id = payload.get("business_id") or (payload.get("app_metadata") or {}).get("business_id")
    if raw_id is not None:
        try:
            return db.get(dbm.Business, int(raw_id))
        except (TypeError, ValueError):
            return None
    email = str(payload.get("email") or "").strip().lower()
    if email:
        return db.query(dbm.Business).filter(dbm.Business.owner_email == email).first()
    return None


async def get_business_context(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> BusinessContext:
    if not authorization:
        raise HTTPException(status_code=401, detail="unauthorized")
    scheme, _, credential = authorization.partition(" ")
    credential = credential.strip()
    if scheme.lower() == "bearer" and credential:
        try:
            payload = _decode_bearer(credential)
        except jwt.PyJWTError as e:
            logger.info("jwt_rejected", extra={"error": str(e)[:120]})
            raise HTTPException(status_code=401, detail="unauthorized")
        business = _business_from_claims(db, payload)
        if business is None:
            raise HTTPException(status_code=401, detail="unauthorized")
        return BusinessContext(business_id=business.id, auth="jwt", subject=str(payload.get("sub") or ""))
    if scheme.lower() == "apikey" and credential:
        business = db.query(dbm.Business).filter(dbm.Business.api_key == credential).first()
        if business is None:
            raise HTTPException(status_code=401, detail="unauthorized")
        return BusinessContext(business_id=business.id, auth="api_key")
    raise HTTPException(status_code=401, detail="unauthorized")


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    secret = os.getenv("CRON_SECRET", "")
    if not secret or authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="unauthorized")
