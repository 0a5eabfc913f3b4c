from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models as dbm


def find_by_name(db: Session, business_id: int, name: Optional[str]) -> Optional[dbm.Contact]:
    if not name or not name.strip():
        return None
    return (
        db.query(dbm.Contact)
        .filter(dbm.Contact.business_id == business_id, func.lower(dbm.Contact.name) == name.strip().lower())
        .order_by(dbm.Contact.id.desc())
        .first()
    )


def find_by_phone(db: Session, business_id: int, phone: str) -> Optional[dbm.Contact]:
    return (
        db.query(dbm.Contact)
        .filter(dbm.Contact.business_id == business_id, dbm.Contact.phone == phone)
        .first()
    )


def upsert_contact(
    db: Session,
    business_id: int,
    phone: Optional[str] = None,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> dbm.Contact:
    """Match on phone first, then name; fill in whatever is missing."""
    contact = find_by_phone(db, business_id, phone) if phone else None
    if contact is None:
        contact = find_by_name(db, business_id, name)
    if contact is None:
        contact = dbm.Contact(business_id=business_id, phone=phone, name=name, email=email)
        db.add(contact)
    else:
        if phone and not contact.phone:
            contact.phone = phone
        if name and not contact.name:
            contact.name = name
        if email:
            contact.email = email
    db.commit()
    return contact


def set_opt_out(db: Session, business_id: int, phone: str, opted_out: bool) -> dbm.Contact:
    contact = find_by_phone(db, business_id, phone)
    if contact is None:
        contact = dbm.Contact(business_id=business_id, phone=phone)
        db.add(contact)
    contact.opted_out = opted_out
    db.commit()
    return contact
