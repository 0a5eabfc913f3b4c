import re
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from typing import Optional

_PHONE_RE = re.compile(r"(\+?\d[\d\s().-]{8,}\d)")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_EMAIL_SEARCH_RE = re.compile(r"[^\s@<>\"']+@[^\s@<>\"']+\.[^\s@<>\"'.,;:!?]+")


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Best-effort E.164; bare 10-digit numbers are assumed to be US."""
    if not raw:
        return None
    digits = re.sub(r"\D", "", str(raw))
    if str(raw).strip().startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def extract_phone(text: str) -> Optional[str]:
    for match in _PHONE_RE.finditer(text or ""):
        phone = normalize_phone(match.group(1))
        if phone:
            return phone
    return None


def extract_email(text: str) -> Optional[str]:
    m = _EMAIL_SEARCH_RE.search(text or "")
    return m.group(0).lower() if m else None


def format_dollars(cents: int) -> str:
    """$500 for whole dollars, $1,250.50 otherwise."""
    cents = int(cents or 0)
    if cents % 100 == 0:
        return f"${cents // 100:,}"
    return f"${cents / 100:,.2f}"


def business_tz(tz_name: Optional[str]) -> tzinfo:
    try:
        return ZoneInfo(tz_name or "America/New_York")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def fmt_time(dt: datetime) -> str:
    """9:05 AM"""
    return dt.strftime("%I:%M %p").lstrip("0")


def fmt_day(dt: datetime, long_weekday: bool = False) -> str:
    """Mon, Jan 6 (or Monday, Jan 6)"""
    weekday = dt.strftime("%A" if long_weekday else "%a")
    return f"{weekday}, {dt.strftime('%b')} {dt.day}"
