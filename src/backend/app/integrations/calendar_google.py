from typing import Dict, List, Optional
import datetime as _dt
import httpx

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


def _rfc3339(when: _dt.datetime) -> str:
    if when.tzinfo is None:
        when = when.replace(tzinfo=_dt.timezone.utc)
    return when.replace(microsecond=0).isoformat()


def _parse(v: Dict[str, str], tz: _dt.tzinfo) -> Optional[_dt.datetime]:
    if v.get("dateTime"):
        return _dt.datetime.fromisoformat(v["dateTime"].replace("Z", "+00:00")).astimezone(tz)
    if v.get("date"):
        return _dt.datetime.fromisoformat(v["date"]).replace(tzinfo=tz)
    return None


def fetch_events(access_token: str, time_min: _dt.datetime, time_max: _dt.datetime) -> List[Dict[str, object]]:
    """Primary-calendar events in [time_min, time_max), expanded and ordered by start.

    Returned times are in time_min's timezone; all-day events carry `all_day=True`.
    """
    tz = time_min.tzinfo or _dt.timezone.utc
    params = {
        "singleEvents": "true",
        "orderBy": "startTime",
        "timeMin": _rfc3339(time_min),
        "timeMax": _rfc3339(time_max),
        "maxResults": "50",
    }
    r = httpx.get(EVENTS_URL, headers={"Authorization": f"Bearer {access_token}"}, params=params, timeout=20)
    r.raise_for_status()
    out: List[Dict[str, object]] = []
    for it in r.json().get("items", []):
        start = it.get("start") or {}
        st = _parse(start, tz)
        if st is None:
            continue
        out.append({
            "id": str(it.get("id") or ""),
            "title": str(it.get("summary") or "(no title)"),
            "start": st,
            "end": _parse(it.get("end") or {}, tz),
            "all_day": "dateTime" not in start,
            "status": str(it.get("status") or ""),
        })
    return out


def create_event(access_token: str, summary: str, start: _dt.datetime, end: _dt.datetime, timezone: str) -> Dict[str, object]:
    body = {
        "summary": summary,
        "start": {"dateTime": start.replace(microsecond=0).isoformat(), "timeZone": timezone},
        "end": {"dateTime": end.replace(microsecond=0).isoformat(), "timeZone": timezone},
    }
    r = httpx.post(EVENTS_URL, headers={"Authorization": f"Bearer {access_token}"}, json=body, timeout=20)
    r.raise_for_status()
    j = r.json()
    return {"id": str(j.get("id") or ""), "link": str(j.get("htmlLink") or "")}
