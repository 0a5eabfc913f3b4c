import os
from typing import Any, Dict, Optional

from posthog import Posthog

_ph = None


def _get_posthog():
    """Lazy PostHog client; None when POSTHOG_API_KEY is unset."""
    global _ph
    if _ph is not None:
        return _ph or None
    api_key = os.getenv("POSTHOG_API_KEY", "").strip()
    if not api_key:
        _ph = False
        return None
    host = os.getenv("POSTHOG_HOST", "https://us.i.posthog.com").strip()
    _ph = Posthog(api_key, host=host, timeout=3)
    return _ph


def ph_capture(event: str, distinct_id: str, properties: Optional[Dict[str, Any]] = None) -> None:
    """Best-effort capture; never raises."""
    try:
        client = _get_posthog()
        if not client:
            return
        client.capture(event=event, distinct_id=distinct_id or "anonymous", properties=properties or {})
    except Exception:
        return
