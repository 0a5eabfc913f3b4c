import os
import re
import json
import asyncio
import random
import logging
from typing import Any, Dict, List, Optional

import httpx

from .cache import breaker_allow, breaker_on_result
from .metrics_counters import AI_CALLS

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_reply(text: Optional[str]) -> Optional[Any]:
    """Parse a model reply that should be JSON; tolerates ``` fences and leading prose."""
    if not text:
        return None
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except ValueError:
        pass
    # Fall back to the first {...} or [...] block in the reply
    for opener, closer in (("{", "}"), ("[", "]")):
        start = cleaned.find(opener)
        end = cleaned.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(cleaned[start:end + 1])
            except ValueError:
                continue
    return None


class AIClient:
    """Thin Anthropic Messages API client over httpx.

    `generate` returns None when the client is unconfigured, the breaker is
    open, or retries are exhausted; callers supply their own fallback text.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self.base_url = (base_url or os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1")).rstrip("/")
        self.model = model or os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
        self.api_version = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
        self.timeout = float(os.getenv("ANTHROPIC_TIMEOUT_SECONDS", "30"))

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def generate(self, system: str, messages: List[Dict[str, str]], max_tokens: int = 512) -> Optional[str]:
        if not self.configured:
            AI_CALLS.labels(outcome="unconfigured").inc()
            return None
        if not breaker_allow("anthropic"):
            AI_CALLS.labels(outcome="breaker_open").inc()
            return None
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": messages,
        }
        backoff_seconds = 1.0
        for attempt in range(3):
            if attempt:
                await asyncio.sleep(backoff_seconds + random.uniform(0, 0.5))
                backoff_seconds *= 2
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.post(f"{self.base_url}/messages", headers=headers, json=payload)
            except httpx.HTTPError as exc:
                logger.warning("ai_request_failed", extra={"attempt": attempt, "error": str(exc)[:200]})
                continue
            # 529 is Anthropic's "overloaded"
            if r.status_code == 429 or r.status_code >= 500:
                logger.warning("ai_request_retryable", extra={"attempt": attempt, "status": r.status_code})
                continue
            if r.status_code >= 400:
                # Other 4xx are not retried and do not count against the breaker
                logger.warning("ai_request_rejected", extra={"status": r.status_code, "body": r.text[:200]})
                AI_CALLS.labels(outcome="rejected").inc()
                return None
            try:
                data = r.json()
            except ValueError:
                logger.warning("ai_response_not_json", extra={"status": r.status_code})
                break
            content = data.get("content") if isinstance(data, dict) else None
            text = "".join(
                block.get("text", "")
                for block in (content or [])
                if isinstance(block, dict) and block.get("type") == "text"
            ).strip()
            breaker_on_result("anthropic", True)
            AI_CALLS.labels(outcome="ok").inc()
            return text or None
        breaker_on_result("anthropic", False)
        AI_CALLS.labels(outcome="failed").inc()
        return None

    async def extract_json(self, system: str, message: str, max_tokens: int = 200) -> Optional[Any]:
        reply = await self.generate(system, [{"role": "user", "content": message}], max_tokens=max_tokens)
        return parse_json_reply(reply)
