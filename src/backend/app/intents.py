import re
import logging
from typing import Any, List, Optional, Sequence, Tuple

from .ai import AIClient

logger = logging.getLogger(__name__)

# What the LLM classifier may answer with
CLASSIFIABLE = (
    "calendar_query",
    "calendar_add",
    "email_query",
    "email_send",
    "invoice_create",
    "invoice_query",
    "social_post",
    "social_schedule",
    "stats_query",
    "review_request",
    "help",
    "general_chat",
)

CUSTOMER_INTENTS = ("help", "general_chat")

_RULES: Tuple[Tuple[str, Tuple[re.Pattern, ...]], ...] = (
    ("calendar_query", (re.compile(r"^(what('?s| is) my day|schedule|calendar|appointments?)"),)),
    ("calendar_add", (re.compile(r"^(add|schedule|book|create).*(appointment|meeting|event|calendar)"),)),
    ("invoice_create", (re.compile(r"^(invoice|bill|charge|send.*\$)"), re.compile(r"\$\d+"))),
    ("invoice_query", (re.compile(r"^(unpaid|overdue|invoices?|payments?|outstanding)"),)),
    ("email_query", (re.compile(r"^(email|mail|sent me|inbox)"), re.compile(r"what did.*email"))),
    ("email_send", (re.compile(r"^(email|tell|send|reply|respond).*(@|to )"),)),
    ("social_post", (re.compile(r"^(post|instagram|facebook|social)"),)),
    ("social_schedule", (re.compile(r"^(schedule|tomorrow|post at|post later)"),)),
    ("stats_query", (re.compile(r"^(how much|revenue|earnings|made|stats|numbers)"),)),
    ("status_query", (re.compile(r"^status\W*$"),)),
    ("review_request", (re.compile(r"^(review|feedback|ask.*review)"),)),
    ("help", (re.compile(r"^(help|commands|what can you)"),)),
)

CLASSIFIER_PROMPT = (
    "You are an intent classifier. Classify the user message into ONE of these categories:\n"
    + ", ".join(CLASSIFIABLE)
    + "\n\nRespond with ONLY the category name, nothing else."
)

OWNER_CONTROLS = {"restart": "restart", "pause": "pause", "resume": "resume"}
CUSTOMER_CONTROLS = {
    "stop": "opt_out",
    "unsubscribe": "opt_out",
    "cancel": "opt_out",
    "end": "opt_out",
    "quit": "opt_out",
    "start": "opt_in",
    "unstop": "opt_in",
}


def match_intent(message: str, has_media: bool = False) -> Optional[str]:
    """Regex fast path; rules are tried in order and the first hit wins."""
    lower = (message or "").lower()
    for intent, patterns in _RULES:
        if intent == "social_post" and has_media:
            return intent
        for pattern in patterns:
            if pattern.search(lower):
                return intent
    return None


async def detect_intent(
    message: str,
    media_urls: Optional[Sequence[str]] = None,
    is_owner: bool = True,
    history: Optional[List[Any]] = None,
    ai: Optional[AIClient] = None,
) -> str:
    fast = match_intent(message, has_media=bool(media_urls))
    if fast:
        return fast
    client = ai or AIClient()
    reply = await client.generate(CLASSIFIER_PROMPT, [{"role": "user", "content": message or ""}], max_tokens=50)
    answer = (reply or "").strip().lower()
    if answer in CLASSIFIABLE:
        return answer
    if answer:
        logger.info("intent_unrecognized", extra={"answer": answer[:50]})
    return "general_chat"


def control_command(message: str, is_owner: bool) -> Optional[str]:
    word = (message or "").strip().lower()
    table = OWNER_CONTROLS if is_owner else CUSTOMER_CONTROLS
    return table.get(word)
