from prometheus_client import Counter


WEBHOOK_EVENTS = Counter("ghostops_webhook_events_total", "Webhook events processed", ["provider", "status"])
INTENTS_ROUTED = Counter("ghostops_intents_routed_total", "Inbound messages routed by intent", ["intent", "sender"])
SCHED_TICKS = Counter("ghostops_scheduler_ticks_total", "Scheduler jobs processed", ["job"])
AI_CALLS = Counter("ghostops_ai_calls_total", "LLM calls by outcome", ["outcome"])
SMS_SENT = Counter("ghostops_sms_sent_total", "Outbound SMS by status", ["status"])
