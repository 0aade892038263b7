"""Celery queue topology: exchanges, queues and task routing."""

from kombu import Exchange, Queue  # type: ignore[import-untyped]

# ── Exchanges ─────────────────────────────────────────────────────────────────

default_exchange = Exchange("default", type="direct")

# ── Queues ────────────────────────────────────────────────────────────────────

CELERY_QUEUES = (
    Queue("default", default_exchange, routing_key="default"),
    # Dead-letter replays, isolated so a slow Xero tenant cannot starve other work
    Queue("sync_retries", default_exchange, routing_key="sync_retries"),
)

# ── Task routing ──────────────────────────────────────────────────────────────

CELERY_TASK_ROUTES: dict[str, dict] = {
    "tasks.retry_failed_syncs": {"queue": "sync_retries"},
}

# ── Per-task limits ───────────────────────────────────────────────────────────

CELERY_TASK_ANNOTATIONS: dict[str, dict] = {
    # One replay pass at a time per worker; each pass walks the whole queue
    "tasks.retry_failed_syncs": {"rate_limit": "4/m", "time_limit": 900, "soft_time_limit": 840},
}
