"""
Celery worker for the Xero sync service.

Start worker:    celery -A xero_sync.worker worker --loglevel=info
Start beat:      celery -A xero_sync.worker beat --loglevel=info
Start both:      celery -A xero_sync.worker worker --beat --loglevel=info
"""
from celery import Celery

from xero_sync.core.celery_config import (
    CELERY_QUEUES,
    CELERY_TASK_ANNOTATIONS,
    CELERY_TASK_ROUTES,
)
from xero_sync.core.config import settings
from xero_sync.core.sentry import init_sentry

celery_app = Celery(
    "xero_sync_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
    include=[
        "xero_sync.modules.failed_syncs.tasks",
    ],
)

init_sentry(settings.SENTRY_DSN, settings.SENTRY_ENVIRONMENT, settings.APP_VERSION)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24h
    task_queues=CELERY_QUEUES,
    task_default_queue="default",
    task_routes=CELERY_TASK_ROUTES,
    task_annotations=CELERY_TASK_ANNOTATIONS,
)

celery_app.conf.beat_schedule = {
    # ── Dead-letter replay ──────────────────────────────────────────────────
    "retry-failed-syncs": {
        "task": "tasks.retry_failed_syncs",
        "schedule": settings.RETRY_FAILED_SYNCS_SCHEDULE_MINUTES * 60.0,
    },
}
