"""Celery beat task driving the dead-letter replay loop."""

from __future__ import annotations

import asyncio

import structlog
from celery import shared_task

logger = structlog.get_logger()


@shared_task(name="tasks.retry_failed_syncs")
def retry_failed_syncs() -> dict:
    """Beat task: replay dead letters below the retry ceiling."""

    async def _run() -> dict[str, int]:
        from xero_sync.core.database import task_session_factory
        from xero_sync.modules.failed_syncs.retry_service import RetryFailedSyncsService

        async with task_session_factory() as db:
            return await RetryFailedSyncsService(db).retry_failed_syncs()

    summary = asyncio.run(_run())
    logger.info("retry_failed_syncs_task_done", **summary)
    return summary
