"""Dead-letter rows: one per failing Copilot resource."""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.core.config import settings
from xero_sync.models.enums import WebhookEventType
from xero_sync.models.failed_syncs import FailedSync

logger = structlog.get_logger()


class FailedSyncsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_failed_sync_record(
        self,
        portal_id: str,
        tenant_id: str,
        token: str,
        event_type: WebhookEventType,
        resource_id: str,
        payload: dict[str, Any],
    ) -> FailedSync:
        """Insert the dead letter, or bump ``attempts`` if the resource already failed."""
        stmt = select(FailedSync).where(FailedSync.resource_id == resource_id)
        record = (await self.db.execute(stmt)).scalar_one_or_none()
        if record is not None:
            record.attempts = record.attempts + 1
            await self.db.flush()
            logger.info(
                "failed_sync_incremented",
                portal_id=portal_id,
                resource_id=resource_id,
                attempts=record.attempts,
            )
            return record

        record = FailedSync(
            portal_id=portal_id,
            tenant_id=tenant_id,
            token=token,
            type=event_type,
            resource_id=resource_id,
            attempts=1,
            payload=payload,
        )
        self.db.add(record)
        await self.db.flush()
        logger.info(
            "failed_sync_recorded",
            portal_id=portal_id,
            resource_id=resource_id,
            event_type=event_type.value,
        )
        return record

    async def list_retry_candidates(self) -> list[FailedSync]:
        """Dead letters still below the retry ceiling, oldest first."""
        stmt = (
            select(FailedSync)
            .where(FailedSync.attempts < settings.MAX_RETRY_ATTEMPTS)
            .order_by(FailedSync.created_at.asc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def delete_failed_sync(self, failed_sync_id: uuid.UUID) -> None:
        await self.db.execute(delete(FailedSync).where(FailedSync.id == failed_sync_id))
