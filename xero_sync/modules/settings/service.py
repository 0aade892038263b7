"""Workspace settings: lazily created, one row per (portal, tenant)."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.models.connections import WorkspaceSettings
from xero_sync.modules.settings.schemas import UpdateSettingsRequest

logger = structlog.get_logger()


class SettingsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, portal_id: str, tenant_id: str) -> WorkspaceSettings | None:
        stmt = select(WorkspaceSettings).where(
            WorkspaceSettings.portal_id == portal_id,
            WorkspaceSettings.tenant_id == tenant_id,
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get_or_create_settings(self, portal_id: str, tenant_id: str) -> WorkspaceSettings:
        existing = await self._get(portal_id, tenant_id)
        if existing is not None:
            return existing

        row = WorkspaceSettings(portal_id=portal_id, tenant_id=tenant_id)
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            # Concurrent first read created it
            existing = await self._get(portal_id, tenant_id)
            if existing is None:
                raise
            return existing
        logger.info("settings_created", portal_id=portal_id, tenant_id=tenant_id)
        return row

    async def update_settings(
        self, portal_id: str, tenant_id: str, body: UpdateSettingsRequest
    ) -> WorkspaceSettings:
        row = await self.get_or_create_settings(portal_id, tenant_id)
        changes = body.model_dump(exclude_none=True)
        for field, value in changes.items():
            setattr(row, field, value)
        await self.db.flush()
        logger.info("settings_updated", portal_id=portal_id, tenant_id=tenant_id, fields=sorted(changes))
        return row
