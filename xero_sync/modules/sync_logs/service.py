"""Sync audit log: append-only writes, listing and CSV export."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus
from xero_sync.models.sync_logs import SyncLog
from xero_sync.schemas.sync_logs import SyncLogPayload

logger = structlog.get_logger()

# Column order is consumed by downstream spreadsheets, do not reorder
CSV_COLUMNS = (
    "sync_date",
    "sync_time",
    "event_type",
    "status",
    "entity_type",
    "assembly_id",
    "xero_id",
    "invoice_number",
    "customer_name",
    "customer_email",
    "amount",
    "tax_amount",
    "fee_amount",
    "product_name",
    "product_price",
    "xero_item_name",
    "error_message",
)


class SyncLogsService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create_sync_log(
        self,
        portal_id: str,
        tenant_id: str,
        payload: SyncLogPayload,
        status: SyncStatus,
        *,
        error_message: str | None = None,
        sync_date: datetime | None = None,
    ) -> SyncLog:
        log = SyncLog(
            portal_id=portal_id,
            tenant_id=tenant_id,
            sync_date=sync_date or datetime.now(timezone.utc),
            status=status,
            error_message=error_message,
            **payload.model_dump(),
        )
        self.db.add(log)
        await self.db.flush()
        return log

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_invoice_created_sync_log(
        self, portal_id: str, tenant_id: str, copilot_invoice_id: str
    ) -> SyncLogPayload | None:
        """Display fields of the invoice's creation, reused by later invoice logs."""
        stmt = (
            select(SyncLog)
            .where(
                SyncLog.portal_id == portal_id,
                SyncLog.tenant_id == tenant_id,
                SyncLog.copilot_id == copilot_invoice_id,
                SyncLog.entity_type == SyncEntityType.INVOICE,
                SyncLog.event_type == SyncEventType.CREATED,
            )
            .order_by(SyncLog.created_at.desc())
            .limit(1)
        )
        log = (await self.db.execute(stmt)).scalar_one_or_none()
        if log is None:
            return None
        return SyncLogPayload.model_validate(
            {field: getattr(log, field) for field in SyncLogPayload.model_fields}
        )

    async def list_sync_logs(
        self, portal_id: str, tenant_id: str, limit: int = 50, offset: int = 0
    ) -> tuple[list[SyncLog], int]:
        base = select(SyncLog).where(
            SyncLog.portal_id == portal_id,
            SyncLog.tenant_id == tenant_id,
        )
        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()
        stmt = base.order_by(SyncLog.created_at.desc(), SyncLog.sync_date.desc()).limit(limit).offset(offset)
        items = list((await self.db.execute(stmt)).scalars().all())
        return items, total

    async def get_sync_logs_csv(self, portal_id: str, tenant_id: str) -> str:
        stmt = (
            select(SyncLog)
            .where(SyncLog.portal_id == portal_id, SyncLog.tenant_id == tenant_id)
            .order_by(SyncLog.created_at.desc(), SyncLog.sync_date.desc())
        )
        logs = (await self.db.execute(stmt)).scalars().all()

        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, lineterminator="\n")
        writer.writeheader()
        for log in logs:
            writer.writerow(_csv_row(log))

        logger.info("sync_logs_exported", portal_id=portal_id, tenant_id=tenant_id, rows=len(logs))
        return buf.getvalue()


def _csv_row(log: SyncLog) -> dict[str, str]:
    synced_at = log.sync_date
    if synced_at.tzinfo is not None:
        synced_at = synced_at.astimezone(timezone.utc)
    row = {
        "sync_date": synced_at.strftime("%Y-%m-%d"),
        "sync_time": synced_at.strftime("%H:%M:%S"),
        "event_type": log.event_type.value,
        "status": log.status.value,
        "entity_type": log.entity_type.value,
        "assembly_id": log.copilot_id,
        "xero_id": log.xero_id,
        "invoice_number": log.invoice_number,
        "customer_name": log.customer_name,
        "customer_email": log.customer_email,
        "amount": log.amount,
        "tax_amount": log.tax_amount,
        "fee_amount": log.fee_amount,
        "product_name": log.product_name,
        "product_price": log.product_price,
        "xero_item_name": log.xero_item_name,
        "error_message": log.error_message,
    }
    return {key: "" if value is None else str(value) for key, value in row.items()}
