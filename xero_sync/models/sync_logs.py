"""Append-only audit log of every attempted sync mutation."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from xero_sync.models.base import WorkspaceScopedModel
from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus


class SyncLog(WorkspaceScopedModel):
    """Never updated or deleted. Display fields are denormalised for export."""

    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("ix_sync_logs_portal_tenant_created", "portal_id", "tenant_id", "created_at"),
    )

    sync_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_type: Mapped[SyncEventType] = mapped_column(
        Enum(SyncEventType, name="sync_logs_event_type"), nullable=False
    )
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, name="sync_logs_status"), nullable=False
    )
    entity_type: Mapped[SyncEntityType] = mapped_column(
        Enum(SyncEntityType, name="sync_logs_entity_type"), nullable=False
    )
    copilot_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    xero_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    fee_amount: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    product_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    product_price: Mapped[Decimal | None] = mapped_column(Numeric(19, 2), nullable=True)
    xero_item_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
