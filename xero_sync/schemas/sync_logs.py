"""Audit log payloads shared by the sync services and the dispatcher."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus


class SyncLogPayload(BaseModel):
    """Denormalised display fields of one sync attempt, minus its outcome.

    Services pre-build one of these before calling Xero so that a failure can
    still be audited with the context that was available at the time.
    """

    entity_type: SyncEntityType
    event_type: SyncEventType
    copilot_id: str | None = None
    xero_id: str | None = None
    invoice_number: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    amount: Decimal | None = None
    tax_amount: Decimal | None = None
    fee_amount: Decimal | None = None
    product_name: str | None = None
    product_price: Decimal | None = None
    xero_item_name: str | None = None


class SyncLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    sync_date: datetime
    event_type: SyncEventType
    status: SyncStatus
    entity_type: SyncEntityType
    copilot_id: str | None = None
    xero_id: str | None = None
    invoice_number: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    amount: Decimal | None = None
    tax_amount: Decimal | None = None
    fee_amount: Decimal | None = None
    product_name: str | None = None
    product_price: Decimal | None = None
    xero_item_name: str | None = None
    error_message: str | None = None


class SyncLogListResponse(BaseModel):
    items: list[SyncLogResponse]
    total: int
    last_synced_at: datetime | None = None
