"""Webhook endpoint response envelope."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from xero_sync.models.synced import SyncedInvoice
from xero_sync.modules.invoice_sync.schemas import SyncedInvoiceResponse

WEBHOOK_RECEIVED = "Webhook received"
WEBHOOK_IGNORED = "Ignored webhook call for event"
SYNC_DISABLED = "Sync is disabled for this workspace"


class WebhookResponse(BaseModel):
    message: str
    data: Any = None


def serialize_result(result: Any) -> Any:
    """JSON-ready rendering of whatever a sync handler returned."""
    if isinstance(result, SyncedInvoice):
        return SyncedInvoiceResponse.model_validate(result).model_dump(mode="json")
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(result, dict):
        return {key: serialize_result(value) for key, value in result.items()}
    if isinstance(result, list):
        return [serialize_result(value) for value in result]
    return result
