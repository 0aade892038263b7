"""Invoice mapping response schemas."""

from pydantic import BaseModel, ConfigDict

from xero_sync.models.enums import SyncedInvoiceStatus


class SyncedInvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    copilot_invoice_id: str
    xero_invoice_id: str | None = None
    status: SyncedInvoiceStatus
