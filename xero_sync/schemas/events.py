"""Copilot webhook envelopes: a closed union discriminated on ``eventType``."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from xero_sync.models.enums import WebhookEventType


class EventModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ── Event payloads ────────────────────────────────────────────────────────────


class InvoiceLineItem(EventModel):
    amount: int  # minor units (cents)
    description: str = ""
    quantity: float = 1
    price_id: str | None = None
    product_id: str | None = None


class InvoiceCreatedEvent(EventModel):
    id: str
    client_id: str | None = None
    company_id: str
    collection_method: Literal["sendInvoice", "chargeAutomatically"] = "sendInvoice"
    currency: str | None = None
    due_date: datetime | None = None
    file_url: str | None = None
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    memo: str | None = None
    number: str
    sent_date: datetime | None = None
    status: Literal["open", "draft", "paid", "void"]
    tax_amount: int = 0  # minor units
    tax_percentage: float = 0
    total: int  # minor units
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("client_id", mode="before")
    @classmethod
    def _blank_client_is_company_billing(cls, value: str | None) -> str | None:
        return value or None


class InvoiceModifiedEvent(EventModel):
    id: str


class ProductUpdatedEvent(EventModel):
    id: str
    name: str
    description: str = ""


class PriceCreatedEvent(EventModel):
    id: str
    product_id: str
    amount: int  # minor units


class FeeAmount(EventModel):
    paid_by_platform: int = 0
    paid_by_client: int = 0


class PaymentSucceededEvent(EventModel):
    id: str
    invoice_id: str
    status: Literal["pending", "processing", "succeeded", "failed"]
    payment_method: str | None = None
    brand: str | None = None
    fee_amount: FeeAmount = Field(default_factory=FeeAmount)
    created_at: datetime | None = None


# ── Envelopes ─────────────────────────────────────────────────────────────────


class _Envelope(EventModel):
    @property
    def resource_id(self) -> str:
        """Copilot id the dead-letter row is keyed on."""
        return self.data.id  # type: ignore[attr-defined]

    @property
    def kind(self) -> WebhookEventType:
        return WebhookEventType(self.event_type)  # type: ignore[attr-defined]


class InvoiceCreatedWebhook(_Envelope):
    event_type: Literal["invoice.created"]
    data: InvoiceCreatedEvent


class InvoicePaidWebhook(_Envelope):
    event_type: Literal["invoice.paid"]
    data: InvoiceModifiedEvent


class InvoiceVoidedWebhook(_Envelope):
    event_type: Literal["invoice.voided"]
    data: InvoiceModifiedEvent


class InvoiceDeletedWebhook(_Envelope):
    event_type: Literal["invoice.deleted"]
    data: InvoiceModifiedEvent


class ProductUpdatedWebhook(_Envelope):
    event_type: Literal["product.updated"]
    data: ProductUpdatedEvent


class PriceCreatedWebhook(_Envelope):
    event_type: Literal["price.created"]
    data: PriceCreatedEvent


class PaymentSucceededWebhook(_Envelope):
    event_type: Literal["payment.succeeded"]
    data: PaymentSucceededEvent


WebhookEvent = Annotated[
    Union[
        InvoiceCreatedWebhook,
        InvoicePaidWebhook,
        InvoiceVoidedWebhook,
        InvoiceDeletedWebhook,
        ProductUpdatedWebhook,
        PriceCreatedWebhook,
        PaymentSucceededWebhook,
    ],
    Field(discriminator="event_type"),
]

webhook_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


def parse_webhook_event(payload: dict) -> WebhookEvent:
    """Validate a raw ``{eventType, data}`` body. Raises pydantic.ValidationError."""
    return webhook_event_adapter.validate_python(payload)
