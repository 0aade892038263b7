"""Mapping store: Copilot entity <-> Xero entity correspondences."""

from __future__ import annotations

from sqlalchemy import Enum, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from xero_sync.models.base import WorkspaceScopedModel
from xero_sync.models.enums import ContactUserType, SyncedInvoiceStatus, SyncedPaymentType


class SyncedContact(WorkspaceScopedModel):
    """Copilot client or company mapped to a Xero contact."""

    __tablename__ = "synced_contacts"
    __table_args__ = (
        UniqueConstraint(
            "portal_id", "tenant_id", "client_or_company_id",
            name="uq_synced_contacts_identity",
        ),
    )

    client_or_company_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_type: Mapped[ContactUserType] = mapped_column(
        Enum(ContactUserType, name="contact_user_type"), nullable=False
    )
    contact_id: Mapped[str] = mapped_column(String(64), nullable=False)


class SyncedItem(WorkspaceScopedModel):
    """Copilot product/price pair mapped to a Xero catalog item.

    ``item_id`` is NULL when the price was explicitly excluded from mapping.
    """

    __tablename__ = "synced_items"
    __table_args__ = (
        UniqueConstraint("portal_id", "price_id", name="uq_synced_items_price"),
        Index("ix_synced_items_product", "portal_id", "tenant_id", "product_id"),
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    price_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class SyncedInvoice(WorkspaceScopedModel):
    """Anchor of the invoice state machine: pending -> success | failed."""

    __tablename__ = "synced_invoices"
    __table_args__ = (
        UniqueConstraint(
            "portal_id", "tenant_id", "copilot_invoice_id",
            name="uq_synced_invoices_identity",
        ),
    )

    copilot_invoice_id: Mapped[str] = mapped_column(String(64), nullable=False)
    xero_invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[SyncedInvoiceStatus] = mapped_column(
        Enum(SyncedInvoiceStatus, name="synced_invoice_status"),
        nullable=False,
        default=SyncedInvoiceStatus.PENDING,
        server_default=SyncedInvoiceStatus.PENDING.name,
    )


class SyncedPayment(WorkspaceScopedModel):
    """Xero payment (invoice settlement) or spend transaction (absorbed fees)."""

    __tablename__ = "synced_payments"
    __table_args__ = (
        UniqueConstraint("xero_payment_id", name="uq_synced_payments_xero_payment"),
        # At most one invoice settlement per Copilot invoice
        Index(
            "uq_synced_payments_invoice_payment",
            "portal_id", "tenant_id", "copilot_invoice_id",
            unique=True,
            postgresql_where=text("type = 'PAYMENT'"),
            sqlite_where=text("type = 'PAYMENT'"),
        ),
    )

    copilot_invoice_id: Mapped[str] = mapped_column(String(64), nullable=False)
    copilot_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    xero_invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    xero_payment_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[SyncedPaymentType] = mapped_column(
        Enum(SyncedPaymentType, name="synced_payment_type"), nullable=False
    )
