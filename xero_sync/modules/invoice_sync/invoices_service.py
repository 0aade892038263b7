"""Invoice sync state machine: create, pay, void and delete in Xero.

A ``SyncedInvoice`` row anchors every Copilot invoice:

* ``pending`` with no Xero id: nothing synced yet (or no billable lines).
* ``success``: the Xero invoice exists; terminal for creation.
* ``failed``: the last create attempt raised and the event was dead-lettered.

Pay, void and delete lazily backfill the Xero invoice when ``invoice.created``
was never processed, so events may arrive in any order.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from xero_sync.core.config import settings
from xero_sync.core.context import SyncContext
from xero_sync.core.errors import SyncError
from xero_sync.integrations.xero.schemas import Contact, Invoice, Item, Payment, TaxRate
from xero_sync.models.enums import (
    SyncedInvoiceStatus,
    SyncEntityType,
    SyncEventType,
    SyncStatus,
)
from xero_sync.models.synced import SyncedInvoice
from xero_sync.modules.invoice_sync.contacts_service import SyncedContactsService
from xero_sync.modules.invoice_sync.payments_service import SyncedPaymentsService
from xero_sync.modules.invoice_sync.serializers import (
    cents_to_major,
    serialize_invoice,
    serialize_line_items,
)
from xero_sync.modules.invoice_sync.tax_rates_service import SyncedTaxRatesService
from xero_sync.modules.items_sync.service import SyncedItemsService
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.events import InvoiceCreatedEvent
from xero_sync.schemas.sync_logs import SyncLogPayload

logger = structlog.get_logger()

XERO_STATUS_VOIDED = "VOIDED"


class SyncedInvoicesService:
    def __init__(
        self,
        contacts: SyncedContactsService | None = None,
        tax_rates: SyncedTaxRatesService | None = None,
        items: SyncedItemsService | None = None,
        payments: SyncedPaymentsService | None = None,
    ):
        self.contacts = contacts or SyncedContactsService()
        self.tax_rates = tax_rates or SyncedTaxRatesService()
        self.items = items or SyncedItemsService()
        self.payments = payments or SyncedPaymentsService()

    # ── Records ───────────────────────────────────────────────────────────────

    async def get_invoice_record(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> SyncedInvoice | None:
        stmt = select(SyncedInvoice).where(
            SyncedInvoice.portal_id == ctx.portal_id,
            SyncedInvoice.tenant_id == ctx.tenant_id,
            SyncedInvoice.copilot_invoice_id == copilot_invoice_id,
        )
        return (await ctx.session.execute(stmt)).scalar_one_or_none()

    async def get_or_create_invoice_record(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> SyncedInvoice:
        record = await self.get_invoice_record(ctx, copilot_invoice_id)
        if record is not None:
            return record

        record = SyncedInvoice(
            portal_id=ctx.portal_id,
            tenant_id=ctx.tenant_id,
            copilot_invoice_id=copilot_invoice_id,
            status=SyncedInvoiceStatus.PENDING,
        )
        try:
            async with ctx.session.begin_nested():
                ctx.session.add(record)
        except IntegrityError:
            # Concurrent delivery inserted it first
            record = await self.get_invoice_record(ctx, copilot_invoice_id)
            if record is None:
                raise
        return record

    async def get_last_synced_at(self, ctx: SyncContext) -> datetime | None:
        stmt = (
            select(SyncedInvoice.created_at)
            .where(
                SyncedInvoice.portal_id == ctx.portal_id,
                SyncedInvoice.tenant_id == ctx.tenant_id,
                SyncedInvoice.status == SyncedInvoiceStatus.SUCCESS,
            )
            .order_by(SyncedInvoice.created_at.desc())
            .limit(1)
        )
        return (await ctx.session.execute(stmt)).scalar_one_or_none()

    # ── invoice.created ───────────────────────────────────────────────────────

    async def _get_tax_rate(self, ctx: SyncContext, data: InvoiceCreatedEvent) -> TaxRate | None:
        if not data.tax_amount:
            return None
        return await self.tax_rates.get_tax_rate_for_item(ctx, data.tax_percentage)

    async def _get_contact_and_items(
        self, ctx: SyncContext, data: InvoiceCreatedEvent
    ) -> tuple[Contact, dict[str, Item]]:
        contact = await self.contacts.get_synced_contact(ctx, data.client_id, data.company_id)
        price_id_to_item = await self.items.get_price_id_to_xero_item(ctx, data.line_items)
        return contact, price_id_to_item

    async def sync_invoice_to_xero(
        self, ctx: SyncContext, data: InvoiceCreatedEvent
    ) -> SyncedInvoice:
        existing = await self.get_invoice_record(ctx, data.id)
        if existing is not None and existing.status == SyncedInvoiceStatus.SUCCESS:
            logger.info(
                "invoice_already_synced",
                portal_id=ctx.portal_id,
                copilot_invoice_id=data.id,
                xero_invoice_id=existing.xero_invoice_id,
            )
            return existing

        # AsyncSession allows one operation at a time, so only the Xero-only
        # tax lookup runs beside the two resolutions that read and write rows
        tax_rate, (contact, price_id_to_item) = await asyncio.gather(
            self._get_tax_rate(ctx, data),
            self._get_contact_and_items(ctx, data),
        )

        line_items = serialize_line_items(data.line_items, price_id_to_item, tax_rate)
        record = await self.get_or_create_invoice_record(ctx, data.id)
        if not line_items:
            logger.info(
                "invoice_has_no_billable_lines",
                portal_id=ctx.portal_id,
                copilot_invoice_id=data.id,
            )
            return record
        if record.status == SyncedInvoiceStatus.SUCCESS:
            return record

        invoice = serialize_invoice(data, contact.contact_id, line_items)
        audit = SyncLogPayload(
            entity_type=SyncEntityType.INVOICE,
            event_type=SyncEventType.CREATED,
            copilot_id=data.id,
            invoice_number=data.number,
            amount=cents_to_major(data.total),
            # Sum of the lines sent, so the log matches what Xero received
            tax_amount=sum(
                (Decimal(str(line.tax_amount or 0)) for line in line_items), Decimal("0.00")
            ),
            customer_name=contact.name,
            customer_email=contact.email_address,
        )

        try:
            created = await ctx.xero.create_invoice(invoice)
            if created is None or not created.invoice_id:
                raise SyncError(f"Xero returned no invoice for Copilot invoice {data.id}")
        except SyncError as exc:
            record.status = SyncedInvoiceStatus.FAILED
            await ctx.session.flush()
            raise SyncError(
                "Failed to sync invoice to Xero", failed_sync_log=audit, cause=exc
            ) from exc

        record.xero_invoice_id = created.invoice_id
        record.status = SyncedInvoiceStatus.SUCCESS
        await ctx.session.flush()

        audit.xero_id = created.invoice_id
        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        logger.info(
            "invoice_synced",
            portal_id=ctx.portal_id,
            copilot_invoice_id=data.id,
            xero_invoice_id=created.invoice_id,
            invoice_number=data.number,
            lines=len(line_items),
        )
        return record

    async def create_missing_xero_invoice(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> SyncedInvoice:
        """Backfill for events that reference an invoice Xero never received."""
        logger.info(
            "invoice_backfill_started",
            portal_id=ctx.portal_id,
            copilot_invoice_id=copilot_invoice_id,
        )
        data = await ctx.copilot.get_invoice(copilot_invoice_id)
        record = await self.sync_invoice_to_xero(ctx, data)
        if not record.xero_invoice_id:
            raise SyncError(f"Failed to create Xero invoice for Copilot invoice {copilot_invoice_id}")
        return record

    async def get_validated_invoice_record(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> tuple[SyncedInvoice, Invoice]:
        """Mapping row plus the live Xero invoice, backfilling either if missing."""
        record = await self.get_or_create_invoice_record(ctx, copilot_invoice_id)
        if not record.xero_invoice_id:
            record = await self.create_missing_xero_invoice(ctx, copilot_invoice_id)

        invoice = await ctx.xero.get_invoice_by_id(record.xero_invoice_id)
        if invoice is None:
            raise SyncError(
                f"Xero invoice {record.xero_invoice_id} not found for Copilot invoice {copilot_invoice_id}",
                404,
            )
        return record, invoice

    async def _previous_log(
        self, ctx: SyncContext, copilot_invoice_id: str, event_type: SyncEventType
    ) -> SyncLogPayload:
        """The invoice's created-log display fields, re-labelled for a later event."""
        previous = await SyncLogsService(ctx.session).get_invoice_created_sync_log(
            ctx.portal_id, ctx.tenant_id, copilot_invoice_id
        )
        if previous is None:
            return SyncLogPayload(
                entity_type=SyncEntityType.INVOICE,
                event_type=event_type,
                copilot_id=copilot_invoice_id,
            )
        return previous.model_copy(update={"event_type": event_type})

    # ── invoice.paid ──────────────────────────────────────────────────────────

    async def sync_paid_invoice_to_xero(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> Payment | None:
        record = await self.get_invoice_record(ctx, copilot_invoice_id)
        if record is not None and record.status == SyncedInvoiceStatus.SUCCESS:
            past_payment = await self.payments.get_payment_for_invoice_id(ctx, copilot_invoice_id)
            if past_payment is not None:
                logger.info(
                    "invoice_already_paid",
                    portal_id=ctx.portal_id,
                    copilot_invoice_id=copilot_invoice_id,
                    xero_payment_id=past_payment.xero_payment_id,
                )
                return None

        record, invoice = await self.get_validated_invoice_record(ctx, copilot_invoice_id)
        audit = await self._previous_log(ctx, copilot_invoice_id, SyncEventType.PAID)

        try:
            payment = await ctx.xero.mark_invoice_paid(record.xero_invoice_id, float(invoice.total or 0))
            if payment is None or not payment.payment_id:
                raise SyncError("Xero returned no payment for the invoice")
        except SyncError as exc:
            raise SyncError(
                "Failed to sync invoice payment",
                failed_sync_log=audit.model_copy(
                    update={
                        "amount": Decimal(str(invoice.total or 0)),
                        "xero_id": record.xero_invoice_id,
                    }
                ),
                cause=exc,
            ) from exc

        # Status flip, payment row and audit entry commit together or not at all
        async with ctx.session.begin_nested():
            record.status = SyncedInvoiceStatus.SUCCESS
            await self.payments.create_payment_record(
                ctx,
                copilot_invoice_id=copilot_invoice_id,
                xero_invoice_id=record.xero_invoice_id,
                xero_payment_id=payment.payment_id,
            )
            await SyncLogsService(ctx.session).create_sync_log(
                ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
            )

        logger.info(
            "invoice_paid_synced",
            portal_id=ctx.portal_id,
            copilot_invoice_id=copilot_invoice_id,
            xero_payment_id=payment.payment_id,
        )
        return payment

    # ── invoice.voided / invoice.deleted ──────────────────────────────────────

    async def void_invoice(self, ctx: SyncContext, copilot_invoice_id: str) -> Invoice | None:
        record, invoice = await self.get_validated_invoice_record(ctx, copilot_invoice_id)
        if invoice.status == XERO_STATUS_VOIDED:
            logger.info(
                "invoice_already_voided", portal_id=ctx.portal_id, copilot_invoice_id=copilot_invoice_id
            )
            return invoice

        audit = await self._previous_log(ctx, copilot_invoice_id, SyncEventType.VOIDED)

        try:
            voided = await ctx.xero.void_invoice(record.xero_invoice_id)
        except SyncError as exc:
            raise SyncError("Failed to void invoice", failed_sync_log=audit, cause=exc) from exc

        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        logger.info("invoice_voided", portal_id=ctx.portal_id, copilot_invoice_id=copilot_invoice_id)
        return voided

    async def delete_invoice(self, ctx: SyncContext, copilot_invoice_id: str) -> Invoice | None:
        """Xero only deletes voided invoices, so void first when needed."""
        audit = await self._previous_log(ctx, copilot_invoice_id, SyncEventType.DELETED)

        try:
            record, invoice = await self.get_validated_invoice_record(ctx, copilot_invoice_id)
            if invoice.status != XERO_STATUS_VOIDED:
                await self.void_invoice(ctx, copilot_invoice_id)

            if not settings.FLAG_ENABLE_DELETE_SYNC:
                logger.info(
                    "invoice_delete_sync_disabled",
                    portal_id=ctx.portal_id,
                    copilot_invoice_id=copilot_invoice_id,
                )
                return invoice

            deleted = await ctx.xero.delete_invoice(record.xero_invoice_id)
        except SyncError as exc:
            raise SyncError(
                "Failed to sync invoice deletion", failed_sync_log=audit, cause=exc
            ) from exc

        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        logger.info("invoice_deleted", portal_id=ctx.portal_id, copilot_invoice_id=copilot_invoice_id)
        return deleted
