"""Webhook dispatcher: route each event to its sync service, dead-letter failures."""

from __future__ import annotations

from typing import Any, assert_never

import structlog
from sqlalchemy.exc import SQLAlchemyError

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import SyncError, SyncSkipped
from xero_sync.models.enums import SyncStatus
from xero_sync.modules.failed_syncs.service import FailedSyncsService
from xero_sync.modules.invoice_sync.invoices_service import SyncedInvoicesService
from xero_sync.modules.invoice_sync.payments_service import SyncedPaymentsService
from xero_sync.modules.items_sync.service import SyncedItemsService
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.events import (
    InvoiceCreatedWebhook,
    InvoiceDeletedWebhook,
    InvoicePaidWebhook,
    InvoiceVoidedWebhook,
    PaymentSucceededWebhook,
    PriceCreatedWebhook,
    ProductUpdatedWebhook,
    WebhookEvent,
)

logger = structlog.get_logger()


class WebhookService:
    def __init__(
        self,
        invoices: SyncedInvoicesService | None = None,
        items: SyncedItemsService | None = None,
        payments: SyncedPaymentsService | None = None,
    ):
        self.payments = payments or SyncedPaymentsService()
        self.items = items or SyncedItemsService()
        self.invoices = invoices or SyncedInvoicesService(items=self.items, payments=self.payments)

    async def handle_event(self, ctx: SyncContext, event: WebhookEvent) -> Any:
        """Run the event's handler.

        Benign skips resolve to ``None``. Any other failure is audited (when
        the error carries a log payload), dead-lettered under the event's
        resource id and committed, then re-raised.
        """
        logger.info(
            "webhook_event_handling",
            portal_id=ctx.portal_id,
            event_type=event.event_type,
            resource_id=event.resource_id,
        )
        try:
            return await self._dispatch(ctx, event)
        except SyncSkipped as exc:
            logger.info(
                "webhook_event_skipped",
                portal_id=ctx.portal_id,
                event_type=event.event_type,
                resource_id=event.resource_id,
                reason=exc.message,
            )
            return None
        except Exception as exc:
            await self._record_failure(ctx, event, exc)
            raise

    async def _dispatch(self, ctx: SyncContext, event: WebhookEvent) -> Any:
        match event:
            case InvoiceCreatedWebhook(data=data):
                if data.status == "draft":
                    raise SyncSkipped(f"Ignoring draft invoice {data.id}")
                if data.collection_method == "chargeAutomatically":
                    logger.info(
                        "charge_automatically_invoice_ignored",
                        portal_id=ctx.portal_id,
                        copilot_invoice_id=data.id,
                    )
                    return None
                return await self.invoices.sync_invoice_to_xero(ctx, data)

            case InvoicePaidWebhook(data=data):
                return await self.invoices.sync_paid_invoice_to_xero(ctx, data.id)

            case InvoiceVoidedWebhook(data=data):
                return await self.invoices.void_invoice(ctx, data.id)

            case InvoiceDeletedWebhook(data=data):
                return await self.invoices.delete_invoice(ctx, data.id)

            case ProductUpdatedWebhook(data=data):
                self._require_product_sync(ctx)
                return {"items": await self.items.update_synced_items_for_product(ctx, data)}

            case PriceCreatedWebhook(data=data):
                self._require_product_sync(ctx)
                created = await self.items.create_synced_items_for_prices(ctx, [data])
                return created[0] if created else None

            case PaymentSucceededWebhook(data=data):
                if not ctx.workspace_settings.add_absorbed_fees:
                    raise SyncSkipped("Absorbed fees are disabled, skipping expense sync")
                if not data.fee_amount.paid_by_platform:
                    raise SyncSkipped(f"Payment {data.id} has no platform-absorbed fee")
                _, invoice = await self.invoices.get_validated_invoice_record(ctx, data.invoice_id)
                return await self.payments.create_platform_expense_payment(ctx, data, invoice)

            case _:
                assert_never(event)

    @staticmethod
    def _require_product_sync(ctx: SyncContext) -> None:
        if not ctx.workspace_settings.sync_products_automatically:
            raise SyncSkipped("Sync Products Automatically is disabled")

    async def _record_failure(self, ctx: SyncContext, event: WebhookEvent, exc: Exception) -> None:
        logger.warning(
            "webhook_event_failed",
            portal_id=ctx.portal_id,
            event_type=event.event_type,
            resource_id=event.resource_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        if isinstance(exc, SQLAlchemyError):
            await ctx.session.rollback()

        # The audit row goes first so the failure is visible even if dead-lettering breaks
        failed_log = exc.failed_sync_log if isinstance(exc, SyncError) else None
        if failed_log is not None:
            await SyncLogsService(ctx.session).create_sync_log(
                ctx.portal_id,
                ctx.tenant_id,
                failed_log,
                SyncStatus.FAILED,
                error_message=str(exc),
            )
            await ctx.session.commit()

        try:
            await FailedSyncsService(ctx.session).add_failed_sync_record(
                ctx.portal_id,
                ctx.tenant_id,
                ctx.token,
                event.kind,
                event.resource_id,
                event.data.model_dump(mode="json", by_alias=True),
            )
            await ctx.session.commit()
        except SQLAlchemyError:
            logger.exception(
                "failed_sync_record_failed",
                portal_id=ctx.portal_id,
                resource_id=event.resource_id,
            )
            await ctx.session.rollback()
