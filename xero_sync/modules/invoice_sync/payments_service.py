"""Invoice settlements and absorbed-fee expense transactions."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import select

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import SyncError
from xero_sync.integrations.xero.constants import ABSORBED_FEES_DESCRIPTION, EXPENSE_ACCOUNT_NAME
from xero_sync.integrations.xero.schemas import (
    Account,
    BankTransaction,
    Contact,
    Invoice,
    LineItem,
)
from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus, SyncedPaymentType
from xero_sync.models.synced import SyncedPayment
from xero_sync.modules.invoice_sync.accounts_service import SyncedAccountsService
from xero_sync.modules.invoice_sync.serializers import cents_to_major
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.events import PaymentSucceededEvent
from xero_sync.schemas.sync_logs import SyncLogPayload

logger = structlog.get_logger()


class SyncedPaymentsService:
    def __init__(self, accounts: SyncedAccountsService | None = None):
        self.accounts = accounts or SyncedAccountsService()

    async def get_payment_for_invoice_id(
        self, ctx: SyncContext, copilot_invoice_id: str
    ) -> SyncedPayment | None:
        """The invoice's settlement row, if it was already paid in Xero."""
        stmt = select(SyncedPayment).where(
            SyncedPayment.portal_id == ctx.portal_id,
            SyncedPayment.tenant_id == ctx.tenant_id,
            SyncedPayment.copilot_invoice_id == copilot_invoice_id,
            SyncedPayment.type == SyncedPaymentType.PAYMENT,
        )
        return (await ctx.session.execute(stmt)).scalars().first()

    async def get_expense_for_payment_id(
        self, ctx: SyncContext, copilot_payment_id: str
    ) -> SyncedPayment | None:
        stmt = select(SyncedPayment).where(
            SyncedPayment.portal_id == ctx.portal_id,
            SyncedPayment.tenant_id == ctx.tenant_id,
            SyncedPayment.copilot_payment_id == copilot_payment_id,
            SyncedPayment.type == SyncedPaymentType.EXPENSE,
        )
        return (await ctx.session.execute(stmt)).scalars().first()

    async def create_payment_record(
        self,
        ctx: SyncContext,
        *,
        copilot_invoice_id: str,
        xero_payment_id: str,
        xero_invoice_id: str | None = None,
        copilot_payment_id: str | None = None,
        payment_type: SyncedPaymentType = SyncedPaymentType.PAYMENT,
    ) -> SyncedPayment:
        record = SyncedPayment(
            portal_id=ctx.portal_id,
            tenant_id=ctx.tenant_id,
            copilot_invoice_id=copilot_invoice_id,
            copilot_payment_id=copilot_payment_id,
            xero_invoice_id=xero_invoice_id,
            xero_payment_id=xero_payment_id,
            type=payment_type,
        )
        ctx.session.add(record)
        await ctx.session.flush()
        logger.info(
            "synced_payment_recorded",
            portal_id=ctx.portal_id,
            copilot_invoice_id=copilot_invoice_id,
            xero_payment_id=xero_payment_id,
            type=payment_type.value,
        )
        return record

    async def create_platform_expense_payment(
        self, ctx: SyncContext, data: PaymentSucceededEvent, invoice: Invoice
    ) -> BankTransaction | None:
        """Book the fee the platform absorbed as a SPEND transaction against 6041.

        ``invoice`` is the Xero invoice the Copilot payment settled.
        """
        existing = await self.get_expense_for_payment_id(ctx, data.id)
        if existing is not None:
            logger.info(
                "platform_expense_already_synced",
                portal_id=ctx.portal_id,
                copilot_payment_id=data.id,
                xero_payment_id=existing.xero_payment_id,
            )
            return None

        fee = cents_to_major(data.fee_amount.paid_by_platform)
        audit = SyncLogPayload(
            entity_type=SyncEntityType.EXPENSE,
            event_type=SyncEventType.CREATED,
            copilot_id=data.invoice_id,
            amount=fee,
            fee_amount=fee,
        )
        try:
            asset_account, expense_account = await asyncio.gather(
                self.accounts.get_or_create_asset_account(ctx),
                self.accounts.get_or_create_expense_account(ctx),
            )
            transaction = await ctx.xero.create_bank_transaction(
                BankTransaction(
                    type="SPEND",
                    contact=Contact(name=EXPENSE_ACCOUNT_NAME),
                    bank_account=Account(code=asset_account.code),
                    line_items=[
                        LineItem(
                            account_code=expense_account.code,
                            description=ABSORBED_FEES_DESCRIPTION,
                            quantity=1,
                            unit_amount=float(fee),
                        )
                    ],
                    reference=invoice.invoice_id,
                    date=datetime.now(timezone.utc).date().isoformat(),
                )
            )
            if transaction is None or not transaction.bank_transaction_id:
                raise SyncError("Xero returned no bank transaction for the expense")
        except SyncError as exc:
            raise SyncError(
                "Failed to create platform expense payment", failed_sync_log=audit, cause=exc
            ) from exc

        await self.create_payment_record(
            ctx,
            copilot_invoice_id=data.invoice_id,
            copilot_payment_id=data.id,
            xero_invoice_id=invoice.invoice_id,
            xero_payment_id=transaction.bank_transaction_id,
            payment_type=SyncedPaymentType.EXPENSE,
        )
        audit.xero_id = transaction.bank_transaction_id
        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS
        )
        logger.info(
            "platform_expense_synced",
            portal_id=ctx.portal_id,
            copilot_payment_id=data.id,
            bank_transaction_id=transaction.bank_transaction_id,
        )
        return transaction
