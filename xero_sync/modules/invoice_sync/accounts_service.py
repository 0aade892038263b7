"""Chart-of-accounts entries the expense flow books against."""

from __future__ import annotations

import structlog

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import DependencyResolutionError
from xero_sync.integrations.xero.constants import ASSET_ACCOUNT_NAME, AccountCode
from xero_sync.integrations.xero.schemas import Account

logger = structlog.get_logger()

ASSET_BANK_ACCOUNT_NUMBER = "000000000"


class SyncedAccountsService:
    async def _find(self, ctx: SyncContext, code: AccountCode) -> Account | None:
        for account in await ctx.xero.get_accounts():
            if account.code == code.value and account.status != "ARCHIVED":
                return account
        return None

    async def get_or_create_expense_account(self, ctx: SyncContext) -> Account:
        account = await self._find(ctx, AccountCode.MERCHANT_FEES)
        if account is not None:
            if not account.enable_payments_to_account and account.account_id:
                await ctx.xero.enable_account_payments(account.account_id)
                account.enable_payments_to_account = True
                logger.info("xero_account_payments_enabled", portal_id=ctx.portal_id, code=account.code)
            return account

        account = await ctx.xero.create_expense_account()
        if account is None:
            raise DependencyResolutionError("Could not create Xero expense account")
        logger.info("xero_account_created", portal_id=ctx.portal_id, code=account.code)
        return account

    async def get_or_create_asset_account(self, ctx: SyncContext) -> Account:
        account = await self._find(ctx, AccountCode.BANK)
        if account is not None:
            return account

        account = await ctx.xero.create_account(
            Account(
                code=AccountCode.BANK.value,
                name=ASSET_ACCOUNT_NAME,
                type="BANK",
                bank_account_number=ASSET_BANK_ACCOUNT_NUMBER,
            )
        )
        if account is None:
            raise DependencyResolutionError("Could not create Xero asset account")
        logger.info("xero_account_created", portal_id=ctx.portal_id, code=account.code)
        return account
