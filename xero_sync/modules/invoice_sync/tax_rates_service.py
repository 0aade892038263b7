"""Xero tax rates matching Copilot invoice tax percentages."""

from __future__ import annotations

import structlog

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import SyncError
from xero_sync.integrations.xero.constants import REPORT_TAX_TYPE_OUTPUT, TAX_RATE_NAME_PREFIX
from xero_sync.integrations.xero.schemas import TaxComponent, TaxRate

logger = structlog.get_logger()


def tax_rate_name(percentage: float) -> str:
    return f"{TAX_RATE_NAME_PREFIX} - {percentage:g}%"


class SyncedTaxRatesService:
    async def get_tax_rate_for_item(
        self, ctx: SyncContext, percentage: float | None
    ) -> TaxRate | None:
        """Reuse an active Xero rate with the same effective rate, else create one."""
        if not percentage:
            return None

        for rate in await ctx.xero.get_tax_rates():
            if rate.status not in (None, "ACTIVE"):
                continue
            if rate.effective_rate is not None and float(rate.effective_rate) == float(percentage):
                return rate

        name = tax_rate_name(percentage)
        created = await ctx.xero.create_tax_rate(
            TaxRate(
                name=name,
                status="ACTIVE",
                report_tax_type=REPORT_TAX_TYPE_OUTPUT,
                tax_components=[TaxComponent(name=name, rate=percentage)],
            )
        )
        if not created.tax_type:
            raise SyncError(f"Xero returned no TaxType for tax rate {name}")
        logger.info(
            "xero_tax_rate_created",
            portal_id=ctx.portal_id,
            tax_type=created.tax_type,
            percentage=percentage,
        )
        return created
