"""Catalog item mapping: Copilot product/price pairs <-> Xero items."""

from __future__ import annotations

import asyncio

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import DependencyResolutionError, SyncError
from xero_sync.integrations.copilot.schemas import PriceResponse, ProductResponse
from xero_sync.integrations.xero.schemas import Item
from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus
from xero_sync.models.synced import SyncedItem
from xero_sync.modules.invoice_sync.serializers import cents_to_major
from xero_sync.modules.items_sync.schemas import ItemMapping
from xero_sync.modules.items_sync.serializers import html_to_text, serialize_item
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.events import (
    InvoiceLineItem,
    PriceCreatedEvent,
    ProductUpdatedEvent,
)
from xero_sync.schemas.sync_logs import SyncLogPayload

logger = structlog.get_logger()


class SyncedItemsService:
    # ── Mapping rows ──────────────────────────────────────────────────────────

    async def get_synced_items_map_by_price_ids(
        self, ctx: SyncContext, price_ids: list[str] | None = None
    ) -> dict[str, SyncedItem]:
        """Mappings keyed by price id. ``None`` means every mapping of the tenant."""
        stmt = select(SyncedItem).where(
            SyncedItem.portal_id == ctx.portal_id,
            SyncedItem.tenant_id == ctx.tenant_id,
        )
        if price_ids is not None:
            if not price_ids:
                return {}
            stmt = stmt.where(SyncedItem.price_id.in_(price_ids))
        rows = (await ctx.session.execute(stmt)).scalars().all()
        return {row.price_id: row for row in rows}

    async def _upsert_mapping(
        self, ctx: SyncContext, product_id: str, price_id: str, item_id: str | None
    ) -> SyncedItem:
        stmt = select(SyncedItem).where(
            SyncedItem.portal_id == ctx.portal_id,
            SyncedItem.price_id == price_id,
        )
        row = (await ctx.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            row = SyncedItem(
                portal_id=ctx.portal_id,
                tenant_id=ctx.tenant_id,
                product_id=product_id,
                price_id=price_id,
                item_id=item_id,
            )
            try:
                async with ctx.session.begin_nested():
                    ctx.session.add(row)
                return row
            except IntegrityError:
                # A concurrent delivery mapped the same price first
                row = (await ctx.session.execute(stmt)).scalar_one()
        row.tenant_id = ctx.tenant_id
        row.product_id = product_id
        row.item_id = item_id
        await ctx.session.flush()
        return row

    async def create_items(
        self, ctx: SyncContext, items: list[Item], prices_for_code: dict[str, PriceResponse]
    ) -> list[Item]:
        """Create Xero items, then map each price to the id Xero returned."""
        if not items:
            return []

        created = await ctx.xero.create_items(items)
        for item in created:
            price = prices_for_code.get(item.code)
            if price is None:
                continue
            if not item.item_id:
                raise SyncError(f"Xero returned no ItemID for item {item.code}")
            await self._upsert_mapping(ctx, price.product_id, price.id, item.item_id)
            logger.info(
                "synced_item_mapped",
                portal_id=ctx.portal_id,
                price_id=price.id,
                item_id=item.item_id,
            )
        return created

    # ── Invoice line resolution ───────────────────────────────────────────────

    async def get_price_id_to_xero_item(
        self, ctx: SyncContext, line_items: list[InvoiceLineItem]
    ) -> dict[str, Item]:
        """Resolve each priced line to a live Xero item.

        Stale or missing mappings are recreated when automatic product sync is
        on; otherwise the line is left unmapped and dropped from the invoice.
        Prices explicitly excluded (``item_id`` NULL) are never recreated.
        """
        priced = [line for line in line_items if line.product_id and line.price_id]
        if not priced:
            return {}

        xero_items, synced_items = await asyncio.gather(
            ctx.xero.get_items_map(),
            self.get_synced_items_map_by_price_ids(ctx, [line.price_id for line in priced]),
        )

        price_id_to_item: dict[str, Item] = {}
        missing: dict[str, str] = {}  # price_id -> product_id
        for line in priced:
            mapping = synced_items.get(line.price_id)
            if mapping is not None and mapping.item_id is None:
                continue
            if mapping is not None and mapping.item_id in xero_items:
                price_id_to_item[line.price_id] = xero_items[mapping.item_id]
                continue
            missing[line.price_id] = line.product_id

        if not missing:
            return price_id_to_item
        if not ctx.workspace_settings.sync_products_automatically:
            logger.info(
                "invoice_lines_unmapped",
                portal_id=ctx.portal_id,
                price_ids=sorted(missing),
            )
            return price_id_to_item

        products, prices = await asyncio.gather(
            ctx.copilot.get_products_by_id(sorted(set(missing.values()))),
            ctx.copilot.get_prices_by_id(sorted(missing)),
        )
        to_create: list[Item] = []
        prices_for_code: dict[str, PriceResponse] = {}
        for price_id, product_id in missing.items():
            product, price = products.get(product_id), prices.get(price_id)
            if product is None or price is None:
                logger.warning(
                    "invoice_line_product_missing",
                    portal_id=ctx.portal_id,
                    product_id=product_id,
                    price_id=price_id,
                )
                continue
            item = serialize_item(product, price)
            to_create.append(item)
            prices_for_code[item.code] = price

        for item in await self.create_items(ctx, to_create, prices_for_code):
            price = prices_for_code.get(item.code)
            if price is not None:
                price_id_to_item[price.id] = item
        return price_id_to_item

    # ── Webhook handlers ──────────────────────────────────────────────────────

    async def update_synced_items_for_product(
        self, ctx: SyncContext, data: ProductUpdatedEvent
    ) -> list[Item]:
        """product.updated: rename and re-describe every Xero item mapped to the product."""
        stmt = select(SyncedItem).where(
            SyncedItem.portal_id == ctx.portal_id,
            SyncedItem.tenant_id == ctx.tenant_id,
            SyncedItem.product_id == data.id,
            SyncedItem.item_id.is_not(None),
        )
        mappings = (await ctx.session.execute(stmt)).scalars().all()
        if not mappings:
            logger.info("product_update_ignored", portal_id=ctx.portal_id, product_id=data.id)
            return []

        xero_items = await ctx.xero.get_items_map()
        prices = await ctx.copilot.get_prices_by_id([m.price_id for m in mappings])
        logs = SyncLogsService(ctx.session)
        description = html_to_text(data.description)

        updated: list[Item] = []
        for mapping in mappings:
            existing = xero_items.get(mapping.item_id)
            price = prices.get(mapping.price_id)
            audit = SyncLogPayload(
                entity_type=SyncEntityType.PRODUCT,
                event_type=SyncEventType.UPDATED,
                copilot_id=data.id,
                xero_id=mapping.item_id,
                product_name=data.name,
                product_price=cents_to_major(price.amount) if price else None,
            )
            if existing is None:
                logger.warning(
                    "product_update_item_missing",
                    portal_id=ctx.portal_id,
                    item_id=mapping.item_id,
                )
                continue
            try:
                item = await ctx.xero.update_item(
                    mapping.item_id,
                    Item(code=existing.code, name=data.name, description=description),
                )
            except SyncError as exc:
                raise SyncError(
                    "Failed to update synced item", failed_sync_log=audit, cause=exc
                ) from exc

            audit.xero_item_name = item.name
            await logs.create_sync_log(ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS)
            updated.append(item)
        return updated

    async def create_synced_items_for_prices(
        self, ctx: SyncContext, prices: list[PriceCreatedEvent]
    ) -> list[Item]:
        """price.created: create one Xero item per new price and map it."""
        logs = SyncLogsService(ctx.session)
        created: list[Item] = []
        for event in prices:
            products = await ctx.copilot.get_products_by_id([event.product_id])
            product: ProductResponse | None = products.get(event.product_id)
            if product is None:
                raise DependencyResolutionError(
                    f"Could not find product {event.product_id} for price {event.id}", 400
                )

            price = PriceResponse(id=event.id, product_id=event.product_id, amount=event.amount)
            payload = serialize_item(product, price)
            audit = SyncLogPayload(
                entity_type=SyncEntityType.PRODUCT,
                event_type=SyncEventType.CREATED,
                copilot_id=event.product_id,
                product_name=product.name,
                product_price=cents_to_major(event.amount),
            )
            try:
                items = await self.create_items(ctx, [payload], {payload.code: price})
            except SyncError as exc:
                raise SyncError(
                    "Failed to create synced item for price", failed_sync_log=audit, cause=exc
                ) from exc
            if not items:
                raise SyncError("Xero created no item for price", failed_sync_log=audit)

            audit.xero_id = items[0].item_id
            audit.xero_item_name = items[0].name
            await logs.create_sync_log(ctx.portal_id, ctx.tenant_id, audit, SyncStatus.SUCCESS)
            created.append(items[0])
        return created

    # ── Manual mapping ────────────────────────────────────────────────────────

    async def _describe(
        self, ctx: SyncContext, mapping: ItemMapping
    ) -> tuple[ProductResponse | None, PriceResponse | None, Item | None]:
        try:
            products, prices, items = await asyncio.gather(
                ctx.copilot.get_products_by_id([mapping.product_id]),
                ctx.copilot.get_prices_by_id([mapping.price_id]),
                ctx.xero.get_items_map(),
            )
        except SyncError as exc:
            # Display fields only, the mapping itself is already stored
            logger.warning("item_mapping_describe_failed", error=str(exc))
            return None, None, None
        return (
            products.get(mapping.product_id),
            prices.get(mapping.price_id),
            items.get(mapping.item_id) if mapping.item_id else None,
        )

    async def _log_mapping(
        self,
        ctx: SyncContext,
        mapping: ItemMapping,
        event_type: SyncEventType,
        status: SyncStatus,
    ) -> None:
        product, price, item = await self._describe(ctx, mapping)
        await SyncLogsService(ctx.session).create_sync_log(
            ctx.portal_id,
            ctx.tenant_id,
            SyncLogPayload(
                entity_type=SyncEntityType.PRODUCT,
                event_type=event_type,
                copilot_id=mapping.product_id,
                xero_id=mapping.item_id,
                product_name=product.name if product else None,
                product_price=cents_to_major(price.amount) if price else None,
                xero_item_name=item.name if item else None,
            ),
            status,
        )

    async def add_synced_items(self, ctx: SyncContext, mappings: list[ItemMapping]) -> list[SyncedItem]:
        rows: list[SyncedItem] = []
        for mapping in mappings:
            row = await self._upsert_mapping(ctx, mapping.product_id, mapping.price_id, mapping.item_id)
            rows.append(row)
            if mapping.item_id is None:
                logger.info("price_excluded_from_mapping", portal_id=ctx.portal_id, price_id=mapping.price_id)
                continue
            await self._log_mapping(ctx, mapping, SyncEventType.MAPPED, SyncStatus.SUCCESS)
        return rows

    async def delete_synced_items(self, ctx: SyncContext, mappings: list[ItemMapping]) -> int:
        removed = 0
        for mapping in mappings:
            result = await ctx.session.execute(
                delete(SyncedItem).where(
                    SyncedItem.portal_id == ctx.portal_id,
                    SyncedItem.tenant_id == ctx.tenant_id,
                    SyncedItem.product_id == mapping.product_id,
                    SyncedItem.price_id == mapping.price_id,
                )
            )
            if not result.rowcount:
                continue
            removed += result.rowcount
            await self._log_mapping(ctx, mapping, SyncEventType.UNMAPPED, SyncStatus.INFO)
        return removed
