"""Tests for catalog item mapping: invoice lines, product/price webhooks, manual mapping."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from tests.conftest import (
    MAPPED_ITEM_ID,
    PORTAL_ID,
    PRICE_ID,
    PRODUCT_ID,
    TENANT_ID,
    UNMAPPED_PRICE_ID,
    UNMAPPED_PRODUCT_ID,
)
from xero_sync.core.errors import DependencyResolutionError, SyncError
from xero_sync.integrations.retry import GatewayError
from xero_sync.integrations.xero.schemas import Item
from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus
from xero_sync.models.sync_logs import SyncLog
from xero_sync.models.synced import SyncedItem
from xero_sync.modules.items_sync.schemas import ItemMapping
from xero_sync.modules.items_sync.service import SyncedItemsService
from xero_sync.schemas.events import InvoiceLineItem, PriceCreatedEvent, ProductUpdatedEvent


def _line(price_id: str, product_id: str, amount: int = 10000) -> InvoiceLineItem:
    return InvoiceLineItem(amount=amount, quantity=1, price_id=price_id, product_id=product_id)


async def _product_logs(db) -> list[SyncLog]:
    stmt = select(SyncLog).where(SyncLog.entity_type == SyncEntityType.PRODUCT)
    return list((await db.execute(stmt)).scalars().all())


# ── Invoice line resolution ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_resolves_mapped_price_to_live_item(ctx, mapped_item) -> None:
    result = await SyncedItemsService().get_price_id_to_xero_item(
        ctx, [_line(PRICE_ID, PRODUCT_ID), _line(UNMAPPED_PRICE_ID, UNMAPPED_PRODUCT_ID)]
    )

    assert list(result) == [PRICE_ID]
    assert result[PRICE_ID].item_id == MAPPED_ITEM_ID


@pytest.mark.asyncio
async def test_lines_without_price_are_ignored(ctx, xero) -> None:
    line = InvoiceLineItem(amount=500, quantity=2, description="Ad hoc")

    assert await SyncedItemsService().get_price_id_to_xero_item(ctx, [line]) == {}
    assert xero.calls == []


@pytest.mark.asyncio
async def test_stale_mapping_is_recreated_when_product_sync_enabled(
    ctx, workspace_settings, mapped_item, xero, db
) -> None:
    workspace_settings.sync_products_automatically = True
    del xero.items[MAPPED_ITEM_ID]

    result = await SyncedItemsService().get_price_id_to_xero_item(ctx, [_line(PRICE_ID, PRODUCT_ID)])

    new_item = result[PRICE_ID]
    assert new_item.item_id != MAPPED_ITEM_ID
    assert new_item.description == "Hourly consulting"
    row = (await db.execute(select(SyncedItem).where(SyncedItem.price_id == PRICE_ID))).scalar_one()
    assert row.item_id == new_item.item_id


@pytest.mark.asyncio
async def test_stale_mapping_is_dropped_when_product_sync_disabled(ctx, mapped_item, xero) -> None:
    del xero.items[MAPPED_ITEM_ID]

    result = await SyncedItemsService().get_price_id_to_xero_item(ctx, [_line(PRICE_ID, PRODUCT_ID)])

    assert result == {}
    assert xero.count("create_items") == 0


@pytest.mark.asyncio
async def test_excluded_price_is_never_recreated(ctx, workspace_settings, xero, db) -> None:
    workspace_settings.sync_products_automatically = True
    db.add(
        SyncedItem(
            portal_id=PORTAL_ID,
            tenant_id=TENANT_ID,
            product_id=UNMAPPED_PRODUCT_ID,
            price_id=UNMAPPED_PRICE_ID,
            item_id=None,
        )
    )
    await db.flush()

    result = await SyncedItemsService().get_price_id_to_xero_item(
        ctx, [_line(UNMAPPED_PRICE_ID, UNMAPPED_PRODUCT_ID)]
    )

    assert result == {}
    assert xero.count("create_items") == 0


# ── price.created ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_price_created_creates_and_maps_item(ctx, xero, db) -> None:
    event = PriceCreatedEvent(id="price-3", product_id=PRODUCT_ID, amount=2500)

    (item,) = await SyncedItemsService().create_synced_items_for_prices(ctx, [event])

    assert xero.items[item.item_id].name == "Consulting"
    assert xero.items[item.item_id].description == "Hourly consulting"
    assert xero.items[item.item_id].sales_details.unit_price == 25.0
    row = (await db.execute(select(SyncedItem).where(SyncedItem.price_id == "price-3"))).scalar_one()
    assert row.item_id == item.item_id
    assert row.product_id == PRODUCT_ID
    (log,) = await _product_logs(db)
    assert log.event_type == SyncEventType.CREATED
    assert log.status == SyncStatus.SUCCESS
    assert log.product_price == Decimal("25.00")
    assert log.xero_item_name == "Consulting"


@pytest.mark.asyncio
async def test_price_created_for_unknown_product_is_rejected(ctx, xero) -> None:
    event = PriceCreatedEvent(id="price-9", product_id="prod-missing", amount=100)

    with pytest.raises(DependencyResolutionError):
        await SyncedItemsService().create_synced_items_for_prices(ctx, [event])

    assert xero.count("create_items") == 0


@pytest.mark.asyncio
async def test_price_created_failure_carries_product_log(ctx, xero) -> None:
    xero.fail("create_items", GatewayError("rejected", 400, service="xero"))
    event = PriceCreatedEvent(id="price-3", product_id=PRODUCT_ID, amount=2500)

    with pytest.raises(SyncError) as exc_info:
        await SyncedItemsService().create_synced_items_for_prices(ctx, [event])

    audit = exc_info.value.failed_sync_log
    assert audit.entity_type == SyncEntityType.PRODUCT
    assert audit.product_name == "Consulting"


# ── product.updated ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_product_updated_renames_mapped_items(ctx, mapped_item, xero, db) -> None:
    event = ProductUpdatedEvent(id=PRODUCT_ID, name="Advisory", description="<p>Senior <em>advice</em></p>")

    (item,) = await SyncedItemsService().update_synced_items_for_product(ctx, event)

    assert item.name == "Advisory"
    assert xero.items[MAPPED_ITEM_ID].name == "Advisory"
    assert xero.items[MAPPED_ITEM_ID].description == "Senior advice"
    assert xero.items[MAPPED_ITEM_ID].code == "CONSULT01"
    (log,) = await _product_logs(db)
    assert log.event_type == SyncEventType.UPDATED
    assert log.xero_item_name == "Advisory"
    assert log.product_price == Decimal("100.00")


@pytest.mark.asyncio
async def test_product_updated_without_mappings_is_noop(ctx, xero) -> None:
    event = ProductUpdatedEvent(id=UNMAPPED_PRODUCT_ID, name="Workshop+")

    assert await SyncedItemsService().update_synced_items_for_product(ctx, event) == []
    assert xero.calls == []


# ── Manual mapping ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_add_synced_items_maps_and_logs(ctx, xero, db) -> None:
    xero.items["xero-item-2"] = Item(item_id="xero-item-2", code="WORK01", name="Workshop item")
    mappings = [
        ItemMapping(product_id=UNMAPPED_PRODUCT_ID, price_id=UNMAPPED_PRICE_ID, item_id="xero-item-2"),
        ItemMapping(product_id=PRODUCT_ID, price_id=PRICE_ID, item_id=None),
    ]

    rows = await SyncedItemsService().add_synced_items(ctx, mappings)

    assert [(r.price_id, r.item_id) for r in rows] == [
        (UNMAPPED_PRICE_ID, "xero-item-2"),
        (PRICE_ID, None),
    ]
    (log,) = await _product_logs(db)
    assert log.event_type == SyncEventType.MAPPED
    assert log.product_name == "Workshop"
    assert log.product_price == Decimal("500.00")
    assert log.xero_item_name == "Workshop item"


@pytest.mark.asyncio
async def test_add_synced_items_remaps_existing_price(ctx, mapped_item, xero, db) -> None:
    xero.items["xero-item-2"] = Item(item_id="xero-item-2", code="ALT01", name="Alternative")

    await SyncedItemsService().add_synced_items(
        ctx, [ItemMapping(product_id=PRODUCT_ID, price_id=PRICE_ID, item_id="xero-item-2")]
    )

    rows = (await db.execute(select(SyncedItem))).scalars().all()
    assert [(r.price_id, r.item_id) for r in rows] == [(PRICE_ID, "xero-item-2")]


@pytest.mark.asyncio
async def test_delete_synced_items_counts_and_logs(ctx, mapped_item, db) -> None:
    service = SyncedItemsService()
    mappings = [
        ItemMapping(product_id=PRODUCT_ID, price_id=PRICE_ID, item_id=MAPPED_ITEM_ID),
        ItemMapping(product_id=UNMAPPED_PRODUCT_ID, price_id=UNMAPPED_PRICE_ID),
    ]

    removed = await service.delete_synced_items(ctx, mappings)

    assert removed == 1
    assert await service.get_synced_items_map_by_price_ids(ctx) == {}
    (log,) = await _product_logs(db)
    assert log.event_type == SyncEventType.UNMAPPED
    assert log.status == SyncStatus.INFO
