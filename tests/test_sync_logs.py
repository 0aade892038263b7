"""Tests for the sync audit log: writes, listing and CSV export."""

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient

from tests.conftest import PORTAL_ID, TENANT_ID, invoice_event
from xero_sync.models.enums import SyncEntityType, SyncEventType, SyncStatus
from xero_sync.modules.invoice_sync.invoices_service import SyncedInvoicesService
from xero_sync.modules.sync_logs.service import CSV_COLUMNS, SyncLogsService
from xero_sync.schemas.sync_logs import SyncLogPayload


def _invoice_payload(**overrides) -> SyncLogPayload:
    fields = {
        "entity_type": SyncEntityType.INVOICE,
        "event_type": SyncEventType.CREATED,
        "copilot_id": "inv-1",
        "xero_id": "xero-inv-1",
        "invoice_number": "INV-1",
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "amount": Decimal("107.00"),
        "tax_amount": Decimal("7.00"),
    }
    fields.update(overrides)
    return SyncLogPayload(**fields)


@pytest.mark.asyncio
async def test_create_and_list_sync_logs(db) -> None:
    service = SyncLogsService(db)
    await service.create_sync_log(PORTAL_ID, TENANT_ID, _invoice_payload(), SyncStatus.SUCCESS)
    await service.create_sync_log(
        PORTAL_ID,
        TENANT_ID,
        _invoice_payload(event_type=SyncEventType.PAID),
        SyncStatus.FAILED,
        error_message="Failed to sync invoice payment",
    )
    await service.create_sync_log("other-portal", TENANT_ID, _invoice_payload(), SyncStatus.SUCCESS)

    items, total = await service.list_sync_logs(PORTAL_ID, TENANT_ID)

    assert total == 2
    assert {(log.event_type, log.status) for log in items} == {
        (SyncEventType.CREATED, SyncStatus.SUCCESS),
        (SyncEventType.PAID, SyncStatus.FAILED),
    }


@pytest.mark.asyncio
async def test_list_sync_logs_paginates(db) -> None:
    service = SyncLogsService(db)
    for number in range(3):
        await service.create_sync_log(
            PORTAL_ID, TENANT_ID, _invoice_payload(invoice_number=f"INV-{number}"), SyncStatus.SUCCESS
        )

    items, total = await service.list_sync_logs(PORTAL_ID, TENANT_ID, limit=2, offset=2)

    assert total == 3
    assert len(items) == 1


@pytest.mark.asyncio
async def test_invoice_created_log_is_reused_for_later_events(db) -> None:
    service = SyncLogsService(db)
    await service.create_sync_log(PORTAL_ID, TENANT_ID, _invoice_payload(), SyncStatus.SUCCESS)

    previous = await service.get_invoice_created_sync_log(PORTAL_ID, TENANT_ID, "inv-1")

    assert previous.invoice_number == "INV-1"
    assert previous.customer_email == "ada@example.com"
    assert await service.get_invoice_created_sync_log(PORTAL_ID, TENANT_ID, "inv-2") is None


@pytest.mark.asyncio
async def test_csv_export_columns_and_values(db) -> None:
    service = SyncLogsService(db)
    await service.create_sync_log(
        PORTAL_ID,
        TENANT_ID,
        _invoice_payload(),
        SyncStatus.SUCCESS,
        sync_date=datetime(2024, 3, 5, 14, 30, 15, tzinfo=timezone.utc),
    )

    content = await service.get_sync_logs_csv(PORTAL_ID, TENANT_ID)

    header, *_ = content.splitlines()
    assert header.split(",") == list(CSV_COLUMNS)
    assert header.startswith("sync_date,sync_time,event_type,status,entity_type,assembly_id,xero_id")
    (row,) = list(csv.DictReader(io.StringIO(content)))
    assert row["sync_date"] == "2024-03-05"
    assert row["sync_time"] == "14:30:15"
    assert row["event_type"] == "created"
    assert row["status"] == "success"
    assert row["entity_type"] == "invoice"
    assert row["assembly_id"] == "inv-1"
    assert row["amount"] == "107.00"
    assert row["fee_amount"] == ""
    assert row["error_message"] == ""


# ── HTTP ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_endpoint_returns_logs_and_last_sync(
    client: AsyncClient, ctx, mapped_item, token
) -> None:
    await SyncedInvoicesService().sync_invoice_to_xero(ctx, invoice_event())

    response = await client.get("/v1/sync-logs", params={"token": token})

    assert response.status_code == 200, response.text
    body = response.json()
    # Customer created, then invoice created
    assert body["total"] == 2
    assert {item["entity_type"] for item in body["items"]} == {"customer", "invoice"}
    assert body["last_synced_at"] is not None


@pytest.mark.asyncio
async def test_list_endpoint_validates_limit(client: AsyncClient, ctx, token) -> None:
    response = await client.get("/v1/sync-logs", params={"token": token, "limit": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_export_endpoint_streams_csv(client: AsyncClient, ctx, db, token) -> None:
    await SyncLogsService(db).create_sync_log(PORTAL_ID, TENANT_ID, _invoice_payload(), SyncStatus.SUCCESS)

    response = await client.get("/v1/sync-logs/export", params={"token": token})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="sync-history.csv"' in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == ",".join(CSV_COLUMNS)
