"""HTTP tests for the webhook, settings and item mapping endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from tests.conftest import (
    MAPPED_ITEM_ID,
    PORTAL_ID,
    PRICE_ID,
    PRODUCT_ID,
    TENANT_ID,
    UNMAPPED_PRICE_ID,
    UNMAPPED_PRODUCT_ID,
    invoice_payload,
)
from xero_sync.models.failed_syncs import FailedSync
from xero_sync.models.synced import SyncedItem


def _webhook(client: AsyncClient, token: str, event_type: str, data: dict):
    return client.post("/v1/webhook", params={"token": token}, json={"eventType": event_type, "data": data})


# ── Webhook ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhook_rejects_invalid_token(client: AsyncClient) -> None:
    response = await _webhook(client, "deadbeef", "invoice.created", invoice_payload())

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_webhook_requires_xero_connection(client: AsyncClient, token: str) -> None:
    response = await _webhook(client, token, "invoice.created", invoice_payload())

    assert response.status_code == 401
    assert response.json()["error"] == "xero_not_connected"


@pytest.mark.asyncio
async def test_webhook_acknowledges_when_sync_disabled(
    client: AsyncClient, token: str, workspace_settings, xero
) -> None:
    workspace_settings.is_sync_enabled = False

    response = await _webhook(client, token, "invoice.created", invoice_payload())

    assert response.status_code == 200
    assert response.json()["message"] == "Sync is disabled for this workspace"
    assert xero.calls == []


@pytest.mark.asyncio
async def test_webhook_ignores_unknown_events(client: AsyncClient, token: str, workspace_settings) -> None:
    response = await _webhook(client, token, "client.created", {"id": "client-9"})

    assert response.status_code == 200
    assert response.json()["message"] == "Ignored webhook call for event"


@pytest.mark.asyncio
async def test_webhook_syncs_invoice(
    client: AsyncClient, token: str, workspace_settings, mapped_item, xero
) -> None:
    response = await _webhook(client, token, "invoice.created", invoice_payload())

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["message"] == "Webhook received"
    assert body["data"]["copilot_invoice_id"] == "inv-1"
    assert body["data"]["status"] == "success"
    assert body["data"]["xero_invoice_id"] in xero.invoices


@pytest.mark.asyncio
async def test_webhook_failure_is_queued_for_retry(
    client: AsyncClient, token: str, workspace_settings, mapped_item, xero, db
) -> None:
    xero.fail("create_invoice")

    response = await _webhook(client, token, "invoice.created", invoice_payload())

    assert response.status_code == 500
    assert response.json()["error"] == "sync_failed"
    assert response.json()["message"] == "Sync failed and was queued for retry."
    (record,) = (await db.execute(select(FailedSync))).scalars().all()
    assert record.resource_id == "inv-1"
    assert record.portal_id == PORTAL_ID


@pytest.mark.asyncio
async def test_responses_carry_api_version(client: AsyncClient) -> None:
    response = await client.get("/v1/cron/retry-failed-syncs")

    assert response.headers["X-API-Version"] == "v1"


# ── Settings ──────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_settings_creates_defaults(client: AsyncClient, token: str, connection) -> None:
    response = await client.get("/v1/settings", params={"token": token})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_sync_enabled"] is False
    assert body["add_absorbed_fees"] is False


@pytest.mark.asyncio
async def test_patch_settings_updates_only_given_flags(
    client: AsyncClient, token: str, workspace_settings
) -> None:
    response = await client.patch(
        "/v1/settings", params={"token": token}, json={"add_absorbed_fees": True}
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["add_absorbed_fees"] is True
    assert body["is_sync_enabled"] is True
    assert body["sync_products_automatically"] is False


# ── Item mappings ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_add_item_mappings(client: AsyncClient, token: str, workspace_settings, mapped_item) -> None:
    response = await client.post(
        "/v1/items/mappings",
        params={"token": token},
        json=[{"product_id": UNMAPPED_PRODUCT_ID, "price_id": UNMAPPED_PRICE_ID, "item_id": None}],
    )

    assert response.status_code == 200, response.text
    assert response.json() == [
        {"product_id": UNMAPPED_PRODUCT_ID, "price_id": UNMAPPED_PRICE_ID, "item_id": None}
    ]


@pytest.mark.asyncio
async def test_delete_item_mappings(
    client: AsyncClient, token: str, workspace_settings, mapped_item, db
) -> None:
    response = await client.request(
        "DELETE",
        "/v1/items/mappings",
        params={"token": token},
        json=[{"product_id": PRODUCT_ID, "price_id": PRICE_ID, "item_id": MAPPED_ITEM_ID}],
    )

    assert response.status_code == 200, response.text
    assert response.json() == {"removed": 1}
    remaining = (
        await db.execute(select(SyncedItem).where(SyncedItem.tenant_id == TENANT_ID))
    ).scalars().all()
    assert list(remaining) == []
