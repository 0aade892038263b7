"""Tests for the Xero connection lifecycle and refreshed-token persistence."""

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tests.conftest import PORTAL_ID, FakeXero, invoice_event
from xero_sync.core.errors import NotConnectedError
from xero_sync.models.connections import XeroConnection
from xero_sync.models.enums import SyncedInvoiceStatus
from xero_sync.modules.connections.service import (
    ConnectionService,
    GatewayFactory,
    build_sync_context,
    persist_token_set,
)
from xero_sync.modules.invoice_sync.invoices_service import SyncedInvoicesService

ROTATED_TOKENS = {"access_token": "rotated-access", "refresh_token": "rotated-refresh"}


class RefreshingXero(FakeXero):
    """Rotates its token set during the tax lookup, as XeroClient does on a 401."""

    def __init__(self, on_token_refresh) -> None:
        super().__init__()
        self.on_token_refresh = on_token_refresh

    async def get_tax_rates(self):
        await asyncio.sleep(0)
        await self.on_token_refresh(dict(ROTATED_TOKENS))
        return await super().get_tax_rates()


# ── Connection rows ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_first_access_creates_disconnected_connection(db, user) -> None:
    service = ConnectionService(db)

    connection = await service.get_connection_for_workspace(user)

    assert connection.status is False
    assert connection.initiated_by == "iu-1"
    assert repr(connection) == f"<XeroConnection(id={connection.id})>"
    with pytest.raises(NotConnectedError):
        await service.authorize_connection(user)


@pytest.mark.asyncio
async def test_persist_token_set_commits_in_its_own_session(engine, db, connection) -> None:
    await db.commit()

    await persist_token_set(
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
        PORTAL_ID,
        dict(ROTATED_TOKENS),
    )

    await db.refresh(connection)
    assert connection.token_set == ROTATED_TOKENS


# ── Token refresh during a sync ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_token_refresh_during_invoice_sync_bypasses_request_session(
    db, user, copilot, xero, mapped_item, workspace_settings, connection
) -> None:
    stored: list[tuple[str, dict]] = []
    gateways_built: list[RefreshingXero] = []

    async def _store(session_factory, portal_id, token_set) -> None:
        assert isinstance(session_factory, async_sessionmaker)
        stored.append((portal_id, token_set))

    def _xero(conn: XeroConnection, on_token_refresh) -> RefreshingXero:
        refreshing = RefreshingXero(on_token_refresh)
        refreshing.items.update(xero.items)
        gateways_built.append(refreshing)
        return refreshing

    gateways = GatewayFactory(xero=_xero, copilot=lambda portal_id: copilot, token_store=_store)
    ctx = await build_sync_context(db, user, gateways)

    record = await SyncedInvoicesService().sync_invoice_to_xero(ctx, invoice_event())

    assert record.status == SyncedInvoiceStatus.SUCCESS
    (refreshing,) = gateways_built
    assert refreshing.count("create_invoice") == 1
    assert stored == [(PORTAL_ID, ROTATED_TOKENS)]
    # The request session's copy is left alone
    assert connection.token_set["access_token"] == "xero-access"
