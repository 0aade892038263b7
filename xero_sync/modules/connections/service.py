"""Xero connection lifecycle and sync context assembly."""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from xero_sync.core.context import SyncContext
from xero_sync.core.errors import NotConnectedError
from xero_sync.integrations.copilot.client import CopilotClient
from xero_sync.integrations.xero.client import TokenRefreshCallback, XeroClient
from xero_sync.models.connections import XeroConnection
from xero_sync.modules.settings.service import SettingsService
from xero_sync.schemas.auth import WorkspaceUser

logger = structlog.get_logger()


class ConnectionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get(self, portal_id: str) -> XeroConnection | None:
        stmt = select(XeroConnection).where(XeroConnection.portal_id == portal_id)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get_connection_for_workspace(self, user: WorkspaceUser) -> XeroConnection:
        """Return the portal's connection, creating a disconnected one on first access."""
        connection = await self._get(user.portal_id)
        if connection is None:
            connection = XeroConnection(
                portal_id=user.portal_id,
                status=False,
                initiated_by=user.internal_user_id,
            )
            self.db.add(connection)
            await self.db.flush()
            logger.info("xero_connection_created", portal_id=user.portal_id)
        return connection

    async def update_connection_for_workspace(
        self, portal_id: str, **fields: Any
    ) -> XeroConnection | None:
        connection = await self._get(portal_id)
        if connection is None:
            return None
        for field, value in fields.items():
            setattr(connection, field, value)
        await self.db.flush()
        logger.info("xero_connection_updated", portal_id=portal_id, fields=sorted(fields))
        return connection

    async def store_token_set(self, portal_id: str, token_set: dict[str, Any]) -> None:
        """Persist a refreshed Xero token set (gateway refresh callback)."""
        await self.update_connection_for_workspace(portal_id, token_set=token_set)

    async def authorize_connection(self, user: WorkspaceUser) -> XeroConnection:
        connection = await self.get_connection_for_workspace(user)
        if not connection.status or not connection.tenant_id:
            raise NotConnectedError(f"Xero is not connected for workspace {user.portal_id}")
        return connection


async def persist_token_set(
    session_factory: async_sessionmaker[AsyncSession],
    portal_id: str,
    token_set: dict[str, Any],
) -> None:
    """Store a refreshed Xero token set in its own short-lived session.

    Refreshes fire from inside concurrent gateway calls, so the request's
    session is never touched here.
    """
    async with session_factory() as db:
        await ConnectionService(db).store_token_set(portal_id, token_set)
        await db.commit()


# ── Sync context ──────────────────────────────────────────────────────────────


def _default_xero_factory(
    connection: XeroConnection, on_token_refresh: TokenRefreshCallback
) -> XeroClient:
    return XeroClient(connection, on_token_refresh=on_token_refresh)


@dataclass(frozen=True)
class GatewayFactory:
    """Builds the Xero and Copilot gateways for one sync context."""

    xero: Callable[[XeroConnection, TokenRefreshCallback], Any] = _default_xero_factory
    copilot: Callable[[str], Any] = CopilotClient
    token_store: Callable[
        [async_sessionmaker[AsyncSession], str, dict[str, Any]], Awaitable[None]
    ] = persist_token_set


def get_gateway_factory() -> GatewayFactory:
    return GatewayFactory()


async def build_sync_context(
    db: AsyncSession,
    user: WorkspaceUser,
    gateways: GatewayFactory | None = None,
) -> SyncContext:
    """Authorize the workspace's Xero connection and bind everything a sync needs."""
    gateways = gateways or GatewayFactory()
    connection = await ConnectionService(db).authorize_connection(user)
    tenant_id: str = connection.tenant_id  # type: ignore[assignment]

    workspace_settings = await SettingsService(db).get_or_create_settings(user.portal_id, tenant_id)
    on_token_refresh = functools.partial(
        gateways.token_store,
        async_sessionmaker(db.bind, class_=AsyncSession, expire_on_commit=False),
        user.portal_id,
    )
    return SyncContext(
        portal_id=user.portal_id,
        tenant_id=tenant_id,
        token=user.token,
        session=db,
        xero=gateways.xero(connection, on_token_refresh),
        copilot=gateways.copilot(user.portal_id),
        workspace_settings=workspace_settings,
    )
