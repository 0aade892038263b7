"""Manual catalog mapping API router."""

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import get_workspace_user
from xero_sync.core.database import get_db
from xero_sync.modules.connections.service import (
    GatewayFactory,
    build_sync_context,
    get_gateway_factory,
)
from xero_sync.modules.items_sync.schemas import ItemMapping, SyncedItemResponse
from xero_sync.modules.items_sync.service import SyncedItemsService
from xero_sync.schemas.auth import WorkspaceUser

router = APIRouter(prefix="/items", tags=["items"])


@router.post("/mappings", response_model=list[SyncedItemResponse])
async def add_item_mappings(
    mappings: list[ItemMapping] = Body(...),
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    ctx = await build_sync_context(db, user, gateways)
    rows = await SyncedItemsService().add_synced_items(ctx, mappings)
    return [SyncedItemResponse.model_validate(row) for row in rows]


@router.delete("/mappings")
async def delete_item_mappings(
    mappings: list[ItemMapping] = Body(...),
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    ctx = await build_sync_context(db, user, gateways)
    removed = await SyncedItemsService().delete_synced_items(ctx, mappings)
    return {"removed": removed}
