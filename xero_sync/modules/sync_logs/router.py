"""Sync history: JSON listing and CSV export."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import get_workspace_user
from xero_sync.core.database import get_db
from xero_sync.modules.connections.service import (
    GatewayFactory,
    build_sync_context,
    get_gateway_factory,
)
from xero_sync.modules.invoice_sync.invoices_service import SyncedInvoicesService
from xero_sync.modules.sync_logs.service import SyncLogsService
from xero_sync.schemas.auth import WorkspaceUser
from xero_sync.schemas.sync_logs import SyncLogListResponse, SyncLogResponse

router = APIRouter(prefix="/sync-logs", tags=["sync-logs"])

CSV_FILENAME = "sync-history.csv"


@router.get("", response_model=SyncLogListResponse)
async def list_sync_logs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    ctx = await build_sync_context(db, user, gateways)
    items, total = await SyncLogsService(db).list_sync_logs(
        ctx.portal_id, ctx.tenant_id, limit=limit, offset=offset
    )
    return SyncLogListResponse(
        items=[SyncLogResponse.model_validate(item) for item in items],
        total=total,
        last_synced_at=await SyncedInvoicesService().get_last_synced_at(ctx),
    )


@router.get("/export")
async def export_sync_logs(
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    ctx = await build_sync_context(db, user, gateways)
    content = await SyncLogsService(db).get_sync_logs_csv(ctx.portal_id, ctx.tenant_id)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )
