"""Workspace settings API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import get_workspace_user
from xero_sync.core.database import get_db
from xero_sync.modules.connections.service import ConnectionService
from xero_sync.modules.settings.schemas import SettingsResponse, UpdateSettingsRequest
from xero_sync.modules.settings.service import SettingsService
from xero_sync.schemas.auth import WorkspaceUser

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
async def get_settings(
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
):
    connection = await ConnectionService(db).authorize_connection(user)
    row = await SettingsService(db).get_or_create_settings(user.portal_id, connection.tenant_id)
    return SettingsResponse.model_validate(row)


@router.patch("", response_model=SettingsResponse)
async def update_settings(
    body: UpdateSettingsRequest,
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
):
    connection = await ConnectionService(db).authorize_connection(user)
    row = await SettingsService(db).update_settings(user.portal_id, connection.tenant_id, body)
    return SettingsResponse.model_validate(row)
