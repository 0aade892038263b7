"""Copilot webhook receiver."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import get_workspace_user
from xero_sync.core.database import get_db
from xero_sync.modules.connections.service import (
    GatewayFactory,
    build_sync_context,
    get_gateway_factory,
)
from xero_sync.modules.webhook.schemas import (
    SYNC_DISABLED,
    WEBHOOK_IGNORED,
    WEBHOOK_RECEIVED,
    WebhookResponse,
    serialize_result,
)
from xero_sync.modules.webhook.service import WebhookService
from xero_sync.schemas.auth import WorkspaceUser
from xero_sync.schemas.events import parse_webhook_event

logger = structlog.get_logger()

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("", response_model=WebhookResponse)
async def handle_copilot_webhook(
    request: Request,
    user: WorkspaceUser = Depends(get_workspace_user),
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    ctx = await build_sync_context(db, user, gateways)
    if not ctx.workspace_settings.is_sync_enabled:
        logger.info("webhook_sync_disabled", portal_id=user.portal_id)
        return WebhookResponse(message=SYNC_DISABLED)

    try:
        event = parse_webhook_event(await request.json())
    except (ValueError, ValidationError) as e:
        # Acknowledge so Copilot does not keep redelivering an unparseable event
        logger.info("webhook_event_ignored", portal_id=user.portal_id, error=str(e))
        return WebhookResponse(message=WEBHOOK_IGNORED)

    result = await WebhookService().handle_event(ctx, event)
    return WebhookResponse(message=WEBHOOK_RECEIVED, data=serialize_result(result))
