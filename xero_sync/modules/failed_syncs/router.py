"""Cron-triggered dead-letter replay."""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import verify_cron_secret
from xero_sync.core.database import get_db
from xero_sync.modules.connections.service import GatewayFactory, get_gateway_factory
from xero_sync.modules.failed_syncs.retry_service import RetryFailedSyncsService
from xero_sync.modules.failed_syncs.schemas import RetryFailedSyncsResponse, RetrySummary

logger = structlog.get_logger()

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get(
    "/retry-failed-syncs",
    response_model=RetryFailedSyncsResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def retry_failed_syncs(
    db: AsyncSession = Depends(get_db),
    gateways: GatewayFactory = Depends(get_gateway_factory),
):
    summary = await RetryFailedSyncsService(db, gateways).retry_failed_syncs()
    return RetryFailedSyncsResponse(message="Retried failed syncs", data=RetrySummary(**summary))
