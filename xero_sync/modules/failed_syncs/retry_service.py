"""Dead-letter replay loop."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from xero_sync.auth.dependencies import authenticate_token
from xero_sync.auth.tokens import encode_workspace_token
from xero_sync.core.config import settings
from xero_sync.models.enums import WebhookEventType
from xero_sync.modules.connections.service import GatewayFactory, build_sync_context
from xero_sync.modules.failed_syncs.service import FailedSyncsService
from xero_sync.modules.webhook.service import WebhookService
from xero_sync.schemas.events import parse_webhook_event

logger = structlog.get_logger()


@dataclass
class TokenCache:
    """Workspace tokens derived during one replay pass, keyed by portal."""

    api_key: str
    _tokens: dict[str, str] = field(default_factory=dict)

    def get(self, portal_id: str) -> str:
        token = self._tokens.get(portal_id)
        if token is None:
            token = encode_workspace_token(self.api_key, {"workspaceId": portal_id})
            self._tokens[portal_id] = token
        return token


@dataclass(frozen=True)
class _Candidate:
    id: uuid.UUID
    portal_id: str
    resource_id: str
    type: WebhookEventType
    payload: dict[str, Any]
    attempts: int


class RetryFailedSyncsService:
    def __init__(
        self,
        db: AsyncSession,
        gateways: GatewayFactory | None = None,
        webhook_service: WebhookService | None = None,
    ):
        self.db = db
        self.gateways = gateways
        self.webhook_service = webhook_service or WebhookService()

    async def retry_failed_syncs(self) -> dict[str, int]:
        """Replay every dead letter below the retry ceiling.

        Each record runs in its own unit of work; a failure is logged and the
        pass moves on. Failed replays are re-counted by the dispatcher itself.
        """
        failed_syncs = FailedSyncsService(self.db)
        candidates = [
            _Candidate(
                id=row.id,
                portal_id=row.portal_id,
                resource_id=row.resource_id,
                type=row.type,
                payload=dict(row.payload),
                attempts=row.attempts,
            )
            for row in await failed_syncs.list_retry_candidates()
        ]
        tokens = TokenCache(settings.COPILOT_API_KEY)
        succeeded = 0

        logger.info("failed_syncs_retry_started", candidates=len(candidates))
        for candidate in candidates:
            try:
                await self._replay(candidate, tokens)
                await failed_syncs.delete_failed_sync(candidate.id)
                await self.db.commit()
            except Exception as exc:
                await self.db.rollback()
                logger.warning(
                    "failed_sync_retry_failed",
                    failed_sync_id=str(candidate.id),
                    portal_id=candidate.portal_id,
                    resource_id=candidate.resource_id,
                    attempts=candidate.attempts,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            succeeded += 1
            logger.info(
                "failed_sync_retried",
                failed_sync_id=str(candidate.id),
                portal_id=candidate.portal_id,
                resource_id=candidate.resource_id,
            )

        logger.info(
            "failed_syncs_retry_finished",
            retried=len(candidates),
            succeeded=succeeded,
        )
        return {"retried": len(candidates), "succeeded": succeeded}

    async def _replay(self, candidate: _Candidate, tokens: TokenCache) -> None:
        user = authenticate_token(tokens.get(candidate.portal_id))
        ctx = await build_sync_context(self.db, user, self.gateways)
        try:
            event = parse_webhook_event(
                {"eventType": candidate.type.value, "data": candidate.payload}
            )
        except ValidationError:
            # Stored payload no longer validates; leave the row for inspection
            logger.error(
                "failed_sync_payload_invalid",
                failed_sync_id=str(candidate.id),
                resource_id=candidate.resource_id,
            )
            raise
        await self.webhook_service.handle_event(ctx, event)
