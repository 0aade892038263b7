"""Dead-letter queue for webhook events whose sync raised."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from xero_sync.core.database import JSONType
from xero_sync.models.base import WorkspaceScopedModel
from xero_sync.models.enums import WebhookEventType


class FailedSync(WorkspaceScopedModel):
    """One row per failing Copilot resource; re-failures bump ``attempts``."""

    __tablename__ = "failed_syncs"

    type: Mapped[WebhookEventType] = mapped_column(
        Enum(WebhookEventType, name="failed_syncs_type"), nullable=False
    )
    # Actor token snapshot taken when the event first failed
    token: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
