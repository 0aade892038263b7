"""Xero connection per Copilot workspace, and workspace sync settings."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, String, UniqueConstraint, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from xero_sync.core.database import Base, JSONType
from xero_sync.models.base import ModelMixin, WorkspaceScopedModel


class XeroConnection(Base, ModelMixin):
    """OAuth connection between one Copilot portal and its active Xero tenant."""

    __tablename__ = "xero_connections"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    portal_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    # {"access_token", "refresh_token", "expires_at", "token_type", "scope"}
    token_set: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    initiated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def access_token(self) -> str | None:
        return (self.token_set or {}).get("access_token")

    @property
    def refresh_token(self) -> str | None:
        return (self.token_set or {}).get("refresh_token")


class WorkspaceSettings(WorkspaceScopedModel):
    """Feature flags for one (portal, tenant) pair. Created lazily with defaults."""

    __tablename__ = "settings"
    __table_args__ = (
        UniqueConstraint("portal_id", "tenant_id", name="uq_settings_portal_tenant"),
    )

    sync_products_automatically: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    add_absorbed_fees: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    use_company_name: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_sync_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    # Onboarding gates: set once the first mapping screens are confirmed
    initial_invoice_settings_mapping: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    initial_product_settings_mapping: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
