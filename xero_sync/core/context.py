"""Per-invocation sync context threaded through every entity sync service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from xero_sync.integrations.copilot.client import CopilotClient
    from xero_sync.integrations.xero.client import XeroClient
    from xero_sync.models.connections import WorkspaceSettings


@dataclass(frozen=True)
class SyncContext:
    """Immutable view of who is syncing, into which tenant, within which session.

    Built once per webhook call or per replayed dead letter and discarded
    afterwards. ``session`` is the unit of work every write of the
    invocation goes through.
    """

    portal_id: str
    tenant_id: str
    token: str
    session: AsyncSession
    xero: XeroClient
    copilot: CopilotClient
    workspace_settings: WorkspaceSettings
