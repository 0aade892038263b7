"""SQLAlchemy models package. Import all models so Base.metadata is populated."""

from xero_sync.models.base import ModelMixin, WorkspaceScopedModel
from xero_sync.models.connections import WorkspaceSettings, XeroConnection
from xero_sync.models.enums import (
    ContactUserType,
    SyncedInvoiceStatus,
    SyncedPaymentType,
    SyncEntityType,
    SyncEventType,
    SyncStatus,
    WebhookEventType,
)
from xero_sync.models.failed_syncs import FailedSync
from xero_sync.models.sync_logs import SyncLog
from xero_sync.models.synced import SyncedContact, SyncedInvoice, SyncedItem, SyncedPayment

__all__ = [
    "ModelMixin",
    "WorkspaceScopedModel",
    "XeroConnection",
    "WorkspaceSettings",
    "SyncedContact",
    "SyncedItem",
    "SyncedInvoice",
    "SyncedPayment",
    "FailedSync",
    "SyncLog",
    "ContactUserType",
    "SyncedInvoiceStatus",
    "SyncedPaymentType",
    "SyncEntityType",
    "SyncEventType",
    "SyncStatus",
    "WebhookEventType",
]
