"""initial_sync_tables

Revision ID: 3f9a1c7d2e10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "3f9a1c7d2e10"
down_revision = None
branch_labels = None
depends_on = None

contact_user_type = postgresql.ENUM("CLIENT", "COMPANY", name="contact_user_type", create_type=False)
synced_invoice_status = postgresql.ENUM(
    "PENDING", "SUCCESS", "FAILED", name="synced_invoice_status", create_type=False
)
synced_payment_type = postgresql.ENUM("PAYMENT", "EXPENSE", name="synced_payment_type", create_type=False)
failed_syncs_type = postgresql.ENUM(
    "INVOICE_CREATED",
    "INVOICE_PAID",
    "INVOICE_VOIDED",
    "INVOICE_DELETED",
    "PRODUCT_UPDATED",
    "PRICE_CREATED",
    "PAYMENT_SUCCEEDED",
    name="failed_syncs_type",
    create_type=False,
)
sync_logs_event_type = postgresql.ENUM(
    "CREATED", "MAPPED", "UNMAPPED", "PAID", "VOIDED", "UPDATED", "DELETED",
    name="sync_logs_event_type",
    create_type=False,
)
sync_logs_status = postgresql.ENUM("SUCCESS", "FAILED", "INFO", name="sync_logs_status", create_type=False)
sync_logs_entity_type = postgresql.ENUM(
    "INVOICE", "CUSTOMER", "PRODUCT", "EXPENSE", name="sync_logs_entity_type", create_type=False
)

_ENUMS = (
    contact_user_type,
    synced_invoice_status,
    synced_payment_type,
    failed_syncs_type,
    sync_logs_event_type,
    sync_logs_status,
    sync_logs_entity_type,
)


def _scoped_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("portal_id", sa.String(64), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum in _ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        "xero_connections",
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("portal_id", sa.String(64), nullable=False),
        sa.Column("tenant_id", sa.String(64), nullable=True),
        sa.Column("status", sa.Boolean, server_default="false", nullable=False),
        sa.Column("token_set", postgresql.JSONB, nullable=True),
        sa.Column("initiated_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("portal_id"),
    )

    op.create_table(
        "settings",
        *_scoped_columns(),
        sa.Column("sync_products_automatically", sa.Boolean, server_default="false", nullable=False),
        sa.Column("add_absorbed_fees", sa.Boolean, server_default="false", nullable=False),
        sa.Column("use_company_name", sa.Boolean, server_default="false", nullable=False),
        sa.Column("is_sync_enabled", sa.Boolean, server_default="false", nullable=False),
        sa.Column("initial_invoice_settings_mapping", sa.Boolean, server_default="false", nullable=False),
        sa.Column("initial_product_settings_mapping", sa.Boolean, server_default="false", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("portal_id", "tenant_id", name="uq_settings_portal_tenant"),
    )

    op.create_table(
        "synced_contacts",
        *_scoped_columns(),
        sa.Column("client_or_company_id", sa.String(64), nullable=False),
        sa.Column("user_type", contact_user_type, nullable=False),
        sa.Column("contact_id", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "portal_id", "tenant_id", "client_or_company_id", name="uq_synced_contacts_identity"
        ),
    )

    op.create_table(
        "synced_items",
        *_scoped_columns(),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("price_id", sa.String(64), nullable=False),
        sa.Column("item_id", sa.String(64), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("portal_id", "price_id", name="uq_synced_items_price"),
    )
    op.create_index("ix_synced_items_product", "synced_items", ["portal_id", "tenant_id", "product_id"])

    op.create_table(
        "synced_invoices",
        *_scoped_columns(),
        sa.Column("copilot_invoice_id", sa.String(64), nullable=False),
        sa.Column("xero_invoice_id", sa.String(64), nullable=True),
        sa.Column("status", synced_invoice_status, server_default="PENDING", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "portal_id", "tenant_id", "copilot_invoice_id", name="uq_synced_invoices_identity"
        ),
    )

    op.create_table(
        "synced_payments",
        *_scoped_columns(),
        sa.Column("copilot_invoice_id", sa.String(64), nullable=False),
        sa.Column("copilot_payment_id", sa.String(64), nullable=True),
        sa.Column("xero_invoice_id", sa.String(64), nullable=True),
        sa.Column("xero_payment_id", sa.String(64), nullable=False),
        sa.Column("type", synced_payment_type, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("xero_payment_id", name="uq_synced_payments_xero_payment"),
    )
    op.create_index(
        "uq_synced_payments_invoice_payment",
        "synced_payments",
        ["portal_id", "tenant_id", "copilot_invoice_id"],
        unique=True,
        postgresql_where=sa.text("type = 'PAYMENT'"),
    )

    op.create_table(
        "failed_syncs",
        *_scoped_columns(),
        sa.Column("type", failed_syncs_type, nullable=False),
        sa.Column("token", sa.Text, nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("attempts", sa.Integer, server_default="0", nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("resource_id"),
    )

    op.create_table(
        "sync_logs",
        *_scoped_columns(),
        sa.Column("sync_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_type", sync_logs_event_type, nullable=False),
        sa.Column("status", sync_logs_status, nullable=False),
        sa.Column("entity_type", sync_logs_entity_type, nullable=False),
        sa.Column("copilot_id", sa.String(128), nullable=True),
        sa.Column("xero_id", sa.String(64), nullable=True),
        sa.Column("invoice_number", sa.String(128), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(19, 2), nullable=True),
        sa.Column("tax_amount", sa.Numeric(19, 2), nullable=True),
        sa.Column("fee_amount", sa.Numeric(19, 2), nullable=True),
        sa.Column("product_name", sa.String(512), nullable=True),
        sa.Column("product_price", sa.Numeric(19, 2), nullable=True),
        sa.Column("xero_item_name", sa.String(512), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sync_logs_portal_tenant_created", "sync_logs", ["portal_id", "tenant_id", "created_at"]
    )

    for table in ("settings", "synced_contacts", "synced_items", "synced_invoices",
                  "synced_payments", "failed_syncs", "sync_logs"):
        op.create_index(f"ix_{table}_portal_id", table, ["portal_id"])


def downgrade() -> None:
    op.drop_table("sync_logs")
    op.drop_table("failed_syncs")
    op.drop_table("synced_payments")
    op.drop_table("synced_invoices")
    op.drop_table("synced_items")
    op.drop_table("synced_contacts")
    op.drop_table("settings")
    op.drop_table("xero_connections")

    bind = op.get_bind()
    for enum in reversed(_ENUMS):
        enum.drop(bind, checkfirst=True)
