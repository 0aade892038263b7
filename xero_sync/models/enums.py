"""Enums shared by the mapping store, audit log and dead-letter tables."""

import enum


# ── Mapping store ────────────────────────────────────────────────────────────


class ContactUserType(str, enum.Enum):
    CLIENT = "client"
    COMPANY = "company"


class SyncedInvoiceStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SyncedPaymentType(str, enum.Enum):
    PAYMENT = "payment"
    EXPENSE = "expense"


# ── Audit log ────────────────────────────────────────────────────────────────


class SyncEventType(str, enum.Enum):
    CREATED = "created"
    MAPPED = "mapped"
    UNMAPPED = "unmapped"
    PAID = "paid"
    VOIDED = "voided"
    UPDATED = "updated"
    DELETED = "deleted"


class SyncStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    INFO = "info"


class SyncEntityType(str, enum.Enum):
    INVOICE = "invoice"
    CUSTOMER = "customer"
    PRODUCT = "product"
    EXPENSE = "expense"


# ── Webhook events ───────────────────────────────────────────────────────────


class WebhookEventType(str, enum.Enum):
    INVOICE_CREATED = "invoice.created"
    INVOICE_PAID = "invoice.paid"
    INVOICE_VOIDED = "invoice.voided"
    INVOICE_DELETED = "invoice.deleted"
    PRODUCT_UPDATED = "product.updated"
    PRICE_CREATED = "price.created"
    PAYMENT_SUCCEEDED = "payment.succeeded"
