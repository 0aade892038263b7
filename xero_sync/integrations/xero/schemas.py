"""Xero Accounting API payloads (PascalCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal


def _xero_alias(name: str) -> str:
    alias = to_pascal(name)
    # Xero spells identifiers InvoiceID, ContactID, LineItemID...
    if alias.endswith("Id"):
        alias = alias[:-2] + "ID"
    return alias


class XeroModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_xero_alias,
        populate_by_name=True,
        extra="ignore",
    )

    def to_xero(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Contact(XeroModel):
    contact_id: str | None = None
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email_address: str | None = None
    contact_status: str | None = None


class LineItem(XeroModel):
    line_item_id: str | None = None
    item_code: str | None = None
    description: str | None = None
    unit_amount: float
    quantity: float
    tax_amount: float | None = None
    tax_type: str | None = None
    account_code: str | None = None


class Invoice(XeroModel):
    invoice_id: str | None = None
    type: str = "ACCREC"
    invoice_number: str | None = None
    contact: Contact | None = None
    # ISO dates on write; Xero answers with its own /Date()/ format
    date: str | None = None
    due_date: str | None = None
    line_items: list[LineItem] = Field(default_factory=list)
    status: str | None = None
    total: float | None = None
    total_tax: float | None = None
    amount_due: float | None = None


class TaxComponent(XeroModel):
    name: str
    rate: float
    is_compound: bool = False
    is_non_recoverable: bool = False


class TaxRate(XeroModel):
    name: str
    tax_type: str | None = None
    effective_rate: float | None = None
    status: str | None = None
    report_tax_type: str | None = None
    tax_components: list[TaxComponent] = Field(default_factory=list)


class ItemSalesDetails(XeroModel):
    unit_price: float | None = None
    account_code: str | None = None


class Item(XeroModel):
    item_id: str | None = None
    code: str
    name: str | None = None
    description: str | None = None
    is_purchased: bool | None = None
    is_sold: bool | None = None
    sales_details: ItemSalesDetails | None = None


class Account(XeroModel):
    account_id: str | None = None
    code: str | None = None
    name: str | None = None
    type: str | None = None
    status: str | None = None
    enable_payments_to_account: bool | None = None
    bank_account_number: str | None = None


class Payment(XeroModel):
    payment_id: str | None = None
    invoice: Invoice | None = None
    account: Account | None = None
    amount: float
    date: str | None = None
    status: str | None = None


class BankTransaction(XeroModel):
    bank_transaction_id: str | None = None
    type: str = "SPEND"
    contact: Contact
    line_items: list[LineItem]
    bank_account: Account
    date: str | None = None
    reference: str | None = None
    status: str | None = None
