"""Copilot -> Xero payload builders.

Copilot amounts are integer cents; Xero expects decimal major units. The
conversion happens here and nowhere else.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from xero_sync.integrations.copilot.schemas import ClientResponse, CompanyResponse
from xero_sync.integrations.xero.constants import AccountCode
from xero_sync.integrations.xero.schemas import Contact, Invoice, Item, LineItem, TaxRate
from xero_sync.schemas.events import InvoiceCreatedEvent, InvoiceLineItem

_CENT = Decimal("0.01")


def cents_to_major(amount: int | float | Decimal) -> Decimal:
    return (Decimal(str(amount)) / 100).quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_tax_amount(
    amount: int, quantity: float, tax_percentage: float | None
) -> Decimal:
    """Tax in major units for one line: amount (cents) x quantity x rate%."""
    if not tax_percentage:
        return Decimal("0.00")
    subtotal = Decimal(str(amount)) * Decimal(str(quantity))
    return (subtotal * Decimal(str(tax_percentage)) / Decimal(10_000)).quantize(
        _CENT, rounding=ROUND_HALF_UP
    )


def to_xero_date(value: datetime | None) -> str:
    return (value or datetime.now(timezone.utc)).date().isoformat()


def serialize_line_items(
    line_items: list[InvoiceLineItem],
    price_id_to_item: dict[str, Item],
    tax_rate: TaxRate | None = None,
) -> list[LineItem]:
    """Only lines whose price maps to a Xero catalog item are billable."""
    xero_lines: list[LineItem] = []
    for line in line_items:
        item = price_id_to_item.get(line.price_id) if line.price_id else None
        if item is None:
            continue
        xero_lines.append(
            LineItem(
                item_code=item.code,
                description=line.description or item.description or item.name,
                unit_amount=float(cents_to_major(line.amount)),
                quantity=line.quantity,
                tax_amount=float(
                    calculate_tax_amount(
                        line.amount, line.quantity, tax_rate.effective_rate if tax_rate else None
                    )
                ),
                tax_type=tax_rate.tax_type if tax_rate else None,
                account_code=AccountCode.SALES.value,
            )
        )
    return xero_lines


def serialize_invoice(
    data: InvoiceCreatedEvent, contact_id: str, line_items: list[LineItem]
) -> Invoice:
    return Invoice(
        type="ACCREC",
        invoice_number=data.number,
        contact=Contact(contact_id=contact_id),
        date=to_xero_date(data.sent_date),
        due_date=to_xero_date(data.due_date),
        line_items=line_items,
        status="AUTHORISED",
    )


def serialize_contact_for_client(client: ClientResponse) -> Contact:
    return Contact(
        name=client.full_name,
        first_name=client.given_name,
        last_name=client.family_name,
        email_address=client.email,
    )


def serialize_contact_for_company(company: CompanyResponse, email: str | None) -> Contact:
    return Contact(name=company.name, email_address=email)
