"""Copilot product/price -> Xero catalog item payloads."""

from __future__ import annotations

import re
import secrets
import string

from bs4 import BeautifulSoup

from xero_sync.integrations.copilot.schemas import PriceResponse, ProductResponse
from xero_sync.integrations.xero.schemas import Item, ItemSalesDetails
from xero_sync.modules.invoice_sync.serializers import cents_to_major

ITEM_CODE_LENGTH = 12
_CODE_ALPHABET = string.ascii_letters + string.digits
_BLOCK_TAGS = ("p", "div", "li", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "tr")


def generate_item_code(length: int = ITEM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def html_to_text(html: str | None) -> str:
    """Plain-text rendering of a Copilot rich-text product description."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for img in soup.find_all("img"):
        img.decompose()
    for link in soup.find_all("a"):
        href = link.get("href")
        text = link.get_text()
        if href and href != text:
            link.replace_with(f"{text} [{href}]")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")
    lines = [line.strip() for line in soup.get_text().splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def serialize_item(product: ProductResponse, price: PriceResponse) -> Item:
    return Item(
        code=generate_item_code(),
        name=product.name,
        description=html_to_text(product.description),
        is_purchased=False,
        sales_details=ItemSalesDetails(unit_price=float(cents_to_major(price.amount))),
    )
