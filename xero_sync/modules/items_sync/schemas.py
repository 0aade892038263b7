"""Catalog item mapping request/response schemas."""

from pydantic import BaseModel, ConfigDict


class ItemMapping(BaseModel):
    """``item_id`` None excludes the price from invoice line mapping."""

    product_id: str
    price_id: str
    item_id: str | None = None


class SyncedItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    price_id: str
    item_id: str | None = None
