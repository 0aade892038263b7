"""Workspace settings request/response schemas."""

from pydantic import BaseModel, ConfigDict


class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sync_products_automatically: bool
    add_absorbed_fees: bool
    use_company_name: bool
    is_sync_enabled: bool
    initial_invoice_settings_mapping: bool
    initial_product_settings_mapping: bool


class UpdateSettingsRequest(BaseModel):
    sync_products_automatically: bool | None = None
    add_absorbed_fees: bool | None = None
    use_company_name: bool | None = None
    is_sync_enabled: bool | None = None
    initial_invoice_settings_mapping: bool | None = None
    initial_product_settings_mapping: bool | None = None
