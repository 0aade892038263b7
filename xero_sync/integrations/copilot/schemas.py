"""Copilot REST API payloads (camelCase on the wire)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CopilotModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ClientResponse(CopilotModel):
    id: str
    given_name: str = ""
    family_name: str = ""
    email: str | None = None
    company_id: str | None = None
    company_ids: list[str] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        return f"{self.given_name} {self.family_name}".strip()


class CompanyResponse(CopilotModel):
    id: str
    name: str
    custom_fields: dict[str, Any] | None = None

    @property
    def email(self) -> str | None:
        value = (self.custom_fields or {}).get("email")
        return value if isinstance(value, str) and value else None


class ProductResponse(CopilotModel):
    id: str
    name: str
    description: str = ""
    status: str | None = None


class PriceResponse(CopilotModel):
    id: str
    product_id: str
    amount: int
    currency: str | None = None
    type: str | None = None


class WorkspaceLabels(CopilotModel):
    individual_term: str | None = None
    group_term: str | None = None


class WorkspaceResponse(CopilotModel):
    id: str
    brand_name: str | None = None
    labels: WorkspaceLabels | None = None


class ListResponse(CopilotModel):
    data: list[dict[str, Any]] | None = None
    next_token: str | None = None
