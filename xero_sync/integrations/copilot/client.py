"""Copilot REST API gateway, authenticated as the workspace the token names."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from xero_sync.core.config import settings
from xero_sync.integrations.copilot.schemas import (
    ClientResponse,
    CompanyResponse,
    ListResponse,
    PriceResponse,
    ProductResponse,
    WorkspaceResponse,
)
from xero_sync.integrations.retry import GatewayError, with_gateway_retry
from xero_sync.schemas.events import InvoiceCreatedEvent

logger = structlog.get_logger()

MAX_FETCH_RESOURCES = 10_000


class CopilotClient:
    SERVICE = "copilot"

    def __init__(
        self,
        portal_id: str,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.portal_id = portal_id
        self._api_key = api_key if api_key is not None else settings.COPILOT_API_KEY
        self._transport = transport

    async def _request(self, method: str, path: str, *, params: dict | None = None) -> dict:
        headers = {
            # Workspace-scoped key: "<workspaceId>/<apiKey>"
            "X-API-KEY": f"{self.portal_id}/{self._api_key}",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(
            base_url=settings.COPILOT_API_URL,
            timeout=settings.GATEWAY_TIMEOUT,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.request(method, path, params=params, headers=headers)
            except httpx.TimeoutException as exc:
                raise GatewayError(
                    f"Copilot {method} {path} timed out", 504,
                    service=self.SERVICE, transport_error=True, cause=exc,
                ) from exc
            except httpx.TransportError as exc:
                raise GatewayError(
                    f"Copilot {method} {path} transport failure", 503,
                    service=self.SERVICE, transport_error=True, cause=exc,
                ) from exc

        if resp.status_code >= 400:
            raise GatewayError(
                f"Copilot {method} {path} failed with {resp.status_code}",
                resp.status_code,
                service=self.SERVICE,
                response_body=resp.text,
            )
        return resp.json() if resp.content else {}

    async def _list(self, path: str, **params: Any) -> list[dict[str, Any]]:
        params.setdefault("limit", MAX_FETCH_RESOURCES)
        body = ListResponse.model_validate(
            await self._request("GET", path, params={k: v for k, v in params.items() if v is not None})
        )
        return body.data or []

    # ── Workspace ─────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_workspace(self) -> WorkspaceResponse:
        return WorkspaceResponse.model_validate(await self._request("GET", "/workspace"))

    # ── Clients & companies ───────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_client(self, client_id: str) -> ClientResponse:
        return ClientResponse.model_validate(await self._request("GET", f"/clients/{client_id}"))

    @with_gateway_retry()
    async def get_clients(self, company_id: str | None = None) -> list[ClientResponse]:
        rows = await self._list("/clients", companyId=company_id)
        return [ClientResponse.model_validate(row) for row in rows]

    @with_gateway_retry()
    async def get_company(self, company_id: str) -> CompanyResponse:
        return CompanyResponse.model_validate(await self._request("GET", f"/companies/{company_id}"))

    @with_gateway_retry()
    async def get_companies(self) -> list[CompanyResponse]:
        return [CompanyResponse.model_validate(row) for row in await self._list("/companies")]

    # ── Invoices ──────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_invoice(self, invoice_id: str) -> InvoiceCreatedEvent:
        return InvoiceCreatedEvent.model_validate(await self._request("GET", f"/invoices/{invoice_id}"))

    # ── Products & prices ─────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_product(self, product_id: str) -> ProductResponse:
        return ProductResponse.model_validate(await self._request("GET", f"/products/{product_id}"))

    @with_gateway_retry()
    async def get_products_by_id(self, product_ids: list[str]) -> dict[str, ProductResponse]:
        wanted = set(product_ids)
        products = [ProductResponse.model_validate(row) for row in await self._list("/products")]
        return {p.id: p for p in products if p.id in wanted}

    @with_gateway_retry()
    async def get_price(self, price_id: str) -> PriceResponse:
        return PriceResponse.model_validate(await self._request("GET", f"/prices/{price_id}"))

    @with_gateway_retry()
    async def get_prices_by_id(self, price_ids: list[str]) -> dict[str, PriceResponse]:
        wanted = set(price_ids)
        prices = [PriceResponse.model_validate(row) for row in await self._list("/prices")]
        return {p.id: p for p in prices if p.id in wanted}
