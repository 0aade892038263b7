"""Xero Accounting API gateway.

Every public call goes through ``with_gateway_retry``: 429/500 and transport
failures are retried with backoff, anything else surfaces as ``GatewayError``
on the first attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from xero_sync.core.config import settings
from xero_sync.integrations.retry import GatewayError, with_gateway_retry
from xero_sync.integrations.xero.constants import AccountCode, EXPENSE_ACCOUNT_NAME
from xero_sync.integrations.xero.schemas import (
    Account,
    BankTransaction,
    Contact,
    Invoice,
    Item,
    Payment,
    TaxRate,
)
from xero_sync.models.connections import XeroConnection

logger = structlog.get_logger()

TokenRefreshCallback = Callable[[dict[str, Any]], Awaitable[None]]


class XeroClient:
    SERVICE = "xero"

    def __init__(
        self,
        connection: XeroConnection,
        *,
        on_token_refresh: TokenRefreshCallback | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not connection.tenant_id:
            raise ValueError(f"Connection for portal {connection.portal_id} has no tenant")
        self.tenant_id = connection.tenant_id
        self._token_set: dict[str, Any] = dict(connection.token_set or {})
        self._on_token_refresh = on_token_refresh
        self._refresh_lock = asyncio.Lock()
        self._transport = transport

    # ── Transport ─────────────────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token_set.get('access_token', '')}",
            "xero-tenant-id": self.tenant_id,
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict | None = None,
        params: dict | None = None,
        allow_not_found: bool = False,
    ) -> dict | None:
        """Make an authenticated Xero call. Refresh the token once on 401."""
        async with httpx.AsyncClient(
            base_url=settings.XERO_API_URL,
            timeout=settings.GATEWAY_TIMEOUT,
            transport=self._transport,
        ) as client:
            try:
                sent_token = self._token_set.get("access_token")
                resp = await client.request(
                    method, path, json=body, params=params, headers=self._headers()
                )
                if resp.status_code == 401 and self._token_set.get("refresh_token"):
                    await self._refresh_token_set(client, sent_token)
                    resp = await client.request(
                        method, path, json=body, params=params, headers=self._headers()
                    )
            except httpx.TimeoutException as exc:
                raise GatewayError(
                    f"Xero {method} {path} timed out", 504,
                    service=self.SERVICE, transport_error=True, cause=exc,
                ) from exc
            except httpx.TransportError as exc:
                raise GatewayError(
                    f"Xero {method} {path} transport failure", 503,
                    service=self.SERVICE, transport_error=True, cause=exc,
                ) from exc

        if resp.status_code == 404 and allow_not_found:
            return None
        if resp.status_code >= 400:
            raise GatewayError(
                f"Xero {method} {path} failed with {resp.status_code}",
                resp.status_code,
                service=self.SERVICE,
                response_body=_safe_json(resp),
            )
        return resp.json() if resp.content else {}

    async def _refresh_token_set(self, client: httpx.AsyncClient, stale_token: str | None) -> None:
        """Rotate the token set once per client, however many calls saw the 401."""
        async with self._refresh_lock:
            if self._token_set.get("access_token") != stale_token:
                return
            await self._rotate_token_set(client)

    async def _rotate_token_set(self, client: httpx.AsyncClient) -> None:
        resp = await client.post(
            settings.XERO_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._token_set["refresh_token"],
            },
            auth=(settings.XERO_CLIENT_ID, settings.XERO_CLIENT_SECRET),
        )
        if resp.status_code >= 400:
            raise GatewayError(
                "Xero token refresh failed", 401,
                service=self.SERVICE, response_body=_safe_json(resp),
            )
        tokens = resp.json()
        self._token_set.update(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token", self._token_set["refresh_token"]),
            expires_at=(
                datetime.now(timezone.utc) + timedelta(seconds=tokens.get("expires_in", 1800))
            ).isoformat(),
        )
        logger.info("xero_token_refreshed", tenant_id=self.tenant_id)
        if self._on_token_refresh is not None:
            await self._on_token_refresh(dict(self._token_set))

    @staticmethod
    def _first(payload: dict | None, key: str) -> dict | None:
        rows = (payload or {}).get(key) or []
        return rows[0] if rows else None

    # ── Invoices ──────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_invoice_by_id(self, invoice_id: str) -> Invoice | None:
        data = await self._request("GET", f"/Invoices/{invoice_id}", allow_not_found=True)
        row = self._first(data, "Invoices")
        return Invoice.model_validate(row) if row else None

    @with_gateway_retry()
    async def create_invoice(self, invoice: Invoice) -> Invoice | None:
        data = await self._request(
            "POST", "/Invoices",
            body={"Invoices": [invoice.to_xero()]},
            params={"summarizeErrors": "true"},
        )
        row = self._first(data, "Invoices")
        return Invoice.model_validate(row) if row else None

    @with_gateway_retry()
    async def mark_invoice_paid(self, invoice_id: str, amount: float) -> Payment | None:
        # Xero has no "paid" status; settling an invoice means recording a payment
        payment = Payment(
            invoice=Invoice(invoice_id=invoice_id),
            account=Account(code=AccountCode.SALES.value),
            amount=amount,
            date=datetime.now(timezone.utc).date().isoformat(),
        )
        data = await self._request("PUT", "/Payments", body={"Payments": [payment.to_xero()]})
        row = self._first(data, "Payments")
        return Payment.model_validate(row) if row else None

    async def _set_invoice_status(self, invoice_id: str, status: str) -> Invoice | None:
        data = await self._request(
            "POST", f"/Invoices/{invoice_id}",
            body={"Invoices": [{"InvoiceID": invoice_id, "Status": status}]},
        )
        row = self._first(data, "Invoices")
        return Invoice.model_validate(row) if row else None

    @with_gateway_retry()
    async def void_invoice(self, invoice_id: str) -> Invoice | None:
        return await self._set_invoice_status(invoice_id, "VOIDED")

    @with_gateway_retry()
    async def delete_invoice(self, invoice_id: str) -> Invoice | None:
        return await self._set_invoice_status(invoice_id, "DELETED")

    # ── Contacts ──────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_contact(self, contact_id: str) -> Contact | None:
        data = await self._request("GET", f"/Contacts/{contact_id}", allow_not_found=True)
        row = self._first(data, "Contacts")
        if not row:
            return None
        contact = Contact.model_validate(row)
        # Archived contacts cannot be invoiced, treat them as gone
        return None if contact.contact_status == "ARCHIVED" else contact

    @with_gateway_retry()
    async def create_contact(self, contact: Contact) -> Contact:
        data = await self._request(
            "PUT", "/Contacts",
            body={"Contacts": [contact.to_xero()]},
            params={"summarizeErrors": "true"},
        )
        row = self._first(data, "Contacts")
        if not row or not row.get("ContactID"):
            raise GatewayError("Xero returned no contact", 502, service=self.SERVICE, response_body=data)
        return Contact.model_validate(row)

    @with_gateway_retry()
    async def update_contact(self, contact: Contact) -> Contact:
        data = await self._request(
            "POST", f"/Contacts/{contact.contact_id}",
            body={"Contacts": [contact.to_xero()]},
        )
        row = self._first(data, "Contacts")
        if not row:
            raise GatewayError("Xero returned no contact", 502, service=self.SERVICE, response_body=data)
        return Contact.model_validate(row)

    # ── Tax rates ─────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_tax_rates(self) -> list[TaxRate]:
        data = await self._request("GET", "/TaxRates")
        return [TaxRate.model_validate(row) for row in (data or {}).get("TaxRates", [])]

    @with_gateway_retry()
    async def create_tax_rate(self, tax_rate: TaxRate) -> TaxRate:
        data = await self._request("PUT", "/TaxRates", body={"TaxRates": [tax_rate.to_xero()]})
        row = self._first(data, "TaxRates")
        if not row:
            raise GatewayError("Xero returned no tax rate", 502, service=self.SERVICE, response_body=data)
        return TaxRate.model_validate(row)

    # ── Items ─────────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_items(self) -> list[Item]:
        data = await self._request("GET", "/Items")
        return [Item.model_validate(row) for row in (data or {}).get("Items", [])]

    async def get_items_map(self) -> dict[str, Item]:
        return {item.item_id: item for item in await self.get_items() if item.item_id}

    @with_gateway_retry()
    async def create_items(self, items: list[Item]) -> list[Item]:
        if not items:
            return []
        data = await self._request(
            "PUT", "/Items",
            body={"Items": [item.to_xero() for item in items]},
            params={"summarizeErrors": "true"},
        )
        return [Item.model_validate(row) for row in (data or {}).get("Items", [])]

    @with_gateway_retry()
    async def update_item(self, item_id: str, item: Item) -> Item:
        data = await self._request("POST", f"/Items/{item_id}", body={"Items": [item.to_xero()]})
        row = self._first(data, "Items")
        if not row:
            raise GatewayError("Xero returned no item", 502, service=self.SERVICE, response_body=data)
        return Item.model_validate(row)

    @with_gateway_retry()
    async def delete_item(self, item_id: str) -> None:
        await self._request("DELETE", f"/Items/{item_id}")

    # ── Accounts ──────────────────────────────────────────────────────────────

    @with_gateway_retry()
    async def get_accounts(self) -> list[Account]:
        data = await self._request("GET", "/Accounts")
        return [Account.model_validate(row) for row in (data or {}).get("Accounts", [])]

    @with_gateway_retry()
    async def enable_account_payments(self, account_id: str) -> None:
        await self._request(
            "POST", f"/Accounts/{account_id}",
            body={"Accounts": [{"AccountID": account_id, "EnablePaymentsToAccount": True}]},
        )

    @with_gateway_retry()
    async def create_account(self, account: Account) -> Account | None:
        data = await self._request("PUT", "/Accounts", body=account.to_xero())
        row = self._first(data, "Accounts")
        return Account.model_validate(row) if row else None

    async def create_expense_account(self) -> Account | None:
        return await self.create_account(
            Account(
                code=AccountCode.MERCHANT_FEES.value,
                name=EXPENSE_ACCOUNT_NAME,
                type="EXPENSE",
                enable_payments_to_account=True,
            )
        )

    # ── Bank transactions ─────────────────────────────────────────────────────

    @with_gateway_retry()
    async def create_bank_transaction(self, transaction: BankTransaction) -> BankTransaction | None:
        data = await self._request(
            "PUT", "/BankTransactions",
            body={"BankTransactions": [transaction.to_xero()]},
            params={"summarizeErrors": "true"},
        )
        row = self._first(data, "BankTransactions")
        return BankTransaction.model_validate(row) if row else None


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
