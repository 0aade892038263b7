"""Shared test fixtures for the Xero sync test suite."""

import itertools
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import xero_sync.models  # noqa: F401  register all tables on Base.metadata
from xero_sync.auth.tokens import encode_workspace_token
from xero_sync.core.config import settings
from xero_sync.core.context import SyncContext
from xero_sync.core.database import Base, get_db
from xero_sync.integrations.copilot.schemas import (
    ClientResponse,
    CompanyResponse,
    PriceResponse,
    ProductResponse,
)
from xero_sync.integrations.retry import GatewayError
from xero_sync.integrations.xero.schemas import (
    Account,
    BankTransaction,
    Contact,
    Invoice,
    Item,
    Payment,
    TaxRate,
)
from xero_sync.main import app
from xero_sync.models.connections import WorkspaceSettings, XeroConnection
from xero_sync.models.synced import SyncedItem
from xero_sync.modules.connections.service import (
    GatewayFactory,
    build_sync_context,
    get_gateway_factory,
)
from xero_sync.schemas.auth import WorkspaceUser
from xero_sync.schemas.events import InvoiceCreatedEvent

# ── Sample identifiers ────────────────────────────────────────────────────────

PORTAL_ID = "portal-test-1"
TENANT_ID = "tenant-test-1"
TEST_API_KEY = "test-copilot-api-key"
TEST_CRON_SECRET = "test-cron-secret"

CLIENT_ID = "client-1"
COMPANY_ID = "company-1"
PRODUCT_ID = "prod-1"
PRICE_ID = "price-1"
UNMAPPED_PRODUCT_ID = "prod-2"
UNMAPPED_PRICE_ID = "price-2"
MAPPED_ITEM_ID = "xero-item-mapped"


def invoice_payload(**overrides: Any) -> dict[str, Any]:
    """Copilot ``invoice.created`` data (camelCase). Open, 7% tax, one mapped line."""
    data: dict[str, Any] = {
        "id": "inv-1",
        "clientId": CLIENT_ID,
        "companyId": COMPANY_ID,
        "collectionMethod": "sendInvoice",
        "number": "INV-1",
        "status": "open",
        "total": 10700,
        "taxAmount": 700,
        "taxPercentage": 7,
        "lineItems": [
            {
                "amount": 10000,
                "quantity": 1,
                "description": "Consulting",
                "priceId": PRICE_ID,
                "productId": PRODUCT_ID,
            }
        ],
    }
    data.update(overrides)
    return data


def invoice_event(**overrides: Any) -> InvoiceCreatedEvent:
    return InvoiceCreatedEvent.model_validate(invoice_payload(**overrides))


# ── Fake gateways ─────────────────────────────────────────────────────────────


class FakeXero:
    """In-memory Xero tenant. Records each call; ``fail()`` queues errors per method."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.invoices: dict[str, Invoice] = {}
        self.contacts: dict[str, Contact] = {}
        self.items: dict[str, Item] = {}
        self.tax_rates: list[TaxRate] = []
        self.accounts: list[Account] = []
        self.payments: list[Payment] = []
        self.bank_transactions: list[BankTransaction] = []
        self._failures: dict[str, list[Exception]] = {}
        self._ids = itertools.count(1)

    def fail(self, method: str, exc: Exception | None = None, times: int = 1) -> None:
        exc = exc or GatewayError(f"Xero {method} failed with 500", 500, service="xero")
        self._failures.setdefault(method, []).extend([exc] * times)

    def count(self, method: str) -> int:
        return self.calls.count(method)

    def _call(self, method: str) -> None:
        self.calls.append(method)
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # Invoices

    async def get_invoice_by_id(self, invoice_id: str) -> Invoice | None:
        self._call("get_invoice_by_id")
        invoice = self.invoices.get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None

    async def create_invoice(self, invoice: Invoice) -> Invoice | None:
        self._call("create_invoice")
        total_tax = sum(line.tax_amount or 0 for line in invoice.line_items)
        subtotal = sum(line.unit_amount * line.quantity for line in invoice.line_items)
        created = invoice.model_copy(
            deep=True,
            update={
                "invoice_id": self._new_id("xero-inv"),
                "total": subtotal + total_tax,
                "total_tax": total_tax,
            },
        )
        self.invoices[created.invoice_id] = created
        return created.model_copy(deep=True)

    async def mark_invoice_paid(self, invoice_id: str, amount: float) -> Payment | None:
        self._call("mark_invoice_paid")
        payment = Payment(
            payment_id=self._new_id("xero-pay"),
            invoice=Invoice(invoice_id=invoice_id),
            amount=amount,
        )
        self.payments.append(payment)
        self.invoices[invoice_id].status = "PAID"
        return payment

    async def void_invoice(self, invoice_id: str) -> Invoice | None:
        self._call("void_invoice")
        self.invoices[invoice_id].status = "VOIDED"
        return self.invoices[invoice_id].model_copy(deep=True)

    async def delete_invoice(self, invoice_id: str) -> Invoice | None:
        self._call("delete_invoice")
        self.invoices[invoice_id].status = "DELETED"
        return self.invoices[invoice_id].model_copy(deep=True)

    # Contacts

    async def get_contact(self, contact_id: str) -> Contact | None:
        self._call("get_contact")
        contact = self.contacts.get(contact_id)
        return contact.model_copy() if contact else None

    async def create_contact(self, contact: Contact) -> Contact:
        self._call("create_contact")
        created = contact.model_copy(update={"contact_id": self._new_id("xero-contact")})
        self.contacts[created.contact_id] = created
        return created.model_copy()

    async def update_contact(self, contact: Contact) -> Contact:
        self._call("update_contact")
        self.contacts[contact.contact_id] = contact.model_copy()
        return contact.model_copy()

    # Tax rates

    async def get_tax_rates(self) -> list[TaxRate]:
        self._call("get_tax_rates")
        return [rate.model_copy(deep=True) for rate in self.tax_rates]

    async def create_tax_rate(self, tax_rate: TaxRate) -> TaxRate:
        self._call("create_tax_rate")
        created = tax_rate.model_copy(
            deep=True,
            update={
                "tax_type": f"TAX{len(self.tax_rates) + 1:03d}",
                "effective_rate": tax_rate.tax_components[0].rate,
            },
        )
        self.tax_rates.append(created)
        return created.model_copy(deep=True)

    # Items

    async def get_items(self) -> list[Item]:
        self._call("get_items")
        return [item.model_copy(deep=True) for item in self.items.values()]

    async def get_items_map(self) -> dict[str, Item]:
        self._call("get_items_map")
        return {item_id: item.model_copy(deep=True) for item_id, item in self.items.items()}

    async def create_items(self, items: list[Item]) -> list[Item]:
        self._call("create_items")
        created = []
        for item in items:
            row = item.model_copy(deep=True, update={"item_id": self._new_id("xero-item")})
            self.items[row.item_id] = row
            created.append(row.model_copy(deep=True))
        return created

    async def update_item(self, item_id: str, item: Item) -> Item:
        self._call("update_item")
        updated = self.items[item_id].model_copy(
            update=item.model_dump(exclude_none=True, exclude={"item_id"})
        )
        self.items[item_id] = updated
        return updated.model_copy(deep=True)

    async def delete_item(self, item_id: str) -> None:
        self._call("delete_item")
        self.items.pop(item_id, None)

    # Accounts

    async def get_accounts(self) -> list[Account]:
        self._call("get_accounts")
        return [account.model_copy() for account in self.accounts]

    async def enable_account_payments(self, account_id: str) -> None:
        self._call("enable_account_payments")
        for account in self.accounts:
            if account.account_id == account_id:
                account.enable_payments_to_account = True

    async def create_account(self, account: Account) -> Account | None:
        self._call("create_account")
        created = account.model_copy(update={"account_id": self._new_id("xero-account")})
        self.accounts.append(created)
        return created.model_copy()

    async def create_expense_account(self) -> Account | None:
        self._call("create_expense_account")
        created = Account(
            account_id=self._new_id("xero-account"),
            code="6041",
            name="Assembly Processing Fees",
            type="EXPENSE",
            enable_payments_to_account=True,
        )
        self.accounts.append(created)
        return created.model_copy()

    # Bank transactions

    async def create_bank_transaction(self, transaction: BankTransaction) -> BankTransaction | None:
        self._call("create_bank_transaction")
        created = transaction.model_copy(
            deep=True, update={"bank_transaction_id": self._new_id("xero-banktx")}
        )
        self.bank_transactions.append(created)
        return created.model_copy(deep=True)


class FakeCopilot:
    """In-memory Copilot workspace. Unknown ids answer like a 404 from the API."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.clients: dict[str, ClientResponse] = {}
        self.companies: dict[str, CompanyResponse] = {}
        self.invoices: dict[str, InvoiceCreatedEvent] = {}
        self.products: dict[str, ProductResponse] = {}
        self.prices: dict[str, PriceResponse] = {}

    def count(self, method: str) -> int:
        return self.calls.count(method)

    @staticmethod
    def _lookup(store: dict, key: str, path: str) -> Any:
        try:
            return store[key].model_copy(deep=True)
        except KeyError:
            raise GatewayError(
                f"Copilot GET {path}/{key} failed with 404", 404, service="copilot"
            ) from None

    async def get_client(self, client_id: str) -> ClientResponse:
        self.calls.append("get_client")
        return self._lookup(self.clients, client_id, "/clients")

    async def get_company(self, company_id: str) -> CompanyResponse:
        self.calls.append("get_company")
        return self._lookup(self.companies, company_id, "/companies")

    async def get_invoice(self, invoice_id: str) -> InvoiceCreatedEvent:
        self.calls.append("get_invoice")
        return self._lookup(self.invoices, invoice_id, "/invoices")

    async def get_product(self, product_id: str) -> ProductResponse:
        self.calls.append("get_product")
        return self._lookup(self.products, product_id, "/products")

    async def get_products_by_id(self, product_ids: list[str]) -> dict[str, ProductResponse]:
        self.calls.append("get_products_by_id")
        return {pid: self.products[pid] for pid in product_ids if pid in self.products}

    async def get_price(self, price_id: str) -> PriceResponse:
        self.calls.append("get_price")
        return self._lookup(self.prices, price_id, "/prices")

    async def get_prices_by_id(self, price_ids: list[str]) -> dict[str, PriceResponse]:
        self.calls.append("get_prices_by_id")
        return {pid: self.prices[pid] for pid in price_ids if pid in self.prices}


# ── Settings ──────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "COPILOT_API_KEY", TEST_API_KEY)
    monkeypatch.setattr(settings, "CRON_SECRET", TEST_CRON_SECRET)
    monkeypatch.setattr(settings, "MAX_RETRY_ATTEMPTS", 5)
    monkeypatch.setattr(settings, "FLAG_ENABLE_DELETE_SYNC", False)
    monkeypatch.setattr(settings, "GATEWAY_RETRY_MIN_WAIT", 0)
    monkeypatch.setattr(settings, "GATEWAY_RETRY_MAX_WAIT", 0)


# ── Database ──────────────────────────────────────────────────────────────────


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    """In-memory SQLite with working SAVEPOINTs for ``begin_nested``."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    session = AsyncSession(engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()


# ── Gateways ──────────────────────────────────────────────────────────────────


@pytest.fixture
def xero() -> FakeXero:
    return FakeXero()


@pytest.fixture
def copilot() -> FakeCopilot:
    fake = FakeCopilot()
    fake.clients[CLIENT_ID] = ClientResponse(
        id=CLIENT_ID,
        given_name="Ada",
        family_name="Lovelace",
        email="ada@example.com",
        company_id=COMPANY_ID,
    )
    fake.companies[COMPANY_ID] = CompanyResponse(id=COMPANY_ID, name="Analytical Engines Ltd")
    fake.products[PRODUCT_ID] = ProductResponse(
        id=PRODUCT_ID, name="Consulting", description="<p>Hourly <strong>consulting</strong></p>"
    )
    fake.products[UNMAPPED_PRODUCT_ID] = ProductResponse(
        id=UNMAPPED_PRODUCT_ID, name="Workshop", description="Half-day workshop"
    )
    fake.prices[PRICE_ID] = PriceResponse(id=PRICE_ID, product_id=PRODUCT_ID, amount=10000)
    fake.prices[UNMAPPED_PRICE_ID] = PriceResponse(
        id=UNMAPPED_PRICE_ID, product_id=UNMAPPED_PRODUCT_ID, amount=50000
    )
    fake.invoices["inv-1"] = invoice_event()
    return fake


@pytest.fixture
def gateways(xero: FakeXero, copilot: FakeCopilot) -> GatewayFactory:
    return GatewayFactory(
        xero=lambda connection, on_token_refresh: xero,
        copilot=lambda portal_id: copilot,
    )


# ── Workspace ─────────────────────────────────────────────────────────────────


@pytest.fixture
async def connection(db: AsyncSession) -> XeroConnection:
    """An active Xero connection for the sample portal."""
    row = XeroConnection(
        portal_id=PORTAL_ID,
        tenant_id=TENANT_ID,
        status=True,
        token_set={"access_token": "xero-access", "refresh_token": "xero-refresh"},
    )
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
async def workspace_settings(db: AsyncSession, connection: XeroConnection) -> WorkspaceSettings:
    row = WorkspaceSettings(portal_id=PORTAL_ID, tenant_id=TENANT_ID, is_sync_enabled=True)
    db.add(row)
    await db.flush()
    return row


@pytest.fixture
def token() -> str:
    return encode_workspace_token(
        TEST_API_KEY, {"workspaceId": PORTAL_ID, "internalUserId": "iu-1"}
    )


@pytest.fixture
def user(token: str) -> WorkspaceUser:
    return WorkspaceUser(portal_id=PORTAL_ID, token=token, internal_user_id="iu-1")


@pytest.fixture
async def ctx(
    db: AsyncSession,
    user: WorkspaceUser,
    gateways: GatewayFactory,
    workspace_settings: WorkspaceSettings,
) -> SyncContext:
    return await build_sync_context(db, user, gateways)


@pytest.fixture
async def mapped_item(db: AsyncSession, xero: FakeXero, connection: XeroConnection) -> SyncedItem:
    """price-1 mapped to a live Xero item."""
    xero.items[MAPPED_ITEM_ID] = Item(
        item_id=MAPPED_ITEM_ID,
        code="CONSULT01",
        name="Consulting",
        description="Hourly consulting",
    )
    row = SyncedItem(
        portal_id=PORTAL_ID,
        tenant_id=TENANT_ID,
        product_id=PRODUCT_ID,
        price_id=PRICE_ID,
        item_id=MAPPED_ITEM_ID,
    )
    db.add(row)
    await db.flush()
    return row


# ── HTTP ──────────────────────────────────────────────────────────────────────


@pytest.fixture
async def client(db: AsyncSession, gateways: GatewayFactory) -> AsyncGenerator[AsyncClient]:
    """AsyncClient bound to the test session and fake gateways."""

    async def _get_db() -> AsyncGenerator[AsyncSession]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_gateway_factory] = lambda: gateways
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
