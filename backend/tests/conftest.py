"""Pytest configuration and fixtures for Billflow tests.

The recurring engine is exercised against in-memory fakes of its
collaborators (storage, PDF renderer, email sender).  The SQL store tests
use the configured Postgres test database and skip when it is unreachable.
"""

import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.database import Base
from app.middleware.exceptions import PdfRenderError, ResourceNotFoundError
from app.models.client import Client
from app.models.company_settings import CompanySettings
from app.models.invoice import Invoice, InvoiceItem
from app.models.user import User
from app.schemas.invoice import InvoiceFields, InvoiceItemFields


# ── Fake collaborators ───────────────────────────────────────────


class FakeWriter:
    def __init__(self, store: "FakeInvoiceStore"):
        self.store = store

    async def get_invoice_items(self, invoice_id: str) -> list[InvoiceItem]:
        return await self.store.get_invoice_items(invoice_id)

    async def create_invoice(self, fields: InvoiceFields) -> Invoice:
        row = fields.to_row() | {"id": str(uuid.uuid4()), "created_at": datetime.utcnow()}
        self.store.invoices[row["id"]] = row
        return Invoice(**row)

    async def create_invoice_items(
        self, invoice_id: str, items: list[InvoiceItemFields]
    ) -> list[InvoiceItem]:
        created = []
        for item in items:
            row = item.model_dump() | {"id": str(uuid.uuid4()), "invoice_id": invoice_id}
            self.store.items[row["id"]] = row
            created.append(InvoiceItem(**row))
        return created

    async def update_invoice(self, invoice_id: str, **fields) -> None:
        if invoice_id in self.store.failing_updates:
            raise RuntimeError(f"write failed for {invoice_id}")
        if invoice_id not in self.store.invoices:
            raise ResourceNotFoundError("Invoice", invoice_id)
        self.store.invoices[invoice_id].update(fields)


class FakeInvoiceStore:
    """In-memory stand-in for InvoiceStore with rollback on error."""

    def __init__(self):
        self.invoices: dict[str, dict] = {}
        self.items: dict[str, dict] = {}
        self.clients: dict[str, Client] = {}
        self.users: dict[str, User] = {}
        self.company_settings: dict[str, CompanySettings] = {}
        self.failing_updates: set[str] = set()
        self.unreachable = False

    # ── Seeding ──────────────────────────────────────────────

    def add_invoice(self, **fields) -> Invoice:
        row = {
            "id": str(uuid.uuid4()),
            "user_id": "user-1",
            "client_id": "client-1",
            "status": "sent",
            "issue_date": datetime(2023, 12, 1),
            "due_date": datetime(2024, 1, 1),
            "subtotal": 1000.0,
            "tax": 0.0,
            "discount": 0.0,
            "total": 1000.0,
            "notes": None,
            "is_recurring": True,
            "frequency": "monthly",
            "next_invoice_date": datetime(2024, 1, 1),
            "created_at": datetime(2023, 12, 1),
        } | fields
        self.invoices[row["id"]] = row
        return Invoice(**row)

    def add_item(self, invoice_id: str, **fields) -> InvoiceItem:
        row = {
            "id": str(uuid.uuid4()),
            "invoice_id": invoice_id,
            "item_id": None,
            "description": "Consulting",
            "quantity": 1,
            "price": 1000.0,
            "total": 1000.0,
        } | fields
        self.items[row["id"]] = row
        return InvoiceItem(**row)

    def invoice(self, invoice_id: str) -> dict:
        return self.invoices[invoice_id]

    def items_of(self, invoice_id: str) -> list[dict]:
        return [r for r in self.items.values() if r["invoice_id"] == invoice_id]

    def generated_from(self, number: str) -> list[dict]:
        return [r for r in self.invoices.values() if r["invoice_number"] == number]

    # ── Store protocol ───────────────────────────────────────

    @asynccontextmanager
    async def transaction(self):
        snapshot = (copy.deepcopy(self.invoices), copy.deepcopy(self.items))
        try:
            yield FakeWriter(self)
        except BaseException:
            self.invoices, self.items = snapshot
            raise

    async def list_recurring_invoices(self) -> list[Invoice]:
        if self.unreachable:
            raise ConnectionError("storage unreachable")
        return [
            Invoice(**row) for row in self.invoices.values()
            if row["is_recurring"] and row["next_invoice_date"] is not None
        ]

    async def get_invoice_items(self, invoice_id: str) -> list[InvoiceItem]:
        return [InvoiceItem(**row) for row in self.items_of(invoice_id)]

    async def get_client(self, client_id: str) -> Client | None:
        return self.clients.get(client_id)

    async def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    async def get_company_settings(self, user_id: str) -> CompanySettings | None:
        return self.company_settings.get(user_id)


class FakeSender:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent: list[dict] = []

    async def send(self, to, subject, html_body, attachment=None, attachment_name="invoice.pdf"):
        self.sent.append({
            "to": to,
            "subject": subject,
            "html_body": html_body,
            "attachment": attachment,
            "attachment_name": attachment_name,
        })
        return self.ok


class FakeRenderer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    async def __call__(self, invoice, items, client, company) -> bytes:
        self.calls.append({
            "invoice": invoice, "items": list(items), "client": client, "company": company,
        })
        if self.fail:
            raise PdfRenderError(invoice.invoice_number, "boom")
        return f"%PDF-{invoice.invoice_number}".encode()


# ── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 1, 15)


@pytest.fixture
def store() -> FakeInvoiceStore:
    store = FakeInvoiceStore()
    store.users["user-1"] = User(
        id="user-1", email="owner@acme.test", name="Ada Owner",
        company="Acme Consulting", phone="555-0100", address="1 Main St\nSpringfield",
    )
    store.clients["client-1"] = Client(
        id="client-1", user_id="user-1", name="Globex", email="ap@globex.test",
    )
    return store


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def dispatcher(store, sender, renderer):
    from app.services.dispatcher import InvoiceDispatcher

    return InvoiceDispatcher(store, sender, renderer=renderer)


@pytest.fixture
def template(store) -> Invoice:
    """INV-0005, monthly, due since 2024-01-01, one consulting line."""
    invoice = store.add_invoice(invoice_number="INV-0005")
    store.add_item(invoice.id, description="Consulting", quantity=1, price=1000.0, total=1000.0)
    return invoice


# ── Database fixtures (integration) ──────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in the `<db>_test` database; skips if Postgres is down."""
    base, _, name = settings.database_url.rpartition("/")
    engine = create_async_engine(f"{base}/{name}_test", echo=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"test database unavailable: {e}")

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the ASGI app (lifespan not started, so no scheduler)."""
    from app.database import engine
    from app.main import app
    from app.utils.redis_client import close_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # pools are bound to this test's event loop
    await close_redis()
    await engine.dispose()


# ── Test Markers ─────────────────────────────────────────────────


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
