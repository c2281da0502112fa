"""Invoice storage used by the recurring engine.

Reads run in short-lived sessions.  Writes go through ``transaction()``,
which yields an ``InvoiceWriter`` bound to a single session inside
``session.begin()``: everything written through it commits together or is
rolled back together.

    async with store.transaction() as tx:
        invoice = await tx.create_invoice(fields)
        await tx.create_invoice_items(invoice.id, items)
        await tx.update_invoice(template.id, next_invoice_date=...)
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.middleware.exceptions import ResourceNotFoundError
from app.models.client import Client
from app.models.company_settings import CompanySettings
from app.models.invoice import Invoice, InvoiceItem
from app.models.user import User
from app.schemas.invoice import InvoiceFields, InvoiceItemFields


async def _items_for(db: AsyncSession, invoice_id: str) -> list[InvoiceItem]:
    result = await db.execute(
        select(InvoiceItem)
        .where(InvoiceItem.invoice_id == invoice_id)
        .order_by(InvoiceItem.created_at, InvoiceItem.id)
    )
    return list(result.scalars().all())


class InvoiceWriter:
    """Write operations scoped to one open transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_invoice_items(self, invoice_id: str) -> list[InvoiceItem]:
        return await _items_for(self.db, invoice_id)

    async def create_invoice(self, fields: InvoiceFields) -> Invoice:
        invoice = Invoice(**fields.to_row())
        self.db.add(invoice)
        await self.db.flush()  # populate invoice.id
        return invoice

    async def create_invoice_items(
        self,
        invoice_id: str,
        items: Sequence[InvoiceItemFields],
    ) -> list[InvoiceItem]:
        rows = [
            InvoiceItem(invoice_id=invoice_id, **item.model_dump())
            for item in items
        ]
        self.db.add_all(rows)
        await self.db.flush()
        return rows

    async def update_invoice(self, invoice_id: str, **fields) -> None:
        result = await self.db.execute(
            update(Invoice).where(Invoice.id == invoice_id).values(**fields)
        )
        if result.rowcount == 0:
            raise ResourceNotFoundError("Invoice", invoice_id)


class InvoiceStore:
    """SQLAlchemy-backed storage collaborator."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InvoiceWriter]:
        async with self.session_factory() as db:
            async with db.begin():
                yield InvoiceWriter(db)

    # ── Reads ────────────────────────────────────────────────

    async def list_recurring_invoices(self) -> list[Invoice]:
        """Every recurring invoice that still has a next date scheduled."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Invoice).where(
                    Invoice.is_recurring == True,  # noqa: E712
                    Invoice.next_invoice_date.is_not(None),
                )
            )
            return list(result.scalars().all())

    async def get_invoice(self, invoice_id: str) -> Invoice | None:
        async with self.session_factory() as db:
            return await db.get(Invoice, invoice_id)

    async def get_invoice_items(self, invoice_id: str) -> list[InvoiceItem]:
        async with self.session_factory() as db:
            return await _items_for(db, invoice_id)

    async def get_client(self, client_id: str) -> Client | None:
        async with self.session_factory() as db:
            return await db.get(Client, client_id)

    async def get_user(self, user_id: str) -> User | None:
        async with self.session_factory() as db:
            return await db.get(User, user_id)

    async def get_company_settings(self, user_id: str) -> CompanySettings | None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(CompanySettings).where(CompanySettings.user_id == user_id)
            )
            return result.scalar_one_or_none()
