"""Aggregate model imports for Alembic auto-detection."""

from app.models.user import User  # noqa: F401
from app.models.company_settings import CompanySettings  # noqa: F401
from app.models.client import Client  # noqa: F401
from app.models.item import Item  # noqa: F401
from app.models.invoice import (  # noqa: F401
    Invoice,
    InvoiceFrequency,
    InvoiceItem,
    InvoiceStatus,
)

__all__ = [
    "User", "CompanySettings", "Client", "Item",
    "Invoice", "InvoiceItem", "InvoiceStatus", "InvoiceFrequency",
]
