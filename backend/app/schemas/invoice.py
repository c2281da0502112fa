"""Pydantic schemas passed between the recurring engine and its collaborators."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.invoice import InvoiceFrequency, InvoiceStatus


class InvoiceItemFields(BaseModel):
    """Values for one new invoice line (invoice_id is assigned on insert)."""
    item_id: str | None = None
    description: str
    # Signed: credit and discount lines carry negative amounts
    quantity: int
    price: float
    total: float

    model_config = {"from_attributes": True}


class InvoiceFields(BaseModel):
    """Values for a new invoice header."""
    user_id: str
    client_id: str
    invoice_number: str = Field(..., max_length=50)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    issue_date: datetime
    due_date: datetime
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0.0, ge=0)
    discount: float = Field(0.0, ge=0)
    total: float = Field(..., ge=0)
    notes: str | None = None
    is_recurring: bool = False
    frequency: InvoiceFrequency | None = None
    next_invoice_date: datetime | None = None

    def to_row(self) -> dict:
        """Column values with enums flattened to their stored strings."""
        return self.model_dump(mode="python") | {
            "status": self.status.value,
            "frequency": self.frequency.value if self.frequency else None,
        }


class CompanyIdentity(BaseModel):
    """Issuer block printed on the PDF header and used in the email."""
    name: str = ""
    email: str = ""
    address: str = ""
    phone: str = ""
    website: str = ""
    tax_number: str = ""
