"""Invoice PDF rendering (fpdf2).

Layout: issuer block, invoice details, bill-to block, line items table,
totals, notes.  The document's creation date is pinned to the invoice's
issue date so identical inputs produce identical bytes.

fpdf2's core Helvetica font is used with the Windows-1252 encoding; text
outside that code page fails the render with PdfRenderError rather than
producing a corrupt document.
"""

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from fpdf import FPDF
from fpdf.errors import FPDFException

from app.middleware.exceptions import PdfRenderError
from app.models.client import Client
from app.models.invoice import Invoice, InvoiceItem
from app.schemas.invoice import CompanyIdentity


def _fmt_date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _money(value: float | None) -> str:
    return f"${(value or 0):,.2f}"


def _line(pdf: FPDF, text: str, h: float = 6, **kwargs) -> None:
    pdf.cell(0, h, text, new_x="LMARGIN", new_y="NEXT", **kwargs)


def _build_pdf(
    invoice: Invoice,
    items: Sequence[InvoiceItem],
    client: Client,
    company: CompanyIdentity,
) -> bytes:
    pdf = FPDF()
    # Core fonts with cp1252 cover em dashes, curly quotes and the euro sign
    pdf.core_fonts_encoding = "windows-1252"
    issued = invoice.issue_date or invoice.created_at
    if issued is not None:
        pdf.set_creation_date(issued.replace(tzinfo=timezone.utc))
    pdf.set_title(f"Invoice {invoice.invoice_number}")
    pdf.set_author(company.name)
    pdf.add_page()
    pdf.set_auto_page_break(auto=True, margin=15)

    # --- Header ---
    pdf.set_font("Helvetica", "B", 22)
    pdf.set_text_color(59, 130, 246)
    pdf.cell(95, 10, "INVOICE")
    pdf.set_text_color(0, 0, 0)
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(95, 10, company.name, align="R", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(95, 5, f"#{invoice.invoice_number}")
    pdf.cell(95, 5, company.email, align="R", new_x="LMARGIN", new_y="NEXT")
    for part in (company.phone, *company.address.splitlines(), company.tax_number):
        if part:
            pdf.cell(95, 5, "")
            pdf.cell(95, 5, part, align="R", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(6)

    # --- Invoice details ---
    pdf.set_fill_color(243, 244, 246)
    pdf.set_font("Helvetica", "B", 11)
    _line(pdf, "  Invoice Details", h=7, fill=True)
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(95, 6, f"  Date: {_fmt_date(invoice.issue_date)}")
    _line(pdf, f"Due Date: {_fmt_date(invoice.due_date)}")
    _line(pdf, f"  Status: {str(invoice.status).upper()}")
    pdf.ln(4)

    # --- Bill To ---
    pdf.set_font("Helvetica", "B", 11)
    _line(pdf, "  Bill To", h=7, fill=True)
    pdf.set_font("Helvetica", "", 10)
    for part in (client.name, client.company, client.email, client.phone):
        if part:
            _line(pdf, f"  {part}")
    if client.address:
        for part in client.address.splitlines():
            _line(pdf, f"  {part}")
    pdf.ln(4)

    # --- Line items ---
    pdf.set_font("Helvetica", "B", 9)
    pdf.cell(90, 6, "  Item", border="B", fill=True)
    pdf.cell(25, 6, "Quantity", border="B", align="C", fill=True)
    pdf.cell(35, 6, "Price", border="B", align="R", fill=True)
    pdf.cell(40, 6, "Total", border="B", align="R", fill=True,
             new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 9)
    for item in items:
        pdf.cell(90, 6, f"  {item.description}")
        pdf.cell(25, 6, str(item.quantity), align="C")
        pdf.cell(35, 6, _money(item.price), align="R")
        pdf.cell(40, 6, _money(item.total), align="R",
                 new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)

    # --- Totals ---
    pdf.set_font("Helvetica", "", 10)
    rows = [("Subtotal", _money(invoice.subtotal))]
    if (invoice.tax or 0) > 0:
        rows.append(("Tax", _money(invoice.tax)))
    if (invoice.discount or 0) > 0:
        rows.append(("Discount", f"-{_money(invoice.discount)}"))
    for label, amount in rows:
        pdf.cell(150, 6, label, align="R")
        pdf.cell(40, 6, amount, align="R", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(150, 8, "Total", align="R")
    pdf.cell(40, 8, _money(invoice.total), align="R", new_x="LMARGIN", new_y="NEXT")

    # --- Notes ---
    if invoice.notes:
        pdf.ln(6)
        pdf.set_font("Helvetica", "B", 11)
        _line(pdf, "  Notes", h=7, fill=True)
        pdf.set_font("Helvetica", "", 10)
        pdf.multi_cell(0, 5, invoice.notes)

    return bytes(pdf.output())


async def render_invoice_pdf(
    invoice: Invoice,
    items: Sequence[InvoiceItem],
    client: Client,
    company: CompanyIdentity,
) -> bytes:
    """Render the invoice to PDF bytes.

    Raises:
        PdfRenderError if fpdf2 rejects the content.
    """
    try:
        return await asyncio.to_thread(_build_pdf, invoice, items, client, company)
    except (FPDFException, UnicodeEncodeError, ValueError, TypeError) as e:
        raise PdfRenderError(invoice.invoice_number, str(e)) from e
