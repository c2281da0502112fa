"""Invoice dispatch: render the PDF and email it to the client.

Runs after a generated invoice has been committed.  Nothing here touches
the invoice itself: a missing client, a render failure or a mail failure
leaves the invoice in ``draft`` and is only logged.

Issuer identity is resolved in order:
  1. the user's CompanySettings row
  2. the User row (name / company / email / address / phone)
  3. a placeholder carrying the configured company name only
"""

import logging
from typing import Awaitable, Callable, Sequence

from app.config import settings
from app.middleware.exceptions import PdfRenderError
from app.models.client import Client
from app.models.invoice import Invoice, InvoiceItem
from app.schemas.invoice import CompanyIdentity
from app.services.email import EmailSender, render_invoice_email
from app.services.pdf import render_invoice_pdf
from app.services.storage import InvoiceStore

logger = logging.getLogger(__name__)

PdfRenderer = Callable[
    [Invoice, Sequence[InvoiceItem], Client, CompanyIdentity], Awaitable[bytes]
]


class InvoiceDispatcher:
    def __init__(
        self,
        store: InvoiceStore,
        sender: EmailSender,
        renderer: PdfRenderer = render_invoice_pdf,
    ):
        self.store = store
        self.sender = sender
        self.renderer = renderer

    async def resolve_company(self, user_id: str) -> CompanyIdentity:
        profile = await self.store.get_company_settings(user_id)
        user = await self.store.get_user(user_id)

        if profile is None and user is None:
            logger.warning("No company profile for user %s, using placeholder", user_id)
            return CompanyIdentity(name=settings.company_name)

        def pick(*values: str | None) -> str:
            return next((v for v in values if v), "")

        return CompanyIdentity(
            name=pick(
                profile and profile.company_name,
                user and user.company,
                user and user.name,
                settings.company_name,
            ),
            email=pick(profile and profile.email, user and user.email),
            address=pick(profile and profile.address, user and user.address),
            phone=pick(profile and profile.phone, user and user.phone),
            website=pick(profile and profile.website),
            tax_number=pick(profile and profile.tax_number),
        )

    async def dispatch(self, invoice: Invoice, items: Sequence[InvoiceItem]) -> bool:
        """Render and email one invoice.  Returns True if the email went out."""
        client = await self.store.get_client(invoice.client_id)
        if client is None:
            logger.warning(
                "Client %s not found, invoice %s not delivered",
                invoice.client_id, invoice.invoice_number,
            )
            return False
        if not client.email:
            logger.warning(
                "Client %s has no email address, invoice %s not delivered",
                client.id, invoice.invoice_number,
            )
            return False

        company = await self.resolve_company(invoice.user_id)

        try:
            pdf_bytes = await self.renderer(invoice, items, client, company)
        except PdfRenderError as e:
            logger.error("%s", e.message)
            return False

        subject, html_body = render_invoice_email(invoice, client, company)
        sent = await self.sender.send(
            to=client.email,
            subject=subject,
            html_body=html_body,
            attachment=pdf_bytes,
            attachment_name=f"invoice-{invoice.invoice_number}.pdf",
        )
        if not sent:
            logger.warning(
                "Invoice %s created but email to %s failed",
                invoice.invoice_number, client.email,
            )
        return sent
