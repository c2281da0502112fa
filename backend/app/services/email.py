"""Outbound invoice email over SMTP.

``EmailSender.send`` never raises for transport problems: a down or
misconfigured mail server is logged and reported as ``False`` so the
caller can carry on with the next invoice.  Messages are not retried.

Configuration (via .env):
    SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, SMTP_USE_TLS,
    EMAIL_FROM, CLIENT_PORTAL_URL
"""

import asyncio
import logging
import os
import smtplib
from datetime import datetime
from email.message import EmailMessage

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import settings
from app.middleware.exceptions import EmailDeliveryError
from app.models.client import Client
from app.models.invoice import Invoice
from app.schemas.invoice import CompanyIdentity

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")
env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)
env.filters["money"] = lambda n: f"{(n or 0):,.2f}"
env.filters["date"] = lambda d: d.strftime("%Y-%m-%d") if isinstance(d, datetime) else ""


def render_invoice_email(
    invoice: Invoice,
    client: Client,
    company: CompanyIdentity,
) -> tuple[str, str]:
    """Return (subject, html_body) for a new-invoice notification."""
    subject = f"Invoice #{invoice.invoice_number} from {company.name}"
    html = env.get_template("invoice_email.html").render(
        invoice=invoice,
        client=client,
        company=company,
        portal_url=settings.client_portal_url.rstrip("/"),
    )
    return subject, html


class EmailSender:
    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool | None = None,
        from_address: str | None = None,
        timeout: int | None = None,
    ):
        self.host = settings.smtp_host if host is None else host
        self.port = port or settings.smtp_port
        self.username = settings.smtp_username if username is None else username
        self.password = settings.smtp_password if password is None else password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.from_address = from_address or settings.email_from
        self.timeout = timeout or settings.smtp_timeout_seconds

    def build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachment: bytes | None = None,
        attachment_name: str = "invoice.pdf",
    ) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")
        if attachment is not None:
            msg.add_attachment(
                attachment,
                maintype="application",
                subtype="pdf",
                filename=attachment_name,
            )
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(msg["To"], str(e)) from e

    async def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachment: bytes | None = None,
        attachment_name: str = "invoice.pdf",
    ) -> bool:
        """Send one message; True on success, False on any delivery failure."""
        if not self.host:
            logger.warning("SMTP not configured, not sending %r to %s", subject, to)
            return False

        msg = self.build_message(to, subject, html_body, attachment, attachment_name)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except EmailDeliveryError as e:
            logger.error("%s", e.message)
            return False

        logger.info("Sent %r to %s", subject, to)
        return True
