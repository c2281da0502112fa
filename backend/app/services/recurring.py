"""Recurring invoice generation.

One pass:
  1. capture ``now`` once
  2. load every recurring invoice with a next date
  3. for each one whose next date has arrived, in its own transaction:
       - copy its line items
       - insert the next invoice (draft, issued now, due by frequency)
       - insert the copied items against the new invoice
       - move the template's next_invoice_date to the new invoice's
  4. dispatch (PDF + email) the new invoice

A failure in step 3 rolls back that invoice only; its next date is left
where it was so the next pass picks it up again.  Dispatch failures never
touch the committed invoice.  Invoices are processed one at a time in the
order storage returns them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from app.middleware.exceptions import BusinessLogicError
from app.models.invoice import Invoice, InvoiceFrequency, InvoiceItem, InvoiceStatus
from app.schemas.invoice import InvoiceFields, InvoiceItemFields
from app.services.dispatcher import InvoiceDispatcher
from app.services.storage import InvoiceStore
from app.utils.numbering import next_invoice_number
from app.utils.schedule import due_date, is_due, next_occurrence, normalize_frequency

logger = logging.getLogger(__name__)


@dataclass
class RecurringRunSummary:
    now: datetime
    due: int = 0
    generated: list[str] = field(default_factory=list)  # new invoice ids
    failed: list[str] = field(default_factory=list)     # template invoice ids
    delivered: int = 0
    undelivered: int = 0


# ── Builders ────────────────────────────────────────────────


def build_next_invoice(template: Invoice, now: datetime) -> InvoiceFields:
    """Header of the invoice that follows ``template`` in its series."""
    frequency = normalize_frequency(template.frequency)
    return InvoiceFields(
        user_id=template.user_id,
        client_id=template.client_id,
        invoice_number=next_invoice_number(template.invoice_number),
        status=InvoiceStatus.DRAFT,
        issue_date=now,
        due_date=due_date(now, frequency),
        subtotal=template.subtotal,
        tax=template.tax or 0.0,
        discount=template.discount or 0.0,
        total=template.total,
        notes=template.notes,
        is_recurring=True,
        frequency=frequency,
        next_invoice_date=next_occurrence(now, frequency),
    )


def clone_line_items(items: Sequence[InvoiceItem]) -> list[InvoiceItemFields]:
    """Verbatim copies of ``items``; pricing is not re-read from the catalog."""
    return [InvoiceItemFields.model_validate(item) for item in items]


# ── Pass ────────────────────────────────────────────────────


async def _generate_next(
    store: InvoiceStore,
    template: Invoice,
    now: datetime,
) -> tuple[Invoice, list[InvoiceItem]]:
    async with store.transaction() as tx:
        template_items = await tx.get_invoice_items(template.id)
        invoice = await tx.create_invoice(build_next_invoice(template, now))
        items = await tx.create_invoice_items(
            invoice.id, clone_line_items(template_items)
        )
        await tx.update_invoice(
            template.id, next_invoice_date=invoice.next_invoice_date
        )
    return invoice, items


async def process_recurring_invoices(
    store: InvoiceStore,
    dispatcher: InvoiceDispatcher,
    *,
    now: datetime | None = None,
) -> RecurringRunSummary:
    """Run one recurring pass.

    Errors loading the recurring set propagate (the whole pass is void);
    everything after that is isolated per invoice.
    """
    now = now or datetime.utcnow()
    summary = RecurringRunSummary(now=now)

    recurring = await store.list_recurring_invoices()
    due = [inv for inv in recurring if is_due(inv.next_invoice_date, now)]
    summary.due = len(due)
    logger.info(
        "Recurring pass at %s: %d recurring, %d due",
        now.isoformat(), len(recurring), len(due),
    )

    for template in due:
        try:
            invoice, items = await _generate_next(store, template, now)
        except Exception:
            logger.exception(
                "Failed to generate next invoice for %s (%s)",
                template.invoice_number, template.id,
            )
            summary.failed.append(template.id)
            continue

        summary.generated.append(invoice.id)
        logger.info(
            "Generated %s from %s, next run %s",
            invoice.invoice_number,
            template.invoice_number,
            invoice.next_invoice_date.isoformat(),
        )

        try:
            delivered = await dispatcher.dispatch(invoice, items)
        except Exception:
            logger.exception("Dispatch failed for invoice %s", invoice.invoice_number)
            delivered = False

        if delivered:
            summary.delivered += 1
        else:
            summary.undelivered += 1

    logger.info(
        "Recurring pass complete: %d generated, %d failed, %d delivered",
        len(summary.generated), len(summary.failed), summary.delivered,
    )
    return summary


# ── Series setup ────────────────────────────────────────────


async def create_recurring_invoice(
    store: InvoiceStore,
    fields: InvoiceFields,
    items: Sequence[InvoiceItemFields],
    frequency: str | InvoiceFrequency,
    start_date: datetime,
) -> Invoice:
    """Create the first invoice of a recurring series.

    Its next_invoice_date is one step after ``start_date``.

    Raises:
        BusinessLogicError for an unknown frequency.
    """
    try:
        frequency = InvoiceFrequency(frequency)
    except ValueError:
        raise BusinessLogicError(
            f"Unknown frequency: {frequency}", error_code="INVALID_FREQUENCY"
        )

    fields = fields.model_copy(update={
        "is_recurring": True,
        "frequency": frequency,
        "next_invoice_date": next_occurrence(start_date, frequency),
    })
    async with store.transaction() as tx:
        invoice = await tx.create_invoice(fields)
        await tx.create_invoice_items(invoice.id, items)
    return invoice
