"""Recurring schedule arithmetic.

Frequencies:
  weekly     → +7 days
  biweekly   → +14 days
  monthly    → +1 calendar month
  quarterly  → +3 calendar months
  annually   → +1 calendar year

Calendar steps use dateutil's relativedelta, which clamps to the last day
of a shorter month: Jan 31 + 1 month = Feb 28 (Feb 29 in leap years),
Feb 29 + 1 year = Feb 28.  Unknown or missing frequencies fall back to
monthly.
"""

from datetime import date, datetime
from typing import TypeVar

from dateutil.relativedelta import relativedelta

from app.models.invoice import InvoiceFrequency

D = TypeVar("D", date, datetime)

_STEPS: dict[InvoiceFrequency, relativedelta] = {
    InvoiceFrequency.WEEKLY: relativedelta(days=7),
    InvoiceFrequency.BIWEEKLY: relativedelta(days=14),
    InvoiceFrequency.MONTHLY: relativedelta(months=1),
    InvoiceFrequency.QUARTERLY: relativedelta(months=3),
    InvoiceFrequency.ANNUALLY: relativedelta(years=1),
}


def normalize_frequency(value: str | InvoiceFrequency | None) -> InvoiceFrequency:
    """Map a stored frequency string to the enum, defaulting to monthly."""
    if isinstance(value, InvoiceFrequency):
        return value
    try:
        return InvoiceFrequency(value)
    except ValueError:
        return InvoiceFrequency.MONTHLY


def next_occurrence(base: D, frequency: str | InvoiceFrequency | None) -> D:
    """Return the next firing date of a series one step after ``base``."""
    return base + _STEPS[normalize_frequency(frequency)]


def due_date(issue_date: D, frequency: str | InvoiceFrequency | None) -> D:
    """Due date of a generated invoice, offset from its own issue date."""
    return next_occurrence(issue_date, frequency)


def is_due(next_invoice_date: datetime | None, now: datetime) -> bool:
    return next_invoice_date is not None and next_invoice_date <= now
