"""Management CLI for recurring invoices (read-only).

Usage:
    python -m app.cli list-recurring   # Every recurring invoice and its next date
    python -m app.cli list-due         # Recurring invoices the next pass would generate
"""

import sys
from datetime import datetime

from sqlalchemy import create_engine, select

from app.config import settings
from app.models.invoice import Invoice
from app.utils.schedule import is_due


def get_recurring_invoices() -> list:
    engine = create_engine(settings.database_url_sync)
    try:
        with engine.connect() as conn:
            result = conn.execute(
                select(
                    Invoice.id,
                    Invoice.invoice_number,
                    Invoice.frequency,
                    Invoice.next_invoice_date,
                )
                .where(
                    Invoice.is_recurring == True,  # noqa: E712
                    Invoice.next_invoice_date.is_not(None),
                )
                .order_by(Invoice.next_invoice_date)
            )
            return list(result)
    finally:
        engine.dispose()


def _print_rows(rows) -> None:
    for row in rows:
        print(
            f"  {row.invoice_number:<20} {row.frequency or 'monthly':<10} "
            f"{row.next_invoice_date:%Y-%m-%d %H:%M}  {row.id}"
        )


def list_recurring():
    rows = get_recurring_invoices()
    _print_rows(rows)
    print(f"\n{len(rows)} recurring invoice(s)")


def list_due():
    now = datetime.utcnow()
    rows = [r for r in get_recurring_invoices() if is_due(r.next_invoice_date, now)]
    _print_rows(rows)
    print(f"\n{len(rows)} invoice(s) due as of {now:%Y-%m-%d %H:%M} UTC")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "list-recurring":
        list_recurring()
    elif cmd == "list-due":
        list_due()
    else:
        print("Usage: python -m app.cli [list-recurring|list-due]")
