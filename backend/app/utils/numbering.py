"""Invoice number sequencing for recurring series.

The next number is derived from the previous one without consulting the
database:

  INV-1001  → INV-1002
  INV-0099  → INV-0100   (zero-padding width kept)
  INV-999   → INV-1000   (width grows when it has to)
  CONSULT   → CONSULT-1  (no trailing digits)
"""

import re

_TRAILING_DIGITS = re.compile(r"^(?P<prefix>.*?)(?P<seq>\d+)$", re.DOTALL)


def next_invoice_number(current: str) -> str:
    """Increment the trailing digit run of ``current`` by one."""
    match = _TRAILING_DIGITS.match(current)
    if not match:
        return f"{current}-1"

    seq = match.group("seq")
    width = len(seq)
    return f"{match.group('prefix')}{int(seq) + 1:0{width}d}"
