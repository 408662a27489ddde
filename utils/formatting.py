# utils/formatting.py

from datetime import date
from decimal import Decimal, ROUND_HALF_UP


def format_money(value: Decimal) -> str:
    """
    Two-decimal display of a monetary amount.
    Example: Decimal("62.5") -> "62.50"
    """
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def default_batch_number(day: date, prefix: str = "LOTE") -> str:
    """
    Lot label used when the operator does not type one, e.g. LOTE-20240115.
    """
    return f"{prefix}-{day:%Y%m%d}"
