# services/sequence_service.py
import logging
import re
from datetime import date
from typing import Optional

from data_integrator import SupabaseStore

logger = logging.getLogger(__name__)

DELIVERIES_TABLE = "production_deliveries"

SEQUENCE_SUFFIX = re.compile(r"(\d{4})$")


def format_delivery_number(prefix: str, day: date, sequence: int) -> str:
    """
    ENT, 2024-01-15, 7 -> "ENT-20240115-0007"
    """
    return f"{prefix}-{day:%Y%m%d}-{sequence:04d}"


def parse_sequence(delivery_number: Optional[str]) -> Optional[int]:
    if not delivery_number:
        return None
    match = SEQUENCE_SUFFIX.search(delivery_number)
    return int(match.group(1)) if match else None


class SequenceCounter:
    """
    Running counter for one commit batch. allocate() is called once per
    delivery created; advance_to() moves past numbers found to be taken.
    """

    def __init__(self, current: int):
        self.current = current

    def allocate(self) -> int:
        self.current += 1
        return self.current

    def advance_to(self, value: int) -> None:
        self.current = max(self.current, value)


class DeliverySequencer:
    def __init__(self, store: SupabaseStore):
        self.store = store

    def next_sequence(self) -> int:
        """
        Value the counter continues from: the 4-digit suffix of the most
        recently created delivery across all days, or 0 when there is none
        or it does not parse. The caller increments before use.
        Raises StoreError when the last delivery cannot be read.
        """
        rows = self.store.query_rows(
            DELIVERIES_TABLE,
            "delivery_number",
            order_by="created_at",
            descending=True,
            limit=1,
        )
        if not rows:
            return 0

        sequence = parse_sequence(rows[0].get("delivery_number"))
        if sequence is None:
            logger.warning("Unparseable delivery number %r, starting sequence at 0", rows[0].get("delivery_number"))
            return 0
        return sequence

    def start_counter(self) -> SequenceCounter:
        return SequenceCounter(self.next_sequence())
