# domain/models.py

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

DEFAULT_GLYPH = "🥗"
DEFAULT_COLOR = "#4CAF50"

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Convert a price coming from the database (int, float, str or None)
    into a two-decimal Decimal. Floats go through str() so 12.5 stays 12.50.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENTS)
    return Decimal(str(value)).quantize(CENTS)


@dataclass(frozen=True)
class ProductType:
    id: str
    name: str
    unit_price: Decimal
    glyph: str = DEFAULT_GLYPH
    color: str = DEFAULT_COLOR


@dataclass(frozen=True)
class Store:
    id: str
    name: str


@dataclass
class DailyDemandSummary:
    """
    Requested vs produced for one product type on one day.
    `remaining` is not clamped, over-delivery shows as a negative number.
    """
    product_type_id: str
    name: str
    glyph: str
    color: str
    requested: int
    produced: int

    @property
    def remaining(self) -> int:
        return self.requested - self.produced


@dataclass
class DeliveryItem:
    id: str
    delivery_id: str
    product_type_id: str
    product_name: str
    product_glyph: str
    quantity: int
    unit_price: Decimal
    batch_number: str

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass
class Delivery:
    id: str
    delivery_number: str
    store_id: str
    store_name: str
    production_date: date
    total_items: int
    total_value: Decimal
    status: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[DeliveryItem] = field(default_factory=list)


@dataclass
class StoreDeliveries:
    """
    Everything shipped to one store today, folded across its deliveries.
    """
    store_id: str
    store_name: str
    delivery_numbers: List[str] = field(default_factory=list)
    items: List[DeliveryItem] = field(default_factory=list)
    total_items: int = 0
    total_value: Decimal = Decimal("0.00")


@dataclass
class CartItem:
    id: str
    product_type_id: str
    name: str
    glyph: str
    quantity: int
    unit_price: Decimal  # captured from the catalog when added
    batch_number: str

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass
class StoreBag:
    store_id: str
    store_name: str
    items: List[CartItem] = field(default_factory=list)
    total_items: int = 0
    total_value: Decimal = Decimal("0.00")


class CommitOutcome(Enum):
    CREATED = "created"
    MERGED = "merged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StoreCommitResult:
    store_id: str
    store_name: str
    outcome: CommitOutcome
    delivery_number: Optional[str] = None
    delivery_id: Optional[str] = None
    items_written: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CommitResult:
    production_date: date
    stores: List[StoreCommitResult] = field(default_factory=list)

    def with_outcome(self, outcome: CommitOutcome) -> List[StoreCommitResult]:
        return [s for s in self.stores if s.outcome is outcome]

    @property
    def created(self) -> List[StoreCommitResult]:
        return self.with_outcome(CommitOutcome.CREATED)

    @property
    def merged(self) -> List[StoreCommitResult]:
        return self.with_outcome(CommitOutcome.MERGED)

    @property
    def skipped(self) -> List[StoreCommitResult]:
        return self.with_outcome(CommitOutcome.SKIPPED)

    @property
    def failed(self) -> List[StoreCommitResult]:
        return self.with_outcome(CommitOutcome.FAILED)

    @property
    def ok(self) -> bool:
        return not self.failed
