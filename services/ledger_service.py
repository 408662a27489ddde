# services/ledger_service.py
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from data_integrator import Embed, SupabaseStore
from domain.errors import StoreError
from domain.models import DEFAULT_GLYPH, Delivery, DeliveryItem, StoreDeliveries, to_money

logger = logging.getLogger(__name__)

DELIVERIES_TABLE = "production_deliveries"
DELIVERY_ITEMS_TABLE = "delivery_items"

DELIVERY_COLUMNS = (
    "id, delivery_number, store_id, production_date, total_items, "
    "total_value, status, notes, created_by, created_at"
)
ITEM_COLUMNS = "id, delivery_id, salad_type_id, quantity, batch_number, unit_price"

STORE_EMBED = Embed("store", "store_id", "stores", ("name",))
PRODUCT_EMBED = Embed("salad_type", "salad_type_id", "salad_types", ("name", "emoji"))

STORE_PLACEHOLDER = "Store"
PRODUCT_PLACEHOLDER = "Product"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def delivery_from_row(row: Dict[str, Any]) -> Delivery:
    store_obj = row.get("store") or {}
    return Delivery(
        id=row["id"],
        delivery_number=row["delivery_number"],
        store_id=str(row["store_id"]),
        store_name=store_obj.get("name") or STORE_PLACEHOLDER,
        production_date=date.fromisoformat(str(row["production_date"])),
        total_items=int(row.get("total_items") or 0),
        total_value=to_money(row.get("total_value")),
        status=row.get("status") or "",
        notes=row.get("notes"),
        created_by=row.get("created_by"),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def item_from_row(row: Dict[str, Any]) -> DeliveryItem:
    product_obj = row.get("salad_type") or {}
    return DeliveryItem(
        id=row["id"],
        delivery_id=row["delivery_id"],
        product_type_id=str(row["salad_type_id"]),
        product_name=product_obj.get("name") or PRODUCT_PLACEHOLDER,
        product_glyph=product_obj.get("emoji") or DEFAULT_GLYPH,
        quantity=int(row["quantity"]),
        unit_price=to_money(row.get("unit_price")),
        batch_number=row.get("batch_number") or "",
    )


class DeliveryLedger:
    """
    Deliveries already committed for a day, with their line items.
    """

    def __init__(self, store: SupabaseStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today
        self._cache: Dict[date, List[Delivery]] = {}

    def invalidate(self) -> None:
        self._cache.clear()

    def todays_deliveries(self, day: Optional[date] = None) -> List[Delivery]:
        """
        Newest first. A delivery whose items cannot be read is left out.
        """
        day = day or self.today()
        if day not in self._cache:
            self._cache[day] = self._fetch(day)
        return list(self._cache[day])

    def _fetch(self, day: date) -> List[Delivery]:
        rows = self.store.query_rows(
            DELIVERIES_TABLE,
            DELIVERY_COLUMNS,
            filters=[("eq", "production_date", day.isoformat())],
            order_by="created_at",
            descending=True,
            embeds=[STORE_EMBED],
        )

        deliveries: List[Delivery] = []
        for row in rows:
            delivery = delivery_from_row(row)
            try:
                item_rows = self.store.query_rows(
                    DELIVERY_ITEMS_TABLE,
                    ITEM_COLUMNS,
                    filters=[("eq", "delivery_id", delivery.id)],
                    embeds=[PRODUCT_EMBED],
                )
            except StoreError as e:
                logger.warning("Skipping delivery %s, items unavailable: %s", delivery.delivery_number, e)
                continue

            delivery.items = [item_from_row(r) for r in item_rows]
            deliveries.append(delivery)

        return deliveries

    def group_by_store(self, day: Optional[date] = None) -> List[StoreDeliveries]:
        grouped: Dict[str, StoreDeliveries] = {}

        for delivery in self.todays_deliveries(day):
            if delivery.store_id not in grouped:
                grouped[delivery.store_id] = StoreDeliveries(
                    store_id=delivery.store_id,
                    store_name=delivery.store_name,
                )

            bucket = grouped[delivery.store_id]
            bucket.delivery_numbers.append(delivery.delivery_number)
            for item in delivery.items:
                bucket.items.append(item)
                bucket.total_items += item.quantity
                bucket.total_value += item.line_total

        return list(grouped.values())

    def find_delivery(self, store_id: str, day: date) -> Optional[Delivery]:
        """
        Fresh read (no cache) of the delivery for a store on a day, if any.
        """
        rows = self.store.query_rows(
            DELIVERIES_TABLE,
            DELIVERY_COLUMNS,
            filters=[
                ("eq", "store_id", store_id),
                ("eq", "production_date", day.isoformat()),
            ],
            order_by="created_at",
            limit=1,
            embeds=[STORE_EMBED],
        )
        return delivery_from_row(rows[0]) if rows else None
