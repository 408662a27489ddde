# services/demand_service.py
import logging
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from data_integrator import SupabaseStore
from domain.errors import StoreError
from domain.models import DEFAULT_COLOR, DEFAULT_GLYPH, DailyDemandSummary
from services.catalog_service import ProductTypeCatalog

logger = logging.getLogger(__name__)

SHIPMENTS_TABLE = "production_shipments"
SHIPMENT_ITEMS_TABLE = "production_items"
DELIVERIES_TABLE = "production_deliveries"
DELIVERY_ITEMS_TABLE = "delivery_items"

PENDING = "pending"


def day_bounds(day: date) -> tuple[str, str]:
    iso = day.isoformat()
    return f"{iso}T00:00:00", f"{iso}T23:59:59"


def sort_by_remaining(rows: List[DailyDemandSummary]) -> List[DailyDemandSummary]:
    return sorted(rows, key=lambda r: r.remaining, reverse=True)


class DemandAggregator:
    """
    Requested vs produced vs remaining per product type for one day.

    The dashboard view is the fast path. When it is unavailable (or a day
    other than today is asked for) the same numbers are summed from the
    request and delivery tables.
    """

    def __init__(
            self,
            store: SupabaseStore,
            products: ProductTypeCatalog,
            dashboard_view: str = "vw_production_dashboard",
            today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.products = products
        self.dashboard_view = dashboard_view
        self.today = today
        self._cache: Dict[date, List[DailyDemandSummary]] = {}

    def invalidate(self) -> None:
        self._cache.clear()

    def compute_daily_summary(self, day: Optional[date] = None) -> List[DailyDemandSummary]:
        day = day or self.today()
        if day not in self._cache:
            summary = None
            if day == self.today():
                summary = self._from_dashboard_view()
            if summary is None:
                summary = self._compute_manually(day)
            self._cache[day] = summary
        return list(self._cache[day])

    # ------------------------------------------------------------------
    # Fast path
    # ------------------------------------------------------------------

    def _from_dashboard_view(self) -> Optional[List[DailyDemandSummary]]:
        try:
            rows = self.store.query_rows(self.dashboard_view)
        except StoreError as e:
            logger.warning("Dashboard view unavailable, computing manually: %s", e)
            return None

        return sort_by_remaining([
            DailyDemandSummary(
                product_type_id=str(row["salad_type_id"]),
                name=row["salad_name"],
                glyph=row.get("salad_emoji") or DEFAULT_GLYPH,
                color=row.get("salad_color") or DEFAULT_COLOR,
                requested=int(row.get("total_requested") or 0),
                produced=int(row.get("total_produced") or 0),
            )
            for row in rows
        ])

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    def _compute_manually(self, day: date) -> List[DailyDemandSummary]:
        # CatalogError propagates: without product types there is no summary
        product_types = self.products.all()

        try:
            shipment_ids = self._pending_shipment_ids(day)
            delivery_ids = self._delivery_ids(day)
        except StoreError as e:
            logger.error("Cannot compute daily summary for %s: %s", day, e)
            return []

        summary: List[DailyDemandSummary] = []
        for product in product_types:
            try:
                requested = self._sum_quantity(SHIPMENT_ITEMS_TABLE, "shipment_id", shipment_ids, product.id)
                produced = self._sum_quantity(DELIVERY_ITEMS_TABLE, "delivery_id", delivery_ids, product.id)
            except StoreError as e:
                logger.warning("Skipping %s in daily summary: %s", product.name, e)
                continue

            summary.append(
                DailyDemandSummary(
                    product_type_id=product.id,
                    name=product.name,
                    glyph=product.glyph,
                    color=product.color,
                    requested=requested,
                    produced=produced,
                )
            )

        return sort_by_remaining(summary)

    def _pending_shipment_ids(self, day: date) -> List[str]:
        start, end = day_bounds(day)
        rows = self.store.query_rows(
            SHIPMENTS_TABLE,
            "id",
            filters=[
                ("eq", "status", PENDING),
                ("gte", "created_at", start),
                ("lte", "created_at", end),
            ],
        )
        return [row["id"] for row in rows]

    def _delivery_ids(self, day: date) -> List[str]:
        rows = self.store.query_rows(
            DELIVERIES_TABLE,
            "id",
            filters=[("eq", "production_date", day.isoformat())],
        )
        return [row["id"] for row in rows]

    def _sum_quantity(self, table_name: str, parent_column: str, parent_ids: Sequence[str], product_id: str) -> int:
        # An empty IN () is not a valid filter; nothing to sum anyway
        if not parent_ids:
            return 0

        rows = self.store.query_rows(
            table_name,
            "quantity",
            filters=[
                ("eq", "salad_type_id", product_id),
                ("in", parent_column, list(parent_ids)),
            ],
        )
        return sum(int(row["quantity"]) for row in rows)
