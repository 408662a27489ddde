# services/catalog_service.py
import logging
from typing import Dict, List, Optional

from data_integrator import SupabaseStore
from domain.errors import CatalogError, StoreError
from domain.models import DEFAULT_COLOR, DEFAULT_GLYPH, ProductType, Store, to_money

logger = logging.getLogger(__name__)

PRODUCT_TYPES_TABLE = "salad_types"
STORES_TABLE = "stores"


class ProductTypeCatalog:
    """
    Read-only lookup of product types and their current sale price.
    Loaded once and kept for the life of the catalog object.
    """

    def __init__(self, store: SupabaseStore):
        self.store = store
        self._by_id: Optional[Dict[str, ProductType]] = None

    def _load(self) -> Dict[str, ProductType]:
        if self._by_id is None:
            try:
                rows = self.store.query_rows(
                    PRODUCT_TYPES_TABLE,
                    "id, name, emoji, color, sale_price",
                    order_by="name",
                )
            except StoreError as e:
                raise CatalogError(f"Failed to load product types: {e}") from e

            self._by_id = {
                str(row["id"]): ProductType(
                    id=str(row["id"]),
                    name=row["name"],
                    unit_price=to_money(row.get("sale_price")),
                    glyph=row.get("emoji") or DEFAULT_GLYPH,
                    color=row.get("color") or DEFAULT_COLOR,
                )
                for row in rows
            }
            logger.info("Loaded %d product types", len(self._by_id))
        return self._by_id

    def all(self) -> List[ProductType]:
        return list(self._load().values())

    def get(self, product_type_id: str) -> Optional[ProductType]:
        return self._load().get(str(product_type_id))

    def invalidate(self) -> None:
        self._by_id = None


class StoreCatalog:
    def __init__(self, store: SupabaseStore):
        self.store = store
        self._by_id: Optional[Dict[str, Store]] = None

    def _load(self) -> Dict[str, Store]:
        if self._by_id is None:
            try:
                rows = self.store.query_rows(STORES_TABLE, "id, name", order_by="name")
            except StoreError as e:
                raise CatalogError(f"Failed to load stores: {e}") from e

            self._by_id = {str(row["id"]): Store(id=str(row["id"]), name=row["name"]) for row in rows}
        return self._by_id

    def all(self) -> List[Store]:
        return list(self._load().values())

    def get(self, store_id: str) -> Optional[Store]:
        return self._load().get(str(store_id))

    def invalidate(self) -> None:
        self._by_id = None
