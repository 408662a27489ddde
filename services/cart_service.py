# services/cart_service.py
import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from domain.errors import ValidationError
from domain.models import CartItem, StoreBag
from services.catalog_service import ProductTypeCatalog, StoreCatalog
from utils.formatting import default_batch_number


class DeliveryCart:
    """
    Items waiting to be shipped, grouped per destination store.

    Lives in one operator session only and is never persisted. Store bags
    keep running totals that are adjusted on every add/remove.
    """

    def __init__(
            self,
            products: ProductTypeCatalog,
            stores: StoreCatalog,
            day: Optional[date] = None,
            batch_prefix: str = "LOTE",
    ):
        self.products = products
        self.stores = stores
        self.day = day or date.today()
        self.batch_prefix = batch_prefix
        self._bags: Dict[str, StoreBag] = {}

    def add(
            self,
            store_id: str,
            product_type_id: str,
            quantity: int,
            batch_number: Optional[str] = None,
    ) -> CartItem:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"Quantity must be a whole number, got {quantity!r}")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive")

        store = self.stores.get(store_id)
        if store is None:
            raise ValidationError(f"Unknown store: {store_id}")

        product = self.products.get(product_type_id)
        if product is None:
            raise ValidationError(f"Unknown product type: {product_type_id}")

        if batch_number is None:
            batch_number = default_batch_number(self.day, self.batch_prefix)

        item = CartItem(
            id=uuid.uuid4().hex,
            product_type_id=product.id,
            name=product.name,
            glyph=product.glyph,
            quantity=quantity,
            unit_price=product.unit_price,
            batch_number=batch_number,
        )

        bag = self._bags.get(store.id)
        if bag is None:
            bag = StoreBag(store_id=store.id, store_name=store.name)
            self._bags[store.id] = bag

        bag.items.append(item)
        bag.total_items += item.quantity
        bag.total_value += item.line_total
        return item

    def remove(self, store_id: str, item_id: str) -> CartItem:
        bag = self._bags.get(str(store_id))
        if bag is None:
            raise KeyError(f"No items for store {store_id} in cart")

        item = next((it for it in bag.items if it.id == item_id), None)
        if item is None:
            raise KeyError(f"Item {item_id} not in cart for store {store_id}")

        bag.items.remove(item)
        bag.total_items -= item.quantity
        bag.total_value -= item.line_total

        if not bag.items:
            del self._bags[bag.store_id]
        return item

    def discard(self, store_id: str) -> None:
        self._bags.pop(str(store_id), None)

    def clear(self) -> None:
        self._bags.clear()

    def bag(self, store_id: str) -> Optional[StoreBag]:
        return self._bags.get(str(store_id))

    def bags(self) -> List[StoreBag]:
        return list(self._bags.values())

    def __iter__(self) -> Iterator[StoreBag]:
        return iter(self.bags())

    def __len__(self) -> int:
        return len(self._bags)

    @property
    def is_empty(self) -> bool:
        return not self._bags

    @property
    def total_items(self) -> int:
        return sum(bag.total_items for bag in self._bags.values())

    @property
    def total_value(self) -> Decimal:
        return sum((bag.total_value for bag in self._bags.values()), Decimal("0.00"))
