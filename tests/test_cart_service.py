from decimal import Decimal

import pytest

from domain.errors import ValidationError
from services.cart_service import DeliveryCart
from services.catalog_service import ProductTypeCatalog, StoreCatalog


@pytest.fixture
def cart(store, today):
    return DeliveryCart(ProductTypeCatalog(store), StoreCatalog(store), day=today)


def test_add_creates_store_bag_with_totals(cart):
    item = cart.add("st1", "s1", 5, "LOTE-A")

    bag = cart.bag("st1")
    assert bag.store_name == "Centro"
    assert bag.items == [item]
    assert bag.total_items == 5
    assert bag.total_value == Decimal("62.50")
    assert item.unit_price == Decimal("12.50")
    assert item.batch_number == "LOTE-A"


def test_add_appends_to_existing_bag(cart):
    cart.add("st1", "s1", 5)
    cart.add("st1", "s2", 3)

    assert len(cart) == 1
    bag = cart.bag("st1")
    assert [i.product_type_id for i in bag.items] == ["s1", "s2"]
    assert bag.total_items == 8
    assert bag.total_value == Decimal("92.20")


def test_bags_keep_insertion_order(cart):
    cart.add("st2", "s1", 1)
    cart.add("st1", "s1", 1)
    cart.add("st2", "s3", 1)

    assert [b.store_id for b in cart.bags()] == ["st2", "st1"]


def test_default_batch_number_uses_cart_day(cart):
    item = cart.add("st1", "s1", 1)

    assert item.batch_number == "LOTE-20240116"


def test_missing_glyph_falls_back_to_default(cart):
    assert cart.add("st1", "s3", 1).glyph == "🥗"


@pytest.mark.parametrize("quantity", [0, -2, 1.5, True])
def test_add_rejects_bad_quantity(cart, quantity):
    with pytest.raises(ValidationError):
        cart.add("st1", "s1", quantity)
    assert cart.is_empty


def test_add_rejects_unknown_references(cart):
    with pytest.raises(ValidationError):
        cart.add("nope", "s1", 1)
    with pytest.raises(ValidationError):
        cart.add("st1", "nope", 1)
    assert cart.is_empty


def test_remove_restores_previous_totals(cart):
    cart.add("st1", "s1", 5)
    before = (cart.bag("st1").total_items, cart.bag("st1").total_value)

    item = cart.add("st1", "s2", 7)
    cart.remove("st1", item.id)

    bag = cart.bag("st1")
    assert (bag.total_items, bag.total_value) == before
    assert [i.product_type_id for i in bag.items] == ["s1"]


def test_removing_last_item_drops_the_bag(cart):
    item = cart.add("st1", "s1", 2)
    cart.add("st2", "s1", 1)

    cart.remove("st1", item.id)

    assert cart.bag("st1") is None
    assert [b.store_id for b in cart.bags()] == ["st2"]


def test_remove_unknown_item_raises(cart):
    cart.add("st1", "s1", 2)

    with pytest.raises(KeyError):
        cart.remove("st1", "missing")
    with pytest.raises(KeyError):
        cart.remove("st2", "missing")


def test_clear_and_cart_totals(cart):
    cart.add("st1", "s1", 2)
    cart.add("st2", "s2", 1)

    assert cart.total_items == 3
    assert cart.total_value == Decimal("34.90")

    cart.clear()
    assert cart.is_empty
    assert cart.total_value == Decimal("0.00")
