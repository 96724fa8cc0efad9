from decimal import Decimal

import pytest
from pydantic import ValidationError

from juicebar.models import (
    Actor,
    CheckoutRequest,
    LineItem,
    MenuItem,
    MenuItemIn,
    Order,
    UnavailableItem,
    place_order,
)
from juicebar.order_state import Channel, OrderStatus

FEE = Decimal("40")

ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}

MENU = {
    "juice-orange": MenuItem(
        id="juice-orange",
        name="Fresh Orange",
        category_id="cat-fruit",
        variants=[{"size": "small", "price": "80"}, {"size": "large", "price": "120", "is_available": False}],
    ),
    "juice-watermelon": MenuItem(
        id="juice-watermelon",
        name="Watermelon Cooler",
        category_id="cat-fruit",
        variants=[{"size": "large", "price": "110.50"}],
    ),
    "juice-kiwi": MenuItem(
        id="juice-kiwi",
        name="Kiwi Cooler",
        category_id="cat-fruit",
        is_available=False,
        variants=[{"size": "medium", "price": "130"}],
    ),
}

ITEMS = [
    {"product_id": "juice-orange", "size": "small", "quantity": 3},
    {"product_id": "juice-watermelon", "size": "large", "quantity": 1},
]


def _request(**overrides) -> CheckoutRequest:
    data = {"items": ITEMS, "channel": "takeaway"}
    data.update(overrides)
    return CheckoutRequest(**data)


def test_takeaway_total_has_no_fee():
    order = place_order("user-1", _request(), MENU, FEE)
    assert order.status == OrderStatus.PLACED
    assert order.delivery_fee == 0
    assert order.total_amount == Decimal("350.50")
    assert order.created_at == order.updated_at


def test_names_and_prices_come_from_menu():
    items = [{"product_id": "juice-orange", "size": "small", "quantity": 2, "unit_price": "0", "name": "Free"}]
    order = place_order("user-1", _request(items=items), MENU, FEE)
    [line] = order.items
    assert line.name == "Fresh Orange"
    assert line.unit_price == Decimal("80")
    assert order.total_amount == Decimal("160")


@pytest.mark.parametrize("product_id,size,reason", [
    ("juice-lychee", "small", "not on the menu"),
    ("juice-kiwi", "medium", "not available"),
    ("juice-watermelon", "small", "not offered in this size"),
    ("juice-orange", "large", "sold out"),
])
def test_unavailable_lines_rejected(product_id, size, reason):
    items = [{"product_id": product_id, "size": size, "quantity": 1}]
    with pytest.raises(UnavailableItem, match=reason) as exc:
        place_order("user-1", _request(items=items), MENU, FEE)
    assert exc.value.product_id == product_id


def test_delivery_total_adds_fee_and_keeps_address():
    order = place_order("user-1", _request(channel="delivery", address=ADDRESS), MENU, FEE)
    assert order.delivery_fee == FEE
    assert order.total_amount == Decimal("390.50")
    assert order.address.city == "Bengaluru"


def test_delivery_without_address_rejected():
    with pytest.raises(ValidationError, match="require an address"):
        place_order("user-1", _request(channel="delivery"), MENU, FEE)


def test_dine_in_requires_table():
    with pytest.raises(ValidationError, match="table number"):
        place_order("user-1", _request(channel="dine_in"), MENU, FEE)
    order = place_order("user-1", _request(channel="dine_in", table_no="7"), MENU, FEE)
    assert order.table_no == "7"
    assert order.channel == Channel.DINE_IN


def test_unused_address_and_table_are_dropped():
    order = place_order("user-1", _request(address=ADDRESS, table_no="7"), MENU, FEE)
    assert order.address is None
    assert order.table_no is None


def test_quantity_must_be_positive():
    with pytest.raises(ValidationError):
        LineItem(product_id="p", name="P", size="small", unit_price="10", quantity=0)


def test_quantity_capped_per_line():
    with pytest.raises(ValidationError):
        LineItem(product_id="p", name="P", size="small", unit_price="10", quantity=1000)
    with pytest.raises(ValidationError):
        _request(items=[{"product_id": "juice-orange", "size": "small", "quantity": 21}])


def test_prices_limited_to_cents():
    with pytest.raises(ValidationError):
        LineItem(product_id="p", name="P", size="small", unit_price="10.555", quantity=1)
    with pytest.raises(ValidationError):
        MenuItemIn(name="P", category_id="c", variants=[{"size": "small", "price": "10.555"}])
    with pytest.raises(ValidationError):
        MenuItemIn(name="P", category_id="c", variants=[{"size": "small", "price": "1000000"}])


def test_largest_order_fits_total_column():
    """Every line at the price and quantity ceiling still fits NUMERIC(12, 2)."""
    menu = {
        "juice-max": MenuItem(
            id="juice-max", name="Max", category_id="c",
            variants=[{"size": "large", "price": "999999.99"}],
        ),
    }
    lines = [{"product_id": "juice-max", "size": "large", "quantity": 20}] * 50
    order = place_order("user-1", _request(items=lines, channel="delivery", address=ADDRESS), menu, Decimal("999999.99"))
    digits = order.total_amount.as_tuple()
    assert digits.exponent >= -2
    assert len(digits.digits) <= 12


def test_stored_order_reloads_with_same_total(make_order):
    order = make_order(channel=Channel.DELIVERY)
    data = order.model_dump(mode="json")
    # NUMERIC(12, 2) hands totals back quantized to cents
    data["total_amount"] = str(Decimal(data["total_amount"]).quantize(Decimal("0.01")))
    assert Order.model_validate(data).total_amount == order.total_amount


def test_duplicate_variant_sizes_rejected():
    with pytest.raises(ValidationError, match="only once"):
        MenuItemIn(
            name="P", category_id="c",
            variants=[{"size": "small", "price": "1"}, {"size": "small", "price": "2"}],
        )


def test_available_variant_needs_a_price():
    with pytest.raises(ValidationError, match="greater than 0"):
        MenuItemIn(name="P", category_id="c", variants=[{"size": "small", "price": "0"}])
    item = MenuItemIn(name="P", category_id="c", variants=[{"size": "small", "price": "0", "is_available": False}])
    assert item.variants[0].is_available is False


def test_empty_cart_rejected():
    with pytest.raises(ValidationError):
        CheckoutRequest(items=[], channel="takeaway")


def test_total_mismatch_rejected(make_order):
    data = make_order().model_dump()
    data["total_amount"] = Decimal("1")
    with pytest.raises(ValidationError, match="does not match"):
        Order.model_validate(data)


def test_fee_on_non_delivery_rejected(make_order):
    data = make_order(channel=Channel.TAKEAWAY).model_dump()
    data["delivery_fee"] = FEE
    data["total_amount"] += FEE
    with pytest.raises(ValidationError, match="delivery orders only"):
        Order.model_validate(data)


def test_actor_roles():
    assert Actor(user_id="a", role="admin").is_admin
    assert not Actor(user_id="u").is_admin
    with pytest.raises(ValidationError):
        Actor(user_id="u", role="owner")
