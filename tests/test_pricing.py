import uuid
from decimal import Decimal

import pytest
from conftest import make_hotel, make_menu_item

from hotel_delivery.errors import InvalidArgument, NotFound, PreconditionFailed
from hotel_delivery.services.pricing import CartLine, price_cart


@pytest.fixture
def hotel():
    return make_hotel(delivery_fee=Decimal("2.99"), min_order_amount=Decimal("10.00"))


def test_prices_cart_and_adds_delivery_fee(hotel):
    item = make_menu_item(hotel, "6.00")

    priced = price_cart(hotel, [item], [CartLine(item.id, 2)])

    assert priced.subtotal == Decimal("12.00")
    assert priced.delivery_fee == Decimal("2.99")
    assert priced.total_amount == Decimal("14.99")
    [line] = priced.lines
    assert line.unit_price == Decimal("6.00")
    assert line.subtotal == Decimal("12.00")


def test_below_minimum_order_is_rejected(hotel):
    item = make_menu_item(hotel, "4.00")

    with pytest.raises(PreconditionFailed, match="Minimum order amount"):
        price_cart(hotel, [item], [CartLine(item.id, 1)])


def test_exactly_minimum_order_is_accepted(hotel):
    item = make_menu_item(hotel, "5.00")

    priced = price_cart(hotel, [item], [CartLine(item.id, 2)])

    assert priced.total_amount == Decimal("12.99")


def test_total_is_exact_to_the_cent(hotel):
    a = make_menu_item(hotel, "0.10")
    b = make_menu_item(hotel, "3.33")

    priced = price_cart(hotel, [a, b], [CartLine(a.id, 7), CartLine(b.id, 3)])

    assert priced.subtotal == Decimal("10.69")
    assert priced.total_amount == Decimal("13.68")
    assert priced.total_amount == sum(l.unit_price * l.quantity for l in priced.lines) + Decimal("2.99")


def test_unknown_menu_item_is_rejected(hotel):
    item = make_menu_item(hotel, "20.00")

    with pytest.raises(InvalidArgument, match="not found or not available"):
        price_cart(hotel, [item], [CartLine(item.id, 1), CartLine(uuid.uuid4(), 1)])


def test_unavailable_item_is_rejected(hotel):
    item = make_menu_item(hotel, "20.00", is_available=False)

    with pytest.raises(InvalidArgument):
        price_cart(hotel, [item], [CartLine(item.id, 1)])


def test_item_from_another_hotel_is_rejected(hotel):
    other = make_hotel()
    item = make_menu_item(other, "20.00")

    with pytest.raises(InvalidArgument):
        price_cart(hotel, [item], [CartLine(item.id, 1)])


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantity_is_rejected(hotel, quantity):
    item = make_menu_item(hotel, "20.00")

    with pytest.raises(InvalidArgument, match="Invalid quantity"):
        price_cart(hotel, [item], [CartLine(item.id, quantity)])


def test_empty_cart_is_rejected(hotel):
    with pytest.raises(InvalidArgument):
        price_cart(hotel, [], [])


def test_inactive_or_missing_hotel_is_not_found(hotel):
    hotel.is_active = False
    with pytest.raises(NotFound):
        price_cart(hotel, [], [CartLine(uuid.uuid4(), 1)])
    with pytest.raises(NotFound):
        price_cart(None, [], [CartLine(uuid.uuid4(), 1)])
