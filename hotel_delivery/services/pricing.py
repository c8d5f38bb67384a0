"""
Cart validation and pricing.

``price_cart`` is a pure function over a catalog snapshot. Callers must
fetch that snapshot inside the same transaction that persists the order;
a snapshot taken before an await and reused afterwards can price against
items that have since been disabled or repriced.
"""

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from hotel_delivery.errors import InvalidArgument, NotFound, PreconditionFailed
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    menu_item_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    menu_item_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class PricedCart:
    hotel_id: uuid.UUID
    lines: list[PricedLine]
    subtotal: Decimal
    delivery_fee: Decimal
    total_amount: Decimal


def price_cart(
    hotel: Hotel | None,
    menu_items: list[MenuItem],
    cart_lines: list[CartLine],
) -> PricedCart:
    if hotel is None or not hotel.is_active:
        raise NotFound("Hotel not found or not active")
    if not cart_lines:
        raise InvalidArgument("Order must contain at least one item")

    available: dict[uuid.UUID, MenuItem] = {
        m.id: m for m in menu_items if m.is_available and m.hotel_id == hotel.id
    }

    lines: list[PricedLine] = []
    subtotal = Decimal("0.00")
    for cart_line in cart_lines:
        menu_item = available.get(cart_line.menu_item_id)
        if menu_item is None:
            raise InvalidArgument(
                f"Menu item with ID {cart_line.menu_item_id} not found or not available"
            )
        if cart_line.quantity < 1:
            raise InvalidArgument(f"Invalid quantity for item {menu_item.name}")

        unit_price = to_money(menu_item.price)
        line_subtotal = unit_price * cart_line.quantity
        subtotal += line_subtotal
        lines.append(
            PricedLine(
                menu_item_id=menu_item.id,
                name=menu_item.name,
                quantity=cart_line.quantity,
                unit_price=unit_price,
                subtotal=line_subtotal,
            )
        )

    min_order_amount = to_money(hotel.min_order_amount)
    if subtotal < min_order_amount:
        raise PreconditionFailed(f"Minimum order amount is ${min_order_amount}")

    delivery_fee = to_money(hotel.delivery_fee)
    return PricedCart(
        hotel_id=hotel.id,
        lines=lines,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        total_amount=subtotal + delivery_fee,
    )
