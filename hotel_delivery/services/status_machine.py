"""
Order lifecycle rules.

    PENDING -> CONFIRMED -> PREPARING -> OUT_FOR_DELIVERY -> DELIVERED
    PENDING | CONFIRMED -> CANCELLED

DELIVERED and CANCELLED are terminal. All transition and permission checks
live here; services only call ``check_transition`` / ``check_permission``.
"""

import uuid
from dataclasses import dataclass

from hotel_delivery.errors import InvalidTransition, PermissionDenied
from hotel_delivery.models.order import Order, OrderStatus, PaymentStatus
from hotel_delivery.models.user import Role

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as supplied by the identity collaborator."""

    user_id: uuid.UUID
    role: Role
    hotel_id: uuid.UUID | None = None

    def operates(self, hotel_id: uuid.UUID) -> bool:
        if self.role == Role.ADMIN:
            return True
        return self.role == Role.HOTEL_ADMIN and self.hotel_id == hotel_id


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]


def check_transition(current: OrderStatus, new: OrderStatus) -> None:
    if is_terminal(current):
        raise InvalidTransition(f"Order is already {current.value} and can no longer change")
    if new not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot change order status from {current.value} to {new.value}")


def check_permission(order: Order, principal: Principal, new: OrderStatus) -> None:
    if new == OrderStatus.CANCELLED:
        if principal.user_id == order.user_id or principal.operates(order.hotel_id):
            return
        raise PermissionDenied("Not authorized to cancel this order")

    if not principal.operates(order.hotel_id):
        raise PermissionDenied("Not authorized to update this order")


def can_view(order: Order, principal: Principal) -> bool:
    return principal.user_id == order.user_id or principal.operates(order.hotel_id)


def payment_status_after(new: OrderStatus, current: PaymentStatus) -> PaymentStatus:
    """Cancellation marks the payment for refund; the refund itself happens elsewhere."""
    if new == OrderStatus.CANCELLED:
        return PaymentStatus.REFUNDED
    return current
