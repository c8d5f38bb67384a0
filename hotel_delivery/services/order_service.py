import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from fastapi import BackgroundTasks
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_delivery.database import AsyncSessionLocal
from hotel_delivery.errors import Conflict, DomainError, InvalidArgument, NotFound, PermissionDenied
from hotel_delivery.metrics import (
    ORDER_REJECTIONS,
    ORDER_TRANSACTION_RETRIES,
    ORDERS_PLACED,
    STATUS_CONFLICTS,
    STATUS_TRANSITIONS,
)
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem
from hotel_delivery.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from hotel_delivery.models.user import Role, User
from hotel_delivery.services import status_machine
from hotel_delivery.services.notifier import (
    Notifier,
    build_order_placed_event,
    build_status_changed_event,
    schedule,
)
from hotel_delivery.services.order_store import OrderStore, OrderTransaction
from hotel_delivery.services.pricing import CartLine, price_cart
from hotel_delivery.services.status_machine import Principal
from hotel_delivery.utils.order_number import generate_order_number

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# A commit is attempted at most this many times when it fails transiently.
_MAX_COMMIT_ATTEMPTS = 2
MAX_PAGE_SIZE = 100

_DEMO_HOTELS = [
    {
        "name": "Grand Hotel Restaurant",
        "email": "contact@grandhotel.com",
        "address": "123 Main Street, Downtown",
        "city": "New York",
        "cuisine_type": "International",
        "latitude": 40.7128,
        "longitude": -74.0060,
        "delivery_fee": Decimal("3.99"),
        "min_order_amount": Decimal("15.00"),
        "delivery_radius": 5000,
        "menu": [
            ("Club Sandwich", "main", Decimal("12.50")),
            ("Caesar Salad", "appetizer", Decimal("8.99")),
            ("Cheesecake", "dessert", Decimal("6.50")),
        ],
    },
    {
        "name": "Tokyo Sushi Express",
        "email": "info@tokyosushi.com",
        "address": "456 Park Avenue",
        "city": "New York",
        "cuisine_type": "Japanese",
        "latitude": 40.7489,
        "longitude": -73.9680,
        "delivery_fee": Decimal("2.99"),
        "min_order_amount": Decimal("12.00"),
        "delivery_radius": 4000,
        "menu": [
            ("Salmon Nigiri Set", "main", Decimal("14.99")),
            ("Miso Soup", "side", Decimal("3.50")),
            ("Green Tea", "drink", Decimal("2.50")),
        ],
    },
    {
        "name": "Mediterranean Delight",
        "email": "hello@mediterraneandelight.com",
        "address": "789 Broadway",
        "city": "New York",
        "cuisine_type": "Mediterranean",
        "latitude": 40.7580,
        "longitude": -73.9855,
        "delivery_fee": Decimal("2.50"),
        "min_order_amount": Decimal("10.00"),
        "delivery_radius": 3500,
        "menu": [
            ("Falafel Wrap", "main", Decimal("9.49")),
            ("Hummus Plate", "appetizer", Decimal("6.99")),
            ("Baklava", "dessert", Decimal("4.50")),
        ],
    },
]


async def seed_demo_data() -> None:
    """Populate hotels, menus and two users if the catalog is empty. Called once on startup."""
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Hotel).limit(1))
        if result.scalars().first() is not None:
            return
        for hotel_data in _DEMO_HOTELS:
            hotel_data = dict(hotel_data)
            menu = hotel_data.pop("menu")
            hotel = Hotel(**hotel_data)
            db.add(hotel)
            await db.flush()
            for name, category, price in menu:
                db.add(MenuItem(hotel_id=hotel.id, name=name, category=category, price=price))
        db.add(User(email="admin@example.com", full_name="Admin User", role=Role.ADMIN))
        db.add(User(email="user@example.com", full_name="John Doe", role=Role.USER))
        await db.commit()
        logger.info("Seeded %d demo hotels", len(_DEMO_HOTELS))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    # Two concurrent placements drew the same order number.
    return isinstance(exc, IntegrityError) and "order_number" in str(exc.orig)


async def _load_order(store: OrderStore, order_id: uuid.UUID) -> Order:
    order = await store.get_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    return order


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def get_order(db: AsyncSession, order_id: uuid.UUID, principal: Principal) -> Order:
    order = await _load_order(OrderStore(db), order_id)
    if not status_machine.can_view(order, principal):
        # Same answer as a missing order, so foreign ids stay hidden.
        raise NotFound("Order not found")
    return order


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)


def _page_offset(page: int, limit: int) -> int:
    if page < 1:
        raise InvalidArgument("Page must be 1 or greater")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidArgument(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return (page - 1) * limit


async def list_orders(
    db: AsyncSession,
    principal: Principal,
    status: OrderStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> OrderPage:
    """The caller's own orders, newest first."""
    offset = _page_offset(page, limit)
    orders, total = await OrderStore(db).list_orders(
        user_id=principal.user_id, status=status, offset=offset, limit=limit
    )
    return OrderPage(orders=orders, total=total, page=page, limit=limit)


async def list_hotel_orders(
    db: AsyncSession,
    principal: Principal,
    hotel_id: uuid.UUID,
    status: OrderStatus | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> OrderPage:
    """Orders received by one hotel; for ADMIN or that hotel's operators."""
    if not principal.operates(hotel_id):
        raise PermissionDenied("Not authorized to view orders for this hotel")
    offset = _page_offset(page, limit)
    orders, total = await OrderStore(db).list_orders(
        hotel_id=hotel_id,
        status=status,
        created_from=created_from,
        created_to=created_to,
        offset=offset,
        limit=limit,
    )
    return OrderPage(orders=orders, total=total, page=page, limit=limit)


async def place_order(
    db: AsyncSession,
    notifier: Notifier,
    user_id: uuid.UUID,
    hotel_id: uuid.UUID,
    cart_lines: list[CartLine],
    delivery_address: str,
    payment_method: PaymentMethod,
    request_id: str,
    delivery_time: datetime | None = None,
    special_instructions: str | None = None,
    background: BackgroundTasks | None = None,
) -> Order:
    store = OrderStore(db)

    async def create(tx: OrderTransaction) -> tuple[Order, User, Hotel]:
        # 1. Validate against a catalog snapshot read inside this transaction
        user = await tx.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        hotel = await tx.catalog.load_hotel_for_order(hotel_id)
        menu_items = await tx.catalog.get_available_menu_items(hotel.id, lock=True)

        # 2. Calculate totals
        priced = price_cart(hotel, menu_items, cart_lines)

        # 3. Persist order + items; a failure here rolls back both
        order = await tx.insert_order(
            order_number=generate_order_number(),
            user_id=user.id,
            hotel_id=hotel.id,
            status=OrderStatus.PENDING,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            total_amount=priced.total_amount,
            delivery_fee=priced.delivery_fee,
            delivery_address=delivery_address,
            delivery_time=delivery_time,
            special_instructions=special_instructions,
        )
        await tx.insert_order_items(order.id, priced.lines)
        return order, user, hotel

    with tracer.start_as_current_span("orders.place") as span:
        span.set_attribute("order.hotel_id", str(hotel_id))
        span.set_attribute("order.line_count", len(cart_lines))
        for attempt in range(1, _MAX_COMMIT_ATTEMPTS + 1):
            try:
                order, user, hotel = await store.with_transaction(create)
                break
            except DomainError as exc:
                ORDER_REJECTIONS.labels(exc.kind).inc()
                raise
            except (IntegrityError, OperationalError) as exc:
                if attempt == _MAX_COMMIT_ATTEMPTS or not _is_transient(exc):
                    raise
                ORDER_TRANSACTION_RETRIES.inc()
                logger.warning(
                    "Order transaction hit a transient conflict, retrying",
                    extra={"request_id": request_id, "attempt": attempt, "error": str(exc)},
                )

    ORDERS_PLACED.labels(payment_method.value).inc()
    logger.info(
        "Order persisted",
        extra={
            "order_id": str(order.id),
            "order_number": order.order_number,
            "request_id": request_id,
            "amount": float(order.total_amount),
        },
    )

    # 4. Notify after commit without waiting; failures never undo the order
    order = await _load_order(store, order.id)
    schedule(
        "order_placed",
        notifier.order_placed,
        build_order_placed_event(order, user, hotel.email, request_id),
        background,
    )
    return order


async def transition_order_status(
    db: AsyncSession,
    notifier: Notifier,
    order_id: uuid.UUID,
    principal: Principal,
    new_status: OrderStatus,
    request_id: str,
    delivery_notes: str | None = None,
    expected_version: int | None = None,
    background: BackgroundTasks | None = None,
) -> Order:
    store = OrderStore(db)

    async def apply(tx: OrderTransaction) -> tuple[OrderStatus, User]:
        order = await tx.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")
        if not status_machine.can_view(order, principal):
            raise NotFound("Order not found")
        read_status, read_version = order.status, order.version

        status_machine.check_permission(order, principal, new_status)
        if expected_version is not None and expected_version != read_version:
            raise Conflict("Order was modified since it was read")
        status_machine.check_transition(read_status, new_status)

        applied = await tx.update_order_status(
            order.id,
            read_status=read_status,
            read_version=read_version,
            new_status=new_status,
            payment_status=status_machine.payment_status_after(new_status, order.payment_status),
            delivery_notes=delivery_notes,
        )
        if not applied:
            raise Conflict("Order was modified concurrently, reload and retry")

        user = await tx.get_user(order.user_id)
        return read_status, user

    try:
        previous_status, user = await store.with_transaction(apply)
    except Conflict:
        STATUS_CONFLICTS.inc()
        raise

    STATUS_TRANSITIONS.labels(previous_status.value, new_status.value).inc()
    logger.info(
        "Order status updated",
        extra={
            "order_id": str(order_id),
            "request_id": request_id,
            "from_status": previous_status.value,
            "to_status": new_status.value,
            "actor_role": principal.role.value,
        },
    )

    order = await _load_order(store, order_id)
    if user is not None:
        schedule(
            "status_changed",
            notifier.order_status_changed,
            build_status_changed_event(order, user, previous_status, request_id),
            background,
        )
    return order


async def cancel_order(
    db: AsyncSession,
    notifier: Notifier,
    order_id: uuid.UUID,
    principal: Principal,
    request_id: str,
    background: BackgroundTasks | None = None,
) -> Order:
    return await transition_order_status(
        db, notifier, order_id, principal, OrderStatus.CANCELLED, request_id, background=background
    )
