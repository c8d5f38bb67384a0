import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from conftest import RecordingNotifier, make_hotel, make_user, persist, principal_for
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from hotel_delivery.errors import (
    Conflict,
    InvalidArgument,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    PreconditionFailed,
)
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem
from hotel_delivery.models.order import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from hotel_delivery.models.user import Role, User
from hotel_delivery.services import order_service
from hotel_delivery.services.order_store import OrderStore, OrderTransaction
from hotel_delivery.services.pricing import CartLine


def place(session_factory, run, notifier, user, hotel, lines, payment_method=PaymentMethod.CASH):
    async def go():
        async with session_factory() as db:
            return await order_service.place_order(
                db,
                notifier,
                user_id=user.id,
                hotel_id=hotel.id,
                cart_lines=lines,
                delivery_address="12 Office Park, Floor 3",
                payment_method=payment_method,
                request_id="req-test",
            )

    return run(go())


def transition(session_factory, run, notifier, order_id, principal, status, **kwargs):
    async def go():
        async with session_factory() as db:
            return await order_service.transition_order_status(
                db, notifier, order_id, principal, status, request_id="req-test", **kwargs
            )

    return run(go())


def cancel(session_factory, run, notifier, order_id, principal):
    async def go():
        async with session_factory() as db:
            return await order_service.cancel_order(db, notifier, order_id, principal, "req-test")

    return run(go())


def count(session_factory, run, model):
    async def go():
        async with session_factory() as db:
            return (await db.execute(select(func.count()).select_from(model))).scalar_one()

    return run(go())


@pytest.fixture
def placed(session_factory, run, notifier, catalog):
    return place(
        session_factory, run, notifier, catalog["customer"], catalog["hotel"],
        [CartLine(catalog["six"].id, 2)],
    )


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------


def test_place_order_prices_and_persists(placed, notifier, catalog, session_factory, run):
    assert placed.status == OrderStatus.PENDING
    assert placed.payment_status == PaymentStatus.PENDING
    assert placed.total_amount == Decimal("14.99")
    assert placed.delivery_fee == Decimal("2.99")
    assert placed.order_number.startswith("ORD-")
    assert placed.version == 1
    [item] = placed.items
    assert item.quantity == 2
    assert item.unit_price == Decimal("6.00")
    assert item.subtotal == Decimal("12.00")
    assert placed.total_amount == sum(i.subtotal for i in placed.items) + placed.delivery_fee

    assert count(session_factory, run, Order) == 1
    assert count(session_factory, run, OrderItem) == 1
    assert notifier.placed == [
        {
            "order_number": placed.order_number,
            "user": catalog["customer"].email,
            "hotel_email": "info@tokyosushi.com",
        }
    ]


def test_below_minimum_creates_nothing(session_factory, run, notifier, catalog):
    with pytest.raises(PreconditionFailed):
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["four"].id, 1)],
        )

    assert count(session_factory, run, Order) == 0
    assert count(session_factory, run, OrderItem) == 0
    assert notifier.placed == []


def test_unavailable_item_creates_nothing(session_factory, run, notifier, catalog):
    with pytest.raises(InvalidArgument):
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, 2), CartLine(catalog["sold_out"].id, 1)],
        )

    assert count(session_factory, run, Order) == 0
    assert count(session_factory, run, OrderItem) == 0


def test_item_disabled_after_browsing_is_rejected(session_factory, run, notifier, catalog):
    async def disable():
        async with session_factory() as db:
            await db.execute(
                update(MenuItem).where(MenuItem.id == catalog["six"].id).values(is_available=False)
            )
            await db.commit()

    run(disable())

    with pytest.raises(InvalidArgument):
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, 2)],
        )


def test_inactive_hotel_is_not_found(session_factory, run, notifier, catalog):
    async def deactivate():
        async with session_factory() as db:
            hotel = await db.get(type(catalog["hotel"]), catalog["hotel"].id)
            hotel.is_active = False
            await db.commit()

    run(deactivate())

    with pytest.raises(NotFound):
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, 2)],
        )


def test_unknown_user_is_not_found(session_factory, run, notifier, catalog):
    with pytest.raises(NotFound, match="User"):
        place(
            session_factory, run, notifier, make_user(), catalog["hotel"],
            [CartLine(catalog["six"].id, 2)],
        )


def test_notification_failure_does_not_undo_the_order(session_factory, run, catalog):
    order = place(
        session_factory, run, RecordingNotifier(fail=True), catalog["customer"], catalog["hotel"],
        [CartLine(catalog["six"].id, 2)],
    )

    assert order.status == OrderStatus.PENDING
    assert count(session_factory, run, Order) == 1


class GatedNotifier(RecordingNotifier):
    """Holds every placement notification until ``gate`` is set."""

    gate: asyncio.Event

    async def order_placed(self, event):
        await self.gate.wait()
        await super().order_placed(event)


def test_placement_returns_before_the_notification_is_delivered(session_factory, run, catalog):
    notifier = GatedNotifier()

    async def go():
        notifier.gate = asyncio.Event()
        async with session_factory() as db:
            order = await order_service.place_order(
                db,
                notifier,
                user_id=catalog["customer"].id,
                hotel_id=catalog["hotel"].id,
                cart_lines=[CartLine(catalog["six"].id, 2)],
                delivery_address="12 Office Park, Floor 3",
                payment_method=PaymentMethod.CASH,
                request_id="req-test",
            )
        delivered_on_return = list(notifier.placed)
        notifier.gate.set()
        return order, delivered_on_return

    order, delivered_on_return = run(go())

    assert delivered_on_return == []
    assert [n["order_number"] for n in notifier.placed] == [order.order_number]


def test_failed_item_insert_rolls_back_the_order(
    session_factory, run, notifier, catalog, monkeypatch
):
    async def failing_items(self, order_id, lines):
        # The order row has been flushed by now.
        assert await self._db.get(Order, order_id) is not None
        raise RuntimeError("disk full")

    monkeypatch.setattr(OrderTransaction, "insert_order_items", failing_items)

    with pytest.raises(RuntimeError):
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, 2)],
        )

    assert count(session_factory, run, Order) == 0
    assert count(session_factory, run, OrderItem) == 0
    assert notifier.placed == []


def test_unit_price_is_a_snapshot(placed, session_factory, run, catalog):
    async def reprice_and_reload():
        async with session_factory() as db:
            await db.execute(
                update(MenuItem).where(MenuItem.id == catalog["six"].id).values(price=Decimal("9.00"))
            )
            await db.commit()
            return await OrderStore(db).get_order(placed.id)

    reloaded = run(reprice_and_reload())

    assert reloaded.items[0].unit_price == Decimal("6.00")
    assert reloaded.total_amount == Decimal("14.99")


def test_order_number_collision_is_retried_once(
    placed, session_factory, run, notifier, catalog, monkeypatch
):
    numbers = iter([placed.order_number, "ORD-20240101-FRESHNUMBR"])
    monkeypatch.setattr(order_service, "generate_order_number", lambda: next(numbers))

    order = place(
        session_factory, run, notifier, catalog["customer"], catalog["hotel"],
        [CartLine(catalog["six"].id, 2)],
    )

    assert order.order_number == "ORD-20240101-FRESHNUMBR"
    assert count(session_factory, run, Order) == 2
    assert count(session_factory, run, OrderItem) == 2


def test_repeated_collision_surfaces(placed, session_factory, run, notifier, catalog, monkeypatch):
    monkeypatch.setattr(order_service, "generate_order_number", lambda: placed.order_number)

    with pytest.raises(IntegrityError) as excinfo:
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, 2)],
        )

    assert "order_number" in str(excinfo.value)
    assert count(session_factory, run, Order) == 1


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------


def test_operator_walks_order_to_delivered(placed, session_factory, run, notifier, catalog):
    operator = principal_for(catalog["operator"])
    for status in (
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ):
        order = transition(session_factory, run, notifier, placed.id, operator, status)
        assert order.status == status

    assert order.version == 5
    assert [change[2] for change in notifier.status_changes] == [
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
    ]

    for status in OrderStatus:
        with pytest.raises(InvalidTransition):
            transition(session_factory, run, notifier, placed.id, operator, status)


def test_delivery_notes_are_recorded(placed, session_factory, run, notifier, catalog):
    order = transition(
        session_factory, run, notifier, placed.id, principal_for(catalog["admin"]),
        OrderStatus.CONFIRMED, delivery_notes="Leave at reception",
    )

    assert order.delivery_notes == "Leave at reception"


def test_skipping_a_step_is_invalid(placed, session_factory, run, notifier, catalog):
    with pytest.raises(InvalidTransition):
        transition(
            session_factory, run, notifier, placed.id, principal_for(catalog["admin"]),
            OrderStatus.DELIVERED,
        )


def test_customer_cannot_advance_status(placed, session_factory, run, notifier, catalog):
    with pytest.raises(PermissionDenied):
        transition(
            session_factory, run, notifier, placed.id, principal_for(catalog["customer"]),
            OrderStatus.CONFIRMED,
        )


def test_operator_of_another_hotel_cannot_see_the_order(
    placed, session_factory, run, notifier, catalog
):
    other_hotel = make_hotel(name="Elsewhere")
    stranger = make_user(role=catalog["operator"].role, hotel_id=other_hotel.id)

    with pytest.raises(NotFound):
        transition(
            session_factory, run, notifier, placed.id, principal_for(stranger),
            OrderStatus.CONFIRMED,
        )


def test_owner_cancels_and_payment_is_refunded(placed, session_factory, run, notifier, catalog):
    order = cancel(session_factory, run, notifier, placed.id, principal_for(catalog["customer"]))

    assert order.status == OrderStatus.CANCELLED
    assert order.payment_status == PaymentStatus.REFUNDED


def test_other_customer_cannot_cancel(placed, session_factory, run, notifier, catalog):
    # Writes answer like reads, so foreign order ids stay hidden.
    with pytest.raises(NotFound):
        cancel(session_factory, run, notifier, placed.id, principal_for(make_user()))


def test_cancel_after_preparation_started_is_invalid(placed, session_factory, run, notifier, catalog):
    operator = principal_for(catalog["operator"])
    transition(session_factory, run, notifier, placed.id, operator, OrderStatus.CONFIRMED)
    transition(session_factory, run, notifier, placed.id, operator, OrderStatus.PREPARING)

    with pytest.raises(InvalidTransition):
        cancel(session_factory, run, notifier, placed.id, principal_for(catalog["customer"]))


def test_unknown_order_is_not_found(session_factory, run, notifier, catalog):
    with pytest.raises(NotFound):
        cancel(session_factory, run, notifier, uuid.uuid4(), principal_for(catalog["admin"]))


def test_stale_expected_version_conflicts(placed, session_factory, run, notifier, catalog):
    operator = principal_for(catalog["operator"])
    transition(session_factory, run, notifier, placed.id, operator, OrderStatus.CONFIRMED)

    with pytest.raises(Conflict):
        transition(
            session_factory, run, notifier, placed.id, operator, OrderStatus.PREPARING,
            expected_version=1,
        )


def test_concurrent_writer_causes_conflict(
    placed, session_factory, run, notifier, catalog, monkeypatch
):
    original = OrderTransaction.update_order_status

    async def racing_update(self, order_id, **kwargs):
        # Another operator commits between our read and our write.
        async with session_factory() as other:
            await other.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(status=OrderStatus.CONFIRMED, version=Order.version + 1)
            )
            await other.commit()
        return await original(self, order_id, **kwargs)

    monkeypatch.setattr(OrderTransaction, "update_order_status", racing_update)

    with pytest.raises(Conflict):
        transition(
            session_factory, run, notifier, placed.id, principal_for(catalog["admin"]),
            OrderStatus.CANCELLED,
        )

    monkeypatch.setattr(OrderTransaction, "update_order_status", original)

    async def reload():
        async with session_factory() as db:
            return await OrderStore(db).get_order(placed.id)

    order = run(reload())
    assert order.status == OrderStatus.CONFIRMED
    assert order.payment_status == PaymentStatus.PENDING
    assert notifier.status_changes == []


def test_get_order_is_scoped_to_participants(placed, session_factory, run, catalog):
    async def fetch(principal):
        async with session_factory() as db:
            return await order_service.get_order(db, placed.id, principal)

    assert run(fetch(principal_for(catalog["customer"]))).id == placed.id
    assert run(fetch(principal_for(catalog["operator"]))).id == placed.id
    with pytest.raises(NotFound):
        run(fetch(principal_for(make_user())))


def test_catalog_reads_only_available_items(session_factory, run, catalog):
    async def fetch():
        async with session_factory() as db:
            tx = OrderTransaction(db)
            return await tx.catalog.get_available_menu_items(catalog["hotel"].id)

    names = sorted(item.name for item in run(fetch()))
    assert names == ["Miso Soup", "Salmon Roll"]


def test_demo_seed_runs_once(session_factory, run, monkeypatch):
    monkeypatch.setattr(order_service, "AsyncSessionLocal", session_factory)

    run(order_service.seed_demo_data())
    run(order_service.seed_demo_data())

    assert count(session_factory, run, Hotel) == 3
    assert count(session_factory, run, MenuItem) == 9
    assert count(session_factory, run, User) == 2


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def list_mine(session_factory, run, principal, **kwargs):
    async def go():
        async with session_factory() as db:
            return await order_service.list_orders(db, principal, **kwargs)

    return run(go())


def list_for_hotel(session_factory, run, principal, hotel_id, **kwargs):
    async def go():
        async with session_factory() as db:
            return await order_service.list_hotel_orders(db, principal, hotel_id, **kwargs)

    return run(go())


@pytest.fixture
def three_orders(session_factory, run, notifier, catalog):
    return [
        place(
            session_factory, run, notifier, catalog["customer"], catalog["hotel"],
            [CartLine(catalog["six"].id, n)],
        )
        for n in (2, 3, 4)
    ]


def test_customer_lists_only_their_own_orders(three_orders, session_factory, run, notifier, catalog):
    stranger = make_user()
    run(persist(session_factory, stranger))
    place(
        session_factory, run, notifier, stranger, catalog["hotel"],
        [CartLine(catalog["six"].id, 2)],
    )

    page = list_mine(session_factory, run, principal_for(catalog["customer"]))

    assert page.total == 3
    assert page.pages == 1
    assert {o.id for o in page.orders} == {o.id for o in three_orders}
    assert list_mine(session_factory, run, principal_for(stranger)).total == 1


def test_my_orders_are_paginated(three_orders, session_factory, run, catalog):
    customer = principal_for(catalog["customer"])

    first = list_mine(session_factory, run, customer, page=1, limit=2)
    second = list_mine(session_factory, run, customer, page=2, limit=2)

    assert (first.total, first.pages, len(first.orders)) == (3, 2, 2)
    assert len(second.orders) == 1
    seen = [o.id for o in first.orders + second.orders]
    assert sorted(seen) == sorted(o.id for o in three_orders)


def test_my_orders_filter_by_status(three_orders, session_factory, run, notifier, catalog):
    customer = principal_for(catalog["customer"])
    cancel(session_factory, run, notifier, three_orders[0].id, customer)

    page = list_mine(session_factory, run, customer, status=OrderStatus.CANCELLED)

    assert [o.id for o in page.orders] == [three_orders[0].id]
    assert list_mine(session_factory, run, customer, status=OrderStatus.PENDING).total == 2


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, 101)])
def test_page_bounds_are_validated(session_factory, run, catalog, page, limit):
    with pytest.raises(InvalidArgument):
        list_mine(session_factory, run, principal_for(catalog["customer"]), page=page, limit=limit)


def test_operator_and_admin_list_hotel_orders(three_orders, session_factory, run, catalog):
    hotel_id = catalog["hotel"].id

    by_operator = list_for_hotel(session_factory, run, principal_for(catalog["operator"]), hotel_id)
    by_admin = list_for_hotel(session_factory, run, principal_for(catalog["admin"]), hotel_id, limit=1)

    assert by_operator.total == 3
    assert by_operator.limit == 20
    assert (by_admin.total, by_admin.pages, len(by_admin.orders)) == (3, 3, 1)


def test_hotel_orders_are_closed_to_customers_and_other_operators(
    three_orders, session_factory, run, catalog
):
    other_hotel = make_hotel(name="Elsewhere")
    run(persist(session_factory, other_hotel))
    other_operator = make_user(role=Role.HOTEL_ADMIN, hotel_id=other_hotel.id)

    for principal in (principal_for(catalog["customer"]), principal_for(other_operator)):
        with pytest.raises(PermissionDenied):
            list_for_hotel(session_factory, run, principal, catalog["hotel"].id)


def test_hotel_orders_filter_by_creation_window(three_orders, session_factory, run, catalog):
    operator = principal_for(catalog["operator"])
    hotel_id = catalog["hotel"].id
    future = datetime.now(timezone.utc) + timedelta(days=1)

    assert list_for_hotel(
        session_factory, run, operator, hotel_id, created_to=future
    ).total == 3
    assert list_for_hotel(
        session_factory, run, operator, hotel_id, created_from=future
    ).total == 0
