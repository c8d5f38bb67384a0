import asyncio
import os
import uuid
from decimal import Decimal

# Must be set before hotel_delivery.database builds its engine.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import hotel_delivery.models  # noqa: F401
from hotel_delivery.database import Base
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem
from hotel_delivery.models.user import Role, User
from hotel_delivery.services.notifier import drain_notifications
from hotel_delivery.services.status_machine import Principal


class RecordingNotifier:
    """Stands in for KafkaNotifier; optionally fails every call."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.placed = []
        self.status_changes = []

    async def order_placed(self, event):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.placed.append(
            {
                "order_number": event.order_number,
                "user": event.customer_email,
                "hotel_email": event.hotel_email,
            }
        )

    async def order_status_changed(self, event):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.status_changes.append((event.order_number, event.previous_status, event.new_status))


@pytest.fixture
def run():
    """asyncio.run that also lets notifications scheduled by the coroutine finish."""

    def _run(coro):
        async def main():
            try:
                return await coro
            finally:
                await drain_notifications()

        return asyncio.run(main())

    return _run


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    async def create_all():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_all())
    yield async_sessionmaker(engine, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture
def notifier():
    return RecordingNotifier()


def make_hotel(**overrides) -> Hotel:
    fields = {
        "id": uuid.uuid4(),
        "name": "Tokyo Sushi Express",
        "email": "info@tokyosushi.com",
        "address": "456 Park Avenue",
        "city": "New York",
        "cuisine_type": "Japanese",
        "latitude": 40.7489,
        "longitude": -73.9680,
        "delivery_radius": 4000,
        "delivery_fee": Decimal("2.99"),
        "min_order_amount": Decimal("10.00"),
        "is_active": True,
        "rating": 0.0,
        "total_reviews": 0,
    }
    fields.update(overrides)
    return Hotel(**fields)


def make_menu_item(hotel: Hotel, price: str, **overrides) -> MenuItem:
    fields = {
        "id": uuid.uuid4(),
        "hotel_id": hotel.id,
        "name": f"Dish {price}",
        "price": Decimal(price),
        "is_available": True,
    }
    fields.update(overrides)
    return MenuItem(**fields)


def make_user(role: Role = Role.USER, **overrides) -> User:
    fields = {
        "id": uuid.uuid4(),
        "email": f"{uuid.uuid4().hex[:8]}@example.com",
        "full_name": "Jane Doe",
        "role": role,
    }
    fields.update(overrides)
    return User(**fields)


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role, hotel_id=user.hotel_id)


async def persist(session_factory, *objects) -> None:
    async with session_factory() as db:
        db.add_all(objects)
        await db.commit()


@pytest.fixture
def catalog(session_factory, run):
    """One hotel (fee 2.99, minimum 10.00) with a 6.00, a 4.00 and an unavailable item."""
    hotel = make_hotel()
    six = make_menu_item(hotel, "6.00", name="Salmon Roll")
    four = make_menu_item(hotel, "4.00", name="Miso Soup")
    sold_out = make_menu_item(hotel, "8.00", name="Uni", is_available=False)
    customer = make_user()
    operator = make_user(Role.HOTEL_ADMIN, hotel_id=hotel.id)
    admin = make_user(Role.ADMIN)

    run(persist(session_factory, hotel))
    run(persist(session_factory, six, four, sold_out, customer, operator, admin))
    return {
        "hotel": hotel,
        "six": six,
        "four": four,
        "sold_out": sold_out,
        "customer": customer,
        "operator": operator,
        "admin": admin,
    }
