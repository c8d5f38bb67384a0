"""
Transaction primitive for order writes.

``OrderStore.with_transaction(fn)`` runs ``fn`` inside a single
``AsyncSession.begin()`` scope: either every insert/update made through the
handle commits, or none does. Catalog reads made through ``handle.catalog``
share the same scope.
"""

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hotel_delivery.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from hotel_delivery.models.user import User
from hotel_delivery.services.catalog import CatalogStore
from hotel_delivery.services.pricing import PricedLine

T = TypeVar("T")


class OrderTransaction:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self.catalog = CatalogStore(db)

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        result = await self._db.execute(select(User).where(User.id == user_id))
        return result.scalars().first()

    async def get_order(self, order_id: uuid.UUID) -> Order | None:
        # Status and version must come from the row, not the identity map.
        result = await self._db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def insert_order(self, **fields) -> Order:
        order = Order(**fields)
        self._db.add(order)
        await self._db.flush()  # obtain order.id before inserting items
        return order

    async def insert_order_items(self, order_id: uuid.UUID, lines: list[PricedLine]) -> list[OrderItem]:
        items = [
            OrderItem(
                order_id=order_id,
                menu_item_id=line.menu_item_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
            for line in lines
        ]
        self._db.add_all(items)
        await self._db.flush()
        return items

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        read_status: OrderStatus,
        read_version: int,
        new_status: OrderStatus,
        payment_status: PaymentStatus,
        delivery_notes: str | None = None,
    ) -> bool:
        """
        Conditional write: applies only if the row still has the status and
        version the caller read. Returns False when it lost the race.
        """
        values = {
            "status": new_status,
            "payment_status": payment_status,
            "version": Order.version + 1,
        }
        if delivery_notes:
            values["delivery_notes"] = delivery_notes

        result = await self._db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.status == read_status,
                Order.version == read_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class OrderStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def with_transaction(self, fn: Callable[[OrderTransaction], Awaitable[T]]) -> T:
        if self._db.in_transaction():
            # Close the implicit transaction left open by earlier reads.
            await self._db.commit()
        async with self._db.begin():
            return await fn(OrderTransaction(self._db))

    async def get_order(self, order_id: uuid.UUID) -> Order | None:
        result = await self._db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(
                selectinload(Order.items).selectinload(OrderItem.menu_item),
                selectinload(Order.hotel),
                selectinload(Order.user),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_orders(
        self,
        *,
        user_id: uuid.UUID | None = None,
        hotel_id: uuid.UUID | None = None,
        status: OrderStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Order], int]:
        """One page of orders, newest first, plus the total matching count."""
        conditions = []
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if hotel_id is not None:
            conditions.append(Order.hotel_id == hotel_id)
        if status is not None:
            conditions.append(Order.status == status)
        if created_from is not None:
            conditions.append(Order.created_at >= created_from)
        if created_to is not None:
            conditions.append(Order.created_at <= created_to)

        total = await self._db.scalar(select(func.count(Order.id)).where(*conditions))
        result = await self._db.execute(
            select(Order)
            .where(*conditions)
            .options(
                selectinload(Order.items).selectinload(OrderItem.menu_item),
                selectinload(Order.hotel),
                selectinload(Order.user),
            )
            .order_by(Order.created_at.desc(), Order.id)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0
