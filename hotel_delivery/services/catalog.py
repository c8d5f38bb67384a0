"""
Read access to the hotel/menu catalog.

The catalog is owned by hotel management; the order core only reads
snapshots of it. A ``CatalogStore`` wraps the caller's session, so reads made
inside an open transaction share that transaction's isolation scope.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_delivery.errors import NotFound
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem
from hotel_delivery.utils.geo import BoundingBox


class CatalogStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get_hotel(self, hotel_id: uuid.UUID) -> Hotel | None:
        result = await self._db.execute(select(Hotel).where(Hotel.id == hotel_id))
        return result.scalars().first()

    async def list_hotels_in_bounding_box(
        self, box: BoundingBox, cuisine: str | None = None
    ) -> list[Hotel]:
        """Active hotels whose stored coordinates fall inside ``box``."""
        stmt = select(Hotel).where(
            Hotel.is_active.is_(True),
            Hotel.latitude.is_not(None),
            Hotel.longitude.is_not(None),
            Hotel.latitude.between(box.min_lat, box.max_lat),
            Hotel.longitude.between(box.min_lng, box.max_lng),
        )
        if cuisine:
            stmt = stmt.where(Hotel.cuisine_type.icontains(cuisine, autoescape=True))
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_available_menu_items(
        self, hotel_id: uuid.UUID, lock: bool = False
    ) -> list[MenuItem]:
        """
        Available items of one hotel. With ``lock=True`` the rows are read
        FOR SHARE (ignored on dialects without row locks), so a concurrent
        writer cannot disable or reprice them before the reading transaction
        commits.
        """
        stmt = select(MenuItem).where(
            MenuItem.hotel_id == hotel_id,
            MenuItem.is_available.is_(True),
        )
        if lock:
            stmt = stmt.with_for_update(read=True)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def load_hotel_for_order(self, hotel_id: uuid.UUID) -> Hotel:
        hotel = await self.get_hotel(hotel_id)
        if hotel is None or not hotel.is_active:
            raise NotFound("Hotel not found or not active")
        return hotel
