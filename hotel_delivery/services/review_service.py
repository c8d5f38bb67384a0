import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_delivery.errors import AlreadyExists, NotFound, PermissionDenied, PreconditionFailed
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.order import Order, OrderStatus
from hotel_delivery.models.review import Review
from hotel_delivery.services.status_machine import Principal, can_view

logger = logging.getLogger(__name__)


async def submit_review(
    db: AsyncSession,
    order_id: uuid.UUID,
    principal: Principal,
    rating: int,
    comment: str | None,
    request_id: str,
) -> Review:
    """
    Attach the caller's review to a delivered order and refresh the hotel's
    aggregate rating. One review per (order, user).
    """
    if db.in_transaction():
        await db.commit()

    try:
        async with db.begin():
            result = await db.execute(
                select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
            )
            order = result.scalars().first()
            if order is None or not can_view(order, principal):
                raise NotFound("Order not found")
            if order.user_id != principal.user_id:
                raise PermissionDenied("Only the customer who placed the order can review it")
            if order.status != OrderStatus.DELIVERED:
                raise PreconditionFailed("Only delivered orders can be reviewed")

            existing = await db.execute(
                select(Review.id).where(
                    Review.order_id == order.id,
                    Review.user_id == principal.user_id,
                )
            )
            if existing.scalars().first() is not None:
                raise AlreadyExists("You have already reviewed this order")

            review = Review(
                order_id=order.id,
                user_id=principal.user_id,
                hotel_id=order.hotel_id,
                rating=rating,
                comment=comment,
            )
            db.add(review)
            await db.flush()

            # Update hotel rating
            stats = await db.execute(
                select(func.avg(Review.rating), func.count(Review.id)).where(
                    Review.hotel_id == order.hotel_id
                )
            )
            average, count = stats.one()
            await db.execute(
                update(Hotel)
                .where(Hotel.id == order.hotel_id)
                .values(rating=float(average or 0), total_reviews=count)
                .execution_options(synchronize_session=False)
            )
    except IntegrityError:
        # Lost a race with a concurrent submission for the same pair.
        raise AlreadyExists("You have already reviewed this order")

    logger.info(
        "Review submitted",
        extra={
            "order_id": str(order_id),
            "hotel_id": str(review.hotel_id),
            "rating": rating,
            "request_id": request_id,
        },
    )
    return review
