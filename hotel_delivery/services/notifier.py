"""
Outbound notifications.

Notifications go out after the order transaction has committed and never
hold up the caller. The service snapshots the order into an event, then
``schedule`` hands it to ``dispatch``: as a FastAPI background task when the
request supplies one, otherwise as a tracked asyncio task. ``dispatch``
bounds delivery with a timeout and logs failures without re-raising.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from aiokafka import AIOKafkaProducer
from fastapi import BackgroundTasks
from opentelemetry.propagate import inject

from hotel_delivery.config import settings
from hotel_delivery.metrics import NOTIFICATION_FAILURES
from hotel_delivery.models.order import Order, OrderStatus
from hotel_delivery.models.user import User
from shared.events import (
    ORDER_PLACED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    EventBase,
    OrderItemEvent,
    OrderPlacedEvent,
    OrderStatusChangedEvent,
)

logger = logging.getLogger(__name__)

# Notifications in flight outside a request; kept referenced until done.
_pending: set[asyncio.Task] = set()

OrderEvent = OrderPlacedEvent | OrderStatusChangedEvent


class Notifier(Protocol):
    async def order_placed(self, event: OrderPlacedEvent) -> None: ...

    async def order_status_changed(self, event: OrderStatusChangedEvent) -> None: ...


def build_order_placed_event(
    order: Order, user: User, hotel_email: str | None, correlation_id: str
) -> OrderPlacedEvent:
    return OrderPlacedEvent(
        correlation_id=correlation_id,
        order_id=order.id,
        order_number=order.order_number,
        user_id=user.id,
        customer_name=user.full_name,
        customer_email=user.email,
        hotel_id=order.hotel_id,
        hotel_name=order.hotel.name,
        hotel_email=hotel_email,
        payment_method=order.payment_method.value,
        delivery_address=order.delivery_address,
        delivery_fee=order.delivery_fee,
        total_amount=order.total_amount,
        items=[
            OrderItemEvent(
                menu_item_id=item.menu_item_id,
                name=item.menu_item.name if item.menu_item else "Unknown",
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
    )


def build_status_changed_event(
    order: Order, user: User, previous_status: OrderStatus, correlation_id: str
) -> OrderStatusChangedEvent:
    return OrderStatusChangedEvent(
        correlation_id=correlation_id,
        order_id=order.id,
        order_number=order.order_number,
        user_id=user.id,
        customer_name=user.full_name,
        customer_email=user.email,
        previous_status=previous_status.value,
        new_status=order.status.value,
        payment_status=order.payment_status.value,
        delivery_notes=order.delivery_notes,
    )


class KafkaNotifier:
    """Publishes order events; notification_service turns them into messages."""

    def __init__(self, producer: AIOKafkaProducer) -> None:
        self._producer = producer

    async def _publish(self, topic: str, event: EventBase, order_id: str) -> None:
        # Propagate trace context into the downstream Kafka message
        outgoing_headers: dict[str, str] = {}
        inject(outgoing_headers)
        await self._producer.send_and_wait(
            topic,
            key=order_id.encode(),
            value=event.model_dump_json().encode(),
            headers=[(k, v.encode()) for k, v in outgoing_headers.items()],
        )
        logger.info(
            "Published %s event",
            topic,
            extra={"order_id": order_id, "request_id": event.correlation_id},
        )

    async def order_placed(self, event: OrderPlacedEvent) -> None:
        await self._publish(ORDER_PLACED_TOPIC, event, str(event.order_id))

    async def order_status_changed(self, event: OrderStatusChangedEvent) -> None:
        await self._publish(ORDER_STATUS_CHANGED_TOPIC, event, str(event.order_id))


async def dispatch(kind: str, send: Callable[[OrderEvent], Awaitable[None]], event: OrderEvent) -> bool:
    """Deliver one event; on any failure log it and return False."""
    order_id = str(event.order_id)
    try:
        await asyncio.wait_for(send(event), timeout=settings.notification_timeout)
        return True
    except Exception as exc:
        NOTIFICATION_FAILURES.labels(kind).inc()
        logger.error(
            "Notification dispatch failed, order is unaffected",
            extra={"order_id": order_id, "notification": kind, "error": str(exc)},
        )
        return False


def schedule(
    kind: str,
    send: Callable[[OrderEvent], Awaitable[None]],
    event: OrderEvent,
    background: BackgroundTasks | None = None,
) -> None:
    if background is not None:
        # Starlette runs these once the response has been sent.
        background.add_task(dispatch, kind, send, event)
        return
    task = asyncio.get_running_loop().create_task(dispatch(kind, send, event))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def drain_notifications() -> None:
    """Wait for scheduled notifications on this loop, e.g. before shutdown."""
    loop = asyncio.get_running_loop()
    tasks = [task for task in _pending if task.get_loop() is loop]
    if tasks:
        await asyncio.gather(*tasks)
