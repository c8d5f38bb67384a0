"""
Notification service consumer: listens to order.placed and
order.status_changed and emits one structured notification record per
recipient. Email/SMS transport is handled by the mail relay that tails
these records; this service only decides who hears what.
"""

import logging
from dataclasses import dataclass

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from opentelemetry.propagate import extract
from pydantic import ValidationError

from notification_service.config import settings
from notification_service.metrics import NOTIFICATIONS
from shared.events import (
    ORDER_PLACED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    OrderPlacedEvent,
    OrderStatusChangedEvent,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class Notification:
    kind: str  # order_confirmation | hotel_alert | status_update
    recipient: str
    subject: str
    order_number: str


def render_order_placed(event: OrderPlacedEvent) -> list[Notification]:
    notifications = [
        Notification(
            kind="order_confirmation",
            recipient=event.customer_email,
            subject=f"Order Confirmation #{event.order_number}",
            order_number=event.order_number,
        )
    ]
    if event.hotel_email and settings.hotel_alerts_enabled:
        notifications.append(
            Notification(
                kind="hotel_alert",
                recipient=event.hotel_email,
                subject=f"New Order #{event.order_number} - {event.customer_name}",
                order_number=event.order_number,
            )
        )
    return notifications


def render_status_changed(event: OrderStatusChangedEvent) -> list[Notification]:
    return [
        Notification(
            kind="status_update",
            recipient=event.customer_email,
            subject=f"Order #{event.order_number} Status Update: {event.new_status}",
            order_number=event.order_number,
        )
    ]


_RENDERERS = {
    ORDER_PLACED_TOPIC: (OrderPlacedEvent, render_order_placed),
    ORDER_STATUS_CHANGED_TOPIC: (OrderStatusChangedEvent, render_status_changed),
}
TOPICS = tuple(_RENDERERS)


async def run_consumer(consumer: AIOKafkaConsumer) -> None:
    """Main consumer loop; runs until cancelled."""
    async for msg in consumer:
        handle_message(msg.topic, msg.value, msg.headers, offset=msg.offset)


def handle_message(topic: str, value: bytes, headers, offset: int | None = None) -> list[Notification]:
    # Extract W3C trace context propagated via Kafka headers
    carrier = {k: v.decode() for k, v in headers} if headers else {}
    ctx = extract(carrier)

    with tracer.start_as_current_span(f"kafka.consume.{topic}", context=ctx):
        if topic not in _RENDERERS:
            logger.warning("Ignoring message from unexpected topic", extra={"topic": topic})
            return []
        event_type, render = _RENDERERS[topic]

        try:
            event = event_type.model_validate_json(value)
        except ValidationError as exc:
            logger.error(
                "Failed to parse order event",
                extra={"topic": topic, "error": str(exc), "offset": offset},
            )
            NOTIFICATIONS.labels("parse_error").inc()
            return []

        notifications = render(event)
        for notification in notifications:
            logger.info(
                "NOTIFICATION: %s",
                notification.subject,
                extra={
                    "kind": notification.kind,
                    "recipient": notification.recipient,
                    "order_number": notification.order_number,
                    "order_id": str(event.order_id),
                    "correlation_id": event.correlation_id,
                },
            )
            NOTIFICATIONS.labels(notification.kind).inc()
        return notifications
