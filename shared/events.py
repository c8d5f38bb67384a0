"""
Pydantic event schemas shared by the order API and its consumers.
All events extend EventBase which carries correlation/tracing metadata.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, Field

ORDER_PLACED_TOPIC = "order.placed"
ORDER_STATUS_CHANGED_TOPIC = "order.status_changed"


class EventBase(BaseModel):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_version: int = 1
    correlation_id: str  # carries X-Request-ID from the HTTP layer
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class OrderItemEvent(BaseModel):
    menu_item_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"extra": "ignore"}


class OrderPlacedEvent(EventBase):
    """Drives the customer confirmation and the hotel's new-order alert."""

    order_id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    customer_name: str
    customer_email: str
    hotel_id: uuid.UUID
    hotel_name: str
    hotel_email: str | None = None
    payment_method: str
    delivery_address: str
    delivery_fee: Decimal
    total_amount: Decimal
    items: list[OrderItemEvent]


class OrderStatusChangedEvent(EventBase):
    order_id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    customer_name: str
    customer_email: str
    previous_status: str
    new_status: str
    payment_status: str
    delivery_notes: str | None = None
