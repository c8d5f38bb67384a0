import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from hotel_delivery.models.order import OrderStatus, PaymentMethod, PaymentStatus


class OrderItemCreate(BaseModel):
    menu_item_id: uuid.UUID
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    hotel_id: uuid.UUID
    delivery_address: str = Field(min_length=1, max_length=255)
    items: list[OrderItemCreate] = Field(min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CASH
    delivery_time: datetime | None = None
    special_instructions: str | None = Field(default=None, max_length=500)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    delivery_notes: str | None = Field(default=None, max_length=500)
    # The version the caller last saw; a mismatch is rejected as a conflict.
    version: int | None = None


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    menu_item_id: uuid.UUID
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    user_id: uuid.UUID
    hotel_id: uuid.UUID
    hotel_name: str
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    delivery_fee: Decimal
    total_amount: Decimal
    delivery_address: str
    delivery_time: datetime | None
    special_instructions: str | None
    delivery_notes: str | None
    version: int
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemResponse]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: Pagination
