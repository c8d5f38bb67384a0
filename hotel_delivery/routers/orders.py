import logging
import uuid

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_delivery.database import get_db
from hotel_delivery.dependencies import get_notifier, get_principal, request_id
from hotel_delivery.models.order import Order, OrderStatus
from hotel_delivery.schemas.order import (
    OrderCreate,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    Pagination,
)
from hotel_delivery.schemas.review import ReviewCreate, ReviewResponse
from hotel_delivery.services import order_service, review_service
from hotel_delivery.services.order_service import MAX_PAGE_SIZE, OrderPage
from hotel_delivery.services.notifier import Notifier
from hotel_delivery.services.pricing import CartLine
from hotel_delivery.services.status_machine import Principal

router = APIRouter()
logger = logging.getLogger(__name__)


def build_order_response(order: Order) -> OrderResponse:
    items = [
        OrderItemResponse(
            id=item.id,
            menu_item_id=item.menu_item_id,
            menu_item_name=item.menu_item.name if item.menu_item else "Unknown",
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
        )
        for item in order.items
    ]
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        hotel_id=order.hotel_id,
        hotel_name=order.hotel.name,
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        delivery_fee=order.delivery_fee,
        total_amount=order.total_amount,
        delivery_address=order.delivery_address,
        delivery_time=order.delivery_time,
        special_instructions=order.special_instructions,
        delivery_notes=order.delivery_notes,
        version=order.version,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=items,
    )


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    request: Request,
    background: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    rid = request_id(request)
    logger.info(
        "Received place_order request",
        extra={"request_id": rid, "user_id": str(principal.user_id), "hotel_id": str(body.hotel_id)},
    )
    order = await order_service.place_order(
        db,
        notifier,
        user_id=principal.user_id,
        hotel_id=body.hotel_id,
        cart_lines=[CartLine(i.menu_item_id, i.quantity) for i in body.items],
        delivery_address=body.delivery_address.strip(),
        payment_method=body.payment_method,
        request_id=rid,
        delivery_time=body.delivery_time,
        special_instructions=body.special_instructions,
        background=background,
    )
    return build_order_response(order)


def build_order_list_response(page: OrderPage) -> OrderListResponse:
    return OrderListResponse(
        orders=[build_order_response(order) for order in page.orders],
        pagination=Pagination(page=page.page, limit=page.limit, total=page.total, pages=page.pages),
    )


@router.get("", response_model=OrderListResponse)
async def list_my_orders(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    result = await order_service.list_orders(db, principal, status_filter, page, limit)
    return build_order_list_response(result)


@router.get("/hotel/{hotel_id}", response_model=OrderListResponse)
async def list_hotel_orders(
    hotel_id: uuid.UUID,
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> OrderListResponse:
    result = await order_service.list_hotel_orders(
        db,
        principal,
        hotel_id,
        status=status_filter,
        created_from=start_date,
        created_to=end_date,
        page=page,
        limit=limit,
    )
    return build_order_list_response(result)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await order_service.get_order(db, order_id, principal)
    return build_order_response(order)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    body: OrderStatusUpdate,
    request: Request,
    background: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    rid = request_id(request)
    logger.info(
        "Received update_order_status request",
        extra={"request_id": rid, "order_id": str(order_id), "status": body.status.value},
    )
    order = await order_service.transition_order_status(
        db,
        notifier,
        order_id,
        principal,
        body.status,
        request_id=rid,
        delivery_notes=body.delivery_notes,
        expected_version=body.version,
        background=background,
    )
    return build_order_response(order)


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    request: Request,
    background: BackgroundTasks,
    principal: Principal = Depends(get_principal),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
) -> OrderResponse:
    order = await order_service.cancel_order(
        db, notifier, order_id, principal, request_id=request_id(request), background=background
    )
    return build_order_response(order)


@router.post(
    "/{order_id}/review",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_review(
    order_id: uuid.UUID,
    body: ReviewCreate,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: AsyncSession = Depends(get_db),
) -> ReviewResponse:
    review = await review_service.submit_review(
        db, order_id, principal, body.rating, body.comment, request_id=request_id(request)
    )
    return ReviewResponse.model_validate(review)
