"""
FastAPI dependencies for the collaborators each request needs.

Authentication happens upstream: the gateway forwards the caller's identity
in ``X-User-Id`` / ``X-User-Role`` / ``X-Hotel-Id`` headers.
"""

import uuid

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hotel_delivery.database import get_db
from hotel_delivery.models.user import Role
from hotel_delivery.services.catalog import CatalogStore
from hotel_delivery.services.notifier import KafkaNotifier, Notifier
from hotel_delivery.services.status_machine import Principal


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_hotel_id: str | None = Header(default=None),
) -> Principal:
    try:
        user_id = uuid.UUID(x_user_id) if x_user_id else None
        role = Role(x_user_role.upper()) if x_user_role else Role.USER
        hotel_id = uuid.UUID(x_hotel_id) if x_hotel_id else None
    except ValueError:
        user_id = None
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid caller identity",
        )
    return Principal(user_id=user_id, role=role, hotel_id=hotel_id)


def get_notifier(request: Request) -> Notifier:
    return KafkaNotifier(request.app.state.kafka_producer)


def get_catalog(db: AsyncSession = Depends(get_db)) -> CatalogStore:
    return CatalogStore(db)
