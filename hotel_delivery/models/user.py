"""
Read-only view of the identity collaborator's user records.
The order core never creates or edits users; it reads email/name for
notifications and role/hotel for permission checks.
"""

import uuid
from enum import Enum

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from hotel_delivery.database import Base


class Role(str, Enum):
    USER = "USER"
    HOTEL_ADMIN = "HOTEL_ADMIN"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    role: Mapped[Role] = mapped_column(SAEnum(Role, name="userrole"), default=Role.USER, nullable=False)
    hotel_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("hotels.id"), nullable=True)
