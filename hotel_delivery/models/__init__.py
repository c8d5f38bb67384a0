# Import all models here so SQLAlchemy registers them with Base.metadata
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.models.menu_item import MenuItem
from hotel_delivery.models.order import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from hotel_delivery.models.review import Review
from hotel_delivery.models.user import Role, User

__all__ = [
    "Hotel",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Review",
    "Role",
    "User",
]
