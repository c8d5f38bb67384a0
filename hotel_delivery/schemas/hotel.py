import uuid
from decimal import Decimal

from pydantic import BaseModel


class NearbyHotelResponse(BaseModel):
    id: uuid.UUID
    name: str
    address: str
    city: str
    cuisine_type: str | None
    latitude: float
    longitude: float
    delivery_radius: int
    delivery_fee: Decimal
    min_order_amount: Decimal
    rating: float
    distance: int  # meters, rounded
    is_deliverable: bool
    estimated_delivery_time: int  # minutes


class UserLocation(BaseModel):
    latitude: float
    longitude: float


class NearbySearchResponse(BaseModel):
    count: int
    user_location: UserLocation
    search_radius: int
    hotels: list[NearbyHotelResponse]
