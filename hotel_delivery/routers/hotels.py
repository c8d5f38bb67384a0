import logging

from fastapi import APIRouter, Depends, Query, Request

from hotel_delivery.config import settings
from hotel_delivery.dependencies import get_catalog, request_id
from hotel_delivery.schemas.hotel import NearbyHotelResponse, NearbySearchResponse, UserLocation
from hotel_delivery.services import search_service
from hotel_delivery.services.catalog import CatalogStore
from hotel_delivery.services.search_service import NearbyHotel
from hotel_delivery.utils.geo import Coordinate

router = APIRouter()
logger = logging.getLogger(__name__)


def _to_response(result: NearbyHotel) -> NearbyHotelResponse:
    hotel = result.hotel
    return NearbyHotelResponse(
        id=hotel.id,
        name=hotel.name,
        address=hotel.address,
        city=hotel.city,
        cuisine_type=hotel.cuisine_type,
        latitude=hotel.latitude,
        longitude=hotel.longitude,
        delivery_radius=hotel.delivery_radius,
        delivery_fee=hotel.delivery_fee,
        min_order_amount=hotel.min_order_amount,
        rating=hotel.rating,
        distance=round(result.distance_meters),
        is_deliverable=result.is_deliverable,
        estimated_delivery_time=result.estimated_delivery_minutes,
    )


@router.get("/nearby", response_model=NearbySearchResponse)
async def nearby_hotels(
    request: Request,
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    radius: int = Query(
        default=settings.default_search_radius,
        ge=settings.min_search_radius,
        le=settings.max_search_radius,
    ),
    cuisine: str | None = None,
    catalog: CatalogStore = Depends(get_catalog),
) -> NearbySearchResponse:
    logger.info(
        "Received nearby_hotels request",
        extra={"request_id": request_id(request), "radius": radius, "cuisine": cuisine},
    )
    location = Coordinate(latitude, longitude)
    results = await search_service.search_nearby(catalog, location, radius, cuisine)
    return NearbySearchResponse(
        count=len(results),
        user_location=UserLocation(latitude=latitude, longitude=longitude),
        search_radius=radius,
        hotels=[_to_response(r) for r in results],
    )
