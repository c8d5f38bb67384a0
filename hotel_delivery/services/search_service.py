import logging
from dataclasses import dataclass

from opentelemetry import trace

from hotel_delivery.config import settings
from hotel_delivery.errors import InvalidArgument
from hotel_delivery.metrics import SEARCH_RESULTS
from hotel_delivery.models.hotel import Hotel
from hotel_delivery.services.catalog import CatalogStore
from hotel_delivery.utils.geo import (
    Coordinate,
    bounding_box,
    distance_meters,
    estimate_delivery_minutes,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class NearbyHotel:
    hotel: Hotel
    distance_meters: float
    estimated_delivery_minutes: int
    is_deliverable: bool = True


async def search_nearby(
    catalog: CatalogStore,
    location: Coordinate | None,
    radius_meters: int | None = None,
    cuisine: str | None = None,
) -> list[NearbyHotel]:
    """
    Hotels that can deliver to ``location``, nearest first.

    The search radius only sizes the bounding-box prefilter. Whether a hotel
    is returned depends on its own delivery radius.
    """
    if location is None:
        raise InvalidArgument("Latitude and longitude are required")
    if radius_meters is None:
        radius_meters = settings.default_search_radius
    if not settings.min_search_radius <= radius_meters <= settings.max_search_radius:
        raise InvalidArgument(
            f"Radius must be between {settings.min_search_radius} "
            f"and {settings.max_search_radius} meters"
        )
    cuisine = cuisine.strip() if cuisine else None

    with tracer.start_as_current_span("hotels.search_nearby") as span:
        span.set_attribute("search.radius_m", radius_meters)

        box = bounding_box(location, radius_meters)
        candidates = await catalog.list_hotels_in_bounding_box(box, cuisine)

        ranked: list[tuple[float, Hotel]] = []
        for hotel in candidates:
            if not hotel.is_active:
                continue
            hotel_location = hotel.coordinate
            if hotel_location is None:
                continue
            distance = distance_meters(location, hotel_location)
            if distance <= hotel.delivery_radius:
                ranked.append((distance, hotel))

        ranked.sort(key=lambda pair: pair[0])
        results = [
            NearbyHotel(
                hotel=hotel,
                distance_meters=distance,
                estimated_delivery_minutes=estimate_delivery_minutes(distance),
            )
            for distance, hotel in ranked[: settings.max_search_results]
        ]

        span.set_attribute("search.candidates", len(candidates))
        span.set_attribute("search.results", len(results))

    SEARCH_RESULTS.observe(len(results))
    logger.info(
        "Proximity search finished",
        extra={
            "radius_m": radius_meters,
            "cuisine": cuisine,
            "candidates": len(candidates),
            "results": len(results),
        },
    )
    return results
