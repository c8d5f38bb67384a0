"""
Great-circle geometry for proximity search.

Known limitation: ``bounding_box`` divides by cos(latitude) to widen the
longitude range, which degenerates near the poles. Centres within roughly one
search radius of ±90° raise ``InvalidArgument`` instead of returning a box.
Delivery intent at extreme latitudes is undefined, so this is left as is.

The box is also not split at the antimeridian: near ±180° longitude
``min_lng``/``max_lng`` run past the valid range and the prefilter misses
hotels on the other side of the dateline. No delivery area spans it.
"""

import math
from dataclasses import dataclass

from hotel_delivery.errors import InvalidArgument

EARTH_RADIUS_METERS = 6_371_000


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        for name, value, bound in (("latitude", self.latitude, 90), ("longitude", self.longitude, 180)):
            if value is None or not math.isfinite(value) or not -bound <= value <= bound:
                raise InvalidArgument(f"Invalid {name}: {value!r} (must be within ±{bound})")


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in meters between two coordinates."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Float error can push h fractionally outside [0, 1].
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bounding_box(center: Coordinate, radius_meters: float) -> BoundingBox:
    """Rectangular lat/lng range enclosing a circle of ``radius_meters`` around ``center``."""
    lat_rad = math.radians(center.latitude)
    lng_rad = math.radians(center.longitude)
    angular_distance = radius_meters / EARTH_RADIUS_METERS

    try:
        delta_lng = math.asin(math.sin(angular_distance) / math.cos(lat_rad))
    except (ValueError, ZeroDivisionError):
        raise InvalidArgument(
            f"Bounding box is undefined at latitude {center.latitude} for radius {radius_meters}m"
        )

    return BoundingBox(
        min_lat=math.degrees(lat_rad - angular_distance),
        max_lat=math.degrees(lat_rad + angular_distance),
        min_lng=math.degrees(lng_rad - delta_lng),
        max_lng=math.degrees(lng_rad + delta_lng),
    )


def estimate_delivery_minutes(distance: float) -> int:
    """
    Rough delivery estimate: 10 minutes per 500 m plus a fixed 20 minute
    preparation buffer. A linear heuristic, not a routing-engine estimate.
    """
    return math.ceil(distance / 500 * 10 + 20)
