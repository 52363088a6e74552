"""Geospatial helpers: distances, proximity ordering and cache key rounding."""
import math
from decimal import Decimal, ROUND_DOWN
from typing import Iterable, Optional, TypeVar

LatLng = tuple[float, float]

EARTH_RADIUS_M = 6_371_000.0

# Redis GEO indexes only accept latitudes inside the Web Mercator range
GEO_MAX_LATITUDE = 85.05112878

T = TypeVar("T")


def haversine_distance_m(point_a: LatLng, point_b: LatLng, *, radius_m: float = EARTH_RADIUS_M) -> float:
    """Compute the great-circle distance between two (lat, lng) points in meters.

    The intermediate value is clamped to avoid floating point drift near the poles.
    """
    lat1, lng1 = point_a
    lat2, lng2 = point_b

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lng2 - lng1)

    sin_dphi = math.sin(dphi / 2.0)
    sin_dlambda = math.sin(dlambda / 2.0)

    a = sin_dphi**2 + math.cos(phi1) * math.cos(phi2) * sin_dlambda**2
    a = min(1.0, max(0.0, a))
    c = 2.0 * math.asin(math.sqrt(a))
    return radius_m * c


def sort_by_proximity(reference_lat: float, reference_lng: float, venues: Iterable[T]) -> list[T]:
    """Order venues by distance from the reference point, nearest first.

    Venues must expose ``coord`` as ``[longitude, latitude]`` and ``external_id``.
    Ties at equal distance are broken by ``external_id`` ascending so the
    output is deterministic.

    Args:
        reference_lat: Reference latitude
        reference_lng: Reference longitude
        venues: Venues to order

    Returns:
        New list of venues ordered by (distance, external_id)
    """
    reference = (reference_lat, reference_lng)

    def sort_key(venue) -> tuple[float, str]:
        lng, lat = venue.coord
        return (haversine_distance_m(reference, (lat, lng)), venue.external_id)

    return sorted(venues, key=sort_key)


def round_to_precision(value: float, digits: int) -> float:
    """Reduce a coordinate to a fixed number of decimal places.

    Digits beyond the precision are dropped (rounded toward zero), computed on
    the decimal representation so that 12.3456 stays 12.3456 instead of
    drifting to 12.3455 through binary float error.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_DOWN))


def normalize_filter(text: Optional[str]) -> Optional[str]:
    """Normalize a free-text venue filter.

    Empty or whitespace-only filters collapse to ``None`` so that unfiltered
    searches share one cache key.
    """
    if text is None:
        return None
    text = " ".join(text.split()).lower()
    return text or None


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    """Check that a coordinate pair can be stored in a GEO index."""
    if lat is None or lng is None:
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -GEO_MAX_LATITUDE <= lat <= GEO_MAX_LATITUDE and -180.0 <= lng <= 180.0


__all__ = [
    "LatLng",
    "haversine_distance_m",
    "sort_by_proximity",
    "round_to_precision",
    "normalize_filter",
    "is_valid_coordinate",
]
