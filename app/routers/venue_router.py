"""FastAPI routes for venue endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from app.exceptions import ProviderTimeout, ProviderUnavailable, StorageUnavailable
from app.models import VenueRecord

logger = logging.getLogger(__name__)

# Create router at module level
router = APIRouter()

# Global handler reference - set during startup
_venue_handler = None


def set_venue_handler(handler):
    """Set the venue handler instance (called during startup)."""
    global _venue_handler
    _venue_handler = handler
    logger.info("[VenueRouter] Handler injected successfully")


def get_handler():
    """Get the venue handler, raising error if not initialized."""
    if _venue_handler is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return _venue_handler


def _to_http_error(e: Exception) -> HTTPException:
    """Map cache errors onto HTTP errors."""
    if isinstance(e, ProviderTimeout):
        return HTTPException(status_code=504, detail="Venue directory timed out")
    if isinstance(e, ProviderUnavailable):
        return HTTPException(status_code=502, detail="Venue directory unavailable")
    if isinstance(e, StorageUnavailable):
        return HTTPException(status_code=503, detail="Venue store unavailable")
    return HTTPException(status_code=500, detail="Internal server error")


@router.get(
    "/v1/venues/nearby",
    response_model=list[VenueRecord],
    summary="Get nearby venues",
    description="Get venues within a radius of a location, optionally matching a name filter",
)
async def get_venues_nearby(
    lat: float = Query(..., description="Latitude", ge=-90, le=90),
    lng: float = Query(..., description="Longitude", ge=-180, le=180),
    meters: int = Query(..., description="Radius in meters", gt=0, le=100000),
    filter: Optional[str] = Query(None, description="Case-insensitive name filter"),
) -> list[VenueRecord]:
    """Get nearby venues."""
    handler = get_handler()
    try:
        return await handler.get_venues_nearby(lat, lng, meters, filter)
    except Exception as e:
        logger.error(f"[VenueRouter] Error in get_venues_nearby: {e}")
        raise _to_http_error(e)


@router.get(
    "/v1/venues/rooms",
    response_model=list[VenueRecord],
    summary="Get nearby venues with rooms",
    description="Get venues with at least one chat room within a radius, nearest first",
)
async def get_venues_with_rooms(
    lat: float = Query(..., description="Latitude", ge=-90, le=90),
    lng: float = Query(..., description="Longitude", ge=-180, le=180),
    meters: int = Query(..., description="Radius in meters", gt=0, le=100000),
) -> list[VenueRecord]:
    """Get nearby venues that have rooms."""
    handler = get_handler()
    try:
        return await handler.get_venues_with_rooms(lat, lng, meters)
    except Exception as e:
        logger.error(f"[VenueRouter] Error in get_venues_with_rooms: {e}")
        raise _to_http_error(e)


@router.get(
    "/v1/venues",
    response_model=list[VenueRecord],
    summary="Get venues by ID",
)
async def get_venues(
    ids: list[str] = Query(..., description="Venue IDs"),
) -> list[VenueRecord]:
    """Get several venues by ID."""
    handler = get_handler()
    try:
        return await handler.get_venues(ids)
    except Exception as e:
        logger.error(f"[VenueRouter] Error in get_venues: {e}")
        raise _to_http_error(e)


@router.get(
    "/v1/venues/{venue_id}",
    response_model=VenueRecord,
    summary="Get a venue",
)
async def get_venue(venue_id: str) -> VenueRecord:
    """Get a venue by ID."""
    handler = get_handler()
    try:
        venue = await handler.get_venue(venue_id)
    except Exception as e:
        logger.error(f"[VenueRouter] Error in get_venue: {e}")
        raise _to_http_error(e)
    if venue is None:
        raise HTTPException(status_code=404, detail="Venue not found")
    return venue


@router.get(
    "/ping",
    summary="Health check",
    description="Health check endpoint",
)
def ping() -> dict[str, str]:
    """Health check endpoint."""
    handler = get_handler()
    return handler.ping()
