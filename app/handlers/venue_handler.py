"""Venue handler for HTTP requests."""
import logging
from typing import Optional

from app.models import VenueRecord
from app.services import VenueProximityCache

logger = logging.getLogger(__name__)


class VenueHandler:
    """Handler for venue-related HTTP requests."""

    def __init__(self, venue_cache: VenueProximityCache):
        """Initialize venue handler.

        Args:
            venue_cache: Proximity cache serving venue lookups
        """
        self.venue_cache = venue_cache

    async def get_venues_nearby(
        self, lat: float, lng: float, meters: int, filter: Optional[str] = None
    ) -> list[VenueRecord]:
        """Get venues near a location, fetching from the venue directory when needed.

        Args:
            lat: Latitude
            lng: Longitude
            meters: Radius in meters
            filter: Optional name filter

        Returns:
            List of VenueRecord
        """
        logger.info(
            f"[VenueHandler] GetVenuesNearby: lat={lat:.6f}, lng={lng:.6f}, "
            f"meters={meters}, filter={filter!r}"
        )
        venues = await self.venue_cache.find_nearby(lat, lng, meters, filter)
        logger.info(f"[VenueHandler] Returning {len(venues)} venues")
        return venues

    async def get_venues_with_rooms(self, lat: float, lng: float, meters: int) -> list[VenueRecord]:
        """Get venues that have chat rooms near a location, nearest first."""
        logger.info(
            f"[VenueHandler] GetVenuesWithRooms: lat={lat:.6f}, lng={lng:.6f}, meters={meters}"
        )
        venues = await self.venue_cache.find_nearby_with_rooms(lat, lng, meters)
        logger.info(f"[VenueHandler] Returning {len(venues)} venues with rooms")
        return venues

    async def get_venue(self, venue_id: str) -> Optional[VenueRecord]:
        """Get a single venue by its internal ID."""
        return await self.venue_cache.find_by_id(venue_id)

    async def get_venues(self, venue_ids: list[str]) -> list[VenueRecord]:
        """Get several venues by internal ID, skipping unknown IDs."""
        return await self.venue_cache.find_many(venue_ids)

    def ping(self) -> dict[str, str]:
        """Health check endpoint.

        Returns:
            {"status": "pong"}
        """
        logger.debug("[VenueHandler] Ping")
        return {"status": "pong"}
