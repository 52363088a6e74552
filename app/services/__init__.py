"""Services package."""
from app.services.venue_cache_service import VenueProximityCache

__all__ = ["VenueProximityCache"]
