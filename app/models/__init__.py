"""Data models package."""
from app.models.venue import (
    VenueRecord,
    VenueLocation,
    VenueCategory,
    ExternalVenue,
    ExternalCategory,
)
from app.models.search_log import SearchLogEntry

__all__ = [
    # Venue models
    "VenueRecord",
    "VenueLocation",
    "VenueCategory",
    # Provider models
    "ExternalVenue",
    "ExternalCategory",
    # Search log models
    "SearchLogEntry",
]
