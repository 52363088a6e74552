"""Venue data models using Pydantic."""
import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class VenueLocation(BaseModel):
    """Structured location of a venue.

    Matches the venue directory's location block; unknown keys are ignored.
    """
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    cc: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class ExternalCategory(BaseModel):
    """Category as returned by the external venue directory."""
    id: Optional[str] = None
    name: str = ""
    plural_name: Optional[str] = Field(default=None, alias="pluralName")
    short_name: Optional[str] = Field(default=None, alias="shortName")
    icon: Optional[dict[str, Any]] = None

    model_config = ConfigDict(populate_by_name=True)


class ExternalVenue(BaseModel):
    """Raw venue candidate from the external venue directory.

    ``id`` and ``location`` are optional here on purpose: the store rejects a
    candidate without them individually instead of failing the whole batch.
    """
    id: Optional[str] = None
    name: str = ""
    location: Optional[VenueLocation] = None
    categories: list[ExternalCategory] = Field(default_factory=list)
    verified: bool = False
    referral_id: Optional[str] = Field(default=None, alias="referralId")

    model_config = ConfigDict(populate_by_name=True)

    def coordinate(self) -> Optional[tuple[float, float]]:
        """Return the ``(longitude, latitude)`` pair, or None when incomplete."""
        if self.location is None or self.location.lat is None or self.location.lng is None:
            return None
        return (self.location.lng, self.location.lat)


class VenueCategory(BaseModel):
    """Category attached to a stored venue, keyed by a store-local key."""
    key: str
    external_id: str
    name: str = ""
    plural_name: Optional[str] = None
    short_name: Optional[str] = None
    icon: Optional[dict[str, Any]] = None


class VenueRecord(BaseModel):
    """Venue as persisted in the store.

    Counters and ``last_message`` belong to the chat collaborators (rooms,
    messages) and are never rewritten by reconciliation.
    """

    id: str
    external_id: str
    name: str = ""
    coord: list[float]  # [longitude, latitude]
    location: VenueLocation = Field(default_factory=VenueLocation)
    categories: list[VenueCategory] = Field(default_factory=list)
    verified: bool = False
    referral_id: Optional[str] = None

    room_count: int = 0
    user_count: int = 0
    message_count: int = 0
    last_message: Optional[datetime] = None

    created: datetime
    updated: datetime

    @property
    def lng(self) -> float:
        return self.coord[0]

    @property
    def lat(self) -> float:
        return self.coord[1]

    @classmethod
    def from_redis_hash(cls, data: dict[str, str]) -> "VenueRecord":
        """Build a record from its Redis hash representation.

        Descriptive fields are stored JSON-encoded, counters as plain integers
        and timestamps as ISO-8601 strings.
        """
        values: dict[str, Any] = {}
        for field in JSON_FIELDS:
            if field in data:
                values[field] = json.loads(data[field])
        for field in COUNTER_FIELDS:
            values[field] = int(data.get(field) or 0)
        for field in ("id", "created", "updated"):
            values[field] = data.get(field)
        if data.get("last_message"):
            values["last_message"] = data["last_message"]
        return cls.model_validate(values)

    def __str__(self) -> str:
        return f"VenueRecord(id={self.id}, external_id={self.external_id}, name={self.name})"


# Hash fields rewritten on every reconciliation
JSON_FIELDS = (
    "external_id",
    "name",
    "coord",
    "location",
    "categories",
    "verified",
    "referral_id",
)

# Hash fields owned by collaborators, only ever defaulted on insert
COUNTER_FIELDS = ("room_count", "user_count", "message_count")
