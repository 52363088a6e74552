"""Redis-based Data Access Object for venue operations."""
import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Callable, Iterable, Optional

import redis

from app.db.geo_redis_client import GeoRedisClient
from app.exceptions import MalformedCandidate, StorageUnavailable
from app.metrics import VENUE_UPSERT_RESULTS
from app.models import ExternalVenue, VenueCategory, VenueRecord
from app.utils.clock import utc_now
from app.utils.geo import is_valid_coordinate, normalize_filter

logger = logging.getLogger(__name__)

VENUES_GEO_KEY_V1 = "venues_geo_v1"
VENUE_KEY_PREFIX_V1 = "venue_v1:"
VENUE_KEY_FORMAT_V1 = VENUE_KEY_PREFIX_V1 + "{}"
VENUE_EXTERNAL_IDS_KEY_V1 = "venue_external_ids_v1"
VENUE_CATEGORIES_KEY_V1 = "venue_categories_v1"

# Upper bound on any radius query, whatever the caller asks for
RADIUS_QUERY_MAX_RESULTS = 100


def _new_key() -> str:
    return uuid.uuid4().hex


class RedisVenueDAO:
    """Data Access Object for venue records stored in Redis.

    Each venue is a hash ``venue_v1:{id}``; ``venues_geo_v1`` indexes the ids
    by coordinate and ``venue_external_ids_v1`` maps provider ids to ids.
    """

    def __init__(self, client: GeoRedisClient, clock: Callable[[], datetime] = utc_now):
        """Initialize RedisVenueDAO.

        Args:
            client: GeoRedisClient instance
            clock: Source of the current UTC time
        """
        self.client = client
        self.clock = clock

    async def find_by_id(self, venue_id: str) -> Optional[VenueRecord]:
        """Retrieve a venue by its internal ID.

        Args:
            venue_id: Internal venue identifier

        Returns:
            VenueRecord or None if not found
        """
        data = await self.client.get_hash(VENUE_KEY_FORMAT_V1.format(venue_id))
        if not data:
            return None
        return VenueRecord.from_redis_hash(data)

    async def find_by_external_id(self, external_id: str) -> Optional[VenueRecord]:
        """Retrieve a venue by the venue directory's identifier."""
        venue_id = await self.client.get_hash_field(VENUE_EXTERNAL_IDS_KEY_V1, external_id)
        if venue_id is None:
            return None
        return await self.find_by_id(venue_id)

    async def find_many(self, venue_ids: Iterable[str]) -> list[VenueRecord]:
        """Retrieve several venues, silently omitting unknown IDs.

        Args:
            venue_ids: Internal venue identifiers

        Returns:
            List of VenueRecord objects for the IDs that exist
        """
        ids = list(dict.fromkeys(venue_ids))
        hashes = await self.client.get_hashes([VENUE_KEY_FORMAT_V1.format(i) for i in ids])
        return self._parse_hashes(hashes)

    async def radius_query(
        self,
        lng: float,
        lat: float,
        meters: float,
        filter: Optional[str] = None,
        rooms_only: bool = False,
        limit: int = RADIUS_QUERY_MAX_RESULTS,
    ) -> list[VenueRecord]:
        """Retrieve venues within a radius, nearest first.

        Args:
            lng: Center longitude
            lat: Center latitude
            meters: Radius in meters
            filter: Case-insensitive substring the venue name must contain
            rooms_only: Only return venues with at least one room
            limit: Maximum number of results (never above 100)

        Returns:
            List of VenueRecord objects
        """
        limit = min(limit, RADIUS_QUERY_MAX_RESULTS)
        needle = normalize_filter(filter)
        if limit <= 0:
            return []

        members = await self.client.get_members_within_radius(VENUES_GEO_KEY_V1, lng, lat, meters)
        logger.debug(f"[RedisVenueDAO] {len(members)} venues within {meters}m of ({lat}, {lng})")

        # Hashes are loaded nearest first, one batch of `limit` at a time,
        # until enough venues pass the filters
        venues = []
        for start in range(0, len(members), limit):
            batch = members[start:start + limit]
            hashes = await self.client.get_hashes([VENUE_KEY_FORMAT_V1.format(m) for m, _ in batch])
            for venue in self._parse_hashes(hashes):
                if rooms_only and venue.room_count <= 0:
                    continue
                if needle is not None and needle not in venue.name.lower():
                    continue
                venues.append(venue)
                if len(venues) >= limit:
                    break
            if len(venues) >= limit:
                break

        logger.info(f"[RedisVenueDAO] Radius query returned {len(venues)} venues")
        return venues

    async def upsert_many(self, candidates: list[ExternalVenue]) -> list[VenueRecord]:
        """Reconcile venue directory candidates into the store.

        Every candidate is upserted independently and concurrently. A
        malformed candidate or a per-record Redis error skips only that
        candidate; losing the Redis connection fails the whole call.

        Args:
            candidates: Venues returned by the venue directory

        Returns:
            Stored records in candidate order, failed candidates omitted
        """
        if not candidates:
            return []

        # One task per external id; the first occurrence wins
        unique = []
        seen = set()
        for candidate in candidates:
            if candidate.id:
                if candidate.id in seen:
                    logger.debug(f"[RedisVenueDAO] Dropping repeated candidate {candidate.id}")
                    continue
                seen.add(candidate.id)
            unique.append(candidate)

        results = await asyncio.gather(
            *(self.upsert_venue(candidate) for candidate in unique),
            return_exceptions=True,
        )

        records = []
        for candidate, result in zip(unique, results):
            if isinstance(result, StorageUnavailable):
                raise result
            if isinstance(result, MalformedCandidate):
                VENUE_UPSERT_RESULTS.labels(result="malformed").inc()
                logger.warning(f"[RedisVenueDAO] Skipping candidate: {result}")
                continue
            if isinstance(result, redis.RedisError):
                VENUE_UPSERT_RESULTS.labels(result="error").inc()
                logger.error(f"[RedisVenueDAO] Failed to upsert venue {candidate.id}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            records.append(result)

        logger.info(
            f"[RedisVenueDAO] Upserted {len(records)}/{len(candidates)} venues"
        )
        return records

    async def upsert_venue(self, candidate: ExternalVenue) -> VenueRecord:
        """Insert or update one venue keyed by its external ID.

        Descriptive fields and ``updated`` are overwritten; the counters and
        ``created`` are only defaulted when the venue is first inserted.

        Raises:
            MalformedCandidate: If the candidate lacks an id or a valid coordinate
        """
        if not candidate.id:
            raise MalformedCandidate(None, "missing id")
        coordinate = candidate.coordinate()
        if coordinate is None or not is_valid_coordinate(coordinate[1], coordinate[0]):
            raise MalformedCandidate(candidate.id, "missing or invalid coordinate")

        lng, lat = coordinate
        categories = await self._map_categories(candidate)
        now = self.clock().isoformat()

        fields = {
            "external_id": json.dumps(candidate.id),
            "name": json.dumps(candidate.name),
            "coord": json.dumps([lng, lat]),
            "location": candidate.location.model_dump_json(),
            "categories": json.dumps([c.model_dump() for c in categories]),
            "verified": json.dumps(candidate.verified),
            "referral_id": json.dumps(candidate.referral_id),
            "updated": now,
        }
        defaults = {
            "room_count": "0",
            "user_count": "0",
            "message_count": "0",
            "created": now,
        }

        venue_id, inserted = await self.client.upsert_geo_hash(
            index_key=VENUE_EXTERNAL_IDS_KEY_V1,
            geo_key=VENUES_GEO_KEY_V1,
            key_prefix=VENUE_KEY_PREFIX_V1,
            natural_key=candidate.id,
            new_id=_new_key(),
            lng=lng,
            lat=lat,
            fields=fields,
            defaults=defaults,
        )
        VENUE_UPSERT_RESULTS.labels(result="inserted" if inserted else "updated").inc()

        record = await self.find_by_id(venue_id)
        if record is None:
            raise redis.RedisError(f"Venue {venue_id} vanished after upsert")
        return record

    async def record_message_activity(self, venue_id: str, when: Optional[datetime] = None) -> bool:
        """Count one more message in a venue and stamp ``last_message``.

        Called by the messaging collaborator when a message is posted to a
        room attached to this venue.

        Returns:
            False if the venue does not exist
        """
        when = when or self.clock()
        return await self.client.increment_hash(
            VENUE_KEY_FORMAT_V1.format(venue_id),
            {"message_count": 1},
            {"last_message": when.isoformat()},
        )

    async def increment_room_count(self, venue_id: str, delta: int = 1) -> bool:
        """Adjust the number of rooms attached to a venue.

        Returns:
            False if the venue does not exist
        """
        return await self.client.increment_hash(
            VENUE_KEY_FORMAT_V1.format(venue_id), {"room_count": delta}
        )

    async def count_venues(self) -> int:
        """Return the number of venues in the geo index."""
        return await self.client.count(VENUES_GEO_KEY_V1)

    async def _map_categories(self, candidate: ExternalVenue) -> list[VenueCategory]:
        """Remap the candidate's categories onto store-local category keys."""
        external = [c for c in candidate.categories if c.id]
        keys = await self.client.resolve_keys(
            VENUE_CATEGORIES_KEY_V1, [c.id for c in external], _new_key
        )
        return [
            VenueCategory(
                key=key,
                external_id=category.id,
                name=category.name,
                plural_name=category.plural_name,
                short_name=category.short_name,
                icon=category.icon,
            )
            for key, category in zip(keys, external)
        ]

    def _parse_hashes(self, hashes: list[dict[str, str]]) -> list[VenueRecord]:
        venues = []
        for data in hashes:
            if not data:
                continue
            try:
                venues.append(VenueRecord.from_redis_hash(data))
            except Exception as e:
                logger.error(f"[RedisVenueDAO] Failed to parse venue hash {data.get('id')}: {e}")
                continue
        return venues
