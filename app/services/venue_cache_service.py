"""Venue proximity cache: decides between the local store and the venue directory."""
import asyncio
import logging
from datetime import timedelta
from typing import Iterable, Optional

from app.api.venue_provider import ExternalVenueProvider
from app.dao.redis_search_log_dao import RedisSearchLogDAO
from app.dao.redis_venue_dao import RedisVenueDAO
from app.exceptions import LogWriteFailed, ProviderTimeout
from app.metrics import (
    SEARCH_LOG_ENTRIES,
    SEARCH_LOG_WRITE_FAILURES_TOTAL,
    VENUE_CACHE_LOOKUPS_TOTAL,
    VENUES_TOTAL,
)
from app.models import VenueRecord
from app.utils.geo import sort_by_proximity

logger = logging.getLogger(__name__)

# Result caps fixed by the public contract
NEARBY_RESULT_LIMIT = 50
ROOMS_RESULT_LIMIT = 100
PROVIDER_RESULT_LIMIT = 50


class VenueProximityCache:
    """Answers "venues near this point" from the store or the venue directory.

    A recent search log entry for the query shape (rounded coordinate plus
    normalized filter) means the store already holds a fresh answer, which is
    then read live from the store. Otherwise the venue directory is queried,
    its venues reconciled into the store and the search logged.
    """

    def __init__(
        self,
        venue_dao: RedisVenueDAO,
        search_log_dao: RedisSearchLogDAO,
        provider: ExternalVenueProvider,
        max_age: timedelta = timedelta(days=1),
        provider_timeout: float = 15.0,
        nearby_limit: int = NEARBY_RESULT_LIMIT,
        rooms_limit: int = ROOMS_RESULT_LIMIT,
        provider_limit: int = PROVIDER_RESULT_LIMIT,
    ):
        """Initialize the proximity cache.

        Args:
            venue_dao: Venue store
            search_log_dao: Search log used as freshness witness
            provider: External venue directory
            max_age: How long a logged search keeps the store authoritative
            provider_timeout: Deadline for one venue directory call, in seconds
            nearby_limit: Result cap for cache hits
            rooms_limit: Result cap for room-filtered queries
            provider_limit: Number of venues requested per cache miss
        """
        self.venue_dao = venue_dao
        self.search_log_dao = search_log_dao
        self.provider = provider
        self.max_age = max_age
        self.provider_timeout = provider_timeout
        self.nearby_limit = nearby_limit
        self.rooms_limit = rooms_limit
        self.provider_limit = provider_limit

    async def find_nearby(
        self,
        lat: float,
        lng: float,
        meters: int,
        filter: Optional[str] = None,
    ) -> list[VenueRecord]:
        """Find venues near a coordinate, optionally matching a name filter.

        Args:
            lat: Latitude
            lng: Longitude
            meters: Search radius in meters
            filter: Optional free-text filter

        Returns:
            List of VenueRecord objects

        Raises:
            ProviderUnavailable: If a cache miss could not be served by the venue directory
            StorageUnavailable: If the store could not be read or written
        """
        entry = await self._find_recent(lng, lat, filter)

        if entry is not None:
            VENUE_CACHE_LOOKUPS_TOTAL.labels(result="hit").inc()
            logger.info(
                f"[VenueProximityCache] Cache hit for ({lat}, {lng}) filter={filter!r} "
                f"(logged {entry.updated.isoformat()})"
            )
            return await self.venue_dao.radius_query(
                lng, lat, meters, filter=filter, limit=self.nearby_limit
            )

        VENUE_CACHE_LOOKUPS_TOTAL.labels(result="miss").inc()
        logger.info(f"[VenueProximityCache] Cache miss for ({lat}, {lng}) filter={filter!r}")

        candidates = await self._search_provider(lat, lng, meters, filter)
        records = await self.venue_dao.upsert_many(candidates)
        await self._record_search(lng, lat, filter, len(candidates))

        logger.info(
            f"[VenueProximityCache] Reconciled {len(records)}/{len(candidates)} venues "
            f"for ({lat}, {lng})"
        )
        return records

    async def find_nearby_with_rooms(self, lat: float, lng: float, meters: int) -> list[VenueRecord]:
        """Find venues with at least one chat room, nearest first.

        Never calls the venue directory.
        """
        venues = await self.venue_dao.radius_query(
            lng, lat, meters, filter=None, rooms_only=True, limit=self.rooms_limit
        )
        return sort_by_proximity(lat, lng, venues)

    async def find_by_id(self, venue_id: str) -> Optional[VenueRecord]:
        return await self.venue_dao.find_by_id(venue_id)

    async def find_many(self, venue_ids: Iterable[str]) -> list[VenueRecord]:
        return await self.venue_dao.find_many(venue_ids)

    async def update_cache_metrics(self) -> None:
        """Refresh the store and search log size gauges."""
        VENUES_TOTAL.set(await self.venue_dao.count_venues())
        try:
            SEARCH_LOG_ENTRIES.set(await self.search_log_dao.count_entries())
        except LogWriteFailed as e:
            logger.warning(f"[VenueProximityCache] Could not count search log entries: {e}")

    async def _find_recent(self, lng: float, lat: float, filter: Optional[str]):
        try:
            return await self.search_log_dao.find_recent(lng, lat, filter, self.max_age)
        except LogWriteFailed as e:
            VENUE_CACHE_LOOKUPS_TOTAL.labels(result="log_error").inc()
            logger.warning(f"[VenueProximityCache] Search log unreadable, treating as miss: {e}")
            return None

    async def _search_provider(self, lat: float, lng: float, meters: int, filter: Optional[str]):
        try:
            return await asyncio.wait_for(
                self.provider.search(lat, lng, meters, filter, limit=self.provider_limit),
                timeout=self.provider_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"[VenueProximityCache] Venue directory exceeded {self.provider_timeout}s deadline"
            )
            raise ProviderTimeout(
                f"Venue directory did not answer within {self.provider_timeout}s"
            ) from e

    async def _record_search(self, lng: float, lat: float, filter: Optional[str], result_count: int):
        try:
            await self.search_log_dao.record(lng, lat, filter, result_count)
        except LogWriteFailed as e:
            SEARCH_LOG_WRITE_FAILURES_TOTAL.inc()
            logger.error(f"[VenueProximityCache] Failed to log search: {e}")
