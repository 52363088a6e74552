"""Redis-based Data Access Object for the proximity search log."""
import json
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import redis

from app.db.geo_redis_client import GeoRedisClient
from app.exceptions import LogWriteFailed, StorageUnavailable
from app.models import SearchLogEntry
from app.utils.clock import utc_now
from app.utils.geo import normalize_filter, round_to_precision

logger = logging.getLogger(__name__)

SEARCH_LOG_KEY_PREFIX_V1 = "search_log_v1:"
SEARCH_LOG_INDEX_KEY_V1 = "search_log_index_v1"

COORDINATE_PRECISION = 4
DEFAULT_MAX_AGE = timedelta(days=1)


def search_log_key(lng: float, lat: float, filter: Optional[str]) -> str:
    """Build the cache key for a query shape.

    The key embeds a compact JSON array so that "no filter" renders as
    ``null`` and cannot collide with any filter text.
    """
    parts = [
        round_to_precision(lng, COORDINATE_PRECISION),
        round_to_precision(lat, COORDINATE_PRECISION),
        normalize_filter(filter),
    ]
    return SEARCH_LOG_KEY_PREFIX_V1 + json.dumps(parts, separators=(",", ":"))


class RedisSearchLogDAO:
    """Data Access Object for recent proximity searches.

    Entries only witness that a query shape was answered recently; they are
    never returned to API callers and never deleted.
    """

    def __init__(self, client: GeoRedisClient, clock: Callable[[], datetime] = utc_now):
        """Initialize RedisSearchLogDAO.

        Args:
            client: GeoRedisClient instance
            clock: Source of the current UTC time
        """
        self.client = client
        self.clock = clock

    async def find_recent(
        self,
        lng: float,
        lat: float,
        filter: Optional[str] = None,
        max_age: timedelta = DEFAULT_MAX_AGE,
    ) -> Optional[SearchLogEntry]:
        """Return the log entry for this query shape if it is still fresh.

        Args:
            lng: Longitude of the search
            lat: Latitude of the search
            filter: Free-text filter of the search
            max_age: Maximum age of a usable entry

        Returns:
            SearchLogEntry, or None when absent or older than max_age

        Raises:
            LogWriteFailed: If the log could not be read
        """
        key = search_log_key(lng, lat, filter)
        try:
            data = await self.client.get_hash(key)
        except (StorageUnavailable, redis.RedisError) as e:
            raise LogWriteFailed(f"Failed to read search log {key}: {e}") from e

        if not data:
            return None

        try:
            entry = SearchLogEntry.model_validate(
                {
                    "lng": data["lng"],
                    "lat": data["lat"],
                    "filter": json.loads(data["filter"]),
                    "results": data.get("results") or 0,
                    "created": data["created"],
                    "updated": data["updated"],
                }
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"[RedisSearchLogDAO] Ignoring unreadable entry {key}: {e}")
            return None

        if not entry.is_fresh(self.clock(), max_age):
            logger.debug(f"[RedisSearchLogDAO] Entry {key} is stale (updated={entry.updated})")
            return None
        return entry

    async def record(
        self,
        lng: float,
        lat: float,
        filter: Optional[str],
        result_count: int,
    ) -> None:
        """Insert or refresh the log entry for this query shape.

        ``created`` is only written on insert; ``results`` and ``updated`` on
        every call.

        Raises:
            LogWriteFailed: If the entry could not be written
        """
        key = search_log_key(lng, lat, filter)
        now = self.clock()
        fields = {
            "lng": repr(round_to_precision(lng, COORDINATE_PRECISION)),
            "lat": repr(round_to_precision(lat, COORDINATE_PRECISION)),
            "filter": json.dumps(normalize_filter(filter)),
            "results": str(result_count),
            "updated": now.isoformat(),
        }
        try:
            await self.client.set_hash_with_defaults(
                key,
                fields,
                defaults={"created": now.isoformat()},
                index_key=SEARCH_LOG_INDEX_KEY_V1,
                score=now.timestamp(),
            )
        except (StorageUnavailable, redis.RedisError) as e:
            raise LogWriteFailed(f"Failed to record search log {key}: {e}") from e

        logger.debug(f"[RedisSearchLogDAO] Recorded {key} with {result_count} results")

    async def count_entries(self) -> int:
        """Return the number of distinct query shapes ever logged."""
        try:
            return await self.client.count(SEARCH_LOG_INDEX_KEY_V1)
        except (StorageUnavailable, redis.RedisError) as e:
            raise LogWriteFailed(f"Failed to count search log entries: {e}") from e
