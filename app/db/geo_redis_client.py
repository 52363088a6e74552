"""Async Redis client with geospatial and keyed-upsert operations."""
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import redis
import redis.asyncio

from app.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

# Upsert a hash keyed through a secondary index and register it in a geo set.
#
# KEYS[1]  index hash (natural key -> internal id)
# KEYS[2]  geo set
# ARGV[1]  natural key
# ARGV[2]  internal id to allocate if the natural key is unknown
# ARGV[3]  longitude
# ARGV[4]  latitude
# ARGV[5]  hash key prefix
# ARGV[6]  number of field/value pairs that are always written
# ARGV[7:] the always-written pairs, then insert-only pairs (HSETNX)
#
# The hash also gets an insert-only "id" field holding the internal id.
# GEOADD runs before any write so an invalid coordinate leaves no trace.
UPSERT_GEO_HASH_SCRIPT = """
local member_id = redis.call('HGET', KEYS[1], ARGV[1])
local inserted = 0
if not member_id then
  member_id = ARGV[2]
  inserted = 1
end
redis.call('GEOADD', KEYS[2], ARGV[3], ARGV[4], member_id)
if inserted == 1 then
  redis.call('HSET', KEYS[1], ARGV[1], member_id)
end
local key = ARGV[5] .. member_id
redis.call('HSETNX', key, 'id', member_id)
local set_end = 6 + 2 * tonumber(ARGV[6])
for i = 7, set_end, 2 do
  redis.call('HSET', key, ARGV[i], ARGV[i + 1])
end
for i = set_end + 1, #ARGV, 2 do
  redis.call('HSETNX', key, ARGV[i], ARGV[i + 1])
end
return {member_id, inserted}
"""


@asynccontextmanager
async def storage_errors(operation: str):
    """Translate Redis connectivity failures into StorageUnavailable."""
    try:
        yield
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.error(f"[GeoRedisClient] Redis unavailable during {operation}: {e}")
        raise StorageUnavailable(f"Redis unavailable during {operation}") from e


class GeoRedisClient:
    """Async Redis client with geospatial indexing support."""

    def __init__(self, client: redis.asyncio.Redis):
        """Initialize Redis client wrapper.

        Args:
            client: redis.asyncio client created with decode_responses=True
        """
        self.client = client
        self._upsert_script = client.register_script(UPSERT_GEO_HASH_SCRIPT)

    async def ping(self) -> bool:
        """Check connectivity to Redis.

        Raises:
            StorageUnavailable if the connection fails
        """
        async with storage_errors("ping"):
            return await self.client.ping()

    async def close(self) -> None:
        """Close the connection pool."""
        await self.client.aclose()

    async def get_hash(self, key: str) -> dict[str, str]:
        """Return all fields of a hash (empty dict when the key is absent)."""
        async with storage_errors("get_hash"):
            return await self.client.hgetall(key)

    async def get_hashes(self, keys: list[str]) -> list[dict[str, str]]:
        """Fetch several hashes in one round trip, preserving order."""
        if not keys:
            return []
        async with storage_errors("get_hashes"):
            async with self.client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.hgetall(key)
                return await pipe.execute()

    async def get_hash_field(self, key: str, field: str) -> Optional[str]:
        """Return one field of a hash, or None."""
        async with storage_errors("get_hash_field"):
            return await self.client.hget(key, field)

    async def resolve_keys(
        self,
        index_key: str,
        names: list[str],
        new_key: Callable[[], str],
    ) -> list[str]:
        """Map natural names to stable local keys, allocating missing ones.

        Allocation uses HSETNX so concurrent callers converge on one key.

        Args:
            index_key: Hash holding name -> local key
            names: Natural names to resolve
            new_key: Factory for freshly allocated keys

        Returns:
            Local keys in the order of ``names``
        """
        if not names:
            return []
        async with storage_errors("resolve_keys"):
            async with self.client.pipeline(transaction=False) as pipe:
                for name in names:
                    pipe.hsetnx(index_key, name, new_key())
                await pipe.execute()
            return await self.client.hmget(index_key, names)

    async def upsert_geo_hash(
        self,
        index_key: str,
        geo_key: str,
        key_prefix: str,
        natural_key: str,
        new_id: str,
        lng: float,
        lat: float,
        fields: dict[str, str],
        defaults: dict[str, str],
    ) -> tuple[str, bool]:
        """Atomically insert or update a geolocated hash keyed by a natural key.

        ``fields`` are written on every call, ``defaults`` only when the field
        does not exist yet. Note: Redis GEOADD expects (longitude, latitude).

        Returns:
            (internal id, True if the record was inserted)
        """
        args: list = [natural_key, new_id, lng, lat, key_prefix, len(fields)]
        for name, value in fields.items():
            args.extend((name, value))
        for name, value in defaults.items():
            args.extend((name, value))

        async with storage_errors("upsert_geo_hash"):
            member_id, inserted = await self._upsert_script(keys=[index_key, geo_key], args=args)

        logger.debug(f"Upserted geolocated hash {key_prefix}{member_id} (inserted={bool(inserted)})")
        return member_id, bool(inserted)

    async def get_members_within_radius(
        self,
        geo_key: str,
        lng: float,
        lat: float,
        meters: float,
    ) -> list[tuple[str, float]]:
        """Find all members within the radius, nearest first.

        Args:
            geo_key: Redis geo set key
            lng: Center longitude
            lat: Center latitude
            meters: Radius in meters

        Returns:
            List of (member, distance in meters)
        """
        logger.debug(f"Reading from radius with key: {geo_key}")

        async with storage_errors("get_members_within_radius"):
            results = await self.client.geosearch(
                geo_key,
                longitude=lng,
                latitude=lat,
                radius=meters,
                unit="m",
                sort="ASC",
                withdist=True,
            )

        return [(member, float(distance)) for member, distance in results]

    async def set_hash_with_defaults(
        self,
        key: str,
        fields: dict[str, str],
        defaults: dict[str, str],
        index_key: Optional[str] = None,
        score: Optional[float] = None,
    ) -> None:
        """Write a hash in one MULTI transaction.

        ``defaults`` are written with HSETNX, ``fields`` unconditionally. When
        ``index_key`` is given the hash key is also added to that sorted set.
        """
        async with storage_errors("set_hash_with_defaults"):
            async with self.client.pipeline(transaction=True) as pipe:
                for name, value in defaults.items():
                    pipe.hsetnx(key, name, value)
                pipe.hset(key, mapping=fields)
                if index_key is not None:
                    pipe.zadd(index_key, {key: score or 0.0})
                await pipe.execute()

    async def increment_hash(
        self,
        key: str,
        increments: dict[str, int],
        fields: Optional[dict[str, str]] = None,
    ) -> bool:
        """Increment counters (and optionally set fields) of an existing hash.

        Returns:
            False when the hash does not exist, True otherwise
        """
        async with storage_errors("increment_hash"):
            if not await self.client.exists(key):
                return False
            async with self.client.pipeline(transaction=True) as pipe:
                for name, amount in increments.items():
                    pipe.hincrby(key, name, amount)
                if fields:
                    pipe.hset(key, mapping=fields)
                await pipe.execute()
        return True

    async def count(self, key: str) -> int:
        """Return the cardinality of a sorted set (geo sets included)."""
        async with storage_errors("count"):
            return await self.client.zcard(key)
