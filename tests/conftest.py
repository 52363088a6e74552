"""Shared fixtures: an in-memory stand-in for GeoRedisClient and a settable clock."""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import pytest

from app.dao.redis_search_log_dao import RedisSearchLogDAO
from app.dao.redis_venue_dao import RedisVenueDAO
from app.models import ExternalVenue, VenueRecord
from app.utils.geo import haversine_distance_m

# Reference point used across the cache tests
BASE_LAT = 40.0
BASE_LNG = -73.0

# Meters per degree of latitude for the haversine radius in app.utils.geo
METERS_PER_DEGREE_LAT = 111_194.93


class FakeClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGeoRedisClient:
    """In-memory GeoRedisClient with the same method surface and semantics.

    ``failures`` maps a method name to an exception raised on every call;
    ``failing_natural_keys`` makes ``upsert_geo_hash`` fail for one venue only;
    ``hash_reads`` records the batch size of every ``get_hashes`` call.
    """

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.geo: dict[str, dict[str, tuple[float, float]]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.failures: dict[str, Exception] = {}
        self.failing_natural_keys: dict[str, Exception] = {}
        self.hash_reads: list[int] = []
        self.closed = False

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failures:
            raise self.failures[operation]

    async def ping(self) -> bool:
        self._maybe_fail("ping")
        return True

    async def close(self) -> None:
        self.closed = True

    async def get_hash(self, key: str) -> dict[str, str]:
        self._maybe_fail("get_hash")
        return dict(self.hashes.get(key, {}))

    async def get_hashes(self, keys: list[str]) -> list[dict[str, str]]:
        self._maybe_fail("get_hashes")
        self.hash_reads.append(len(keys))
        return [dict(self.hashes.get(key, {})) for key in keys]

    async def get_hash_field(self, key: str, field: str) -> Optional[str]:
        self._maybe_fail("get_hash_field")
        return self.hashes.get(key, {}).get(field)

    async def resolve_keys(self, index_key: str, names: list[str], new_key: Callable[[], str]) -> list[str]:
        self._maybe_fail("resolve_keys")
        index = self.hashes.setdefault(index_key, {})
        for name in names:
            index.setdefault(name, new_key())
        return [index[name] for name in names]

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
        self._maybe_fail("upsert_geo_hash")
        if natural_key in self.failing_natural_keys:
            raise self.failing_natural_keys[natural_key]

        index = self.hashes.setdefault(index_key, {})
        member_id = index.get(natural_key)
        inserted = member_id is None
        if inserted:
            member_id = new_id
            index[natural_key] = member_id

        self.geo.setdefault(geo_key, {})[member_id] = (lng, lat)
        data = self.hashes.setdefault(key_prefix + member_id, {})
        data.setdefault("id", member_id)
        data.update(fields)
        for name, value in defaults.items():
            data.setdefault(name, value)
        return member_id, inserted

    async def get_members_within_radius(
        self, geo_key: str, lng: float, lat: float, meters: float
    ) -> list[tuple[str, float]]:
        self._maybe_fail("get_members_within_radius")
        members = []
        for member, (m_lng, m_lat) in self.geo.get(geo_key, {}).items():
            distance = haversine_distance_m((lat, lng), (m_lat, m_lng))
            if distance <= meters:
                members.append((member, distance))
        return sorted(members, key=lambda item: item[1])

    async def set_hash_with_defaults(
        self,
        key: str,
        fields: dict[str, str],
        defaults: dict[str, str],
        index_key: Optional[str] = None,
        score: Optional[float] = None,
    ) -> None:
        self._maybe_fail("set_hash_with_defaults")
        data = self.hashes.setdefault(key, {})
        for name, value in defaults.items():
            data.setdefault(name, value)
        data.update(fields)
        if index_key is not None:
            self.zsets.setdefault(index_key, {})[key] = score or 0.0

    async def increment_hash(
        self, key: str, increments: dict[str, int], fields: Optional[dict[str, str]] = None
    ) -> bool:
        self._maybe_fail("increment_hash")
        if key not in self.hashes:
            return False
        data = self.hashes[key]
        for name, amount in increments.items():
            data[name] = str(int(data.get(name, "0")) + amount)
        if fields:
            data.update(fields)
        return True

    async def count(self, key: str) -> int:
        self._maybe_fail("count")
        if key in self.geo:
            return len(self.geo[key])
        return len(self.zsets.get(key, {}))


def offset_north(lat: float, meters: float) -> float:
    """Latitude that lies ``meters`` north of ``lat`` on the same meridian."""
    return lat + meters / METERS_PER_DEGREE_LAT


def make_candidate(
    external_id: Optional[str],
    name: str,
    lat: Optional[float] = BASE_LAT,
    lng: Optional[float] = BASE_LNG,
    categories: Optional[list[dict]] = None,
) -> ExternalVenue:
    """Build a venue directory candidate the way the API returns it."""
    payload = {"name": name, "categories": categories or []}
    if external_id is not None:
        payload["id"] = external_id
    if lat is not None or lng is not None:
        payload["location"] = {"lat": lat, "lng": lng, "city": "New York", "cc": "US"}
    return ExternalVenue.model_validate(payload)


def make_record(venue_id: str = "a" * 32, name: str = "Test Cafe", **overrides) -> VenueRecord:
    """Build a stored venue record for handler and router tests."""
    now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    values = {
        "id": venue_id,
        "external_id": f"ext-{venue_id[:6]}",
        "name": name,
        "coord": [BASE_LNG, BASE_LAT],
        "created": now,
        "updated": now,
    }
    values.update(overrides)
    return VenueRecord(**values)


@pytest.fixture
def clock():
    """Create a settable clock."""
    return FakeClock()


@pytest.fixture
def fake_redis():
    """Create an in-memory GeoRedisClient stand-in."""
    return FakeGeoRedisClient()


@pytest.fixture
def venue_dao(fake_redis, clock):
    """Create RedisVenueDAO over the in-memory client."""
    return RedisVenueDAO(fake_redis, clock=clock)


@pytest.fixture
def search_log_dao(fake_redis, clock):
    """Create RedisSearchLogDAO over the in-memory client."""
    return RedisSearchLogDAO(fake_redis, clock=clock)
