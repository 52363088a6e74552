"""Unit tests for RedisVenueDAO over the in-memory Redis stand-in."""
import json

import pytest
import redis

from app.dao.redis_venue_dao import (
    VENUE_CATEGORIES_KEY_V1,
    VENUE_EXTERNAL_IDS_KEY_V1,
    VENUE_KEY_FORMAT_V1,
)
from app.exceptions import MalformedCandidate, StorageUnavailable
from tests.conftest import BASE_LAT, BASE_LNG, make_candidate, offset_north


COFFEE_CATEGORY = {"id": "cat-coffee", "name": "Coffee Shop", "pluralName": "Coffee Shops"}


class TestUpsert:
    """Tests for venue reconciliation."""

    @pytest.mark.asyncio
    async def test_insert_sets_defaults(self, venue_dao, clock):
        record = await venue_dao.upsert_venue(make_candidate("ext-1", "Joe's Coffee"))

        assert len(record.id) == 32
        assert record.external_id == "ext-1"
        assert record.name == "Joe's Coffee"
        assert record.coord == [BASE_LNG, BASE_LAT]
        assert record.location.city == "New York"
        assert (record.room_count, record.user_count, record.message_count) == (0, 0, 0)
        assert record.created == clock.now
        assert record.updated == clock.now

    @pytest.mark.asyncio
    async def test_reupsert_keeps_id_counters_and_created(self, venue_dao, clock):
        """A second reconciliation refreshes the description, never the chat state."""
        first = await venue_dao.upsert_venue(make_candidate("ext-1", "Joe's Coffee"))
        created = clock.now
        await venue_dao.increment_room_count(first.id)
        await venue_dao.record_message_activity(first.id)

        clock.advance(hours=30)
        second = await venue_dao.upsert_venue(
            make_candidate("ext-1", "Joe's Coffee & Tea", lat=offset_north(BASE_LAT, 5))
        )

        assert second.id == first.id
        assert second.name == "Joe's Coffee & Tea"
        assert second.lat == pytest.approx(offset_north(BASE_LAT, 5))
        assert second.room_count == 1
        assert second.message_count == 1
        assert second.last_message == created
        assert second.created == created
        assert second.updated == clock.now

    @pytest.mark.asyncio
    async def test_external_id_maps_to_single_record(self, venue_dao, fake_redis):
        await venue_dao.upsert_venue(make_candidate("ext-1", "A"))
        await venue_dao.upsert_venue(make_candidate("ext-1", "A"))

        assert len(fake_redis.hashes[VENUE_EXTERNAL_IDS_KEY_V1]) == 1
        assert await venue_dao.count_venues() == 1

    @pytest.mark.asyncio
    async def test_categories_remapped_to_stable_keys(self, venue_dao, fake_redis):
        a = await venue_dao.upsert_venue(make_candidate("ext-1", "A", categories=[COFFEE_CATEGORY]))
        b = await venue_dao.upsert_venue(make_candidate("ext-2", "B", categories=[COFFEE_CATEGORY]))

        assert a.categories[0].external_id == "cat-coffee"
        assert a.categories[0].plural_name == "Coffee Shops"
        assert a.categories[0].key == b.categories[0].key
        assert fake_redis.hashes[VENUE_CATEGORIES_KEY_V1] == {"cat-coffee": a.categories[0].key}

    @pytest.mark.asyncio
    async def test_descriptive_fields_stored_as_json(self, venue_dao, fake_redis):
        record = await venue_dao.upsert_venue(make_candidate("ext-1", "A"))

        data = fake_redis.hashes[VENUE_KEY_FORMAT_V1.format(record.id)]
        assert json.loads(data["name"]) == "A"
        assert json.loads(data["coord"]) == [BASE_LNG, BASE_LAT]
        assert data["room_count"] == "0"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "candidate",
        [
            make_candidate(None, "No id"),
            make_candidate("ext-x", "No location", lat=None, lng=None),
            make_candidate("ext-x", "Half location", lat=None),
            make_candidate("ext-x", "Off the map", lat=89.9),
        ],
    )
    async def test_malformed_candidate_rejected(self, venue_dao, candidate):
        with pytest.raises(MalformedCandidate):
            await venue_dao.upsert_venue(candidate)
        assert await venue_dao.count_venues() == 0

    @pytest.mark.asyncio
    async def test_upsert_many_skips_malformed(self, venue_dao):
        candidates = [
            make_candidate("ext-1", "A"),
            make_candidate("ext-2", "Broken", lat=None, lng=None),
            make_candidate("ext-3", "C", lat=offset_north(BASE_LAT, 20)),
        ]

        records = await venue_dao.upsert_many(candidates)

        assert [r.external_id for r in records] == ["ext-1", "ext-3"]
        assert await venue_dao.find_by_external_id("ext-2") is None

    @pytest.mark.asyncio
    async def test_upsert_many_skips_per_record_redis_error(self, venue_dao, fake_redis):
        fake_redis.failing_natural_keys["ext-2"] = redis.ResponseError("WRONGTYPE")

        records = await venue_dao.upsert_many(
            [make_candidate("ext-1", "A"), make_candidate("ext-2", "B")]
        )

        assert [r.external_id for r in records] == ["ext-1"]

    @pytest.mark.asyncio
    async def test_upsert_many_fails_when_storage_unavailable(self, venue_dao, fake_redis):
        fake_redis.failures["upsert_geo_hash"] = StorageUnavailable("connection refused")

        with pytest.raises(StorageUnavailable):
            await venue_dao.upsert_many([make_candidate("ext-1", "A")])

    @pytest.mark.asyncio
    async def test_upsert_many_returns_one_record_per_external_id(self, venue_dao):
        records = await venue_dao.upsert_many(
            [
                make_candidate("ext-1", "First"),
                make_candidate("ext-2", "B"),
                make_candidate("ext-1", "Repeat"),
            ]
        )

        assert [r.external_id for r in records] == ["ext-1", "ext-2"]
        assert records[0].name == "First"
        assert await venue_dao.count_venues() == 2

    @pytest.mark.asyncio
    async def test_upsert_many_empty(self, venue_dao):
        assert await venue_dao.upsert_many([]) == []


class TestLookups:
    """Tests for id based lookups."""

    @pytest.mark.asyncio
    async def test_find_by_id_and_external_id(self, venue_dao):
        record = await venue_dao.upsert_venue(make_candidate("ext-1", "A"))

        assert (await venue_dao.find_by_id(record.id)).external_id == "ext-1"
        assert (await venue_dao.find_by_external_id("ext-1")).id == record.id
        assert await venue_dao.find_by_id("0" * 32) is None
        assert await venue_dao.find_by_external_id("unknown") is None

    @pytest.mark.asyncio
    async def test_find_many_omits_unknown_ids(self, venue_dao):
        a = await venue_dao.upsert_venue(make_candidate("ext-1", "A"))
        b = await venue_dao.upsert_venue(make_candidate("ext-2", "B"))

        records = await venue_dao.find_many([b.id, "missing", a.id, b.id])

        assert [r.id for r in records] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_find_many_empty(self, venue_dao):
        assert await venue_dao.find_many([]) == []


class TestRadiusQuery:
    """Tests for radius queries."""

    async def _seed(self, venue_dao):
        names = {10: "Joe's Coffee", 50: "Pizza Place", 200: "COFFEE Bar", 2000: "Far Coffee"}
        records = {}
        for meters, name in names.items():
            records[meters] = await venue_dao.upsert_venue(
                make_candidate(f"ext-{meters}", name, lat=offset_north(BASE_LAT, meters))
            )
        return records

    @pytest.mark.asyncio
    async def test_nearest_first_within_radius(self, venue_dao):
        await self._seed(venue_dao)

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500)

        assert [v.external_id for v in venues] == ["ext-10", "ext-50", "ext-200"]

    @pytest.mark.asyncio
    async def test_filter_is_case_insensitive_substring(self, venue_dao):
        await self._seed(venue_dao)

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500, filter="coffee")

        assert [v.name for v in venues] == ["Joe's Coffee", "COFFEE Bar"]

    @pytest.mark.asyncio
    async def test_blank_filter_matches_everything(self, venue_dao):
        await self._seed(venue_dao)

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500, filter="  ")

        assert len(venues) == 3

    @pytest.mark.asyncio
    async def test_rooms_only(self, venue_dao):
        records = await self._seed(venue_dao)
        await venue_dao.increment_room_count(records[50].id)

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500, rooms_only=True)

        assert [v.external_id for v in venues] == ["ext-50"]

    @pytest.mark.asyncio
    async def test_result_cap(self, venue_dao):
        for i in range(120):
            await venue_dao.upsert_venue(
                make_candidate(f"ext-{i:03d}", f"Venue {i}", lat=offset_north(BASE_LAT, i))
            )

        assert len(await venue_dao.radius_query(BASE_LNG, BASE_LAT, 1000, limit=500)) == 100
        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 1000, limit=5)
        assert [v.external_id for v in venues] == [f"ext-{i:03d}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_filtered_query_stops_loading_once_full(self, venue_dao, fake_redis):
        for i in range(300):
            name = f"Coffee {i}" if i % 10 == 0 else f"Bar {i}"
            await venue_dao.upsert_venue(
                make_candidate(f"ext-{i:03d}", name, lat=offset_north(BASE_LAT, i))
            )
        fake_redis.hash_reads.clear()

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 1000, filter="coffee", limit=5)

        assert [v.external_id for v in venues] == ["ext-000", "ext-010", "ext-020", "ext-030", "ext-040"]
        assert all(size <= 5 for size in fake_redis.hash_reads)
        assert sum(fake_redis.hash_reads) == 45

    @pytest.mark.asyncio
    async def test_rooms_query_reads_in_capped_batches(self, venue_dao, fake_redis):
        records = []
        for i in range(250):
            records.append(
                await venue_dao.upsert_venue(
                    make_candidate(f"ext-{i:03d}", f"Venue {i}", lat=offset_north(BASE_LAT, i))
                )
            )
        await venue_dao.increment_room_count(records[3].id)
        await venue_dao.increment_room_count(records[7].id)
        fake_redis.hash_reads.clear()

        venues = await venue_dao.radius_query(BASE_LNG, BASE_LAT, 1000, rooms_only=True, limit=100)

        assert [v.external_id for v in venues] == ["ext-003", "ext-007"]
        assert fake_redis.hash_reads == [100, 100, 50]

    @pytest.mark.asyncio
    async def test_empty_store(self, venue_dao):
        assert await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500) == []

    @pytest.mark.asyncio
    async def test_storage_unavailable_propagates(self, venue_dao, fake_redis):
        fake_redis.failures["get_members_within_radius"] = StorageUnavailable("down")

        with pytest.raises(StorageUnavailable):
            await venue_dao.radius_query(BASE_LNG, BASE_LAT, 500)


class TestChatActivity:
    """Tests for counters owned by the chat collaborators."""

    @pytest.mark.asyncio
    async def test_record_message_activity(self, venue_dao, clock):
        record = await venue_dao.upsert_venue(make_candidate("ext-1", "A"))
        clock.advance(minutes=5)

        assert await venue_dao.record_message_activity(record.id) is True
        assert await venue_dao.record_message_activity(record.id) is True

        stored = await venue_dao.find_by_id(record.id)
        assert stored.message_count == 2
        assert stored.last_message == clock.now

    @pytest.mark.asyncio
    async def test_increment_room_count(self, venue_dao):
        record = await venue_dao.upsert_venue(make_candidate("ext-1", "A"))

        await venue_dao.increment_room_count(record.id, 3)
        await venue_dao.increment_room_count(record.id, -1)

        assert (await venue_dao.find_by_id(record.id)).room_count == 2

    @pytest.mark.asyncio
    async def test_unknown_venue(self, venue_dao):
        assert await venue_dao.record_message_activity("0" * 32) is False
        assert await venue_dao.increment_room_count("0" * 32) is False
