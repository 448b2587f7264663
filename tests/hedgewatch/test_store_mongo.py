"""
Tests for MongoEventStore — pymongo async collection is mocked.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ASCENDING
from pymongo.errors import PyMongoError, ServerSelectionTimeoutError

from hedgewatch.errors import EventStoreUnavailableError
from hedgewatch.models import BuyEvent
from hedgewatch.store_mongo import MongoEventStore, round_stats_pipeline

MARKET = "bitcoin-up-or-down-february-19-2am-et"


def _cursor(documents: list[dict]) -> MagicMock:
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents)
    return cursor


def _make_store(documents: list[dict] | None = None) -> tuple[MongoEventStore, MagicMock]:
    collection = MagicMock()
    collection.find.return_value = _cursor(documents or [])
    collection.aggregate = AsyncMock(return_value=_cursor(documents or []))
    collection.find_one = AsyncMock(return_value=None)
    return MongoEventStore(collection), collection


class TestQueries:
    @pytest.mark.asyncio
    async def test_find_round_all_modes(self):
        oid = ObjectId()
        store, collection = _make_store(
            [{"_id": oid, "event": "Buy", "ts": "t1", "mode": "production",
              "data": {"market": MARKET, "side": "YES", "size": 1}}]
        )

        events = await store.find_round(MARKET)

        collection.find.assert_called_once_with({"data.market": MARKET})
        collection.find.return_value.sort.assert_called_once_with("ts", ASCENDING)
        assert isinstance(events[0], BuyEvent)
        assert events[0].id == str(oid)

    @pytest.mark.asyncio
    async def test_find_round_with_mode(self):
        store, collection = _make_store()
        await store.find_round(MARKET, "simulation")
        collection.find.assert_called_once_with({"data.market": MARKET, "mode": "simulation"})

    @pytest.mark.asyncio
    async def test_list_rounds(self):
        latest = datetime(2025, 2, 19, 7, 59, tzinfo=timezone.utc)
        store, collection = _make_store(
            [
                {"_id": MARKET, "latestTs": latest, "earliestTs": "2025-02-19T07:00:00Z",
                 "eventCount": 12, "modes": ["simulation", "production", None]},
                {"_id": None, "eventCount": 1},
            ]
        )

        rounds = await store.list_rounds()

        collection.aggregate.assert_awaited_once_with(round_stats_pipeline())
        assert len(rounds) == 1
        assert rounds[0].slug == MARKET
        assert rounds[0].latest_ts == latest.isoformat()
        assert rounds[0].earliest_ts == "2025-02-19T07:00:00Z"
        assert rounds[0].event_count == 12
        assert rounds[0].modes == ["production", "simulation"]

    def test_pipeline_shape(self):
        match, group, sort = round_stats_pipeline()
        assert match["$match"]["event"]["$in"] == ["Buy", "Merge", "RoundEnd", "RoundStart"]
        assert group["$group"]["_id"] == "$data.market"
        assert sort == {"$sort": {"latestTs": -1}}


class TestTail:
    @pytest.mark.asyncio
    async def test_latest_id(self):
        oid = ObjectId()
        store, collection = _make_store()
        collection.find_one.return_value = {"_id": oid}
        assert await store.latest_id() == str(oid)

    @pytest.mark.asyncio
    async def test_latest_id_empty(self):
        store, _ = _make_store()
        assert await store.latest_id() is None

    @pytest.mark.asyncio
    async def test_find_after_valid_cursor(self):
        oid = ObjectId()
        store, collection = _make_store()

        await store.find_after(str(oid), limit=50)

        collection.find.assert_called_once_with({"_id": {"$gt": oid}})
        cursor = collection.find.return_value
        cursor.sort.assert_called_once_with("_id", ASCENDING)
        cursor.limit.assert_called_once_with(50)

    @pytest.mark.asyncio
    async def test_find_after_invalid_cursor_drops_filter(self):
        store, collection = _make_store()
        await store.find_after("not-an-object-id")
        collection.find.assert_called_once_with({})


class TestFailures:
    @pytest.mark.asyncio
    async def test_driver_error_maps_to_unavailable(self):
        store, collection = _make_store()
        collection.find.return_value.to_list.side_effect = ServerSelectionTimeoutError("down")

        with pytest.raises(EventStoreUnavailableError) as exc_info:
            await store.find_round(MARKET)

        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 503
        assert exc_info.value.backend == "mongo"

    @pytest.mark.asyncio
    async def test_ping(self):
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1})
        store = MongoEventStore(MagicMock(), client=client)
        assert await store.ping() is True

        client.admin.command.side_effect = PyMongoError("nope")
        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_close(self):
        client = MagicMock()
        client.close = AsyncMock()
        store = MongoEventStore(MagicMock(), client=client)
        await store.close()
        client.close.assert_awaited_once()
