"""
MongoEventStore — MongoDB-backed event log.

Reads the collection the trading strategy appends to (default
``poly.gabagool_events``). Each document has the shape::

    {"_id": ObjectId, "event": "Buy", "ts": "2025-02-19T07:00:01Z",
     "mode": "production", "data": {"market": "...", ...}}

Uses the pymongo async driver. Driver failures surface as
``EventStoreUnavailableError`` so the API can answer 503.
"""

from __future__ import annotations

from typing import Any

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from opentelemetry import trace
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from hedgewatch.config import Settings
from hedgewatch.errors import ConfigurationError, EventStoreUnavailableError
from hedgewatch.models import LISTED_KINDS, RoundInfo, TradeEvent, parse_event
from hedgewatch.store import MODE_ALL, BaseEventStore

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def round_stats_pipeline() -> list[dict[str, Any]]:
    """Aggregation behind the round listing."""
    return [
        {
            "$match": {
                "data.market": {"$exists": True, "$ne": None},
                "event": {"$in": sorted(LISTED_KINDS)},
            }
        },
        {
            "$group": {
                "_id": "$data.market",
                "latestTs": {"$max": "$ts"},
                "earliestTs": {"$min": "$ts"},
                "eventCount": {"$sum": 1},
                "modes": {"$addToSet": "$mode"},
            }
        },
        {"$sort": {"latestTs": -1}},
    ]


class MongoEventStore(BaseEventStore):
    """
    Event store over a MongoDB collection.

    Dependencies: ``pymongo`` (>= 4.9, async API).
    """

    backend = "mongo"

    def __init__(self, collection: Any, *, client: Any = None):
        self._collection = collection
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> MongoEventStore:
        if not settings.mongo_uri:
            raise ConfigurationError("MONGO_URI is not configured")
        client = AsyncMongoClient(settings.mongo_uri)
        collection = client[settings.mongo_database][settings.mongo_collection]
        logger.info(
            "mongo_event_store_configured",
            database=settings.mongo_database,
            collection=settings.mongo_collection,
        )
        return cls(collection, client=client)

    # ── Queries ──────────────────────────────────────────────────────

    async def find_round(self, market: str, mode: str = MODE_ALL) -> list[TradeEvent]:
        query: dict[str, Any] = {"data.market": market}
        if mode != MODE_ALL:
            query["mode"] = mode

        with tracer.start_as_current_span(
            "store.find_round", attributes={"market": market, "mode": mode}
        ):
            try:
                cursor = self._collection.find(query).sort("ts", ASCENDING)
                documents = await cursor.to_list(length=None)
            except PyMongoError as exc:
                raise self._unavailable("find_round", exc) from exc

        return [parse_event(doc) for doc in documents]

    async def list_rounds(self) -> list[RoundInfo]:
        with tracer.start_as_current_span("store.list_rounds"):
            try:
                cursor = await self._collection.aggregate(round_stats_pipeline())
                rows = await cursor.to_list(length=None)
            except PyMongoError as exc:
                raise self._unavailable("list_rounds", exc) from exc

        return [
            RoundInfo(
                slug=str(row["_id"]),
                earliest_ts=_ts_str(row.get("earliestTs")),
                latest_ts=_ts_str(row.get("latestTs")),
                event_count=row.get("eventCount", 0),
                modes=sorted(str(m) for m in row.get("modes", []) if m is not None),
            )
            for row in rows
            if row.get("_id") is not None
        ]

    async def latest_id(self) -> str | None:
        try:
            latest = await self._collection.find_one(
                {}, sort=[("_id", DESCENDING)], projection={"_id": 1}
            )
        except PyMongoError as exc:
            raise self._unavailable("latest_id", exc) from exc
        return str(latest["_id"]) if latest else None

    async def find_after(
        self, last_id: str | None, *, limit: int = 100
    ) -> list[TradeEvent]:
        query: dict[str, Any] = {}
        if last_id:
            try:
                query["_id"] = {"$gt": ObjectId(last_id)}
            except (InvalidId, TypeError):
                logger.debug("stream_cursor_invalid", last_id=last_id)

        try:
            cursor = self._collection.find(query).sort("_id", ASCENDING).limit(limit)
            documents = await cursor.to_list(length=None)
        except PyMongoError as exc:
            raise self._unavailable("find_after", exc) from exc
        return [parse_event(doc) for doc in documents]

    async def ping(self) -> bool:
        if self._client is None:
            return True
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("mongo_ping_failed", error=str(exc))
            return False
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            logger.info("mongo_event_store_closed")

    # ── Internals ────────────────────────────────────────────────────

    def _unavailable(self, operation: str, exc: Exception) -> EventStoreUnavailableError:
        logger.error(
            "mongo_query_failed",
            operation=operation,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return EventStoreUnavailableError(
            f"Event store query failed: {operation}",
            detail=str(exc),
            backend=self.backend,
        )

    def __repr__(self) -> str:
        return f"<MongoEventStore collection={getattr(self._collection, 'full_name', '?')}>"


def _ts_str(value: Any) -> str | None:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)
