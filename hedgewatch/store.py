"""
EventStore — Read access to the strategy's trading-event log.

The store answers the three questions the service asks of the log:

  - Round query: every record of one round (optionally one mode),
    ascending by timestamp — fed unmodified to ``reconstruct()``.
  - Round listing: per-round activity stats for the grouped listing.
  - Tail reads: records appended after a cursor, for the live stream.

Two implementations:
  - InMemoryEventStore: list-backed, optionally seeded from a JSON/JSONL
    export (dev/test/offline replay).
  - MongoEventStore (``hedgewatch.store_mongo``): the production collection.

Backend selection is config-driven via ``EVENT_STORE_BACKEND``.
"""

from __future__ import annotations

import abc
import json
from pathlib import Path
from typing import Any, Iterable, Mapping

import structlog

from hedgewatch.config import Settings, get_settings
from hedgewatch.errors import ConfigurationError
from hedgewatch.models import LISTED_KINDS, RoundInfo, TradeEvent, parse_event

logger = structlog.get_logger(__name__)

MODE_ALL = "all"
MODE_FILTERS = ("production", "simulation", MODE_ALL)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  BaseEventStore: Abstract contract
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class BaseEventStore(abc.ABC):
    """
    Abstract contract for event log access.

    Implementations return parsed ``TradeEvent`` objects; raw documents
    never leave the store.
    """

    backend: str = "base"

    @abc.abstractmethod
    async def find_round(self, market: str, mode: str = MODE_ALL) -> list[TradeEvent]:
        """All records whose payload references *market*, oldest first.

        ``mode`` other than ``"all"`` additionally filters on the record's mode.
        """
        ...

    @abc.abstractmethod
    async def list_rounds(self) -> list[RoundInfo]:
        """Per-round stats over Buy/Merge/RoundStart/RoundEnd records."""
        ...

    @abc.abstractmethod
    async def latest_id(self) -> str | None:
        """Identifier of the most recently appended record, if any."""
        ...

    @abc.abstractmethod
    async def find_after(
        self, last_id: str | None, *, limit: int = 100
    ) -> list[TradeEvent]:
        """Up to *limit* records appended after *last_id*, in append order.

        An unknown or unparseable cursor reads from the start of the log.
        """
        ...

    async def ping(self) -> bool:
        """Check that the backing store answers."""
        return True

    async def close(self) -> None:
        """Release connections. Override for network backends."""
        pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  InMemoryEventStore: List-backed implementation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def load_documents(path: str | Path) -> list[dict[str, Any]]:
    """Read stored records from a JSON array file or a JSONL file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
        if text.lstrip().startswith("["):
            documents = json.loads(text)
        else:
            documents = [json.loads(line) for line in text.splitlines() if line.strip()]
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Cannot load events from {path}", detail=str(exc)
        ) from exc

    if not isinstance(documents, list):
        raise ConfigurationError(f"Events file {path} must hold a list of records")
    return [doc for doc in documents if isinstance(doc, dict)]


class InMemoryEventStore(BaseEventStore):
    """
    In-memory event log backed by a plain ``list`` in append order.

    Records without an ``_id`` get a zero-padded hex sequence id so that ids
    sort in append order, like Mongo ObjectIds do.
    """

    backend = "memory"

    def __init__(self, documents: Iterable[Mapping[str, Any]] | None = None):
        self._documents: list[dict[str, Any]] = []
        self._seq = 0
        for document in documents or ():
            self._insert(document)

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryEventStore:
        documents = load_documents(path)
        logger.info("event_store_seeded", path=str(path), records=len(documents))
        return cls(documents)

    def _insert(self, document: Mapping[str, Any]) -> dict[str, Any]:
        self._seq += 1
        doc = dict(document)
        doc["_id"] = f"{self._seq:024x}" if doc.get("_id") is None else str(doc["_id"])
        self._documents.append(doc)
        return doc

    async def append(self, document: Mapping[str, Any]) -> TradeEvent:
        """Append one record and return it parsed."""
        return parse_event(self._insert(document))

    # ── Queries ──────────────────────────────────────────────────────

    async def find_round(self, market: str, mode: str = MODE_ALL) -> list[TradeEvent]:
        matches = [
            doc
            for doc in self._documents
            if _market_of(doc) == market and (mode == MODE_ALL or doc.get("mode") == mode)
        ]
        # list.sort is stable: equal timestamps keep append order
        matches.sort(key=lambda doc: str(doc.get("ts") or ""))
        return [parse_event(doc) for doc in matches]

    async def list_rounds(self) -> list[RoundInfo]:
        stats: dict[str, dict[str, Any]] = {}
        for doc in self._documents:
            market = _market_of(doc)
            if not market or doc.get("event") not in LISTED_KINDS:
                continue
            ts = doc.get("ts")
            ts = str(ts) if ts is not None else None
            entry = stats.setdefault(
                market,
                {"earliest": ts, "latest": ts, "count": 0, "modes": set()},
            )
            entry["count"] += 1
            if ts is not None:
                if entry["earliest"] is None or ts < entry["earliest"]:
                    entry["earliest"] = ts
                if entry["latest"] is None or ts > entry["latest"]:
                    entry["latest"] = ts
            if doc.get("mode") is not None:
                entry["modes"].add(str(doc["mode"]))

        return [
            RoundInfo(
                slug=slug,
                earliest_ts=entry["earliest"],
                latest_ts=entry["latest"],
                event_count=entry["count"],
                modes=sorted(entry["modes"]),
            )
            for slug, entry in stats.items()
        ]

    async def latest_id(self) -> str | None:
        return self._documents[-1]["_id"] if self._documents else None

    async def find_after(
        self, last_id: str | None, *, limit: int = 100
    ) -> list[TradeEvent]:
        start = 0
        if last_id:
            for index, doc in enumerate(self._documents):
                if doc["_id"] == last_id:
                    start = index + 1
                    break
        return [parse_event(doc) for doc in self._documents[start : start + limit]]

    # ── Introspection ────────────────────────────────────────────────

    @property
    def size(self) -> int:
        """Number of records currently stored."""
        return len(self._documents)

    def __repr__(self) -> str:
        return f"<InMemoryEventStore records={self.size}>"


def _market_of(document: Mapping[str, Any]) -> str | None:
    data = document.get("data")
    if not isinstance(data, Mapping):
        return None
    market = data.get("market")
    return market if isinstance(market, str) else None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Factory + Singleton
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def create_event_store(settings: Settings | None = None) -> BaseEventStore:
    """Build the configured store backend.

      - ``"memory"`` (default): in-memory log, seeded from ``EVENTS_FILE`` if set
      - ``"mongo"``: MongoDB collection at ``MONGO_URI``
    """
    settings = settings or get_settings()
    backend = settings.event_store_backend
    logger.info("event_store_backend_selected", backend=backend)

    if backend == "mongo":
        from hedgewatch.store_mongo import MongoEventStore

        return MongoEventStore.from_settings(settings)

    if settings.events_file:
        return InMemoryEventStore.from_file(settings.events_file)
    return InMemoryEventStore()


_event_store: BaseEventStore | None = None


def get_event_store() -> BaseEventStore:
    """Get or create the global event store singleton."""
    global _event_store
    if _event_store is None:
        _event_store = create_event_store()
    return _event_store


def set_event_store(store: BaseEventStore | None) -> None:
    """Install a specific store as the singleton (tests, CLI replay)."""
    global _event_store
    _event_store = store


def reset_event_store() -> None:
    """Drop the global singleton so the next access rebuilds it."""
    global _event_store
    _event_store = None
