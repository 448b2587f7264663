"""
Pydantic models for HedgeWatch.

Two families live here:

  Input — the trading-event log written by the hedging strategy. Modelled as
  a closed tagged union over the five kinds the reconstructor understands
  (``RoundStart``, ``Buy``, ``Merge``, ``RoundEnd``, ``Error``), each with its
  own typed payload, plus ``UnknownEvent`` as the catch-all bucket for any
  other kind.

  Output — the annotated round produced by ``hedgewatch.pairing.reconstruct``
  and the per-round stats used by the round listing.

Payload fields are all optional: a missing or malformed value propagates
as ``None`` instead of being defaulted or rejecting the record.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Mapping, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)


class EventKind(str, Enum):
    """Event kinds the reconstructor dispatches on."""

    ROUND_START = "RoundStart"
    BUY = "Buy"
    MERGE = "Merge"
    ROUND_END = "RoundEnd"
    ERROR = "Error"


class Outcome(str, Enum):
    """Known ``RoundEnd.outcome`` tags. Unknown tags pass through as strings."""

    PROFIT_LOCKED = "profit_locked"
    PARTIAL = "partial"
    UNHEDGED = "unhedged"
    EMPTY = "empty"
    MERGED_OUT = "merged_out"


# Kinds that count a record towards the round listing.
LISTED_KINDS: frozenset[str] = frozenset(
    {
        EventKind.BUY.value,
        EventKind.MERGE.value,
        EventKind.ROUND_START.value,
        EventKind.ROUND_END.value,
    }
)


# ── Payloads ─────────────────────────────────────────────────────────


class EventPayload(BaseModel):
    """Common payload base. Unknown payload fields are kept as extras."""

    model_config = ConfigDict(extra="allow", frozen=True)

    market: str | None = None


class RoundStartPayload(EventPayload):
    pass


class BuyPayload(EventPayload):
    side: str | None = None
    price: float | None = None
    size: float | None = None
    reason: str | None = None
    pair_cost: float | None = None
    cost_after: float | None = None
    up_qty: float | None = None
    up_avg: float | None = None
    dn_qty: float | None = None
    dn_avg: float | None = None


class MergePayload(EventPayload):
    pairs: float | None = None
    pair_cost: float | None = None
    profit: float | None = None
    tx_hash: str | None = None  # None for simulated merges
    up_qty_after: float | None = None
    dn_qty_after: float | None = None
    cost_after: float | None = None


class RoundEndPayload(EventPayload):
    hedged_qty: float | None = None
    up_qty: float | None = None
    up_avg: float | None = None
    dn_qty: float | None = None
    dn_avg: float | None = None
    pair_cost: float | None = None
    total_cost: float | None = None
    pnl: float | None = None
    buys: int | None = None
    merges: int | None = None
    outcome: str | None = None


class ErrorPayload(EventPayload):
    message: Any = None
    context: Any = None


# ── Events (closed tagged union) ─────────────────────────────────────


class _EventBase(BaseModel):
    """Envelope shared by every stored record: ``_id``, ``ts``, ``mode``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default="", alias="_id")
    ts: str | None = None
    mode: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        # Mongo hands back ObjectId instances
        return "" if value is None else str(value)

    @field_validator("ts", mode="before")
    @classmethod
    def _coerce_ts(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        return value

    @field_validator("data", mode="before", check_fields=False)
    @classmethod
    def _coerce_data(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def market(self) -> str | None:
        return self.data.market  # type: ignore[attr-defined]


class RoundStartEvent(_EventBase):
    event: Literal["RoundStart"] = "RoundStart"
    data: RoundStartPayload = Field(default_factory=RoundStartPayload)


class BuyEvent(_EventBase):
    event: Literal["Buy"] = "Buy"
    data: BuyPayload = Field(default_factory=BuyPayload)


class MergeEvent(_EventBase):
    event: Literal["Merge"] = "Merge"
    data: MergePayload = Field(default_factory=MergePayload)


class RoundEndEvent(_EventBase):
    event: Literal["RoundEnd"] = "RoundEnd"
    data: RoundEndPayload = Field(default_factory=RoundEndPayload)


class ErrorEvent(_EventBase):
    event: Literal["Error"] = "Error"
    data: ErrorPayload = Field(default_factory=ErrorPayload)


class UnknownEvent(_EventBase):
    """Catch-all bucket for any kind the reconstructor does not dispatch on."""

    event: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def market(self) -> str | None:
        market = self.data.get("market")
        return market if isinstance(market, str) else None


TradeEvent = Union[
    RoundStartEvent, BuyEvent, MergeEvent, RoundEndEvent, ErrorEvent, UnknownEvent
]

_EVENT_TYPES: dict[str, type[_EventBase]] = {
    EventKind.ROUND_START.value: RoundStartEvent,
    EventKind.BUY.value: BuyEvent,
    EventKind.MERGE.value: MergeEvent,
    EventKind.ROUND_END.value: RoundEndEvent,
    EventKind.ERROR.value: ErrorEvent,
}


def _blank_invalid_fields(document: Mapping[str, Any], exc: ValidationError) -> dict[str, Any]:
    """Copy of *document* with every field named in *exc* set to ``None``."""
    repaired = dict(document)
    data = document.get("data")
    payload = dict(data) if isinstance(data, Mapping) else {}
    for error in exc.errors():
        loc = error["loc"]
        if not loc:
            continue
        if loc[0] == "data":
            if len(loc) > 1:
                payload[str(loc[1])] = None
            else:
                payload = {}
        else:
            repaired[str(loc[0])] = None
    repaired["data"] = payload
    return repaired


def parse_event(document: Mapping[str, Any] | TradeEvent) -> TradeEvent:
    """Map a raw stored record onto the event union.

    Never raises. A record of a known kind keeps its kind even when some of
    its fields do not validate: those fields are logged and read as ``None``,
    the rest of the record is kept as stored.
    """
    if isinstance(document, _EventBase):
        return document  # type: ignore[return-value]

    kind = document.get("event")
    model = _EVENT_TYPES.get(kind, UnknownEvent) if isinstance(kind, str) else UnknownEvent
    try:
        return model.model_validate(document)  # type: ignore[return-value]
    except ValidationError as exc:
        logger.warning(
            "event_fields_invalid",
            event_id=str(document.get("_id")),
            kind=kind,
            fields=[".".join(str(part) for part in e["loc"]) for e in exc.errors()],
        )
        repaired = _blank_invalid_fields(document, exc)

    if model is not UnknownEvent:
        repaired["event"] = kind
        return model.model_validate(repaired)  # type: ignore[return-value]

    return UnknownEvent.model_validate(
        {
            "_id": repaired.get("_id"),
            "ts": repaired.get("ts"),
            "mode": repaired.get("mode"),
            "event": kind if isinstance(kind, str) else "",
            "data": repaired["data"],
        }
    )


# ── Reconstruction output ────────────────────────────────────────────


class AnnotatedBuy(BaseModel):
    """A purchase annotated with how much of it merges have consumed."""

    id: str
    ts: str | None = None
    mode: str | None = None
    side: str | None = None
    price: float | None = None
    size: float | None = None
    consumed_size: float = 0.0
    reason: str = ""
    pair_cost: float | None = None
    # Running position figures, copied verbatim from the Buy payload.
    cost_after: float | None = None
    up_qty: float | None = None
    up_avg: float | None = None
    dn_qty: float | None = None
    dn_avg: float | None = None
    merged: bool = False
    merge_group_ids: list[int] = Field(default_factory=list)


class AnnotatedMerge(BaseModel):
    """A merge operation plus the purchases it drew from."""

    id: str
    ts: str | None = None
    mode: str | None = None
    merge_group_id: int
    pairs: float | None = None
    pair_cost: float | None = None
    profit: float | None = None
    tx_hash: str | None = None
    up_qty_after: float | None = None
    dn_qty_after: float | None = None
    cost_after: float | None = None
    consumed_buy_ids: list[str] = Field(default_factory=list)


class RoundEndSnapshot(BaseModel):
    """Settlement figures reported by the strategy at round end."""

    ts: str | None = None
    hedged_qty: float | None = None
    up_qty: float | None = None
    up_avg: float | None = None
    dn_qty: float | None = None
    dn_avg: float | None = None
    pair_cost: float | None = None
    total_cost: float | None = None
    pnl: float | None = None
    buys: int | None = None
    merges: int | None = None
    outcome: str | None = None


class RoundError(BaseModel):
    id: str
    ts: str | None = None
    message: Any = None
    context: Any = None


class RoundSummary(BaseModel):
    """Fully annotated view of one round."""

    market: str = ""
    mode: str = ""
    round_start: str | None = None
    round_end: RoundEndSnapshot | None = None
    buys: list[AnnotatedBuy] = Field(default_factory=list)
    merges: list[AnnotatedMerge] = Field(default_factory=list)
    errors: list[RoundError] = Field(default_factory=list)
    total_buys: int = 0
    total_merges: int = 0
    total_profit: float = 0.0
    unmerged_yes: float = 0.0
    unmerged_no: float = 0.0


# ── Round listing ────────────────────────────────────────────────────


class RoundInfo(BaseModel):
    """Activity stats for one round identifier (market slug)."""

    slug: str
    earliest_ts: str | None = None
    latest_ts: str | None = None
    event_count: int = 0
    modes: list[str] = Field(default_factory=list)
