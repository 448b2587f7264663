"""
Merge-pairing reconstruction.

Replays the chronological event log of a single round and works out which
purchases each merge consumed. Purchases queue up per side; a merge asking
for ``P`` pairs drains up to ``P`` shares from the YES queue and,
independently, up to ``P`` shares from the NO queue, oldest purchase first.
A purchase can be split across several merges.

The buy table is the single owner of every ``AnnotatedBuy``. Queue entries
hold only ``(buy_key, remaining)``; every mutation of a purchase goes through
the table by key.

Usage::

    events = await store.find_round("ethereum-up-or-down-february-19-2am-et")
    summary = reconstruct(events)
    summary.unmerged_yes, summary.total_profit
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from hedgewatch.models import (
    AnnotatedBuy,
    AnnotatedMerge,
    BuyEvent,
    ErrorEvent,
    MergeEvent,
    RoundEndEvent,
    RoundEndSnapshot,
    RoundError,
    RoundStartEvent,
    RoundSummary,
    TradeEvent,
    parse_event,
)

__all__ = ["MERGE_EPSILON", "YES_SIDES", "reconstruct"]

# Share quantities are floats upstream; anything below this is treated as
# zero when deciding whether a purchase is used up or a merge is satisfied.
MERGE_EPSILON = 1e-3

# Sides that feed the YES queue. Every other side value feeds the NO queue.
YES_SIDES: frozenset[str] = frozenset({"YES", "UP"})


@dataclass
class _QueueEntry:
    buy_key: str  # key into the buy table (the event id unless it repeats)
    remaining: float


class _RoundBuilder:
    """Mutable working state for one ``reconstruct`` call."""

    def __init__(self, epsilon: float) -> None:
        self.epsilon = epsilon
        self.buys: dict[str, AnnotatedBuy] = {}
        self.yes_queue: deque[_QueueEntry] = deque()
        self.no_queue: deque[_QueueEntry] = deque()
        self.merges: list[AnnotatedMerge] = []
        self.errors: list[RoundError] = []
        self.round_start: str | None = None
        self.round_end: RoundEndSnapshot | None = None
        self.market = ""
        self.mode = ""
        self.group_counter = 0

    # ── Dispatch ─────────────────────────────────────────────────────

    def feed(self, event: TradeEvent) -> None:
        if not self.market and event.market:
            self.market = event.market
        if not self.mode and event.mode:
            self.mode = event.mode

        if isinstance(event, BuyEvent):
            self._on_buy(event)
        elif isinstance(event, MergeEvent):
            self._on_merge(event)
        elif isinstance(event, RoundStartEvent):
            if self.round_start is None:
                self.round_start = event.ts
        elif isinstance(event, RoundEndEvent):
            self._on_round_end(event)
        elif isinstance(event, ErrorEvent):
            self.errors.append(
                RoundError(
                    id=event.id,
                    ts=event.ts,
                    message=event.data.message,
                    context=event.data.context,
                )
            )
        # UnknownEvent: not part of the round bookkeeping

    def _on_buy(self, event: BuyEvent) -> None:
        data = event.data
        buy = AnnotatedBuy(
            id=event.id,
            ts=event.ts,
            mode=event.mode,
            side=data.side,
            price=data.price,
            size=data.size,
            reason=data.reason or "",
            pair_cost=data.pair_cost,
            cost_after=data.cost_after,
            up_qty=data.up_qty,
            up_avg=data.up_avg,
            dn_qty=data.dn_qty,
            dn_avg=data.dn_avg,
        )
        key, n = buy.id, len(self.buys)
        while key in self.buys:
            key = f"{buy.id}#{n}"
            n += 1
        self.buys[key] = buy

        queue = self.yes_queue if data.side in YES_SIDES else self.no_queue
        queue.append(_QueueEntry(buy_key=key, remaining=data.size or 0.0))

    def _on_merge(self, event: MergeEvent) -> None:
        data = event.data
        self.group_counter += 1
        group_id = self.group_counter
        pairs = data.pairs or 0.0
        consumed_ids: list[str] = []

        # Each side supplies the full pair count on its own.
        self._drain(self.yes_queue, pairs, group_id, consumed_ids)
        self._drain(self.no_queue, pairs, group_id, consumed_ids)

        self.merges.append(
            AnnotatedMerge(
                id=event.id,
                ts=event.ts,
                mode=event.mode,
                merge_group_id=group_id,
                pairs=data.pairs,
                pair_cost=data.pair_cost,
                profit=data.profit,
                tx_hash=data.tx_hash,
                up_qty_after=data.up_qty_after,
                dn_qty_after=data.dn_qty_after,
                cost_after=data.cost_after,
                consumed_buy_ids=consumed_ids,
            )
        )

    def _drain(
        self,
        queue: deque[_QueueEntry],
        wanted: float,
        group_id: int,
        consumed_ids: list[str],
    ) -> None:
        """Take up to ``wanted`` shares from ``queue`` in FIFO order.

        Stops early when the queue runs dry; the shortfall is not reported.
        """
        still_needed = wanted
        while still_needed > self.epsilon and queue:
            front = queue[0]
            take = min(front.remaining, still_needed)
            front.remaining -= take
            still_needed -= take

            buy = self.buys[front.buy_key]
            buy.consumed_size += take
            if not buy.merge_group_ids or buy.merge_group_ids[-1] != group_id:
                buy.merge_group_ids.append(group_id)
            if buy.id not in consumed_ids:
                consumed_ids.append(buy.id)

            if front.remaining < self.epsilon:
                buy.merged = True
                queue.popleft()

    def _on_round_end(self, event: RoundEndEvent) -> None:
        data = event.data
        self.round_end = RoundEndSnapshot(
            ts=event.ts,
            hedged_qty=data.hedged_qty,
            up_qty=data.up_qty,
            up_avg=data.up_avg,
            dn_qty=data.dn_qty,
            dn_avg=data.dn_avg,
            pair_cost=data.pair_cost,
            total_cost=data.total_cost,
            pnl=data.pnl,
            buys=data.buys,
            merges=data.merges,
            outcome=data.outcome,
        )

    # ── Finalization ─────────────────────────────────────────────────

    def finish(self) -> RoundSummary:
        # A partially drained purchase still has shares waiting in its queue.
        for entry in (*self.yes_queue, *self.no_queue):
            if entry.remaining > self.epsilon:
                self.buys[entry.buy_key].merged = False

        buys = list(self.buys.values())
        return RoundSummary(
            market=self.market,
            mode=self.mode,
            round_start=self.round_start,
            round_end=self.round_end,
            buys=buys,
            merges=self.merges,
            errors=self.errors,
            total_buys=len(buys),
            total_merges=len(self.merges),
            total_profit=sum(m.profit or 0.0 for m in self.merges),
            unmerged_yes=sum(e.remaining for e in self.yes_queue),
            unmerged_no=sum(e.remaining for e in self.no_queue),
        )


def reconstruct(
    events: Iterable[TradeEvent | Mapping[str, Any]],
    *,
    epsilon: float = MERGE_EPSILON,
) -> RoundSummary:
    """Annotate one round's purchases with the merges that consumed them.

    Args:
        events: The round's records, ascending by timestamp. Raw stored
            documents are accepted and parsed with ``parse_event``. The
            sequence is neither re-sorted nor filtered by market.
        epsilon: Quantity tolerance used to decide that a purchase is fully
            consumed or that a merge has been satisfied.

    Returns:
        A fresh ``RoundSummary``. The function holds no state between calls
        and never raises on odd payloads; missing figures come through as
        ``None``.
    """
    builder = _RoundBuilder(epsilon)
    for event in events:
        builder.feed(parse_event(event))
    return builder.finish()
