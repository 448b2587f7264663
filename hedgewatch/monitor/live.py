"""
LiveRoundMonitor — follows the event store tail and keeps one round on screen.

Responsibilities (ONLY):
  - Poll the store for records appended since the last tick
  - On ``RoundStart`` / ``RoundEnd`` re-query the round listing, and switch to
    the newest round when no market is pinned
  - On any record of the displayed round, re-run the full reconstruction
  - Render via renderer.render_round()

The reconstruction is never patched incrementally: every change re-reads the
whole round and calls ``reconstruct()`` again.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import structlog

from hedgewatch.errors import HedgeWatchError
from hedgewatch.models import RoundEndEvent, RoundInfo, RoundStartEvent, RoundSummary
from hedgewatch.monitor.renderer import RED, c, render_round, render_round_list
from hedgewatch.pairing import MERGE_EPSILON, reconstruct
from hedgewatch.rounds import group_rounds
from hedgewatch.store import MODE_ALL, BaseEventStore

logger = structlog.get_logger(__name__)

INTERVAL_SECONDS = 3.0
CLEAR_SCREEN = "\033[2J\033[H"


class LiveRoundMonitor:
    """Thin orchestration loop — visualization only."""

    def __init__(
        self,
        store: BaseEventStore,
        *,
        market: str | None = None,
        mode: str = MODE_ALL,
        interval: float = INTERVAL_SECONDS,
        epsilon: float = MERGE_EPSILON,
        batch_limit: int = 100,
        echo: Callable[[str], None] = print,
    ) -> None:
        self.store = store
        self.market = market
        self.pinned = market is not None
        self.mode = mode
        self.interval = interval
        self.epsilon = epsilon
        self.batch_limit = batch_limit
        self.echo = echo

        self.cursor: str | None = None
        self.groups: dict[str, list[RoundInfo]] = {}
        self.summary: RoundSummary | None = None

    # ── State refresh ────────────────────────────────────────────────

    async def start(self) -> None:
        """Position the cursor at the store tail and load the initial view."""
        self.cursor = await self.store.latest_id()
        await self.refresh_listing()
        if not self.pinned:
            self.market = self.newest_market()
        await self.refresh_round()

    async def refresh_listing(self) -> None:
        self.groups = group_rounds(await self.store.list_rounds())

    def newest_market(self) -> str | None:
        """Slug of the most recently active round across all series."""
        newest: RoundInfo | None = None
        for rounds in self.groups.values():
            head = rounds[0]
            if newest is None or (head.latest_ts or "") > (newest.latest_ts or ""):
                newest = head
        return newest.slug if newest else None

    async def refresh_round(self) -> None:
        if not self.market:
            self.summary = None
            return
        events = await self.store.find_round(self.market, self.mode)
        self.summary = reconstruct(events, epsilon=self.epsilon)
        logger.debug(
            "live_round_refreshed",
            market=self.market,
            buys=self.summary.total_buys,
            merges=self.summary.total_merges,
        )

    async def tick(self) -> bool:
        """Consume newly appended records. Returns True if the view changed."""
        batch = await self.store.find_after(self.cursor, limit=self.batch_limit)
        if not batch:
            return False
        self.cursor = batch[-1].id or self.cursor

        listing_dirty = False
        round_dirty = False
        for record in batch:
            if isinstance(record, (RoundStartEvent, RoundEndEvent)):
                listing_dirty = True
            if record.market and record.market == self.market and (
                self.mode == MODE_ALL or record.mode == self.mode
            ):
                round_dirty = True

        if listing_dirty:
            await self.refresh_listing()
            if not self.pinned:
                newest = self.newest_market()
                if newest != self.market:
                    logger.info("live_round_switched", previous=self.market, market=newest)
                    self.market = newest
                    round_dirty = True

        if round_dirty:
            await self.refresh_round()
        return round_dirty

    # ── Rendering ────────────────────────────────────────────────────

    def render(self) -> str:
        if self.summary is None:
            return render_round_list(self.groups)
        return render_round(self.summary)

    # ── Main Loop ────────────────────────────────────────────────────

    async def run_forever(self) -> None:
        """Run the monitor loop indefinitely."""
        await self.start()
        self.echo(CLEAR_SCREEN + self.render())

        while True:
            await asyncio.sleep(self.interval)
            try:
                changed = await self.tick()
            except HedgeWatchError as e:
                logger.warning("live_tick_failed", error=str(e), error_code=e.error_code)
                self.echo(f"\n  {c('❌ ' + str(e), RED, bold=True)}")
                continue
            if changed:
                self.echo(CLEAR_SCREEN + self.render())
