#!/usr/bin/env python3
"""
HedgeWatch live round dashboard — entry point only.
All logic lives in hedgewatch/monitor/:
  renderer.py  — ANSI round renderer
  live.py      — LiveRoundMonitor (store tail → reconstruct → render)

Usage:
  python scripts/run_round_monitor.py [market-slug]
"""

import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from hedgewatch.config import get_settings  # noqa: E402
from hedgewatch.logging import setup_logging  # noqa: E402
from hedgewatch.monitor.live import LiveRoundMonitor  # noqa: E402
from hedgewatch.store import create_event_store  # noqa: E402


async def main() -> None:
    settings = get_settings()
    setup_logging("WARNING")
    store = create_event_store(settings)
    market = sys.argv[1] if len(sys.argv) > 1 else None
    try:
        await LiveRoundMonitor(
            store,
            market=market,
            interval=settings.stream_poll_interval,
            epsilon=settings.merge_epsilon,
        ).run_forever()
    finally:
        await store.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\n👋 Monitor stopped.\n")
