#!/usr/bin/env python3
"""
HedgeWatch CLI — Inspect hedging rounds from the terminal.

Usage:
    hedgewatch rounds [--json]
    hedgewatch show <market> [--mode production|simulation|all] [--json]
    hedgewatch replay <events.jsonl> [--market <slug>] [--json]
    hedgewatch watch [<market>] [--mode ...] [--interval 3]
    hedgewatch serve [--host 0.0.0.0] [--port 3000]

The event store is picked from the environment (EVENT_STORE_BACKEND,
EVENTS_FILE, MONGO_URI); ``replay`` reads an exported file instead.
"""

import argparse
import asyncio
import json
import sys

from dotenv import load_dotenv

from hedgewatch.config import get_settings
from hedgewatch.errors import HedgeWatchError
from hedgewatch.logging import setup_logging
from hedgewatch.monitor.live import LiveRoundMonitor
from hedgewatch.monitor.renderer import render_round, render_round_list
from hedgewatch.pairing import reconstruct
from hedgewatch.rounds import group_rounds
from hedgewatch.store import (
    MODE_ALL,
    MODE_FILTERS,
    InMemoryEventStore,
    create_event_store,
    load_documents,
)


def _dump(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ── Commands ─────────────────────────────────────────────────────────


async def cmd_rounds(as_json: bool = False) -> None:
    """Print the grouped round listing."""
    store = create_event_store()
    try:
        groups = group_rounds(await store.list_rounds())
    finally:
        await store.close()

    if as_json:
        _dump({prefix: [r.model_dump() for r in rounds] for prefix, rounds in groups.items()})
    else:
        print(render_round_list(groups))


async def cmd_show(market: str, mode: str = MODE_ALL, as_json: bool = False) -> None:
    """Reconstruct one round from the configured store and render it."""
    store = create_event_store()
    try:
        events = await store.find_round(market, mode)
    finally:
        await store.close()

    summary = reconstruct(events, epsilon=get_settings().merge_epsilon)
    if as_json:
        _dump(summary.model_dump(mode="json"))
    else:
        print(render_round(summary))


async def cmd_replay(path: str, market: str | None = None, as_json: bool = False) -> None:
    """Reconstruct a round from an exported JSON / JSONL file.

    Without ``--market`` the file is taken to hold a single round, in order.
    """
    documents = load_documents(path)
    if market:
        events = await InMemoryEventStore(documents).find_round(market)
    else:
        events = documents

    summary = reconstruct(events, epsilon=get_settings().merge_epsilon)
    if as_json:
        _dump(summary.model_dump(mode="json"))
    else:
        print(render_round(summary))


async def cmd_watch(
    market: str | None = None, mode: str = MODE_ALL, interval: float | None = None
) -> None:
    """Follow the store tail and keep the round on screen."""
    settings = get_settings()
    store = create_event_store()
    monitor = LiveRoundMonitor(
        store,
        market=market,
        mode=mode,
        interval=interval or settings.stream_poll_interval,
        epsilon=settings.merge_epsilon,
        batch_limit=settings.stream_batch_limit,
    )
    try:
        await monitor.run_forever()
    finally:
        await store.close()


def cmd_serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("app:app", host=host, port=port)


# ── Entry point ──────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hedgewatch", description="HedgeWatch CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rounds_parser = subparsers.add_parser("rounds", help="List rounds grouped by series")
    rounds_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    show_parser = subparsers.add_parser("show", help="Reconstruct and render one round")
    show_parser.add_argument("market", help="Round identifier (market slug)")
    show_parser.add_argument("--mode", choices=MODE_FILTERS, default=MODE_ALL)
    show_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    replay_parser = subparsers.add_parser(
        "replay", help="Reconstruct a round from an exported events file"
    )
    replay_parser.add_argument("file", help="JSON array or JSONL export of the event log")
    replay_parser.add_argument("--market", help="Only replay records of this round")
    replay_parser.add_argument("--json", action="store_true", help="Print raw JSON")

    watch_parser = subparsers.add_parser("watch", help="Live round monitor")
    watch_parser.add_argument("market", nargs="?", help="Pin a round (default: newest)")
    watch_parser.add_argument("--mode", choices=MODE_FILTERS, default=MODE_ALL)
    watch_parser.add_argument("--interval", type=float, help="Poll interval in seconds")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, help="Port (default: PORT setting)")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    settings = get_settings()
    # Keep the terminal views free of info-level log lines
    level = settings.log_level if args.command == "serve" else "WARNING"
    setup_logging(level, json_output=settings.log_json)

    try:
        if args.command == "rounds":
            asyncio.run(cmd_rounds(args.json))
        elif args.command == "show":
            asyncio.run(cmd_show(args.market, args.mode, args.json))
        elif args.command == "replay":
            asyncio.run(cmd_replay(args.file, args.market, args.json))
        elif args.command == "watch":
            asyncio.run(cmd_watch(args.market, args.mode, args.interval))
        elif args.command == "serve":
            cmd_serve(args.host, args.port or settings.port)
    except HedgeWatchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\n👋 Stopped.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
