"""
Live append notification — Server-Sent Events over the event store tail.

The store has no change feed, so the generator polls: every
``poll_interval`` seconds it reads up to ``batch_limit`` records appended
after its cursor and pushes them to the client.

Message sequence::

    event: connected   data: {"ts": ...}
    event: event       data: {"_id", "event", "data", "ts", "mode"}   id: <_id>
    ...
    event: heartbeat   data: {"ts": ...}          (after every poll)
    event: error       data: {"message", ...}     (poll failed, stream continues)
    event: reconnect   data: {"ts": ...}          (max lifetime reached, stream ends)

Connections are closed on purpose after ``max_lifetime`` so that edge load
balancers never see long-lived zombies. ``EventSource`` clients reconnect
on their own and send ``Last-Event-ID``, which resumes from the last record
they received.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog

from hedgewatch.errors import HedgeWatchError
from hedgewatch.models import TradeEvent
from hedgewatch.observability import STREAM_EVENTS_SENT
from hedgewatch.store import BaseEventStore

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sse(event: str, data: Any, *, event_id: str | None = None) -> str:
    """Format one SSE message."""
    message = f"event: {event}\ndata: {json.dumps(data, default=str)}\n"
    if event_id:
        message += f"id: {event_id}\n"
    return message + "\n"


def _wire(event: TradeEvent) -> dict[str, Any]:
    """The stored-record shape pushed to clients."""
    data = event.data
    return {
        "_id": event.id,
        "event": event.event,
        "data": data if isinstance(data, dict) else data.model_dump(mode="json", exclude_none=True),
        "ts": event.ts,
        "mode": event.mode,
    }


async def stream_events(
    store: BaseEventStore,
    *,
    last_id: str | None = None,
    poll_interval: float = 3.0,
    batch_limit: int = 100,
    max_lifetime: float = 300.0,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Yield SSE messages for records appended after ``last_id``.

    Without a cursor the stream starts at the current tail of the store, so
    only records appended after the client connected are pushed.
    """
    started = time.monotonic()
    cursor = last_id or None
    cursor_ready = cursor is not None

    yield _sse("connected", {"ts": _now()})

    if not cursor_ready:
        try:
            cursor = await store.latest_id()
            cursor_ready = True
        except HedgeWatchError as exc:
            logger.warning("sse_cursor_lookup_failed", error=str(exc))
            yield _sse("error", {"message": str(exc), "error_code": exc.error_code})

    logger.debug("sse_client_connected", cursor=cursor)

    try:
        while True:
            await asyncio.sleep(poll_interval)
            if is_disconnected is not None and await is_disconnected():
                break

            try:
                if not cursor_ready:
                    cursor = await store.latest_id()
                    cursor_ready = True
                else:
                    batch = await store.find_after(cursor, limit=batch_limit)
                    for record in batch:
                        yield _sse("event", _wire(record), event_id=record.id or None)
                        cursor = record.id or cursor
                    if batch:
                        STREAM_EVENTS_SENT.inc(len(batch))
            except HedgeWatchError as exc:
                logger.warning(
                    "sse_poll_failed", error=str(exc), error_code=exc.error_code
                )
                yield _sse("error", {"message": str(exc), "error_code": exc.error_code})
            else:
                yield _sse("heartbeat", {"ts": _now()})

            # Intentional disconnect for edge LBs; the client reconnects with Last-Event-ID
            if time.monotonic() - started >= max_lifetime:
                logger.debug("sse_intentional_reconnect", cursor=cursor)
                yield _sse("reconnect", {"ts": _now()})
                break
    finally:
        logger.debug("sse_client_disconnected", cursor=cursor)
