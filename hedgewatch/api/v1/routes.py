"""
V1 API Routes — Round monitor endpoints.

Serves the annotated view of a round, the grouped round listing, market
metadata for a round slug and the live append stream.

Endpoints are protected by the X-API-Key header when API_KEY_SECRET is set.
Uses structlog + OpenTelemetry per service conventions.

Endpoint summary:
  GET /events?market=&mode=        — Reconstructed round (RoundSummary)
  GET /markets                     — Rounds grouped by series prefix
  GET /market-info?slug=           — Condition id, outcome tokens, symbol
  GET /stream?last_id=             — SSE live append notifications
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from opentelemetry import trace

from hedgewatch.api.security import get_api_key
from hedgewatch.api.v1.stream import stream_events
from hedgewatch.config import get_settings
from hedgewatch.connectors.market_info import get_market_info_resolver
from hedgewatch.errors import InvalidParameterError, MissingParameterError
from hedgewatch.observability import RECONSTRUCT_LATENCY, ROUND_QUERIES
from hedgewatch.pairing import reconstruct
from hedgewatch.rounds import group_rounds
from hedgewatch.store import MODE_FILTERS, get_event_store

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(get_api_key)])

_AUTH_RESPONSES = {401: {"description": "Invalid or missing API key"}}


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Rounds
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@router.get(
    "/events",
    tags=["Rounds"],
    summary="Reconstructed round",
    responses=_AUTH_RESPONSES,
)
async def get_round(market: str | None = None, mode: str = "all") -> dict[str, Any]:
    """Every purchase of one round annotated with the merges that consumed it.

    - `market` (required): the round identifier (market slug)
    - `mode`: `production`, `simulation` or `all` (default)
    """
    if not market or not market.strip():
        raise MissingParameterError("market parameter required", parameter="market")
    if mode not in MODE_FILTERS:
        raise InvalidParameterError(
            f"mode must be one of {', '.join(MODE_FILTERS)}",
            detail=f"got {mode!r}",
            parameter="mode",
        )

    with tracer.start_as_current_span(
        "api.get_round", attributes={"market": market, "mode": mode}
    ):
        events = await get_event_store().find_round(market, mode)

        with RECONSTRUCT_LATENCY.time():
            summary = reconstruct(events, epsilon=get_settings().merge_epsilon)
        ROUND_QUERIES.labels(mode=mode).inc()

        logger.info(
            "round_reconstructed",
            market=market,
            mode=mode,
            records=len(events),
            buys=summary.total_buys,
            merges=summary.total_merges,
        )
        return summary.model_dump(mode="json")


@router.get(
    "/markets",
    tags=["Rounds"],
    summary="Rounds grouped by series",
    responses=_AUTH_RESPONSES,
)
async def list_markets() -> dict[str, Any]:
    """Rounds with activity, grouped by slug prefix, most recent first.

    Response maps each prefix (e.g. `ethereum-up-or-down`) to its rounds,
    each with `slug`, `earliest_ts`, `latest_ts`, `event_count`, `modes`.
    """
    with tracer.start_as_current_span("api.list_markets"):
        rounds = await get_event_store().list_rounds()
        groups = group_rounds(rounds)
        return {
            prefix: [info.model_dump() for info in members]
            for prefix, members in groups.items()
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Market metadata
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@router.get(
    "/market-info",
    tags=["Markets"],
    summary="Market metadata for a round slug",
    responses={
        **_AUTH_RESPONSES,
        404: {"description": "No event or market for the slug"},
        502: {"description": "Upstream market API failed"},
    },
)
async def get_market_info(slug: str | None = None) -> dict[str, Any]:
    """Condition id, outcome tokens and live-price symbol for a round."""
    if not slug or not slug.strip():
        raise MissingParameterError("slug parameter required", parameter="slug")

    with tracer.start_as_current_span("api.get_market_info", attributes={"slug": slug}):
        info = await get_market_info_resolver().resolve(slug)
        return info.model_dump(mode="json")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  Live stream
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@router.get(
    "/stream",
    tags=["Stream"],
    summary="SSE live append stream",
    responses={
        200: {
            "description": "Server-Sent Events stream",
            "content": {"text/event-stream": {}},
        },
        **_AUTH_RESPONSES,
    },
)
async def event_stream(request: Request, last_id: str | None = None):
    """SSE endpoint — pushes records as the strategy appends them.

    The cursor is taken from `last_id`, else the `Last-Event-ID` header,
    else the current tail of the store.
    """
    settings = get_settings()
    cursor = last_id or request.headers.get("Last-Event-ID")

    with tracer.start_as_current_span("api.event_stream"):
        return StreamingResponse(
            stream_events(
                get_event_store(),
                last_id=cursor,
                poll_interval=settings.stream_poll_interval,
                batch_limit=settings.stream_batch_limit,
                max_lifetime=settings.stream_max_lifetime,
                is_disconnected=request.is_disconnected,
            ),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering
            },
        )
