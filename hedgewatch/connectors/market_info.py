"""
MarketInfoResolver — maps a round slug to Polymarket market metadata.

Resolution takes two public, unauthenticated calls:

  1. Gamma ``GET /events?slug={slug}`` → first event → first market →
     ``conditionId`` (plus question / end date)
  2. CLOB ``GET /markets/{conditionId}`` → outcome tokens

Markets do not change mid-round, so successful lookups are cached per slug
(5 minutes by default). The crypto symbol for the live price overlay is
derived from the slug prefix.

Usage:
    resolver = get_market_info_resolver()
    info = await resolver.resolve("ethereum-up-or-down-february-19-2am-et")
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hedgewatch.config import Settings, get_settings
from hedgewatch.errors import (
    MarketInfoIncompleteError,
    MarketInfoRateLimitError,
    MarketInfoUnavailableError,
    MarketNotFoundError,
)
from hedgewatch.observability import MARKET_INFO_REQUESTS

logger = structlog.get_logger(__name__)

# Slug prefix → Binance trade stream symbol
CRYPTO_MAP: dict[str, str] = {
    "ethereum": "ethusdt",
    "bitcoin": "btcusdt",
    "solana": "solusdt",
    "xrp": "xrpusdt",
    "dogecoin": "dogeusdt",
    "bnb": "bnbusdt",
    "cardano": "adausdt",
    "avalanche": "avaxusdt",
    "polkadot": "dotusdt",
    "polygon": "maticusdt",
    "litecoin": "ltcusdt",
    "chainlink": "linkusdt",
    "sui": "suiusdt",
}


def detect_crypto_symbol(slug: str) -> str | None:
    """Binance symbol for the asset a round slug is about, if known."""
    lower = slug.lower()
    for keyword, symbol in CRYPTO_MAP.items():
        if lower.startswith(keyword):
            return symbol
    return None


# ── Models ───────────────────────────────────────────────────────────


class TokenInfo(BaseModel):
    token_id: str
    outcome: str  # "Yes" / "No" / "Up" / "Down"


class MarketInfo(BaseModel):
    slug: str
    condition_id: str
    question: str
    tokens: list[TokenInfo] = Field(default_factory=list)
    crypto_symbol: str | None = None
    end_date: str | None = None


# ── TTL Cache ────────────────────────────────────────────────────────


class TTLCache:
    """Per-key cache whose entries expire ``ttl_seconds`` after being set."""

    def __init__(self, ttl_seconds: float = 300.0):
        self._ttl = ttl_seconds
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        if key in self._store:
            ts, data = self._store[key]
            if time.monotonic() - ts < self._ttl:
                return data
            del self._store[key]
        return None

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.monotonic(), value)

    def invalidate(self, key: str | None = None) -> None:
        if key:
            self._store.pop(key, None)
        else:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


# ── Resolver ─────────────────────────────────────────────────────────


class MarketInfoResolver:
    """
    Async Gamma + CLOB client specialised to slug resolution.

    Features:
    - httpx.AsyncClient with HTTP/2 and connection pooling
    - TTL cache per slug
    - Retry with exponential backoff on upstream rate limits
    - Structured logging for every API call
    """

    def __init__(
        self,
        *,
        gamma_url: str,
        clob_url: str,
        cache_ttl: float = 300.0,
    ):
        self._gamma = httpx.AsyncClient(
            base_url=gamma_url,
            http2=True,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
        self._clob = httpx.AsyncClient(
            base_url=clob_url,
            http2=True,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
        self._cache = TTLCache(ttl_seconds=cache_ttl)

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketInfoResolver:
        return cls(
            gamma_url=settings.gamma_api_url,
            clob_url=settings.clob_api_url,
            cache_ttl=settings.market_info_cache_ttl,
        )

    async def _request(
        self, client: httpx.AsyncClient, api: str, path: str, slug: str, **kwargs
    ) -> Any:
        """GET ``path`` and decode JSON, mapping failures to typed errors."""
        start = time.monotonic()
        try:
            resp = await client.request("GET", path, **kwargs)
        except httpx.TimeoutException as e:
            raise MarketInfoUnavailableError(
                f"{api} API timed out", detail=str(e), slug=slug
            ) from e
        except httpx.HTTPError as e:
            raise MarketInfoUnavailableError(
                f"{api} API unreachable", detail=str(e), slug=slug
            ) from e

        latency_ms = (time.monotonic() - start) * 1000

        if resp.status_code == 429:
            logger.warning("market_info_rate_limited", api=api, path=path)
            raise MarketInfoRateLimitError(f"{api} API rate limit exceeded", slug=slug)
        if resp.status_code >= 400:
            raise MarketInfoUnavailableError(
                f"{api} API error: {resp.status_code}",
                detail=resp.text[:500],
                slug=slug,
            )

        logger.debug(
            "market_info_request",
            api=api,
            path=path,
            status=resp.status_code,
            latency_ms=round(latency_ms),
        )
        try:
            return resp.json()
        except ValueError as e:
            raise MarketInfoUnavailableError(
                f"{api} API returned invalid JSON", detail=str(e), slug=slug
            ) from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(MarketInfoRateLimitError),
        reraise=True,
    )
    async def _fetch_events(self, slug: str) -> list[dict]:
        data = await self._request(
            self._gamma, "Gamma", "/events", slug, params={"slug": slug}
        )
        return data if isinstance(data, list) else []

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(MarketInfoRateLimitError),
        reraise=True,
    )
    async def _fetch_clob_market(self, condition_id: str, slug: str) -> dict:
        data = await self._request(
            self._clob, "CLOB", f"/markets/{condition_id}", slug
        )
        return data if isinstance(data, dict) else {}

    async def resolve(self, slug: str) -> MarketInfo:
        """Resolve a round slug to its condition id, outcome tokens and symbol.

        Raises:
            MarketNotFoundError: No event, or an event without markets.
            MarketInfoIncompleteError: The market carries no condition id.
            MarketInfoUnavailableError: Upstream unreachable or erroring.
            MarketInfoRateLimitError: Still rate limited after retries.
        """
        cached = self._cache.get(slug)
        if cached is not None:
            MARKET_INFO_REQUESTS.labels(status="cache_hit").inc()
            return cached

        try:
            info = await self._resolve_uncached(slug)
        except Exception:
            MARKET_INFO_REQUESTS.labels(status="error").inc()
            raise

        self._cache.set(slug, info)
        MARKET_INFO_REQUESTS.labels(status="resolved").inc()
        logger.info(
            "market_info_resolved",
            slug=slug,
            condition_id=info.condition_id,
            tokens=len(info.tokens),
        )
        return info

    async def _resolve_uncached(self, slug: str) -> MarketInfo:
        events = await self._fetch_events(slug)
        if not events:
            raise MarketNotFoundError(f"No event found for slug: {slug}", slug=slug)

        event = events[0]
        markets = event.get("markets") or []
        if not markets:
            raise MarketNotFoundError(f"No markets in event: {slug}", slug=slug)

        market = markets[0]
        condition_id = market.get("conditionId")
        if not condition_id:
            raise MarketInfoIncompleteError(
                f"No conditionId found for: {slug}", slug=slug
            )

        clob_market = await self._fetch_clob_market(condition_id, slug)
        tokens = [
            TokenInfo(token_id=str(t.get("token_id", "")), outcome=str(t.get("outcome", "")))
            for t in clob_market.get("tokens") or []
            if isinstance(t, dict)
        ]

        return MarketInfo(
            slug=slug,
            condition_id=condition_id,
            question=market.get("question") or event.get("title") or slug,
            tokens=tokens,
            crypto_symbol=detect_crypto_symbol(slug),
            end_date=event.get("endDate") or market.get("endDate") or None,
        )

    async def aclose(self) -> None:
        await self._gamma.aclose()
        await self._clob.aclose()


# ── Singleton ────────────────────────────────────────────────────────

_resolver: MarketInfoResolver | None = None


def get_market_info_resolver() -> MarketInfoResolver:
    """Get or create the global resolver (one HTTP pool + cache per process)."""
    global _resolver
    if _resolver is None:
        _resolver = MarketInfoResolver.from_settings(get_settings())
    return _resolver


async def close_market_info_resolver() -> None:
    """Close the global resolver's HTTP clients and drop it."""
    global _resolver
    if _resolver is not None:
        await _resolver.aclose()
    _resolver = None
