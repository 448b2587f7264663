"""
Tests for MarketInfoResolver — Gamma + CLOB slug resolution.

- Mock httpx.AsyncClient for Gamma and CLOB API calls
- Test the happy path, fallbacks and caching
- Test error mapping (not found, incomplete, upstream failures)
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from hedgewatch.connectors.market_info import (
    MarketInfoResolver,
    TTLCache,
    detect_crypto_symbol,
)
from hedgewatch.errors import (
    MarketInfoIncompleteError,
    MarketInfoUnavailableError,
    MarketNotFoundError,
)

SLUG = "ethereum-up-or-down-february-19-2am-et"


# ── Fixtures ─────────────────────────────────────────────────────────


def _make_response(
    json_data: dict | list | None = None,
    status_code: int = 200,
    text: str = "",
) -> httpx.Response:
    """Create a mock httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = json_data if json_data is not None else {}
    return resp


def _make_resolver() -> MarketInfoResolver:
    """Create a test resolver with mocked HTTP clients."""
    resolver = MarketInfoResolver(
        gamma_url="https://gamma.test", clob_url="https://clob.test", cache_ttl=300
    )

    resolver._gamma = AsyncMock(spec=httpx.AsyncClient)
    resolver._gamma.request = AsyncMock(return_value=_make_response(json_data=[]))
    resolver._gamma.aclose = AsyncMock()

    resolver._clob = AsyncMock(spec=httpx.AsyncClient)
    resolver._clob.request = AsyncMock(return_value=_make_response(json_data={}))
    resolver._clob.aclose = AsyncMock()

    return resolver


def _gamma_event(**market) -> list[dict]:
    return [
        {
            "title": "Ethereum Up or Down - February 19, 2AM ET",
            "endDate": "2025-02-19T08:00:00Z",
            "markets": [{"conditionId": "0xcond", "question": "Ethereum Up or Down?", **market}],
        }
    ]


_CLOB_MARKET = {
    "tokens": [
        {"token_id": "111", "outcome": "Up"},
        {"token_id": "222", "outcome": "Down"},
    ]
}


# ── Resolution ───────────────────────────────────────────────────────


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolves_slug(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event())
        resolver._clob.request.return_value = _make_response(json_data=_CLOB_MARKET)

        info = await resolver.resolve(SLUG)

        assert info.slug == SLUG
        assert info.condition_id == "0xcond"
        assert info.question == "Ethereum Up or Down?"
        assert [(t.token_id, t.outcome) for t in info.tokens] == [("111", "Up"), ("222", "Down")]
        assert info.crypto_symbol == "ethusdt"
        assert info.end_date == "2025-02-19T08:00:00Z"

        gamma_call = resolver._gamma.request.call_args
        assert gamma_call.args == ("GET", "/events")
        assert gamma_call.kwargs["params"] == {"slug": SLUG}
        assert resolver._clob.request.call_args.args == ("GET", "/markets/0xcond")

    @pytest.mark.asyncio
    async def test_question_falls_back_to_title(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event(question=None))
        resolver._clob.request.return_value = _make_response(json_data=_CLOB_MARKET)

        info = await resolver.resolve(SLUG)

        assert info.question == "Ethereum Up or Down - February 19, 2AM ET"

    @pytest.mark.asyncio
    async def test_result_is_cached(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event())
        resolver._clob.request.return_value = _make_response(json_data=_CLOB_MARKET)

        first = await resolver.resolve(SLUG)
        second = await resolver.resolve(SLUG)

        assert first is second
        assert resolver._gamma.request.await_count == 1
        assert resolver._clob.request.await_count == 1

    @pytest.mark.asyncio
    async def test_aclose(self):
        resolver = _make_resolver()
        await resolver.aclose()
        resolver._gamma.aclose.assert_awaited_once()
        resolver._clob.aclose.assert_awaited_once()


# ── Error mapping ────────────────────────────────────────────────────


class TestErrors:
    @pytest.mark.asyncio
    async def test_no_event(self):
        resolver = _make_resolver()
        with pytest.raises(MarketNotFoundError) as exc_info:
            await resolver.resolve(SLUG)
        assert exc_info.value.http_status == 404
        assert exc_info.value.slug == SLUG

    @pytest.mark.asyncio
    async def test_event_without_markets(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=[{"markets": []}])
        with pytest.raises(MarketNotFoundError):
            await resolver.resolve(SLUG)

    @pytest.mark.asyncio
    async def test_missing_condition_id(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event(conditionId=""))
        with pytest.raises(MarketInfoIncompleteError) as exc_info:
            await resolver.resolve(SLUG)
        assert exc_info.value.http_status == 500
        resolver._clob.request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upstream_error_status(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(status_code=500, text="oops")
        with pytest.raises(MarketInfoUnavailableError) as exc_info:
            await resolver.resolve(SLUG)
        assert exc_info.value.http_status == 502
        assert exc_info.value.detail == "oops"

    @pytest.mark.asyncio
    async def test_timeout(self):
        resolver = _make_resolver()
        resolver._gamma.request.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(MarketInfoUnavailableError):
            await resolver.resolve(SLUG)

    @pytest.mark.asyncio
    async def test_clob_unreachable(self):
        resolver = _make_resolver()
        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event())
        resolver._clob.request.side_effect = httpx.ConnectError("refused")
        with pytest.raises(MarketInfoUnavailableError):
            await resolver.resolve(SLUG)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        resolver = _make_resolver()
        with pytest.raises(MarketNotFoundError):
            await resolver.resolve(SLUG)

        resolver._gamma.request.return_value = _make_response(json_data=_gamma_event())
        resolver._clob.request.return_value = _make_response(json_data=_CLOB_MARKET)
        info = await resolver.resolve(SLUG)
        assert info.condition_id == "0xcond"


# ── Helpers ──────────────────────────────────────────────────────────


class TestHelpers:
    def test_detect_crypto_symbol(self):
        assert detect_crypto_symbol("bitcoin-up-or-down-march-1-et") == "btcusdt"
        assert detect_crypto_symbol("Solana-above-200") == "solusdt"
        assert detect_crypto_symbol("election-winner") is None

    def test_ttl_cache_expiry(self):
        cache = TTLCache(ttl_seconds=10)
        with patch("hedgewatch.connectors.market_info.time.monotonic", return_value=100.0):
            cache.set("k", "v")
        with patch("hedgewatch.connectors.market_info.time.monotonic", return_value=105.0):
            assert cache.get("k") == "v"
        with patch("hedgewatch.connectors.market_info.time.monotonic", return_value=111.0):
            assert cache.get("k") is None
        assert len(cache) == 0
