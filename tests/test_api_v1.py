"""
V1 API Route tests — endpoint verification with FastAPI TestClient.

Covers optional API-key auth, round query validation and reconstruction,
the grouped round listing, market info error mapping, the SSE stream and
the system endpoints.
"""

import importlib
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from hedgewatch.config import Settings
from hedgewatch.connectors.market_info import MarketInfo, TokenInfo
from hedgewatch.errors import EventStoreUnavailableError, MarketNotFoundError
from hedgewatch.store import InMemoryEventStore, reset_event_store, set_event_store

API_KEY = "test-v1-key"
ETH_2AM = "ethereum-up-or-down-february-19-2am-et"
BTC_2AM = "bitcoin-up-or-down-february-19-2am-et"


def _doc(event: str, market: str, ts: str, mode: str = "production", **data) -> dict:
    return {"event": event, "ts": ts, "mode": mode, "data": {"market": market, **data}}


def _seed() -> InMemoryEventStore:
    return InMemoryEventStore(
        [
            _doc("RoundStart", ETH_2AM, "2025-02-19T07:00:00Z"),
            _doc("Buy", ETH_2AM, "2025-02-19T07:00:01Z", side="YES", size=10, price=0.5),
            _doc("Buy", ETH_2AM, "2025-02-19T07:00:02Z", side="NO", size=10, price=0.5),
            _doc("Merge", ETH_2AM, "2025-02-19T07:00:03Z", pairs=10, profit=1.25),
            _doc("Buy", ETH_2AM, "2025-02-19T07:00:04Z", mode="simulation", side="YES", size=1),
            _doc("RoundStart", BTC_2AM, "2025-02-19T07:30:00Z", mode="simulation"),
        ]
    )


@pytest.fixture(autouse=True)
def _store():
    store = _seed()
    set_event_store(store)
    yield store
    reset_event_store()


def _make_app(api_key: str | None = API_KEY):
    """Create a fresh app with the given API_KEY_SECRET (None = auth disabled)."""
    if api_key is None:
        os.environ.pop("API_KEY_SECRET", None)
    else:
        os.environ["API_KEY_SECRET"] = api_key

    import app as app_module

    importlib.reload(app_module)
    return app_module.app


def _client(api_key: str | None = API_KEY) -> TestClient:
    return TestClient(_make_app(api_key))


HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture(autouse=True)
def _restore_env():
    original = os.environ.get("API_KEY_SECRET")
    yield
    if original is None:
        os.environ.pop("API_KEY_SECRET", None)
    else:
        os.environ["API_KEY_SECRET"] = original


# ── Auth Tests ─────────────────────────────────────────────────────────


class TestAuth:
    def test_missing_api_key(self):
        r = _client().get("/api/v1/markets")
        assert r.status_code == 401

    def test_wrong_api_key(self):
        r = _client().get("/api/v1/markets", headers={"X-API-Key": "nope"})
        assert r.status_code == 401

    def test_valid_api_key(self):
        r = _client().get("/api/v1/markets", headers=HEADERS)
        assert r.status_code == 200

    def test_open_when_no_secret_configured(self):
        r = _client(api_key=None).get("/api/v1/markets")
        assert r.status_code == 200


# ── Round query ────────────────────────────────────────────────────────


class TestRoundQuery:
    def test_missing_market(self):
        r = _client().get("/api/v1/events", headers=HEADERS)
        assert r.status_code == 400
        error = r.json()["error"]
        assert error["error_code"] == "MISSING_PARAMETER"
        assert error["parameter"] == "market"
        assert error["retryable"] is False

    def test_blank_market(self):
        r = _client().get("/api/v1/events", params={"market": "  "}, headers=HEADERS)
        assert r.status_code == 400

    def test_invalid_mode(self):
        r = _client().get(
            "/api/v1/events", params={"market": ETH_2AM, "mode": "paper"}, headers=HEADERS
        )
        assert r.status_code == 400
        assert r.json()["error"]["error_code"] == "INVALID_PARAMETER"

    def test_full_round(self):
        r = _client().get("/api/v1/events", params={"market": ETH_2AM}, headers=HEADERS)
        assert r.status_code == 200

        data = r.json()
        assert data["market"] == ETH_2AM
        assert data["round_start"] == "2025-02-19T07:00:00Z"
        assert data["total_buys"] == 3
        assert data["total_merges"] == 1
        assert data["total_profit"] == pytest.approx(1.25)
        assert data["unmerged_yes"] == pytest.approx(1)
        assert data["merges"][0]["consumed_buy_ids"] == [
            data["buys"][0]["id"],
            data["buys"][1]["id"],
        ]

    def test_mode_filter(self):
        r = _client().get(
            "/api/v1/events",
            params={"market": ETH_2AM, "mode": "simulation"},
            headers=HEADERS,
        )
        data = r.json()
        assert data["total_buys"] == 1
        assert data["mode"] == "simulation"
        assert data["round_start"] is None

    def test_unknown_round_is_empty(self):
        r = _client().get("/api/v1/events", params={"market": "nope"}, headers=HEADERS)
        assert r.status_code == 200
        assert r.json()["buys"] == []

    def test_store_unavailable(self, _store):
        _store.find_round = AsyncMock(
            side_effect=EventStoreUnavailableError("down", backend="mongo")
        )
        r = _client().get("/api/v1/events", params={"market": ETH_2AM}, headers=HEADERS)
        assert r.status_code == 503
        assert r.json()["error"]["retryable"] is True


# ── Round listing ──────────────────────────────────────────────────────


class TestMarkets:
    def test_grouped_listing(self):
        r = _client().get("/api/v1/markets", headers=HEADERS)
        data = r.json()

        assert list(data) == ["bitcoin-up-or-down", "ethereum-up-or-down"]
        eth = data["ethereum-up-or-down"][0]
        assert eth["slug"] == ETH_2AM
        assert eth["event_count"] == 5
        assert eth["modes"] == ["production", "simulation"]


# ── Market info ────────────────────────────────────────────────────────


class TestMarketInfo:
    def test_missing_slug(self):
        r = _client().get("/api/v1/market-info", headers=HEADERS)
        assert r.status_code == 400

    def test_resolved(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(
            return_value=MarketInfo(
                slug=ETH_2AM,
                condition_id="0xcond",
                question="Ethereum Up or Down?",
                tokens=[TokenInfo(token_id="1", outcome="Up")],
                crypto_symbol="ethusdt",
            )
        )
        with patch("hedgewatch.api.v1.routes.get_market_info_resolver", return_value=resolver):
            r = _client().get("/api/v1/market-info", params={"slug": ETH_2AM}, headers=HEADERS)

        assert r.status_code == 200
        assert r.json()["condition_id"] == "0xcond"
        assert r.json()["tokens"] == [{"token_id": "1", "outcome": "Up"}]
        resolver.resolve.assert_awaited_once_with(ETH_2AM)

    def test_not_found(self):
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=MarketNotFoundError("No event", slug="x"))
        with patch("hedgewatch.api.v1.routes.get_market_info_resolver", return_value=resolver):
            r = _client().get("/api/v1/market-info", params={"slug": "x"}, headers=HEADERS)

        assert r.status_code == 404
        assert r.json()["error"]["error_code"] == "MARKET_NOT_FOUND"
        assert r.json()["error"]["slug"] == "x"


# ── Stream ─────────────────────────────────────────────────────────────


class TestStream:
    def test_stream_from_cursor(self, _store):
        fast = Settings(stream_poll_interval=0, stream_max_lifetime=0)
        first_id = _store._documents[0]["_id"]

        with patch("hedgewatch.api.v1.routes.get_settings", return_value=fast):
            r = _client().get(
                "/api/v1/stream",
                params={"last_id": first_id},
                headers=HEADERS,
            )

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/event-stream")
        body = r.text
        assert body.startswith("event: connected")
        assert body.count("event: event") == 5
        assert "event: heartbeat" in body
        assert body.rstrip().split("\n\n")[-1].startswith("event: reconnect")

    def test_last_event_id_header(self, _store):
        fast = Settings(stream_poll_interval=0, stream_max_lifetime=0)
        tail = _store._documents[-2]["_id"]

        with patch("hedgewatch.api.v1.routes.get_settings", return_value=fast):
            r = _client().get(
                "/api/v1/stream", headers={**HEADERS, "Last-Event-ID": tail}
            )

        assert r.text.count("event: event") == 1


# ── System ─────────────────────────────────────────────────────────────


class TestSystem:
    def test_root(self):
        r = _client().get("/")
        assert r.status_code == 200
        assert r.json()["status"] == "online"

    def test_health(self):
        r = _client().get("/health")
        data = r.json()
        assert data["status"] == "healthy"
        assert data["store_backend"] == "memory"
        assert data["store_reachable"] is True

    def test_health_degraded(self, _store):
        _store.ping = AsyncMock(return_value=False)
        r = _client().get("/health")
        assert r.json()["status"] == "degraded"

    def test_metrics(self):
        _client().get("/api/v1/events", params={"market": ETH_2AM}, headers=HEADERS)
        r = _client().get("/metrics")
        assert r.status_code == 200
        assert "hedgewatch_round_queries_total" in r.text
