"""Tests for the internal API endpoints."""

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from signalforge.analysis.models import Candle
from signalforge.api.routers import configure_routers
from signalforge.config import Config
from signalforge.feed.memory import InMemoryCandleFeed
from signalforge.main import app, build_scheduler
from signalforge.scoring.accuracy import InMemoryAccuracyStore

client = TestClient(app)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> Config:
    defaults = dict(
        market_data_url="http://localhost:9000",
        symbols=("BTCUSDT",),
        timeframes=("1h", "4h", "1d"),
        poll_interval_seconds=60,
        candle_limit=250,
        stale_after_bars=3,
        penalty_per_weight=5.0,
        demotion_floor=35.0,
        accuracy_window=50,
        max_leverage=5,
        db_path=":memory:",
        log_level="WARNING",
        api_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


def _make_candles(interval: timedelta, n: int = 250) -> list[Candle]:
    """Uptrend whose newest candle opened within the last interval."""
    end = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    closes = [100.0 + i + 0.0005 * i * i for i in range(n)]
    start = end - interval * n
    candles = []
    for i, close in enumerate(closes):
        open_ = closes[i - 1] if i else close - 1.0
        candles.append(Candle(
            open_time=start + interval * i,
            open=open_,
            high=close + 0.2,
            low=open_ - 0.2,
            close=close,
            volume=1000.0,
        ))
    return candles


def _configure():
    feed = InMemoryCandleFeed()
    for tf, interval in (("1h", timedelta(hours=1)), ("4h", timedelta(hours=4)), ("1d", timedelta(days=1))):
        feed.set_candles("BTCUSDT", tf, _make_candles(interval))
    scheduler, bus = build_scheduler(_make_config(), feed=feed, store=InMemoryAccuracyStore())
    return scheduler


# ── Tests ────────────────────────────────────────────────────────────────


class TestHealth:
    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestStatusEndpoint:
    def test_unconfigured(self):
        configure_routers(scheduler=None)
        resp = client.get("/status")
        assert resp.json() == {"running": False, "symbols": {}}

    def test_configured(self):
        _configure()
        data = client.get("/status").json()
        assert data["running"] is False
        assert data["symbols"]["BTCUSDT"]["cycle_count"] == 0


class TestSignalsEndpoint:
    def test_unknown_symbol(self):
        _configure()
        assert client.get("/signals/DOGEUSDT").json() == {"error": "Unknown symbol: DOGEUSDT"}

    def test_before_first_cycle(self):
        _configure()
        assert client.get("/signals/BTCUSDT").json() == {"error": "No completed cycle for BTCUSDT"}

    def test_after_cycle(self):
        _configure()
        resp = client.post("/cycles/BTCUSDT")
        assert resp.status_code == 200
        assert resp.json()["action"] == "completed"

        data = client.get("/signals/BTCUSDT").json()
        assert data["symbol"] == "BTCUSDT"
        assert data["anchor_direction"] == "LONG"
        assert set(data["entries"]) == {"1h", "4h", "1d"}
        entry = data["entries"]["1d"]
        assert entry["available"] is True
        assert entry["direction"] == "LONG"
        assert 0 <= entry["confidence"] <= 100

    def test_confluence(self):
        _configure()
        client.post("/cycles/BTCUSDT")
        data = client.get("/signals/BTCUSDT/confluence").json()
        assert data["dominant_direction"] == "LONG"
        assert [c["name"] for c in data["clusters"]] == ["short", "medium", "long"]
        assert 0 <= data["confluence_score"] <= 100


class TestRecommendationEndpoint:
    def test_none_before_cycle(self):
        _configure()
        data = client.get("/recommendation/BTCUSDT").json()
        assert data["recommendation"] is None

    def test_after_cycle(self):
        _configure()
        client.post("/cycles/BTCUSDT")
        rec = client.get("/recommendation/BTCUSDT").json()["recommendation"]
        assert rec["direction"] == "LONG"
        assert rec["timeframe"] == "1d"
        assert len(rec["take_profits"]) == 3
        assert rec["stop_loss"] < rec["entry"] < rec["take_profits"][0]
        assert rec["rationale"]

    def test_selected_timeframe(self):
        _configure()
        client.post("/cycles/BTCUSDT")
        rec = client.get("/recommendation/BTCUSDT", params={"timeframe": "1h"}).json()
        assert rec["recommendation"]["timeframe"] == "1h"

    def test_unknown_timeframe(self):
        _configure()
        data = client.get("/recommendation/BTCUSDT", params={"timeframe": "2h"}).json()
        assert data == {"error": "Unknown timeframe: 2h"}


class TestAccuracyEndpoint:
    def test_no_data(self):
        _configure()
        client.post("/cycles/BTCUSDT")
        data = client.get("/accuracy/BTCUSDT/1h").json()
        assert data["status"] == "no data"

    def test_resolved_by_price_tick(self):
        _configure()
        client.post("/cycles/BTCUSDT")

        resp = client.post("/prices/BTCUSDT", json={"price": 10_000})
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "symbol": "BTCUSDT", "price": 10_000.0, "resolved": 3}

        data = client.get("/accuracy/BTCUSDT/1h").json()
        assert data["status"] == "ok"
        assert data["hit_rate"] == 1.0
        assert data["resolved_count"] == 1


class TestPriceEndpoint:
    def test_price_between_levels_resolves_nothing(self):
        _configure()
        client.post("/cycles/BTCUSDT")
        data = client.post("/prices/BTCUSDT", json={"price": "381"}).json()
        assert data["status"] == "ok"
        assert data["resolved"] == 0

    def test_invalid_price(self):
        _configure()
        assert client.post("/prices/BTCUSDT", json={}).json() == {
            "status": "error", "errors": ["price must be a number"],
        }
        assert client.post("/prices/BTCUSDT", json={"price": "abc"}).json()["status"] == "error"
        assert client.post("/prices/BTCUSDT", json={"price": -1}).json() == {
            "status": "error", "errors": ["price must be positive"],
        }

    def test_unknown_symbol(self):
        _configure()
        resp = client.post("/prices/DOGEUSDT", json={"price": 1.0})
        assert resp.json() == {"error": "Unknown symbol: DOGEUSDT"}


class TestEventsEndpoint:
    def test_events_after_cycles(self):
        _configure()
        assert client.get("/events").json() == {"events": []}

        client.post("/cycles/BTCUSDT")
        client.post("/cycles/BTCUSDT")

        events = client.get("/events").json()["events"]
        assert len(events) == 1
        assert events[0]["symbol"] == "BTCUSDT"
        assert {c["timeframe"] for c in events[0]["changes"]} == {"1h", "4h", "1d"}

    def test_limit_validated(self):
        _configure()
        assert client.get("/events", params={"limit": 0}).status_code == 422
        assert client.get("/events", params={"limit": 51}).status_code == 422
