"""Tests for the internal API endpoints."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from trendguard.api.routers import configure_routers
from trendguard.broker.models import KlineRecord
from trendguard.config import Config
from trendguard.engine import TradingEngine
from trendguard.main import app
from trendguard.strategy.decision import Decision
from trendguard.strategy.models import FusedSignal, TrendAssessment

client = TestClient(app)

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _reset_routers():
    configure_routers(None)
    yield
    configure_routers(None)


def _make_engine() -> TradingEngine:
    config = Config(
        symbols=("BTCUSDT", "ETHUSDT"),
        short_interval="5",
        daily_interval="D",
        poll_interval_seconds=0,
        initial_balance=10_000.0,
        settings_path="trendguard.json",
        log_level="WARNING",
    )
    # Collaborators are never called by the read-only endpoints
    return TradingEngine(config, None, market_data=None, execution=None)


# ── Tests ────────────────────────────────────────────────────────────────


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestUnconfigured:
    def test_status(self):
        assert client.get("/status").json() == {"running": False, "configured": False}

    def test_empty_collections(self):
        assert client.get("/decisions").json() == {"decisions": []}
        assert client.get("/positions").json() == {"positions": [], "summary": None}
        assert client.get("/trades").json() == {"trades": [], "total": 0}
        assert client.get("/stats").json() == {"trading": None, "portfolio": None}


class TestStatusEndpoint:
    def test_reports_engine_state(self):
        engine = _make_engine()
        engine.risk.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOW)
        configure_routers(engine)

        data = client.get("/status").json()
        assert data["configured"] is True
        assert data["running"] is False
        assert data["symbols"] == ["BTCUSDT", "ETHUSDT"]
        assert data["balance"] == 10_000.0
        assert data["open_positions"] == 1
        assert data["last_cycle_at"] is None


class TestPositionsEndpoint:
    def test_positions_with_live_pnl(self):
        engine = _make_engine()
        engine.ingest_kline("BTCUSDT", KlineRecord(0, "100", "102", "99", "101", "5"))
        engine.risk.add_position("BTCUSDT", "long", 2.0, 100.0, now=NOW)
        engine.risk.add_position("ETHUSDT", "short", 1.0, 3_000.0, now=NOW)
        configure_routers(engine)

        data = client.get("/positions").json()
        btc, eth = data["positions"]
        assert btc["symbol"] == "BTCUSDT"
        assert btc["current_price"] == 101.0
        assert btc["unrealized_pnl"] == pytest.approx(2.0)
        assert btc["entry_time"] == NOW.isoformat()
        # No stored candle for ETHUSDT, so no live figures
        assert "current_price" not in eth
        assert data["summary"]["long_positions"] == 1
        assert data["summary"]["short_positions"] == 1


class TestTradesAndStats:
    def _engine_with_trades(self) -> TradingEngine:
        engine = _make_engine()
        engine.risk.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOW)
        engine.risk.close_position("BTCUSDT", 110.0, "take_profit", now=NOW)
        engine.risk.add_position("ETHUSDT", "long", 1.0, 100.0, now=NOW)
        engine.risk.close_position("ETHUSDT", 95.0, "stop_loss", now=NOW)
        return engine

    def test_trades_newest_first(self):
        configure_routers(self._engine_with_trades())
        data = client.get("/trades", params={"limit": 1}).json()
        assert data["total"] == 2
        assert [t["symbol"] for t in data["trades"]] == ["ETHUSDT"]
        assert data["trades"][0]["reason"] == "stop_loss"

    def test_trades_limit_validated(self):
        configure_routers(self._engine_with_trades())
        assert client.get("/trades", params={"limit": 0}).status_code == 422
        assert client.get("/trades", params={"limit": 101}).status_code == 422

    def test_stats(self):
        configure_routers(self._engine_with_trades())
        data = client.get("/stats").json()
        assert data["trading"]["total_trades"] == 2
        assert data["trading"]["total_pnl"] == pytest.approx(5.0)
        assert data["portfolio"]["risk_level"] == "low"


class TestDecisionsEndpoint:
    def _stub_engine(self):
        signal = FusedSignal(
            signal="buy",
            strength=0.61234,
            confidence=72.5,
            current_price=101.0,
            rsi_value=41.0,
            long_term=TrendAssessment(direction="bullish"),
        )
        decisions = [
            Decision(
                symbol="BTCUSDT",
                action="buy",
                confidence=55.5,
                reasoning="score 55.5, technical buy",
                signal=signal,
                details={"execution": {"executed": True}},
            ),
            Decision(symbol="ETHUSDT", action="error", confidence=0.0, reasoning="boom"),
        ]
        return SimpleNamespace(decisions=decisions)

    def test_summaries(self):
        configure_routers(self._stub_engine())
        btc, eth = client.get("/decisions").json()["decisions"]
        assert btc["signal"] == {
            "direction": "buy",
            "strength": 0.6123,
            "confidence": 72.5,
            "price": 101.0,
            "rsi": 41.0,
            "long_term": "bullish",
        }
        assert btc["execution"] == {"executed": True}
        assert eth["signal"] is None
        assert eth["execution"] is None

    def test_symbol_filter_is_case_insensitive(self):
        configure_routers(self._stub_engine())
        data = client.get("/decisions", params={"symbol": "ethusdt"}).json()
        assert [d["symbol"] for d in data["decisions"]] == ["ETHUSDT"]
