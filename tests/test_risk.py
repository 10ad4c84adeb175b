"""Tests for the risk management module.

Covers position sizing, SL/TP calculation and validation, trailing stops,
drawdown and daily P&L tracking, and the RiskManager position lifecycle.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from trendguard.config import RiskSettings
from trendguard.errors import InvariantViolation
from trendguard.risk.drawdown import DailyPnL, DrawdownTracker
from trendguard.risk.manager import RiskManager
from trendguard.risk.models import Position, TradeRecord, order_side
from trendguard.risk.position_sizer import calculate_position_size, floor_to_decimals
from trendguard.risk.sl_tp import (
    calculate_risk_levels,
    calculate_stop_loss,
    calculate_take_profit,
    check_exit,
    is_valid_stop_loss,
)
from trendguard.risk.stats import calculate_trade_stats
from trendguard.risk.trailing_stop import enable_trailing, update_trailing_stop
from trendguard.strategy.session_filter import is_in_session

DAY = date(2025, 3, 3)
NOON = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


def _position(side: str = "long", entry: float = 100.0, sl: float = 98.0, tp: float = 104.0) -> Position:
    return Position(
        symbol="BTCUSDT",
        side=side,
        size=1.0,
        entry_price=entry,
        entry_time=NOON,
        stop_loss=sl,
        take_profit=tp,
    )


# ── Position sizing ──────────────────────────────────────────────────────


class TestPositionSizing:
    def test_reference_example(self):
        """$10,000, 5 %, strength 0.9, confidence 80 → $540."""
        size = calculate_position_size(10_000.0, "BTCUSDT", 0.9, 80.0)
        assert size.usd == pytest.approx(540.0)
        assert size.quantity is None

    def test_strength_multiplier_capped(self):
        size = calculate_position_size(10_000.0, "BTCUSDT", 3.0, 100.0)
        assert size.usd == pytest.approx(750.0)

    def test_minimum_usd(self):
        size = calculate_position_size(10_000.0, "BTCUSDT", 0.01, 10.0)
        assert size.usd == 25.0

    def test_maximum_fraction_of_balance(self):
        size = calculate_position_size(
            10_000.0, "BTCUSDT", 1.0, 100.0, size_fraction=1.0
        )
        assert size.usd == pytest.approx(7_000.0)

    def test_quantity_floored_to_precision(self):
        size = calculate_position_size(10_000.0, "BTCUSDT", 0.9, 80.0, current_price=50_000.0)
        # 540 / 50000 = 0.0108 → 3 decimals
        assert size.quantity == pytest.approx(0.010)

    def test_quantity_raised_to_minimum(self):
        size = calculate_position_size(1_000.0, "BTCUSDT", 0.01, 10.0, current_price=100_000.0)
        assert size.quantity == pytest.approx(0.001)

    def test_whole_unit_instrument(self):
        size = calculate_position_size(10_000.0, "XRPUSDT", 0.9, 80.0, current_price=3.0)
        assert size.quantity == 180.0

    def test_unknown_symbol_uses_fallback(self):
        size = calculate_position_size(10_000.0, "NEWUSDT", 0.01, 10.0, current_price=10_000.0)
        assert size.quantity == pytest.approx(0.01)

    def test_rejects_non_positive_inputs(self):
        with pytest.raises(ValueError, match="balance"):
            calculate_position_size(0.0, "BTCUSDT", 0.9, 80.0)
        with pytest.raises(ValueError, match="current_price"):
            calculate_position_size(1_000.0, "BTCUSDT", 0.9, 80.0, current_price=0.0)

    def test_floor_to_decimals(self):
        assert floor_to_decimals(1.23456, 2) == pytest.approx(1.23)
        assert floor_to_decimals(0.3 / 0.1, 0) == 3.0


# ── SL / TP ──────────────────────────────────────────────────────────────


class TestStopLossTakeProfit:
    def test_long_reference_example(self):
        levels = calculate_risk_levels(100.0, "long", 0.02, 2.0)
        assert levels.sl == pytest.approx(98.0)
        assert levels.tp == pytest.approx(104.0)

    def test_short_levels(self):
        sl = calculate_stop_loss(100.0, "short", 0.02)
        assert sl == pytest.approx(102.0)
        assert calculate_take_profit(100.0, "short", sl, 2.0) == pytest.approx(96.0)

    def test_invalid_side(self):
        with pytest.raises(InvariantViolation):
            calculate_stop_loss(100.0, "sideways")

    def test_invalid_entry(self):
        with pytest.raises(ValueError):
            calculate_stop_loss(0.0, "long")

    def test_stop_validation(self):
        assert is_valid_stop_loss("long", 100.0, 98.0)
        assert not is_valid_stop_loss("long", 100.0, 101.0)
        assert is_valid_stop_loss("short", 100.0, 102.0)
        assert not is_valid_stop_loss("short", 100.0, 100.0)
        assert not is_valid_stop_loss("flat", 100.0, 98.0)

    def test_check_exit(self):
        pos = _position()
        assert check_exit(pos, 97.5) == "stop_loss"
        assert check_exit(pos, 104.5) == "take_profit"
        assert check_exit(pos, 101.0) is None
        short = _position("short", sl=102.0, tp=96.0)
        assert check_exit(short, 102.0) == "stop_loss"
        assert check_exit(short, 95.0) == "take_profit"

    def test_stop_loss_checked_first(self):
        crossed = _position(sl=105.0, tp=104.0)
        assert check_exit(crossed, 104.5) == "stop_loss"

    def test_order_side(self):
        assert order_side("long") == "Buy"
        assert order_side("short") == "Sell"


# ── Trailing stop ────────────────────────────────────────────────────────


class TestTrailingStop:
    def test_disabled_never_moves(self):
        pos = _position()
        assert update_trailing_stop(pos, 110.0) is None
        assert pos.stop_loss == 98.0

    def test_long_stop_is_monotonic(self):
        pos = _position()
        enable_trailing(pos)
        assert pos.trailing_distance == pytest.approx(2.0)
        stops = [pos.stop_loss]
        for price in [101.0, 100.5, 103.0, 99.0, 102.0, 104.0]:
            update_trailing_stop(pos, price, NOON)
            stops.append(pos.stop_loss)
        assert stops == sorted(stops)
        assert pos.stop_loss == pytest.approx(102.0)
        assert pos.highest_price_seen == 104.0
        assert pos.stop_loss_updated_at == NOON

    def test_short_stop_is_monotonic(self):
        pos = _position("short", sl=102.0, tp=96.0)
        enable_trailing(pos)
        stops = [pos.stop_loss]
        for price in [99.0, 98.0, 101.0, 95.0, 97.0]:
            update_trailing_stop(pos, price)
            stops.append(pos.stop_loss)
        assert stops == sorted(stops, reverse=True)
        assert pos.stop_loss == pytest.approx(97.0)

    def test_returns_new_stop_only_when_moved(self):
        pos = _position()
        enable_trailing(pos)
        assert update_trailing_stop(pos, 101.0) == pytest.approx(99.0)
        assert update_trailing_stop(pos, 100.0) is None


# ── Drawdown / daily P&L ─────────────────────────────────────────────────


class TestDrawdownTracker:
    def test_peak_tracking(self):
        tracker = DrawdownTracker(max_drawdown=0.10)
        tracker.update(10_000.0)
        tracker.update(9_500.0)
        assert tracker.peak_balance == 10_000.0
        assert tracker.drawdown == pytest.approx(0.05)
        assert tracker.within_limit

    def test_limit_breached(self):
        tracker = DrawdownTracker(max_drawdown=0.10)
        tracker.update(10_000.0)
        tracker.update(8_900.0)
        assert not tracker.within_limit

    def test_no_peak_no_drawdown(self):
        assert DrawdownTracker().drawdown == 0.0


class TestDailyPnL:
    def test_accumulates_and_rolls(self):
        daily = DailyPnL(loss_limit=500.0, today=DAY)
        daily.record(-300.0, DAY)
        daily.record(120.0, DAY)
        assert daily.loss == 300.0
        assert daily.profit == 120.0
        assert daily.roll(DAY + timedelta(days=1)) is True
        assert daily.loss == daily.profit == 0.0


def test_session_window_wraps_midnight():
    assert is_in_session(23, 22, 6)
    assert is_in_session(3, 22, 6)
    assert not is_in_session(12, 22, 6)
    assert is_in_session(8, 8, 16)
    assert not is_in_session(17, 8, 16)


def test_session_window_end_hour_is_inclusive():
    assert is_in_session(16, 8, 16)
    assert is_in_session(6, 22, 6)
    assert not is_in_session(7, 22, 6)
    assert not is_in_session(7, 8, 16)
    # Default window is always open
    assert all(is_in_session(hour) for hour in range(24))


# ── RiskManager ──────────────────────────────────────────────────────────


class TestRiskGates:
    def test_daily_loss_reference_example(self):
        rm = RiskManager(today=DAY)
        rm.daily_loss = 450.0
        assert rm.check_daily_loss_limit(NOON) is True

        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        record = rm.close_position("BTCUSDT", 40.0, now=NOON)
        assert record.pnl == pytest.approx(-60.0)
        assert rm.daily_loss == pytest.approx(510.0)
        assert rm.check_daily_loss_limit(NOON) is False
        # Resets on the next UTC day
        assert rm.check_daily_loss_limit(NOON + timedelta(days=1)) is True

    def test_start_date_anchors_daily_counters(self):
        rm = RiskManager(today=DAY - timedelta(days=1))
        rm.daily_loss = 600.0
        # Yesterday's loss is dropped on the first check of a new day
        assert rm.check_daily_loss_limit(NOON) is True
        assert rm.daily_loss == 0.0

    def test_can_trade_all_gates_pass(self):
        rm = RiskManager(today=DAY)
        check = rm.can_trade("BTCUSDT", 0.9, 10_000.0, 80.0, 50_000.0, now=NOON)
        assert check.allowed
        assert check.reasons == ()
        assert check.size.usd == pytest.approx(540.0)
        assert check.size.quantity == pytest.approx(0.010)

    def test_weak_signal_blocked(self):
        rm = RiskManager(today=DAY)
        check = rm.can_trade("BTCUSDT", 0.2, 10_000.0, 20.0, now=NOON)
        assert not check.allowed
        assert "signal_strength" in check.reasons
        assert "confidence" in check.reasons
        assert check.size is None

    def test_existing_position_blocked(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 0.01, 50_000.0, now=NOON)
        check = rm.can_trade("BTCUSDT", 0.9, 10_000.0, 80.0, now=NOON)
        assert "no_open_position" in check.reasons

    def test_max_positions(self):
        rm = RiskManager(RiskSettings(max_positions=1), today=DAY)
        rm.add_position("ETHUSDT", "long", 1.0, 3_000.0, now=NOON)
        assert not rm.can_open_new_position()
        check = rm.can_trade("BTCUSDT", 0.9, 10_000.0, 80.0, now=NOON)
        assert check.reasons == ("max_positions",)

    def test_trading_hours(self):
        rm = RiskManager(RiskSettings(trading_hours_start_utc=8, trading_hours_end_utc=16), today=DAY)
        evening = NOON.replace(hour=20)
        assert rm.check_trading_hours(NOON)
        assert not rm.check_trading_hours(evening)
        assert "trading_hours" in rm.can_trade("BTCUSDT", 0.9, 10_000.0, 80.0, now=evening).reasons

    def test_drawdown_gate(self):
        rm = RiskManager(today=DAY)
        assert rm.check_max_drawdown(10_000.0)
        check = rm.can_trade("BTCUSDT", 0.9, 8_500.0, 80.0, now=NOON)
        assert "max_drawdown" in check.reasons
        assert rm.drawdown == pytest.approx(0.15)

    def test_record_balance_moves_peak_without_gating(self):
        rm = RiskManager(today=DAY)
        rm.record_balance(12_000.0)
        rm.record_balance(11_400.0)
        assert rm.peak_balance == 12_000.0
        assert rm.drawdown == pytest.approx(0.05)
        # A later gate check sees the peak recorded outside can_trade
        assert not rm.check_max_drawdown(10_700.0)

    def test_insufficient_balance(self):
        rm = RiskManager(today=DAY)
        check = rm.can_trade("BTCUSDT", 0.9, 30.0, 80.0, now=NOON)
        assert "balance" in check.reasons


class TestPositionLifecycle:
    def test_default_levels(self):
        rm = RiskManager(today=DAY)
        pos = rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        assert pos.stop_loss == pytest.approx(98.0)
        assert pos.take_profit == pytest.approx(104.0)
        assert rm.has_position("BTCUSDT")

    def test_one_position_per_symbol(self):
        rm = RiskManager(today=DAY)
        assert rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON) is not None
        assert rm.add_position("BTCUSDT", "short", 1.0, 101.0, now=NOON) is None
        assert len(rm.get_active_positions()) == 1
        assert rm.get_position("BTCUSDT").side == "long"

    def test_invalid_stop_rejected_without_state_change(self):
        rm = RiskManager(today=DAY)
        assert rm.add_position("BTCUSDT", "long", 1.0, 100.0, stop_loss=101.0, now=NOON) is None
        assert rm.get_active_positions() == []

    def test_malformed_arguments_raise(self):
        rm = RiskManager(today=DAY)
        with pytest.raises(InvariantViolation):
            rm.add_position("BTCUSDT", "up", 1.0, 100.0)
        with pytest.raises(InvariantViolation):
            rm.add_position("BTCUSDT", "long", 0.0, 100.0)

    def test_close_moves_to_history(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "short", 2.0, 100.0, now=NOON)
        record = rm.close_position("BTCUSDT", 90.0, "take_profit", now=NOON)
        assert isinstance(record, TradeRecord)
        assert record.pnl == pytest.approx(20.0)
        assert record.reason == "take_profit"
        assert not rm.has_position("BTCUSDT")
        assert rm.trades == [record]
        assert rm.daily_profit == pytest.approx(20.0)

    def test_close_unknown_symbol(self):
        assert RiskManager(today=DAY).close_position("BTCUSDT", 100.0) is None


class TestStopManagement:
    def test_set_stop_with_trailing(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        assert rm.set_stop_loss("BTCUSDT", 97.0, trailing=True)
        assert rm.update_trailing_stop("BTCUSDT", 105.0, NOON) == pytest.approx(102.0)
        info = rm.get_stop_loss_info("BTCUSDT")
        assert info["trailing"] is True
        assert info["trailing_distance"] == pytest.approx(3.0)

    def test_invalid_modifications_rejected(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        assert not rm.modify_stop_loss("BTCUSDT", 100.5)
        assert not rm.modify_take_profit("BTCUSDT", 99.0)
        assert rm.modify_take_profit("BTCUSDT", 110.0)
        assert rm.get_position("BTCUSDT").take_profit == 110.0
        assert not rm.set_stop_loss("ETHUSDT", 1.0)

    def test_exit_instructions(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        rm.add_position("ETHUSDT", "short", 1.0, 100.0, now=NOON)
        assert rm.check_stop_loss_and_take_profit("BTCUSDT", 101.0, NOON) is None
        stop = rm.check_stop_loss_and_take_profit("BTCUSDT", 97.0, NOON)
        assert stop.reason == "stop_loss"
        assert stop.details["level"] == pytest.approx(98.0)

        instructions = rm.check_all_exits({"ETHUSDT": 95.0}, NOON)
        assert [(i.symbol, i.reason) for i in instructions] == [("ETHUSDT", "take_profit")]

    def test_time_based_close(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        assert rm.check_time_based_closes(NOON + timedelta(hours=23)) == []
        assert rm.check_time_based_closes(NOON + timedelta(hours=25)) == ["BTCUSDT"]


class TestReporting:
    def test_analyze_position(self):
        rm = RiskManager(today=DAY)
        assert rm.analyze_position("BTCUSDT", 100.0, NOON) == {"exists": False, "action": "none"}
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        assert rm.analyze_position("BTCUSDT", None, NOON)["reason"] == "no_price_data"

        losing = rm.analyze_position("BTCUSDT", 97.0, NOON)
        assert (losing["action"], losing["reason"]) == ("close", "stop_loss")
        assert losing["pnl_percent"] == pytest.approx(-3.0)

        winning = rm.analyze_position("BTCUSDT", 105.0, NOON)
        assert winning["reason"] == "take_profit"

        held = rm.analyze_position("BTCUSDT", 100.5, NOON + timedelta(hours=30))
        assert held["reason"] == "time_limit"

    def test_stats_and_summaries(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        rm.close_position("BTCUSDT", 110.0, now=NOON)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        rm.close_position("BTCUSDT", 95.0, now=NOON)
        rm.add_position("ETHUSDT", "short", 2.0, 3_000.0, now=NOON)

        stats = rm.get_trading_stats()
        assert stats["total_trades"] == 2
        assert stats["win_rate"] == pytest.approx(50.0)
        assert stats["total_pnl"] == pytest.approx(5.0)
        assert stats["profit_factor"] == pytest.approx(2.0)
        assert stats["open_positions"] == 1

        portfolio = rm.analyze_portfolio_risk()
        assert portfolio["total_exposure"] == pytest.approx(6_000.0)
        assert portfolio["risk_level"] == "high"

        summary = rm.get_positions_summary()
        assert summary["short_positions"] == 1
        assert summary["long_positions"] == 0

    def test_stop_loss_info(self):
        rm = RiskManager(today=DAY)
        rm.add_position("BTCUSDT", "long", 1.0, 100.0, now=NOON)
        info = rm.get_stop_loss_info("BTCUSDT")
        assert info["risk_percent"] == pytest.approx(2.0)
        assert info["reward_percent"] == pytest.approx(4.0)
        assert rm.get_all_stop_losses() == [info]


def test_trade_stats_empty():
    stats = calculate_trade_stats([])
    assert stats["total_trades"] == 0
    assert stats["max_drawdown"] == 0.0
