"""Risk manager — owns open positions, trade history and portfolio limits.

All mutation of the position set goes through this class.  Lifecycle
methods return ``None`` / ``False`` and log a warning when a request would
break an invariant (duplicate symbol, stop on the wrong side of entry);
malformed arguments such as an unknown side raise ``InvariantViolation``.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from trendguard.config import RiskSettings
from trendguard.errors import InvariantViolation
from trendguard.risk.drawdown import DailyPnL, DrawdownTracker
from trendguard.risk.models import (
    CloseInstruction,
    Position,
    PositionSize,
    Side,
    TradeCheck,
    TradeRecord,
)
from trendguard.risk.position_sizer import calculate_position_size
from trendguard.risk.sl_tp import (
    calculate_stop_loss,
    calculate_take_profit,
    check_exit,
    is_valid_stop_loss,
)
from trendguard.risk.stats import calculate_trade_stats
from trendguard.risk.trailing_stop import enable_trailing, update_trailing_stop
from trendguard.strategy.session_filter import is_in_session

logger = logging.getLogger("trendguard.risk")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RiskManager:
    """Position set plus the risk gates that guard new entries.

    Args:
        settings: Risk tunables.
        today: Optional start date for the daily P&L counters.
    """

    def __init__(
        self, settings: Optional[RiskSettings] = None, today: Optional[date] = None
    ) -> None:
        self._settings = settings or RiskSettings()
        self._positions: dict[str, Position] = {}
        self._trades: list[TradeRecord] = []
        self._daily = DailyPnL(self._settings.daily_loss_limit, today)
        self._drawdown = DrawdownTracker(self._settings.max_drawdown)

    @property
    def settings(self) -> RiskSettings:
        return self._settings

    @property
    def trades(self) -> list[TradeRecord]:
        return list(self._trades)

    @property
    def daily_loss(self) -> float:
        return self._daily.loss

    @daily_loss.setter
    def daily_loss(self, value: float) -> None:
        self._daily.loss = value

    @property
    def daily_profit(self) -> float:
        return self._daily.profit

    @property
    def peak_balance(self) -> float:
        return self._drawdown.peak_balance

    @property
    def drawdown(self) -> float:
        return self._drawdown.drawdown

    # ── Sizing / levels ──────────────────────────────────────────────────

    def calculate_position_size(
        self,
        balance: float,
        symbol: str,
        signal_strength: float,
        confidence: float = 50.0,
        current_price: Optional[float] = None,
    ) -> PositionSize:
        s = self._settings
        return calculate_position_size(
            balance,
            symbol,
            signal_strength,
            confidence,
            current_price,
            size_fraction=s.position_size_fraction,
            min_usd=s.min_position_usd,
            max_fraction=s.max_position_fraction,
            max_multiplier=s.max_strength_multiplier,
        )

    def calculate_stop_loss(
        self, entry_price: float, side: Side, risk_fraction: Optional[float] = None
    ) -> float:
        if risk_fraction is None:
            risk_fraction = self._settings.stop_loss_fraction
        return calculate_stop_loss(entry_price, side, risk_fraction)

    def calculate_take_profit(
        self,
        entry_price: float,
        side: Side,
        stop_loss: float,
        reward_ratio: Optional[float] = None,
    ) -> float:
        if reward_ratio is None:
            reward_ratio = self._settings.reward_ratio
        return calculate_take_profit(entry_price, side, stop_loss, reward_ratio)

    # ── Gates ────────────────────────────────────────────────────────────

    def can_open_new_position(self) -> bool:
        return len(self._positions) < self._settings.max_positions

    def check_daily_loss_limit(self, now: Optional[datetime] = None) -> bool:
        """True while today's realized loss is below the limit."""
        return self._daily.within_limit((now or _utcnow()).date())

    def record_balance(self, balance: float) -> None:
        """Feed an account balance to the drawdown tracker."""
        self._drawdown.update(balance)

    def check_max_drawdown(self, balance: float) -> bool:
        """Record *balance* and report whether drawdown is within the limit."""
        self.record_balance(balance)
        return self._drawdown.within_limit

    def check_trading_hours(self, now: Optional[datetime] = None) -> bool:
        hour = (now or _utcnow()).hour
        return is_in_session(
            hour,
            self._settings.trading_hours_start_utc,
            self._settings.trading_hours_end_utc,
        )

    def can_trade(
        self,
        symbol: str,
        signal_strength: float,
        balance: float,
        confidence: float = 50.0,
        current_price: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> TradeCheck:
        """Run every gate; a size is computed only when all pass."""
        s = self._settings
        checks = {
            "daily_loss_limit": self.check_daily_loss_limit(now),
            "max_drawdown": self.check_max_drawdown(balance),
            "trading_hours": self.check_trading_hours(now),
            "max_positions": self.can_open_new_position(),
            "no_open_position": symbol not in self._positions,
            "signal_strength": signal_strength >= s.min_signal_strength,
            "confidence": confidence >= s.min_confidence,
            "balance": balance * s.max_position_fraction >= s.min_position_usd,
        }
        failed = tuple(name for name, ok in checks.items() if not ok)
        if failed:
            return TradeCheck(allowed=False, reasons=failed)
        return TradeCheck(
            allowed=True,
            size=self.calculate_position_size(
                balance, symbol, signal_strength, confidence, current_price
            ),
        )

    # ── Lifecycle ────────────────────────────────────────────────────────

    def add_position(
        self,
        symbol: str,
        side: Side,
        size: float,
        entry_price: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        risk_fraction: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Position]:
        """Open and index a position.

        Returns ``None`` if *symbol* already has an open position or the
        given stop-loss is on the wrong side of entry.

        Raises:
            InvariantViolation: For an unknown side or non-positive
                size / entry price.
        """
        if side not in ("long", "short"):
            raise InvariantViolation(f"side must be 'long' or 'short', got {side!r}")
        if size <= 0:
            raise InvariantViolation(f"size must be positive, got {size}")
        if entry_price <= 0:
            raise InvariantViolation(f"entry_price must be positive, got {entry_price}")

        if symbol in self._positions:
            logger.warning("Rejected position for %s: one is already open", symbol)
            return None

        if stop_loss is None:
            stop_loss = self.calculate_stop_loss(entry_price, side, risk_fraction)
        elif not is_valid_stop_loss(side, entry_price, stop_loss):
            logger.warning(
                "Rejected position for %s: stop %.4f invalid for %s entry %.4f",
                symbol, stop_loss, side, entry_price,
            )
            return None
        if take_profit is None:
            take_profit = self.calculate_take_profit(entry_price, side, stop_loss)

        position = Position(
            symbol=symbol,
            side=side,
            size=size,
            entry_price=entry_price,
            entry_time=now or _utcnow(),
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        self._positions[symbol] = position
        logger.info(
            "Opened %s %s size=%s entry=%.4f SL=%.4f TP=%.4f",
            side, symbol, size, entry_price, stop_loss, take_profit,
        )
        return position

    def close_position(
        self,
        symbol: str,
        exit_price: float,
        reason: str = "manual",
        now: Optional[datetime] = None,
    ) -> Optional[TradeRecord]:
        """Realize PnL, update daily counters and move to trade history."""
        position = self._positions.get(symbol)
        if position is None:
            logger.warning("No open position for %s to close", symbol)
            return None

        now = now or _utcnow()
        pnl = position.unrealized_pnl(exit_price)
        self._daily.record(pnl, now.date())

        record = TradeRecord(
            symbol=symbol,
            side=position.side,
            size=position.size,
            entry_price=position.entry_price,
            exit_price=exit_price,
            entry_time=position.entry_time,
            exit_time=now,
            pnl=pnl,
            reason=reason,
        )
        self._trades.append(record)
        del self._positions[symbol]

        logger.info(
            "Closed %s %s at %.4f (%s) pnl=%.2f",
            position.side, symbol, exit_price, reason, pnl,
        )
        return record

    # ── Stop management ──────────────────────────────────────────────────

    def validate_stop_loss(self, position: Position, stop_loss: float) -> bool:
        return is_valid_stop_loss(position.side, position.entry_price, stop_loss)

    def set_stop_loss(
        self, symbol: str, stop_loss: float, trailing: bool = False
    ) -> bool:
        """Replace the stop; with *trailing*, anchor the trailing distance."""
        position = self._positions.get(symbol)
        if position is None:
            logger.warning("No open position for %s to set stop-loss", symbol)
            return False
        if not self.validate_stop_loss(position, stop_loss):
            logger.warning("Invalid stop-loss %.4f for %s %s", stop_loss, position.side, symbol)
            return False

        position.stop_loss = stop_loss
        if trailing:
            enable_trailing(position)
        else:
            position.trailing_enabled = False
        logger.info("Stop-loss for %s set to %.4f (trailing=%s)", symbol, stop_loss, trailing)
        return True

    def modify_stop_loss(self, symbol: str, stop_loss: float, trailing: bool = False) -> bool:
        return self.set_stop_loss(symbol, stop_loss, trailing)

    def modify_take_profit(self, symbol: str, take_profit: float) -> bool:
        """Replace the target; it must stay on the profit side of entry."""
        position = self._positions.get(symbol)
        if position is None:
            logger.warning("No open position for %s to set take-profit", symbol)
            return False
        on_profit_side = (
            take_profit > position.entry_price
            if position.side == "long"
            else take_profit < position.entry_price
        )
        if not on_profit_side:
            logger.warning("Invalid take-profit %.4f for %s %s", take_profit, position.side, symbol)
            return False
        position.take_profit = take_profit
        logger.info("Take-profit for %s set to %.4f", symbol, take_profit)
        return True

    def update_trailing_stop(
        self, symbol: str, current_price: float, now: Optional[datetime] = None
    ) -> Optional[float]:
        position = self._positions.get(symbol)
        if position is None:
            return None
        new_stop = update_trailing_stop(position, current_price, now)
        if new_stop is not None:
            logger.info("Trailing stop for %s moved to %.4f", symbol, new_stop)
        return new_stop

    def check_stop_loss_and_take_profit(
        self, symbol: str, current_price: float, now: Optional[datetime] = None
    ) -> Optional[CloseInstruction]:
        """Update the trailing stop, then test stop-loss before take-profit."""
        position = self._positions.get(symbol)
        if position is None:
            return None

        self.update_trailing_stop(symbol, current_price, now)
        reason = check_exit(position, current_price)
        if reason is None:
            return None
        level = position.stop_loss if reason == "stop_loss" else position.take_profit
        return CloseInstruction(
            symbol=symbol,
            reason=reason,
            price=current_price,
            details={"level": level, "trailing": position.trailing_enabled},
        )

    def check_all_exits(
        self, prices: dict[str, float], now: Optional[datetime] = None
    ) -> list[CloseInstruction]:
        """Exit checks for every position that has a price in *prices*."""
        instructions = []
        for symbol in list(self._positions):
            price = prices.get(symbol)
            if not price:
                continue
            instruction = self.check_stop_loss_and_take_profit(symbol, price, now)
            if instruction is not None:
                instructions.append(instruction)
        return instructions

    def check_time_based_closes(self, now: Optional[datetime] = None) -> list[str]:
        """Symbols whose position has been held longer than ``max_hold_hours``."""
        now = now or _utcnow()
        limit = timedelta(hours=self._settings.max_hold_hours)
        return [
            symbol
            for symbol, position in self._positions.items()
            if now - position.entry_time > limit
        ]

    def analyze_position(
        self, symbol: str, current_price: Optional[float], now: Optional[datetime] = None
    ) -> dict:
        """PnL, hold time and the close action suggested by fixed thresholds."""
        position = self._positions.get(symbol)
        if position is None:
            return {"exists": False, "action": "none"}
        if current_price is None:
            return {"exists": True, "action": "hold", "reason": "no_price_data"}

        now = now or _utcnow()
        pnl = position.unrealized_pnl(current_price)
        pnl_fraction = pnl / position.notional()
        held = now - position.entry_time

        action, reason = "hold", "normal"
        if pnl_fraction <= -self._settings.stop_loss_fraction:
            action, reason = "close", "stop_loss"
        elif pnl_fraction >= self._settings.take_profit_fraction:
            action, reason = "close", "take_profit"
        elif held > timedelta(hours=self._settings.max_hold_hours):
            action, reason = "close", "time_limit"

        return {
            "exists": True,
            "action": action,
            "reason": reason,
            "pnl": pnl,
            "pnl_percent": pnl_fraction * 100,
            "hold_minutes": held.total_seconds() / 60,
            "entry_price": position.entry_price,
            "current_price": current_price,
        }

    # ── Queries / reporting ──────────────────────────────────────────────

    def get_position(self, symbol: str) -> Optional[Position]:
        return self._positions.get(symbol)

    def has_position(self, symbol: str) -> bool:
        return symbol in self._positions

    def get_active_positions(self) -> list[Position]:
        return list(self._positions.values())

    def get_stop_loss_info(self, symbol: str) -> Optional[dict]:
        position = self._positions.get(symbol)
        if position is None:
            return None
        entry = position.entry_price
        return {
            "symbol": symbol,
            "side": position.side,
            "entry_price": entry,
            "stop_loss": position.stop_loss,
            "take_profit": position.take_profit,
            "trailing": position.trailing_enabled,
            "trailing_distance": position.trailing_distance,
            "risk_percent": abs(entry - position.stop_loss) / entry * 100,
            "reward_percent": abs(position.take_profit - entry) / entry * 100,
        }

    def get_all_stop_losses(self) -> list[dict]:
        return [self.get_stop_loss_info(symbol) for symbol in self._positions]

    def get_trading_stats(self) -> dict:
        stats = calculate_trade_stats(self._trades)
        stats.update(
            {
                "daily_loss": self._daily.loss,
                "daily_profit": self._daily.profit,
                "drawdown_pct": self._drawdown.drawdown * 100,
                "open_positions": len(self._positions),
            }
        )
        return stats

    def analyze_portfolio_risk(self) -> dict:
        exposure = sum(p.notional() for p in self._positions.values())
        if exposure > 5000:
            level = "high"
        elif exposure > 2000:
            level = "medium"
        else:
            level = "low"
        return {
            "total_exposure": exposure,
            "position_count": len(self._positions),
            "max_positions": self._settings.max_positions,
            "risk_level": level,
        }

    def get_positions_summary(self) -> dict:
        positions = self._positions.values()
        return {
            "total_positions": len(self._positions),
            "long_positions": sum(1 for p in positions if p.side == "long"),
            "short_positions": sum(1 for p in positions if p.side == "short"),
            "trailing_stops": sum(1 for p in positions if p.trailing_enabled),
            "total_exposure": sum(p.notional() for p in positions),
        }
