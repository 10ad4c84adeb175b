"""TrendGuard — Trading engine (orchestration loop).

Connects history, analysis, decisions and risk management into one
cooperative polling cycle.  Symbols are visited in configured order;
reversal and exit checks for open positions run before any new entry is
evaluated.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from trendguard.broker.base import ExecutionProtocol, MarketDataProtocol
from trendguard.broker.models import KlineRecord, OrderRequest
from trendguard.config import Config, EngineSettings
from trendguard.errors import ExternalCallFailure, UnavailablePrice
from trendguard.risk.manager import RiskManager
from trendguard.risk.models import Side, TradeRecord, order_side
from trendguard.strategy.decision import Decision, MarketAnalysis, make_decision
from trendguard.strategy.fusion import analyze_signal
from trendguard.strategy.history import PriceHistoryStore
from trendguard.strategy.models import CandleData, FusedSignal, TrendAssessment, TrendOverview
from trendguard.strategy.reversal import detect_trend_reversal
from trendguard.strategy.signals import analyze_volatility_level, analyze_volume_trend
from trendguard.strategy.trend import (
    analyze_long_term_trend,
    analyze_market_structure,
    analyze_trend_overview,
)

logger = logging.getLogger("trendguard.engine")


@dataclass(frozen=True)
class _SymbolView:
    """Per-cycle analysis of one symbol, shared by reversal and entry steps."""

    candles: list[CandleData]
    price: float
    long_term: TrendAssessment
    trend: TrendOverview
    signal: FusedSignal


class TradingEngine:
    """Single-instance trading loop.

    Args:
        config: Environment configuration (symbols, intervals, balance).
        settings: Analysis and risk tunables; defaults when ``None``.
        market_data: Candle and price collaborator.
        execution: Order and account collaborator.
        risk_manager: Optional pre-built risk manager (tests).
        store: Optional pre-filled history store (tests).
    """

    def __init__(
        self,
        config: Config,
        settings: Optional[EngineSettings],
        market_data: MarketDataProtocol,
        execution: ExecutionProtocol,
        risk_manager: Optional[RiskManager] = None,
        store: Optional[PriceHistoryStore] = None,
    ) -> None:
        self._config = config
        self._settings = settings or EngineSettings()
        self._market_data = market_data
        self._execution = execution
        self._risk = risk_manager or RiskManager(self._settings.risk)
        self._store = store or PriceHistoryStore(self._settings.history.max_length)
        self._balance: float = config.initial_balance
        self._running: bool = False
        self._stop_requested: bool = False
        self._cycle_lock = asyncio.Lock()
        self._cycle_count: int = 0
        self._last_cycle_at: Optional[datetime] = None
        self._decisions: dict[str, Decision] = {}

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def symbols(self) -> tuple[str, ...]:
        return self._config.symbols

    @property
    def risk(self) -> RiskManager:
        return self._risk

    @property
    def store(self) -> PriceHistoryStore:
        return self._store

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    @property
    def running(self) -> bool:
        return self._running

    @property
    def decisions(self) -> list[Decision]:
        """Latest decision per symbol, in configured symbol order."""
        return [self._decisions[s] for s in self._config.symbols if s in self._decisions]

    def daily_key(self, symbol: str) -> str:
        return symbol + self._settings.history.daily_suffix

    def status(self) -> dict:
        return {
            "running": self._running,
            "symbols": list(self._config.symbols),
            "balance": self._balance,
            "cycle_count": self._cycle_count,
            "last_cycle_at": (
                self._last_cycle_at.isoformat() if self._last_cycle_at else None
            ),
            "open_positions": len(self._risk.get_active_positions()),
            "daily_loss": self._risk.daily_loss,
            "drawdown_pct": self._risk.drawdown * 100,
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Fetch the account balance; keep the configured one on failure."""
        try:
            self._balance = await self._execution.get_wallet_balance()
            self._risk.record_balance(self._balance)
            logger.info("Initial balance: %.2f", self._balance)
        except Exception as exc:
            logger.error(
                "Failed to fetch balance, using initial %.2f: %s",
                self._balance, exc,
            )
        self._stop_requested = False
        self._running = True

    def stop(self) -> None:
        """Signal the engine to stop; a running cycle ends at its next step."""
        self._running = False
        self._stop_requested = True

    async def shutdown(self, now: Optional[datetime] = None) -> list[TradeRecord]:
        """Stop the loop and close every open position at its last known price."""
        self.stop()
        closed: list[TradeRecord] = []
        for position in self._risk.get_active_positions():
            price = self._store.get_current_price(position.symbol)
            if price is None:
                logger.warning("No price for %s, position left open", position.symbol)
                continue
            try:
                record = await self._close(position.symbol, price, "shutdown", now)
            except ExternalCallFailure as exc:
                logger.error("Shutdown close failed: %s", exc)
                continue
            if record is not None:
                closed.append(record)
        logger.info("Shutdown complete, %d position(s) closed", len(closed))
        return closed

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run the trading loop until stopped.

        Args:
            poll_interval: Seconds between cycles. Defaults to the config.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.poll_interval_seconds
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            try:
                result = await self.run_once()
                results.append(result)
                logger.info("Cycle %d: %s", cycle, result.get("action", "unknown"))
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)
                results.append({"action": "error", "reason": str(exc)})

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Sleep in 1 s steps so stop() takes effect promptly
            for _ in range(poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        return results

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self, utc_now: Optional[datetime] = None) -> dict:
        """Execute one analysis cycle.

        Returns a dict describing the outcome:

        - ``{"action": "skipped", "reason": "cycle_in_progress"}``
        - ``{"action": "stopped", "decisions": [...]}``
        - ``{"action": "cycle_complete", "decisions": [...]}``

        Args:
            utc_now: Override for the current time (testing).
        """
        if self._cycle_lock.locked():
            logger.warning("Cycle skipped: previous cycle still in progress")
            return {"action": "skipped", "reason": "cycle_in_progress"}

        async with self._cycle_lock:
            self._stop_requested = False
            now = utc_now or datetime.now(timezone.utc)
            decisions = await self._cycle(now)
            self._cycle_count += 1
            self._last_cycle_at = now
            for decision in decisions:
                self._decisions[decision.symbol] = decision
            return {
                "action": "stopped" if self._stop_requested else "cycle_complete",
                "decisions": [d.to_dict() for d in decisions],
            }

    async def _cycle(self, now: datetime) -> list[Decision]:
        decisions: list[Decision] = []
        await self._refresh_balance()

        views: dict[str, _SymbolView] = {}
        for symbol in self._config.symbols:
            try:
                await self._refresh_history(symbol)
                price = await self._resolve_price(symbol)
            except ExternalCallFailure as exc:
                logger.error("%s", exc)
                decisions.append(_error_decision(symbol, exc))
                continue
            except UnavailablePrice as exc:
                logger.warning("Skipping %s: %s", symbol, exc)
                continue
            views[symbol] = self._analyze(symbol, price)

        if self._stop_requested:
            return decisions

        await self._check_reversals(views, now)
        if self._stop_requested:
            return decisions

        await self._check_exits(views, now)
        if self._stop_requested:
            return decisions

        for symbol in self._config.symbols:
            view = views.get(symbol)
            if view is None:
                continue
            try:
                decisions.append(await self._decide_and_execute(symbol, view, now))
            except ExternalCallFailure as exc:
                logger.error("%s", exc)
                decisions.append(_error_decision(symbol, exc))
            if self._stop_requested:
                break

        return decisions

    # ── Collaborator wrappers ────────────────────────────────────────────

    async def _refresh_balance(self) -> None:
        try:
            self._balance = await self._execution.get_wallet_balance()
        except Exception as exc:
            logger.warning("Balance refresh failed, keeping %.2f: %s", self._balance, exc)
            return
        self._risk.record_balance(self._balance)

    async def _fetch(self, symbol: str, interval: str, limit: int) -> list[CandleData]:
        try:
            records = await self._market_data.fetch_klines(symbol, interval, limit)
        except Exception as exc:
            raise ExternalCallFailure("fetch_klines", symbol, exc) from exc
        return [record.to_candle() for record in records]

    async def _refresh_history(self, symbol: str) -> None:
        history = self._settings.history
        candles = await self._fetch(
            symbol, self._config.short_interval, history.short_fetch_count
        )
        self._store.merge_candles(symbol, candles)
        if self._settings.trend.daily_analysis_enabled:
            daily = await self._fetch(
                symbol, self._config.daily_interval, history.daily_fetch_count
            )
            self._store.merge_candles(self.daily_key(symbol), daily)

    async def _resolve_price(self, symbol: str) -> float:
        """Collaborator price, falling back to the latest stored close."""
        try:
            price = await self._market_data.get_current_price(symbol)
        except Exception as exc:
            raise ExternalCallFailure("get_current_price", symbol, exc) from exc
        if price:
            return float(price)
        return self._store.require_current_price(symbol)

    async def _close(
        self, symbol: str, price: float, reason: str, now: Optional[datetime]
    ) -> Optional[TradeRecord]:
        """Close at the venue first; risk state changes only on success."""
        position = self._risk.get_position(symbol)
        if position is None:
            return None
        try:
            result = await self._execution.close_position(
                symbol, order_side(position.side), position.size
            )
        except Exception as exc:
            raise ExternalCallFailure("close_position", symbol, exc) from exc
        if not result.success:
            logger.error(
                "Close rejected for %s (%s): %s %s",
                symbol, reason, result.code, result.message,
            )
            return None
        return self._risk.close_position(symbol, price, reason, now)

    # ── Steps ────────────────────────────────────────────────────────────

    def _analyze(self, symbol: str, price: float) -> _SymbolView:
        trend = self._settings.trend
        candles = self._store.get_history(symbol)
        if trend.daily_analysis_enabled:
            long_term = analyze_long_term_trend(
                self._store.get_history(self.daily_key(symbol)), trend, is_daily=True
            )
        else:
            long_term = analyze_long_term_trend(candles, trend)
        return _SymbolView(
            candles=candles,
            price=price,
            long_term=long_term,
            trend=analyze_trend_overview(candles, long_term, trend),
            signal=analyze_signal(candles, long_term, self._settings),
        )

    async def _check_reversals(self, views: dict[str, _SymbolView], now: datetime) -> None:
        for position in self._risk.get_active_positions():
            view = views.get(position.symbol)
            if view is None:
                continue
            assessment = detect_trend_reversal(
                position.side,
                view.signal,
                view.long_term,
                view.trend,
                position.pnl_percent(view.price),
                self._settings.profit_protection,
            )
            if not assessment.should_close:
                continue
            logger.info(
                "Reversal on %s %s: %s strength=%.2f pnl=%.2f%% (%s)",
                position.side, position.symbol, assessment.reason,
                assessment.strength, assessment.pnl_percent,
                ", ".join(assessment.factors),
            )
            try:
                await self._close(position.symbol, view.price, assessment.reason, now)
            except ExternalCallFailure as exc:
                logger.error("%s", exc)

    async def _check_exits(self, views: dict[str, _SymbolView], now: datetime) -> None:
        prices = {symbol: view.price for symbol, view in views.items()}
        for instruction in self._risk.check_all_exits(prices, now):
            logger.info(
                "%s hit for %s at %.4f", instruction.reason, instruction.symbol, instruction.price
            )
            try:
                await self._close(instruction.symbol, instruction.price, instruction.reason, now)
            except ExternalCallFailure as exc:
                logger.error("%s", exc)

        for symbol in self._risk.check_time_based_closes(now):
            price = prices.get(symbol) or self._store.get_current_price(symbol)
            if price is None:
                logger.warning("Time limit reached for %s but no price available", symbol)
                continue
            logger.info("Max hold time reached for %s", symbol)
            try:
                await self._close(symbol, price, "time_limit", now)
            except ExternalCallFailure as exc:
                logger.error("%s", exc)

    async def _decide_and_execute(
        self, symbol: str, view: _SymbolView, now: datetime
    ) -> Decision:
        s = self._settings
        analysis = MarketAnalysis(
            symbol=symbol,
            technical=view.signal,
            trend=view.trend,
            volatility=analyze_volatility_level(view.candles, s.indicators.volatility_window),
            volume=analyze_volume_trend(view.candles, s.indicators.volume_window),
            structure=analyze_market_structure(view.candles, s.trend.structure_window),
            position=self._risk.analyze_position(symbol, view.price, now),
        )
        decision = make_decision(analysis, s.decision, s.filters, s.risk.min_confidence)

        if decision.action in ("buy", "sell"):
            side: Side = "long" if decision.action == "buy" else "short"
            decision.details["execution"] = await self._open(
                symbol, side, view.signal, view.price, now
            )
        elif decision.action == "close_position":
            reason = analysis.position.get("reason", "close")
            record = await self._close(symbol, view.price, reason, now)
            decision.details["execution"] = {
                "executed": record is not None,
                "pnl": record.pnl if record else None,
            }
        return decision

    async def _open(
        self,
        symbol: str,
        side: Side,
        signal: FusedSignal,
        price: float,
        now: datetime,
    ) -> dict:
        check = self._risk.can_trade(
            symbol, signal.strength, self._balance, signal.confidence, price, now
        )
        if not check.allowed:
            logger.info("Entry for %s blocked: %s", symbol, ", ".join(check.reasons))
            return {"executed": False, "reasons": list(check.reasons)}

        risk = self._settings.risk
        quantity = check.size.quantity
        stop_loss = self._risk.calculate_stop_loss(price, side)
        if side == "long":
            take_profit = price * (1 + risk.take_profit_fraction)
        else:
            take_profit = price * (1 - risk.take_profit_fraction)

        order = OrderRequest(
            symbol=symbol,
            side=order_side(side),
            quantity=quantity,
            price=price,
            take_profit=take_profit,
            stop_loss=stop_loss,
        )
        try:
            result = await self._execution.place_order(order)
        except Exception as exc:
            raise ExternalCallFailure("place_order", symbol, exc) from exc
        if not result.success:
            logger.error(
                "Order rejected for %s: %s %s", symbol, result.code, result.message
            )
            return {
                "executed": False,
                "reasons": [f"order_rejected: {result.code} {result.message}".strip()],
            }

        position = self._risk.add_position(
            symbol, side, quantity, price,
            stop_loss=stop_loss, take_profit=take_profit, now=now,
        )
        return {
            "executed": position is not None,
            "side": side,
            "quantity": quantity,
            "usd": check.size.usd,
            "stop_loss": stop_loss,
            "take_profit": take_profit,
        }

    # ── Streaming input ──────────────────────────────────────────────────

    def ingest_kline(self, symbol: str, record: KlineRecord, daily: bool = False) -> bool:
        """Merge a pushed candle into the intraday (or daily) history."""
        key = self.daily_key(symbol) if daily else symbol
        return self._store.merge_candle(key, record.to_candle())


def _error_decision(symbol: str, exc: Exception) -> Decision:
    return Decision(symbol=symbol, action="error", confidence=0.0, reasoning=str(exc))
