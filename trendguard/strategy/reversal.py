"""Trend reversal detection for open positions.

Scores how strongly current signals argue against an open position and
decides whether to close it to protect profit, cut a loss, or react to a
critical reversal.
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

from trendguard.config import ProfitProtectionSettings
from trendguard.strategy.models import FusedSignal, TrendAssessment

ReversalReason = Literal[
    "profit_protection",
    "critical_reversal",
    "loss_minimization",
    "hold",
    "disabled",
]


class _DirectionalTrend(Protocol):
    direction: str
    strength: float


@dataclass(frozen=True)
class ReversalAssessment:
    """Outcome of a reversal check for one position."""

    should_close: bool
    reason: ReversalReason
    strength: float
    pnl_percent: float
    components: dict[str, float] = field(default_factory=dict)
    factors: tuple[str, ...] = ()


def reversal_components(
    side: str,
    signal: FusedSignal,
    long_term: Optional[TrendAssessment],
    short_term: Optional[_DirectionalTrend],
    settings: ProfitProtectionSettings,
) -> tuple[dict[str, float], list[str]]:
    """Weighted evidence against a ``"long"`` or ``"short"`` position.

    Returns the per-factor contributions and the names of factors that
    fired.
    """
    is_long = side == "long"
    against_signal = "sell" if is_long else "buy"
    against_trend = "bearish" if is_long else "bullish"

    components = {
        "signal": 0.0,
        "long_term": 0.0,
        "short_term": 0.0,
        "rsi": 0.0,
        "macd": 0.0,
        "confidence": 0.0,
    }
    factors: list[str] = []

    if signal.signal == against_signal:
        components["signal"] = signal.strength * settings.signal_weight
        factors.append(f"{against_signal} signal")

    if (
        long_term is not None
        and long_term.direction == against_trend
        and long_term.confidence > settings.long_term_min_confidence
    ):
        components["long_term"] = (long_term.confidence / 100) * settings.long_term_weight
        factors.append(f"long-term {against_trend} trend")

    if short_term is not None and short_term.direction == against_trend:
        components["short_term"] = short_term.strength * settings.short_term_weight
        factors.append(f"short-term {against_trend} trend")

    rsi = signal.rsi_value
    if rsi is not None:
        if is_long and rsi > settings.rsi_overbought:
            components["rsi"] = settings.rsi_weight
            factors.append("RSI overbought")
        elif not is_long and rsi < settings.rsi_oversold:
            components["rsi"] = settings.rsi_weight
            factors.append("RSI oversold")

    macd = signal.macd_value
    if macd is not None:
        if is_long and macd.macd < macd.signal and macd.histogram < 0:
            components["macd"] = settings.macd_weight
            factors.append("MACD bearish cross")
        elif not is_long and macd.macd > macd.signal and macd.histogram > 0:
            components["macd"] = settings.macd_weight
            factors.append("MACD bullish cross")

    if signal.confidence >= settings.min_signal_confidence:
        components["confidence"] = (signal.confidence / 100) * settings.confidence_weight

    return components, factors


def detect_trend_reversal(
    side: str,
    signal: FusedSignal,
    long_term: Optional[TrendAssessment],
    short_term: Optional[_DirectionalTrend],
    pnl_percent: float,
    settings: ProfitProtectionSettings,
) -> ReversalAssessment:
    """Decide whether an open position should be closed on reversal evidence.

    Policy, first match wins:
        1. PnL% above ``min_profit_percent`` and strength above
           ``trend_reversal_threshold`` → ``profit_protection``.
        2. Strength above ``critical_reversal_threshold`` →
           ``critical_reversal``.
        3. PnL% below ``loss_minimization_percent`` and strength above
           ``loss_minimization_threshold`` → ``loss_minimization``.
        4. Otherwise ``hold``.

    When profit protection is disabled the position is never closed.
    """
    components, factors = reversal_components(
        side, signal, long_term, short_term, settings
    )
    strength = sum(components.values())

    def _result(should_close: bool, reason: ReversalReason) -> ReversalAssessment:
        return ReversalAssessment(
            should_close=should_close,
            reason=reason,
            strength=strength,
            pnl_percent=pnl_percent,
            components=components,
            factors=tuple(factors),
        )

    if not settings.enabled:
        return _result(False, "disabled")

    if (
        pnl_percent > settings.min_profit_percent
        and strength > settings.trend_reversal_threshold
    ):
        return _result(True, "profit_protection")
    if strength > settings.critical_reversal_threshold:
        return _result(True, "critical_reversal")
    if (
        pnl_percent < settings.loss_minimization_percent
        and strength > settings.loss_minimization_threshold
    ):
        return _result(True, "loss_minimization")
    return _result(False, "hold")
