"""Signal fusion — combine indicator votes into one buy/sell/neutral signal.

Two layers:
- ``combine_signals()`` is the pure scoring step over already-computed
  analyses.  Every input except RSI, MACD and price is optional.
- ``analyze_signal()`` computes those analyses from a candle history and
  delegates to ``combine_signals()``.

The long-term trend dominates: it is weighted ×2 (scaled by its own
strength × confidence), earns flat bonuses for strong/moderate
recommendations, drives the alignment check, and finally vetoes any base
signal that contradicts it while its confidence is above
``veto_confidence``.
"""

from typing import Optional

from trendguard.config import EngineSettings, FusionSettings
from trendguard.strategy.indicators import latest_bollinger, latest_macd, latest_rsi
from trendguard.strategy.models import (
    BollingerAnalysis,
    CandleData,
    FusedSignal,
    IndicatorSignal,
    MACDValue,
    MovingAverageTrend,
    SignalDirection,
    TrendAlignment,
    TrendAssessment,
    VolatilityAnalysis,
    VolumeAnalysis,
)
from trendguard.strategy.signals import (
    analyze_bollinger,
    analyze_macd,
    analyze_rsi,
    analyze_volatility,
    analyze_volume,
)
from trendguard.strategy.trend import analyze_moving_average_trend


def trend_weight(long_term: TrendAssessment) -> float:
    """``min(strength × confidence / 100, 1.0)``."""
    return min(long_term.strength * (long_term.confidence / 100), 1.0)


def check_trend_alignment(
    long_term: TrendAssessment,
    rsi: IndicatorSignal,
    macd: IndicatorSignal,
    ratio: float = 0.5,
) -> TrendAlignment:
    """Share of non-neutral RSI/MACD votes agreeing with the long-term trend."""
    if long_term.direction == "neutral":
        return TrendAlignment(aligned=False, direction="neutral", score=0.0)

    checks = 0
    agreeing = 0
    for vote in (rsi, macd):
        if vote.signal != "neutral":
            checks += 1
            if vote.signal == long_term.direction:
                agreeing += 1

    score = agreeing / checks if checks else 0.0
    return TrendAlignment(
        aligned=score >= ratio, direction=long_term.direction, score=score
    )


class _Tally:
    """Running bullish/bearish/confidence accumulator."""

    def __init__(self, baseline: float) -> None:
        self.bullish = 0.0
        self.bearish = 0.0
        self.confidence = 0.0
        self.count = 0
        self._baseline = baseline

    def vote(self, direction: str, strength: float, confidence: float) -> None:
        if direction == "bullish":
            self.bullish += strength
            self.confidence += confidence
        elif direction == "bearish":
            self.bearish += strength
            self.confidence += confidence
        else:
            self.confidence += self._baseline
        self.count += 1


def combine_signals(
    *,
    price: Optional[float],
    rsi_value: Optional[float],
    macd_value: Optional[MACDValue],
    rsi: IndicatorSignal,
    macd: IndicatorSignal,
    ma_trend: MovingAverageTrend,
    long_term: TrendAssessment,
    bollinger: Optional[BollingerAnalysis],
    volume: Optional[VolumeAnalysis],
    volatility: Optional[VolatilityAnalysis],
    settings: FusionSettings,
) -> FusedSignal:
    """Fuse pre-computed analyses into a ``FusedSignal``.

    Returns a neutral zero-confidence signal when RSI, MACD or price is
    unavailable.
    """
    if rsi_value is None or macd_value is None or price is None:
        return FusedSignal(current_price=price, long_term=long_term)

    tally = _Tally(settings.neutral_baseline_confidence)

    tally.vote(rsi.signal, rsi.strength, rsi.confidence)
    tally.vote(macd.signal, macd.strength, macd.confidence)
    tally.vote(
        ma_trend.direction,
        ma_trend.strength * settings.trend_strength_weight,
        ma_trend.strength * settings.trend_confidence_weight,
    )

    # Long-term trend
    if long_term.direction == "neutral":
        tally.vote("neutral", 0.0, 0.0)
    else:
        side = "buy" if long_term.direction == "bullish" else "sell"
        strength = trend_weight(long_term) * settings.long_term_weight
        confidence = long_term.confidence * settings.long_term_confidence_factor
        if long_term.recommendation == f"strong_{side}":
            strength += settings.strong_recommendation_strength
            confidence += settings.strong_recommendation_confidence
        elif long_term.recommendation == f"moderate_{side}":
            strength += settings.moderate_recommendation_strength
            confidence += settings.moderate_recommendation_confidence
        tally.vote(long_term.direction, strength, confidence)

    if bollinger is not None:
        tally.vote(bollinger.signal, bollinger.strength, bollinger.confidence)

    if volume is not None:
        if volume.volume_confirmation and volume.obv_trend != "neutral":
            tally.vote(
                volume.obv_trend, settings.volume_strength, settings.volume_confidence
            )
        else:
            tally.confidence += (
                settings.volume_partial_confidence
                if volume.volume_confirmation
                else settings.volume_baseline_confidence
            )
            tally.count += 1

    # Volatility adjusts confidence only; it is not counted as a vote
    if volatility is not None:
        tally.confidence += {
            "medium": settings.volatility_medium_bonus,
            "low": settings.volatility_low_bonus,
            "high": settings.volatility_high_bonus,
        }.get(volatility.rank, 0.0)

    alignment = check_trend_alignment(long_term, rsi, macd, settings.alignment_ratio)
    if alignment.aligned:
        if alignment.direction == "bullish":
            tally.bullish += settings.alignment_strength
        else:
            tally.bearish += settings.alignment_strength
        tally.confidence += settings.alignment_confidence
    else:
        tally.confidence *= settings.contradiction_factor

    strength = abs(tally.bullish - tally.bearish) / tally.count if tally.count else 0.0
    confidence = max(0.0, min(tally.confidence, 100.0))

    signal: SignalDirection = "neutral"
    if strength > settings.decision_strength and confidence > settings.decision_confidence:
        if tally.bullish > tally.bearish:
            signal = "buy"
        elif tally.bearish > tally.bullish:
            signal = "sell"

    if (
        long_term.direction != "neutral"
        and long_term.confidence > settings.veto_confidence
    ):
        if (long_term.direction == "bullish" and signal == "sell") or (
            long_term.direction == "bearish" and signal == "buy"
        ):
            signal = "neutral"

    return FusedSignal(
        signal=signal,
        strength=strength,
        confidence=confidence,
        current_price=price,
        rsi_value=rsi_value,
        macd_value=macd_value,
        rsi=rsi,
        macd=macd,
        trend=ma_trend,
        long_term=long_term,
        bollinger=bollinger,
        volume=volume,
        volatility=volatility,
        alignment=alignment,
    )


def analyze_signal(
    candles: list[CandleData],
    long_term: TrendAssessment,
    settings: EngineSettings,
) -> FusedSignal:
    """Compute every indicator analysis for *candles* and fuse them.

    Args:
        candles: Intraday history, oldest-first.
        long_term: Long-term assessment (daily series when available).
        settings: Full engine settings.
    """
    ind = settings.indicators
    fus = settings.fusion

    price = candles[-1].close if candles else None
    rsi_value = latest_rsi(candles, ind.rsi_period)
    macd_value = latest_macd(candles, ind.macd_fast, ind.macd_slow, ind.macd_signal)

    if rsi_value is None or macd_value is None or price is None:
        return FusedSignal(current_price=price, long_term=long_term)

    bands = latest_bollinger(candles, ind.bollinger_period, ind.bollinger_std_dev)

    return combine_signals(
        price=price,
        rsi_value=rsi_value,
        macd_value=macd_value,
        rsi=analyze_rsi(candles, rsi_value, ind, fus),
        macd=analyze_macd(candles, macd_value, ind, fus),
        ma_trend=analyze_moving_average_trend(candles, ind.moving_average_periods),
        long_term=long_term,
        bollinger=analyze_bollinger(price, bands, fus) if bands else None,
        volume=analyze_volume(candles, ind.volume_window, fus.volume_confirmation_ratio),
        volatility=analyze_volatility(candles, ind),
        settings=fus,
    )
