"""Per-indicator signal evaluation — pure functions, no I/O.

Each ``analyze_*`` function turns one indicator reading into a directional
vote (``IndicatorSignal``) or a descriptive analysis consumed by signal
fusion and the decision layer.
"""

from typing import Optional

from trendguard.config import FusionSettings, IndicatorSettings
from trendguard.strategy.indicators import (
    calculate_obv,
    calculate_realized_volatility,
    latest_atr,
    macd_history,
    relative_change,
    rsi_history,
    volatility_rank,
)
from trendguard.strategy.models import (
    BollingerAnalysis,
    BollingerValue,
    CandleData,
    Direction,
    IndicatorSignal,
    MACDValue,
    VolatilityAnalysis,
    VolatilityLevel,
    VolumeAnalysis,
    VolumeTrend,
)

NEUTRAL = IndicatorSignal()


# ── RSI ──────────────────────────────────────────────────────────────────


def analyze_rsi(
    candles: list[CandleData],
    rsi: float,
    indicators: IndicatorSettings,
    fusion: FusionSettings,
) -> IndicatorSignal:
    """Score RSI zones, then let price/RSI divergence override.

    Zones: < oversold and > overbought are strong votes; the mild bands
    just inside 30/70 are weaker ones.  Divergence (price falling while
    RSI rises below 50, or the mirror) forces the direction and raises
    strength to at least ``rsi_divergence_strength``.
    """
    if len(candles) < indicators.advanced_min_history:
        return NEUTRAL

    lookback = indicators.divergence_lookback
    recent_rsi = rsi_history(candles, lookback, indicators.rsi_period)
    if not recent_rsi or len(recent_rsi) < indicators.divergence_min_points:
        return NEUTRAL

    signal: Direction = "neutral"
    strength = 0.0
    confidence = 0.0

    mild_low_min, mild_low_max = fusion.rsi_mild_low
    mild_high_min, mild_high_max = fusion.rsi_mild_high

    if rsi < fusion.rsi_oversold:
        signal, strength, confidence = (
            "bullish", fusion.rsi_extreme_strength, fusion.rsi_extreme_confidence
        )
    elif rsi > fusion.rsi_overbought:
        signal, strength, confidence = (
            "bearish", fusion.rsi_extreme_strength, fusion.rsi_extreme_confidence
        )
    elif mild_low_min < rsi < mild_low_max:
        signal, strength, confidence = (
            "bullish", fusion.rsi_mild_strength, fusion.rsi_mild_confidence
        )
    elif mild_high_min < rsi < mild_high_max:
        signal, strength, confidence = (
            "bearish", fusion.rsi_mild_strength, fusion.rsi_mild_confidence
        )

    price_trend = relative_change([c.close for c in candles[-lookback:]])
    rsi_trend = relative_change(recent_rsi)

    divergence = False
    if price_trend < 0 and rsi_trend > 0 and rsi < 50:
        signal = "bullish"
        divergence = True
    elif price_trend > 0 and rsi_trend < 0 and rsi > 50:
        signal = "bearish"
        divergence = True
    if divergence:
        strength = max(strength, fusion.rsi_divergence_strength)
        confidence += fusion.rsi_divergence_confidence

    return IndicatorSignal(
        signal=signal, strength=strength, confidence=confidence, divergence=divergence
    )


# ── MACD ─────────────────────────────────────────────────────────────────


def analyze_macd(
    candles: list[CandleData],
    macd: MACDValue,
    indicators: IndicatorSettings,
    fusion: FusionSettings,
) -> IndicatorSignal:
    """Score the MACD/signal cross and histogram, then check divergence."""
    if len(candles) < indicators.advanced_min_history:
        return NEUTRAL

    signal: Direction = "neutral"
    strength = 0.0
    confidence = 0.0
    threshold = fusion.macd_histogram_threshold

    if macd.macd > macd.signal and macd.histogram > 0:
        signal, strength, confidence = (
            "bullish", fusion.macd_cross_strength, fusion.macd_cross_confidence
        )
        if macd.histogram > threshold:
            strength = fusion.macd_amplified_strength
            confidence += fusion.macd_amplified_confidence
    elif macd.macd < macd.signal and macd.histogram < 0:
        signal, strength, confidence = (
            "bearish", fusion.macd_cross_strength, fusion.macd_cross_confidence
        )
        if macd.histogram < -threshold:
            strength = fusion.macd_amplified_strength
            confidence += fusion.macd_amplified_confidence

    lookback = indicators.divergence_lookback
    recent_macd = macd_history(
        candles,
        lookback,
        indicators.macd_fast,
        indicators.macd_slow,
        indicators.macd_signal,
    )
    divergence = False
    if recent_macd and len(recent_macd) >= indicators.divergence_min_points:
        price_trend = relative_change([c.close for c in candles[-lookback:]])
        macd_trend = relative_change(recent_macd)
        if price_trend < 0 and macd_trend > 0:
            signal = "bullish"
            divergence = True
        elif price_trend > 0 and macd_trend < 0:
            signal = "bearish"
            divergence = True
        if divergence:
            strength = max(strength, fusion.macd_divergence_strength)
            confidence += fusion.macd_divergence_confidence

    return IndicatorSignal(
        signal=signal, strength=strength, confidence=confidence, divergence=divergence
    )


# ── Bollinger Bands ──────────────────────────────────────────────────────


def analyze_bollinger(
    price: float, bands: BollingerValue, fusion: FusionSettings
) -> BollingerAnalysis:
    """Band bounce (wide bands) or breakout (narrow bands)."""
    span = bands.upper - bands.lower
    width = span / bands.middle if bands.middle else 0.0
    position = (price - bands.lower) / span if span else 0.5

    tol = fusion.bollinger_bounce_tolerance
    signal: Direction = "neutral"
    strength = 0.0
    confidence = 0.0

    if price <= bands.lower * (1 + tol) and width > fusion.bollinger_bounce_min_width:
        signal = "bullish"
        strength = fusion.bollinger_bounce_strength
        confidence = fusion.bollinger_bounce_confidence
    elif price >= bands.upper * (1 - tol) and width > fusion.bollinger_bounce_min_width:
        signal = "bearish"
        strength = fusion.bollinger_bounce_strength
        confidence = fusion.bollinger_bounce_confidence
    elif price > bands.upper and width < fusion.bollinger_breakout_max_width:
        signal = "bullish"
        strength = fusion.bollinger_breakout_strength
        confidence = fusion.bollinger_breakout_confidence
    elif price < bands.lower and width < fusion.bollinger_breakout_max_width:
        signal = "bearish"
        strength = fusion.bollinger_breakout_strength
        confidence = fusion.bollinger_breakout_confidence

    return BollingerAnalysis(
        signal=signal,
        strength=strength,
        confidence=confidence,
        width=width,
        price_position=position,
    )


# ── Volume ───────────────────────────────────────────────────────────────


def analyze_volume(
    candles: list[CandleData],
    window: int = 20,
    confirmation_ratio: float = 1.5,
) -> Optional[VolumeAnalysis]:
    """Current volume against the *window* average, plus OBV direction."""
    if len(candles) < window:
        return None

    volumes = [c.volume for c in candles[-window:]]
    average = sum(volumes) / len(volumes)
    current = candles[-1].volume

    obv_trend: Direction = "neutral"
    if len(candles) >= 2:
        obv = calculate_obv(candles)
        if obv[-1] > obv[-2]:
            obv_trend = "bullish"
        elif obv[-1] < obv[-2]:
            obv_trend = "bearish"

    return VolumeAnalysis(
        volume_ratio=current / average if average else 0.0,
        obv_trend=obv_trend,
        volume_confirmation=current > average * confirmation_ratio,
    )


def analyze_volume_trend(candles: list[CandleData], window: int = 20) -> VolumeTrend:
    """Second-half vs first-half average volume over the last *window* candles."""
    if len(candles) < window:
        return VolumeTrend(trend="unknown")

    volumes = [c.volume for c in candles[-window:]]
    average = sum(volumes) / len(volumes)
    current = volumes[-1]
    half = len(volumes) // 2
    first_avg = sum(volumes[:half]) / half
    second_avg = sum(volumes[half:]) / (len(volumes) - half)

    trend = "neutral"
    if second_avg > first_avg * 1.2:
        trend = "increasing"
    elif second_avg < first_avg * 0.8:
        trend = "decreasing"

    ratio = current / average if average else 0.0
    return VolumeTrend(
        trend=trend,
        strength=min(ratio, 3.0),
        ratio=ratio,
        current=current,
        average=average,
    )


def has_minimum_volume(
    candles: list[CandleData], min_volume: float = 1000.0, window: int = 5
) -> bool:
    """True when the average volume of the last *window* candles reaches *min_volume*."""
    if len(candles) < window:
        return False
    recent = candles[-window:]
    return sum(c.volume for c in recent) / window >= min_volume


# ── Volatility ───────────────────────────────────────────────────────────


def analyze_volatility(
    candles: list[CandleData], indicators: IndicatorSettings
) -> Optional[VolatilityAnalysis]:
    """Realized volatility (%) of the last window, ATR and its regime rank."""
    window = indicators.volatility_window
    if len(candles) < window:
        return None

    current = calculate_realized_volatility(candles[-window:])
    return VolatilityAnalysis(
        volatility_pct=current * 100,
        atr=latest_atr(candles, window),
        rank=volatility_rank(
            candles,
            current,
            window=window,
            min_history=indicators.volatility_rank_min_history,
            low=indicators.volatility_rank_low,
            high=indicators.volatility_rank_high,
        ),
    )


def analyze_volatility_level(
    candles: list[CandleData], window: int = 20
) -> VolatilityLevel:
    """Mean absolute return (%) bucketed into trading suitability."""
    if len(candles) < window:
        return VolatilityLevel(level="unknown", recommendation="avoid")

    recent = candles[-window:]
    returns = [
        abs((cur.close - prev.close) / prev.close)
        for prev, cur in zip(recent, recent[1:])
    ]
    value = sum(returns) / len(returns) * 100

    if value > 3:
        return VolatilityLevel(level="high", recommendation="caution", value_pct=value)
    if value > 1.5:
        return VolatilityLevel(level="medium", recommendation="good", value_pct=value)
    return VolatilityLevel(level="low", recommendation="avoid", value_pct=value)


# ── Confirmation ─────────────────────────────────────────────────────────


def confirm_signal(
    candles: list[CandleData], direction: str, confirmations: int = 2
) -> bool:
    """True when the last *confirmations* closes each moved in *direction*.

    *direction* is ``"buy"`` (rising closes) or ``"sell"`` (falling closes).
    """
    if len(candles) < confirmations + 1:
        return False

    count = 0
    for i in range(1, confirmations + 1):
        prev = candles[-1 - i]
        cur = candles[-i]
        if direction == "buy" and cur.close > prev.close:
            count += 1
        elif direction == "sell" and cur.close < prev.close:
            count += 1
    return count >= confirmations
