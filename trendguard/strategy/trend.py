"""Trend analysis — structural short-term trend and multi-timeframe long-term trend.

Provides:
- ``analyze_long_term_trend()``: EMA 50/100/200 plus three weighted
  timeframe windows, producing direction, strength, confidence and a
  recommendation tier (``strong_buy`` … ``mixed_signals``).
- ``analyze_short_term_trend()``: last-20-candle change and higher-high /
  lower-low counting.
- ``combine_trends()``: reconciles the two, giving the long-term view
  priority when it is confident.  ``analyze_trend_overview()`` runs the
  short-term analysis and the merge in one call.
- ``analyze_moving_average_trend()``: SMA 9/21/50 ordering vote used as the
  short-term trend input of signal fusion.
- ``analyze_market_structure()``: swing-point pattern classification.
"""

from trendguard.config import TrendSettings
from trendguard.strategy.indicators import calculate_ema, moving_averages
from trendguard.strategy.models import (
    CandleData,
    Direction,
    EmaAlignment,
    MarketStructure,
    MovingAverageTrend,
    ShortTermTrend,
    TimeFrameTrend,
    TrendAssessment,
    TrendOverview,
    TrendStructure,
)


# ── Building blocks ──────────────────────────────────────────────────────


def analyze_trend_structure(candles: list[CandleData]) -> TrendStructure:
    """Count swing highs/lows that confirm an up- or down-move.

    A local high (above both neighbours) counts bullish when it exceeds the
    high two bars earlier, bearish otherwise; local lows are scored the
    same way against the low two bars earlier.  The first three and last
    two bars are never swing candidates.
    """
    bullish = 0
    bearish = 0
    for i in range(3, len(candles) - 2):
        cur = candles[i]
        prev = candles[i - 1]
        nxt = candles[i + 1]

        if cur.high > prev.high and cur.high > nxt.high:
            if cur.high > candles[i - 2].high:
                bullish += 1
            else:
                bearish += 1

        if cur.low < prev.low and cur.low < nxt.low:
            if cur.low > candles[i - 2].low:
                bullish += 1
            else:
                bearish += 1

    return TrendStructure(bullish_signals=bullish, bearish_signals=bearish)


def period_volatility(candles: list[CandleData]) -> float:
    """Mean absolute close-to-close return."""
    if len(candles) < 2:
        return 0.0
    returns = [
        abs((cur.close - prev.close) / prev.close)
        for prev, cur in zip(candles, candles[1:])
    ]
    return sum(returns) / len(returns)


def analyze_timeframe_trend(
    candles: list[CandleData],
    period: int,
    settings: TrendSettings,
    is_daily: bool = False,
) -> TimeFrameTrend:
    """Direction and confidence over the last *period* candles."""
    if len(candles) < period:
        return TimeFrameTrend()

    recent = candles[-period:]
    first = recent[0].close
    last = recent[-1].close
    price_change = (last - first) / first

    structure = analyze_trend_structure(recent)
    volatility = period_volatility(recent)

    min_change = settings.min_change_intraday
    if is_daily:
        min_change *= settings.daily_threshold_multiplier
    base = (
        settings.base_confidence_daily if is_daily else settings.base_confidence_intraday
    )

    direction: Direction = "neutral"
    confidence = 0.0
    if (
        price_change > min_change
        and structure.bullish_signals > structure.bearish_signals
    ):
        direction = "bullish"
    elif (
        price_change < -min_change
        and structure.bearish_signals > structure.bullish_signals
    ):
        direction = "bearish"

    if direction != "neutral":
        confidence = min(
            base + abs(price_change) * settings.change_confidence_multiplier,
            settings.max_change_confidence,
        )

    vol_threshold = (
        settings.volatility_threshold_daily
        if is_daily
        else settings.volatility_threshold_intraday
    )
    if volatility > vol_threshold:
        confidence *= settings.high_volatility_factor

    if is_daily and abs(price_change) > settings.strong_change_daily:
        confidence = min(confidence + settings.strong_move_bonus, 100.0)

    return TimeFrameTrend(
        direction=direction,
        strength=abs(price_change),
        confidence=confidence,
        price_change=price_change,
        structure=structure,
        volatility=volatility,
    )


def analyze_ema_alignment(
    price: float, ema_fast: float, ema_medium: float, ema_slow: float
) -> EmaAlignment:
    """Five ordering votes plus a spread-based confidence capped at 50."""
    votes = [
        ema_fast > ema_medium,
        ema_medium > ema_slow,
        price > ema_fast,
        price > ema_medium,
        price > ema_slow,
    ]
    bullish = sum(votes)
    bearish = len(votes) - bullish

    spread = abs(ema_fast - ema_medium) / ema_medium + abs(ema_medium - ema_slow) / ema_slow
    confidence = min(spread * 1000, 50.0)

    direction: Direction = "neutral"
    if bullish > bearish:
        direction = "bullish"
    elif bearish > bullish:
        direction = "bearish"

    return EmaAlignment(
        direction=direction,
        bullish_signals=bullish,
        bearish_signals=bearish,
        confidence=confidence,
    )


def _overall_trend(
    time_frames: dict[str, TimeFrameTrend],
    alignment: EmaAlignment,
    settings: TrendSettings,
) -> tuple[Direction, float, float]:
    bullish = 0.0
    bearish = 0.0
    total_confidence = 0.0

    for name, frame in time_frames.items():
        weight = settings.timeframe_weights.get(name, 0.0)
        if frame.direction == "bullish":
            bullish += frame.strength * weight
            total_confidence += frame.confidence * weight
        elif frame.direction == "bearish":
            bearish += frame.strength * weight
            total_confidence += frame.confidence * weight

    if alignment.direction == "bullish":
        bullish += settings.ema_vote_weight
        total_confidence += alignment.confidence * settings.ema_vote_weight
    elif alignment.direction == "bearish":
        bearish += settings.ema_vote_weight
        total_confidence += alignment.confidence * settings.ema_vote_weight

    strength = abs(bullish - bearish)
    confidence = min(total_confidence, 100.0)

    direction: Direction = "neutral"
    if bullish > bearish and strength > settings.direction_threshold:
        direction = "bullish"
    elif bearish > bullish and strength > settings.direction_threshold:
        direction = "bearish"

    return direction, strength, confidence


def trend_recommendation(
    direction: Direction,
    strength: float,
    confidence: float,
    time_frames: dict[str, TimeFrameTrend],
    weak_threshold: float = 0.3,
) -> str:
    """Map an overall trend onto a recommendation tier."""
    if confidence < 30:
        return "insufficient_data"
    if strength < weak_threshold:
        return "weak_trend"
    if direction == "neutral" or not time_frames:
        return "mixed_signals"

    matching = sum(1 for tf in time_frames.values() if tf.direction == direction)
    consistency = matching / len(time_frames)
    side = "buy" if direction == "bullish" else "sell"

    if consistency >= 0.7 and confidence >= 60:
        return f"strong_{side}"
    if consistency >= 0.5 and confidence >= 40:
        return f"moderate_{side}"
    if consistency >= 0.3 and confidence >= 30:
        return f"weak_{side}"
    return "mixed_signals"


# ── Long-term trend ──────────────────────────────────────────────────────


def analyze_long_term_trend(
    candles: list[CandleData],
    settings: TrendSettings,
    is_daily: bool = False,
) -> TrendAssessment:
    """Multi-timeframe long-term trend assessment.

    Args:
        candles: History, oldest-first.  Daily series use doubled change
            thresholds and higher base confidence.
        settings: Trend tunables.
        is_daily: True when *candles* are daily bars.

    Returns:
        ``TrendAssessment``; below the minimum history the direction is
        neutral and the recommendation ``insufficient_data``.
    """
    required = max(settings.long_term_min_history, settings.ema_slow)
    if len(candles) < required:
        return TrendAssessment(data_points=len(candles), required_data=required)

    price = candles[-1].close
    ema_fast = calculate_ema(candles, settings.ema_fast)[-1]
    ema_medium = calculate_ema(candles, settings.ema_medium)[-1]
    ema_slow = calculate_ema(candles, settings.ema_slow)[-1]

    time_frames = {
        name: analyze_timeframe_trend(candles, period, settings, is_daily)
        for name, period in settings.timeframe_periods.items()
    }
    alignment = analyze_ema_alignment(price, ema_fast, ema_medium, ema_slow)
    direction, strength, confidence = _overall_trend(time_frames, alignment, settings)

    return TrendAssessment(
        direction=direction,
        strength=strength,
        confidence=confidence,
        recommendation=trend_recommendation(
            direction, strength, confidence, time_frames, settings.direction_threshold
        ),
        time_frames=time_frames,
        ema_alignment=alignment,
        ema_values={"fast": ema_fast, "medium": ema_medium, "slow": ema_slow},
        data_points=len(candles),
        required_data=required,
    )


# ── Short-term trend ─────────────────────────────────────────────────────


def analyze_short_term_trend(
    candles: list[CandleData], settings: TrendSettings
) -> ShortTermTrend:
    """Structural short-term trend over the last ``short_term_window`` candles."""
    if len(candles) < settings.short_term_min_history:
        return ShortTermTrend()

    recent = candles[-settings.short_term_window :]
    change = (recent[-1].close - recent[0].close) / recent[0].close

    higher_highs = 0
    lower_lows = 0
    for i in range(1, len(recent) - 1):
        if recent[i].high > recent[i - 1].high:
            higher_highs += 1
        if recent[i].low < recent[i - 1].low:
            lower_lows += 1

    threshold = settings.short_term_change_threshold
    direction: Direction = "neutral"
    if change > threshold and higher_highs > lower_lows:
        direction = "bullish"
    elif change < -threshold and lower_lows > higher_highs:
        direction = "bearish"

    strength = abs(change)
    if strength > settings.short_term_high_quality:
        quality = "high"
    elif strength > threshold:
        quality = "medium"
    else:
        quality = "low"

    return ShortTermTrend(
        direction=direction,
        strength=strength,
        quality=quality,
        change_pct=change * 100,
        higher_highs=higher_highs,
        lower_lows=lower_lows,
    )


def combine_trends(
    short: ShortTermTrend,
    long_term: TrendAssessment,
    settings: TrendSettings,
) -> TrendOverview:
    """Reconcile short- and long-term views.

    A long-term trend with confidence above ``priority_confidence`` wins:
    agreement upgrades quality to high, a conflicting short-term direction
    neutralises the result, and a neutral short-term view adopts the
    long-term direction.
    """
    direction = short.direction
    quality = short.quality
    recommendation = "hold"

    if (
        long_term.direction != "neutral"
        and long_term.confidence > settings.priority_confidence
    ):
        if long_term.direction == short.direction:
            direction = long_term.direction
            quality = "high"
            recommendation = long_term.recommendation
        elif short.direction != "neutral":
            direction = "neutral"
            quality = "low"
            recommendation = "mixed_signals"
        else:
            direction = long_term.direction
            quality = (
                "high"
                if long_term.confidence > settings.high_quality_confidence
                else "medium"
            )
            recommendation = long_term.recommendation

    return TrendOverview(
        direction=direction,
        strength=short.strength,
        quality=quality,
        change_pct=short.change_pct,
        short_term_direction=short.direction,
        long_term=long_term,
        recommendation=recommendation,
        aligned=long_term.direction == short.direction,
    )


def analyze_trend_overview(
    candles: list[CandleData],
    long_term: TrendAssessment,
    settings: TrendSettings,
) -> TrendOverview:
    """Short-term trend of *candles* combined with *long_term*.

    Below ``short_term_min_history`` the overview is neutral with an
    ``insufficient_data`` recommendation and the long-term view is only
    attached for reference.
    """
    if len(candles) < settings.short_term_min_history:
        return TrendOverview(
            direction="neutral",
            strength=0.0,
            quality="low",
            change_pct=0.0,
            short_term_direction="neutral",
            long_term=long_term,
            recommendation="insufficient_data",
            aligned=long_term.direction == "neutral",
        )
    return combine_trends(analyze_short_term_trend(candles, settings), long_term, settings)


# ── Moving-average trend ─────────────────────────────────────────────────


def analyze_moving_average_trend(
    candles: list[CandleData], periods: tuple[int, ...] = (9, 21, 50)
) -> MovingAverageTrend:
    """Four-vote SMA ordering trend (fast > mid, mid > slow, price > fast, price > mid)."""
    if not candles or len(periods) < 3:
        return MovingAverageTrend()

    fast_p, mid_p, slow_p = periods[:3]
    mas = moving_averages(candles, (fast_p, mid_p, slow_p))
    fast = mas.get(f"sma_{fast_p}")
    mid = mas.get(f"sma_{mid_p}")
    slow = mas.get(f"sma_{slow_p}")
    if fast is None or mid is None or slow is None:
        return MovingAverageTrend()

    price = candles[-1].close
    votes = [fast > mid, mid > slow, price > fast, price > mid]
    bullish = sum(votes)
    bearish = len(votes) - bullish

    direction: Direction = "neutral"
    if bullish > bearish:
        direction = "bullish"
    elif bearish > bullish:
        direction = "bearish"

    return MovingAverageTrend(
        direction=direction, strength=abs(bullish - bearish) / len(votes)
    )


# ── Market structure ─────────────────────────────────────────────────────


def analyze_market_structure(
    candles: list[CandleData], window: int = 30
) -> MarketStructure:
    """Classify swing highs/lows over the last *window* candles."""
    if len(candles) < window:
        return MarketStructure()

    recent = candles[-window:]
    hh = lh = hl = ll = 0
    for i in range(3, len(recent) - 2):
        cur = recent[i]
        if cur.high > recent[i - 1].high and cur.high > recent[i + 1].high:
            if cur.high > recent[i - 2].high:
                hh += 1
            else:
                lh += 1
        if cur.low < recent[i - 1].low and cur.low < recent[i + 1].low:
            if cur.low > recent[i - 2].low:
                hl += 1
            else:
                ll += 1

    total = hh + lh + hl + ll
    pattern = "sideways"
    strength = 0.0
    if hh > lh and hl > ll:
        pattern = "uptrend"
        strength = (hh + hl) / total
    elif lh > hh and ll > hl:
        pattern = "downtrend"
        strength = (lh + ll) / total

    return MarketStructure(
        pattern=pattern,
        strength=strength,
        higher_highs=hh,
        lower_highs=lh,
        higher_lows=hl,
        lower_lows=ll,
    )
