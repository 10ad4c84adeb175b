"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger, ATR, OBV, volatility.

Pure functions, no I/O.  The ``calculate_*`` functions return full series
(NaN-prefixed, same length as the input) and raise ``ValueError`` when the
history is too short.  The ``latest_*`` helpers wrap them for point-in-time
use and return ``None`` instead, so callers treat short history as
"unavailable" rather than as an error.
"""

import math
from typing import Optional

import numpy as np

from trendguard.strategy.models import BollingerValue, CandleData, MACDValue


def _require(candles: list, minimum: int, label: str) -> None:
    if len(candles) < minimum:
        raise ValueError(
            f"Need at least {minimum} candles for {label}, got {len(candles)}"
        )


def _ema_values(values: list[float], period: int) -> list[float]:
    """EMA over raw values, seeded with the SMA of the first *period*."""
    k = 2.0 / (period + 1)
    out: list[float] = [float("nan")] * len(values)
    if len(values) < period:
        return out
    out[period - 1] = sum(values[:period]) / period
    for i in range(period, len(values)):
        out[i] = values[i] * k + out[i - 1] * (1 - k)
    return out


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(candles: list[CandleData], period: int) -> list[float]:
    """Simple moving average of closes."""
    _require(candles, period, f"SMA({period})")
    closes = [c.close for c in candles]
    sma: list[float] = [float("nan")] * len(closes)
    window_sum = sum(closes[:period])
    sma[period - 1] = window_sum / period
    for i in range(period, len(closes)):
        window_sum += closes[i] - closes[i - period]
        sma[i] = window_sum / period
    return sma


def calculate_ema(candles: list[CandleData], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    ``EMA_today = close × k + EMA_yesterday × (1 - k)`` with
    ``k = 2 / (period + 1)``, seeded with the SMA of the first *period*
    closes.  Entries before the seed are ``float('nan')``.
    """
    _require(candles, period, f"EMA({period})")
    return _ema_values([c.close for c in candles], period)


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(candles: list[CandleData], period: int = 14) -> list[float]:
    """Wilder's Relative Strength Index.

    Requires ``period + 1`` candles.  Returns a list the same length as
    *candles*; entries before the seed are ``float('nan')``.
    """
    _require(candles, period + 1, f"RSI({period})")

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [float("nan")] * len(candles)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + ag / al)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one candle
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    candles: list[CandleData],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """MACD line, signal line and histogram.

    The signal line is an EMA of the MACD line, so the first complete
    triple appears at index ``slow + signal - 2``.  Requires
    ``slow + signal`` candles.

    Returns ``(macd, signal, histogram)``, each the length of *candles*.
    """
    _require(candles, slow + signal, f"MACD({fast},{slow},{signal})")

    closes = [c.close for c in candles]
    fast_ema = _ema_values(closes, fast)
    slow_ema = _ema_values(closes, slow)

    n = len(closes)
    macd_line: list[float] = [float("nan")] * n
    for i in range(slow - 1, n):
        macd_line[i] = fast_ema[i] - slow_ema[i]

    signal_tail = _ema_values(macd_line[slow - 1 :], signal)
    signal_line = [float("nan")] * (slow - 1) + signal_tail
    histogram = [m - s for m, s in zip(macd_line, signal_line)]

    return macd_line, signal_line, histogram


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    candles: list[CandleData],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """Bollinger Bands: SMA(*period*) ± *std_dev* × population σ.

    Returns ``(upper, middle, lower)``.
    """
    _require(candles, period, f"Bollinger({period})")

    closes = [c.close for c in candles]
    n = len(closes)

    upper: list[float] = [float("nan")] * n
    middle: list[float] = [float("nan")] * n
    lower: list[float] = [float("nan")] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        sma = sum(window) / period
        sigma = math.sqrt(sum((x - sma) ** 2 for x in window) / period)
        middle[i] = sma
        upper[i] = sma + std_dev * sigma
        lower[i] = sma - std_dev * sigma

    return upper, middle, lower


# ── ATR / OBV ────────────────────────────────────────────────────────────


def calculate_atr(candles: list[CandleData], period: int = 14) -> float:
    """Average True Range over the last *period* true ranges.

    ``TR = max(high - low, |high - prev_close|, |low - prev_close|)``.
    Requires ``period + 1`` candles.
    """
    _require(candles, period + 1, f"ATR({period})")

    true_ranges: list[float] = []
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        true_ranges.append(
            max(high - low, abs(high - prev_close), abs(low - prev_close))
        )

    recent = true_ranges[-period:]
    return sum(recent) / len(recent)


def calculate_obv(candles: list[CandleData]) -> list[float]:
    """On-Balance Volume series; the first candle seeds the total at 0."""
    _require(candles, 2, "OBV")
    obv = [0.0]
    for prev, cur in zip(candles, candles[1:]):
        if cur.close > prev.close:
            obv.append(obv[-1] + cur.volume)
        elif cur.close < prev.close:
            obv.append(obv[-1] - cur.volume)
        else:
            obv.append(obv[-1])
    return obv


# ── Volatility ───────────────────────────────────────────────────────────


def calculate_realized_volatility(candles: list[CandleData]) -> float:
    """Population standard deviation of simple close-to-close returns.

    Returned as a fraction (0.01 == 1 %).
    """
    _require(candles, 2, "realized volatility")
    closes = np.array([c.close for c in candles], dtype=float)
    returns = np.diff(closes) / closes[:-1]
    return float(np.std(returns))


def volatility_rank(
    candles: list[CandleData],
    current: float,
    window: int = 20,
    min_history: int = 100,
    low: float = 0.2,
    high: float = 0.8,
) -> str:
    """Classify *current* volatility against historical window samples.

    The history is cut into consecutive *window*-candle blocks
    (``[i - window, i)`` for ``i = window, 2·window, …`` below the length),
    each block's realized volatility is sorted, and the rank is the
    position of the first sample at or above *current*.  When every
    sample is below *current* the rank is 1.0.

    Returns ``"medium"`` when fewer than *min_history* candles exist.
    """
    if len(candles) < min_history:
        return "medium"

    samples = sorted(
        calculate_realized_volatility(candles[i - window : i])
        for i in range(window, len(candles), window)
    )
    if not samples:
        return "medium"

    index = next((j for j, v in enumerate(samples) if v >= current), len(samples))
    rank = index / len(samples)

    if rank < low:
        return "low"
    if rank > high:
        return "high"
    return "medium"


# ── Point-in-time helpers (None == unavailable) ─────────────────────────


def _last(series: list[float]) -> Optional[float]:
    if not series or math.isnan(series[-1]):
        return None
    return series[-1]


def latest_rsi(candles: list[CandleData], period: int = 14) -> Optional[float]:
    if len(candles) < period + 1:
        return None
    return _last(calculate_rsi(candles, period))


def latest_macd(
    candles: list[CandleData], fast: int = 12, slow: int = 26, signal: int = 9
) -> Optional[MACDValue]:
    if len(candles) < slow + signal:
        return None
    macd_line, signal_line, histogram = calculate_macd(candles, fast, slow, signal)
    if math.isnan(signal_line[-1]):
        return None
    return MACDValue(
        macd=macd_line[-1], signal=signal_line[-1], histogram=histogram[-1]
    )


def latest_bollinger(
    candles: list[CandleData], period: int = 20, std_dev: float = 2.0
) -> Optional[BollingerValue]:
    if len(candles) < period:
        return None
    upper, middle, lower = calculate_bollinger(candles, period, std_dev)
    return BollingerValue(upper=upper[-1], middle=middle[-1], lower=lower[-1])


def latest_atr(candles: list[CandleData], period: int = 14) -> Optional[float]:
    if len(candles) < period + 1:
        return None
    return calculate_atr(candles, period)


def moving_averages(
    candles: list[CandleData], periods: tuple[int, ...] = (9, 21, 50)
) -> dict[str, float]:
    """Latest SMA/EMA per period, keyed ``sma_9``, ``ema_9`` …

    Periods longer than the history are omitted.
    """
    result: dict[str, float] = {}
    for period in periods:
        if len(candles) >= period:
            result[f"sma_{period}"] = calculate_sma(candles, period)[-1]
            result[f"ema_{period}"] = calculate_ema(candles, period)[-1]
    return result


def rsi_history(
    candles: list[CandleData], count: int = 20, period: int = 14
) -> Optional[list[float]]:
    """Last *count* RSI values, or ``None`` below ``count + period`` candles."""
    if len(candles) < count + period:
        return None
    values = [v for v in calculate_rsi(candles, period) if not math.isnan(v)]
    return values[-count:]


def macd_history(
    candles: list[CandleData],
    count: int = 20,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> Optional[list[float]]:
    """Last *count* complete MACD-line values, or ``None`` when short."""
    if len(candles) < max(count + slow, slow + signal):
        return None
    macd_line, signal_line, _ = calculate_macd(candles, fast, slow, signal)
    values = [m for m, s in zip(macd_line, signal_line) if not math.isnan(s)]
    return values[-count:]


def relative_change(values: list[float]) -> float:
    """``(last - first) / first``; 0 for fewer than two values."""
    if len(values) < 2 or values[0] == 0:
        return 0.0
    return (values[-1] - values[0]) / values[0]
