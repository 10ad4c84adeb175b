"""Strategy data models — typed representations for analysis outputs."""

from dataclasses import asdict, dataclass, field
from typing import Literal, Optional

Direction = Literal["bullish", "bearish", "neutral"]
SignalDirection = Literal["buy", "sell", "neutral"]


@dataclass(frozen=True)
class CandleData:
    """A single candlestick bar; *timestamp* is the bucket start in ms."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


# ── Indicator values ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class MACDValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerValue:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class IndicatorSignal:
    """Directional vote of a single indicator."""

    signal: Direction = "neutral"
    strength: float = 0.0
    confidence: float = 0.0
    divergence: bool = False


@dataclass(frozen=True)
class BollingerAnalysis(IndicatorSignal):
    width: float = 0.0
    price_position: float = 0.0


@dataclass(frozen=True)
class VolumeAnalysis:
    volume_ratio: float
    obv_trend: Direction
    volume_confirmation: bool


@dataclass(frozen=True)
class VolatilityAnalysis:
    volatility_pct: float
    atr: Optional[float]
    rank: Literal["low", "medium", "high"]


@dataclass(frozen=True)
class VolatilityLevel:
    level: Literal["low", "medium", "high", "unknown"]
    recommendation: Literal["good", "caution", "avoid"]
    value_pct: float = 0.0


@dataclass(frozen=True)
class VolumeTrend:
    trend: Literal["increasing", "decreasing", "neutral", "unknown"]
    strength: float = 0.0
    ratio: float = 0.0
    current: float = 0.0
    average: float = 0.0


# ── Trend models ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrendStructure:
    """Counts of swing points confirming an up- or down-move."""

    bullish_signals: int = 0
    bearish_signals: int = 0


@dataclass(frozen=True)
class TimeFrameTrend:
    direction: Direction = "neutral"
    strength: float = 0.0
    confidence: float = 0.0
    price_change: float = 0.0
    structure: TrendStructure = field(default_factory=TrendStructure)
    volatility: float = 0.0


@dataclass(frozen=True)
class EmaAlignment:
    direction: Direction
    bullish_signals: int
    bearish_signals: int
    confidence: float


@dataclass(frozen=True)
class TrendAssessment:
    """Multi-timeframe long-term trend verdict."""

    direction: Direction = "neutral"
    strength: float = 0.0
    confidence: float = 0.0
    recommendation: str = "insufficient_data"
    time_frames: dict[str, TimeFrameTrend] = field(default_factory=dict)
    ema_alignment: Optional[EmaAlignment] = None
    ema_values: dict[str, float] = field(default_factory=dict)
    data_points: int = 0
    required_data: int = 0


@dataclass(frozen=True)
class ShortTermTrend:
    direction: Direction = "neutral"
    strength: float = 0.0
    quality: Literal["low", "medium", "high"] = "low"
    change_pct: float = 0.0
    higher_highs: int = 0
    lower_lows: int = 0


@dataclass(frozen=True)
class MovingAverageTrend:
    direction: Direction = "neutral"
    strength: float = 0.0


@dataclass(frozen=True)
class TrendOverview:
    """Short-term trend reconciled with the long-term assessment."""

    direction: Direction
    strength: float
    quality: Literal["low", "medium", "high"]
    change_pct: float
    short_term_direction: Direction
    long_term: TrendAssessment
    recommendation: str
    aligned: bool


@dataclass(frozen=True)
class MarketStructure:
    pattern: Literal["uptrend", "downtrend", "sideways", "unknown"] = "unknown"
    strength: float = 0.0
    higher_highs: int = 0
    lower_highs: int = 0
    higher_lows: int = 0
    lower_lows: int = 0


# ── Fused signal ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrendAlignment:
    aligned: bool
    direction: Direction
    score: float


@dataclass(frozen=True)
class FusedSignal:
    """Single directional signal produced by fusing all indicators."""

    signal: SignalDirection = "neutral"
    strength: float = 0.0
    confidence: float = 0.0
    current_price: Optional[float] = None
    rsi_value: Optional[float] = None
    macd_value: Optional[MACDValue] = None
    rsi: Optional[IndicatorSignal] = None
    macd: Optional[IndicatorSignal] = None
    trend: Optional[MovingAverageTrend] = None
    long_term: Optional[TrendAssessment] = None
    bollinger: Optional[BollingerAnalysis] = None
    volume: Optional[VolumeAnalysis] = None
    volatility: Optional[VolatilityAnalysis] = None
    alignment: Optional[TrendAlignment] = None

    def to_dict(self) -> dict:
        return asdict(self)


# ── Instrument metadata ──────────────────────────────────────────────────

INSTRUMENT_DECIMALS: dict[str, int] = {
    "BTCUSDT": 3,
    "ETHUSDT": 2,
    "ETCUSDT": 2,
    "XRPUSDT": 0,
    "ADAUSDT": 1,
    "DOTUSDT": 2,
    "LINKUSDT": 2,
    "LTCUSDT": 3,
    "BCHUSDT": 3,
    "EOSUSDT": 1,
    "TRXUSDT": 0,
    "SOLUSDT": 2,
    "AVAXUSDT": 2,
    "FARTCOINUSDT": 0,
    "BNBUSDT": 3,
    "TRUMPUSDT": 0,
    "TONUSDT": 2,
}

INSTRUMENT_MIN_QTY: dict[str, float] = {
    "BTCUSDT": 0.001,
    "ETHUSDT": 0.01,
    "ETCUSDT": 0.02,
    "XRPUSDT": 5,
    "ADAUSDT": 0.1,
    "DOTUSDT": 0.01,
    "LINKUSDT": 0.01,
    "LTCUSDT": 0.001,
    "BCHUSDT": 0.001,
    "EOSUSDT": 0.1,
    "TRXUSDT": 1,
    "SOLUSDT": 0.01,
    "AVAXUSDT": 0.01,
    "FARTCOINUSDT": 1,
    "BNBUSDT": 0.001,
    "TRUMPUSDT": 1,
    "TONUSDT": 0.01,
}

DEFAULT_DECIMALS = 2
DEFAULT_MIN_QTY = 0.01


def symbol_decimals(symbol: str) -> int:
    """Quantity precision for *symbol* (fallback 2 decimals)."""
    return INSTRUMENT_DECIMALS.get(symbol, DEFAULT_DECIMALS)


def symbol_min_qty(symbol: str) -> float:
    """Minimum order quantity for *symbol* (fallback 0.01)."""
    return INSTRUMENT_MIN_QTY.get(symbol, DEFAULT_MIN_QTY)
