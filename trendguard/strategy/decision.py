"""Trade decisions — overall score, recommendation and entry filters.

Turns a ``MarketAnalysis`` (fused signal, trend overview, volatility,
volume, market structure and any open position) into a ``Decision`` with
one of the actions ``buy``, ``sell``, ``hold``, ``close_position`` or
``hold_position``.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from trendguard.config import DecisionSettings, FilterSettings
from trendguard.strategy.models import (
    FusedSignal,
    MarketStructure,
    TrendOverview,
    VolatilityLevel,
    VolumeTrend,
)


@dataclass(frozen=True)
class MarketAnalysis:
    """Everything the decision layer looks at for one symbol."""

    symbol: str
    technical: FusedSignal
    trend: TrendOverview
    volatility: VolatilityLevel
    volume: VolumeTrend
    structure: MarketStructure
    position: dict = field(default_factory=lambda: {"exists": False, "action": "none"})


@dataclass(frozen=True)
class FilterResult:
    passed: bool
    reasons: tuple[str, ...] = ()
    confirming_indicators: int = 0


@dataclass
class Decision:
    """Per-symbol, per-cycle outcome exposed to callers."""

    symbol: str
    action: str
    confidence: float
    reasoning: str
    signal: Optional[FusedSignal] = None
    score: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "action": self.action,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "score": self.score,
            "signal": self.signal.to_dict() if self.signal is not None else None,
            "details": self.details,
        }


# ── Score ────────────────────────────────────────────────────────────────


def calculate_overall_score(analysis: MarketAnalysis) -> float:
    """Weighted 0–100 score.

    Weights: technical 40 %, trend 25 %, volatility 15 %, volume 10 %,
    market structure 10 %.
    """
    score = 0.0
    tech = analysis.technical
    if tech.signal != "neutral":
        score += tech.strength * tech.confidence / 100 * 0.4

    trend = analysis.trend
    if trend.direction != "neutral":
        score += trend.strength * (1.0 if trend.quality == "high" else 0.5) * 0.25

    if analysis.volatility.recommendation == "good":
        score += 0.15
    elif analysis.volatility.recommendation == "caution":
        score += 0.1

    volume = analysis.volume
    if volume.trend == "increasing" and volume.strength > 1.2:
        score += 0.1
    elif volume.strength > 1.5:
        score += 0.05

    if analysis.structure.pattern not in ("sideways", "unknown"):
        score += analysis.structure.strength * 0.1

    # Weights sum to 1.0
    return score * 100


def determine_recommendation(
    analysis: MarketAnalysis, score: float, settings: DecisionSettings
) -> str:
    """Pick an action, giving a confident long-term trend priority."""
    if analysis.position.get("exists"):
        return "close_position" if analysis.position.get("action") == "close" else "hold_position"

    technical = analysis.technical.signal
    long_term = analysis.trend.long_term
    trend_rec = analysis.trend.recommendation

    if long_term.confidence > settings.long_term_entry_confidence:
        if (
            long_term.direction == "bullish"
            and trend_rec in ("strong_buy", "moderate_buy")
            and technical in ("buy", "neutral")
        ):
            return "buy"
        if (
            long_term.direction == "bearish"
            and trend_rec in ("strong_sell", "moderate_sell")
            and technical in ("sell", "neutral")
        ):
            return "sell"

    if long_term.confidence > settings.contradiction_confidence:
        if (long_term.direction == "bullish" and technical == "sell") or (
            long_term.direction == "bearish" and technical == "buy"
        ):
            return "hold"

    if score < settings.hold_below_score:
        return "hold"
    if technical in ("buy", "sell") and score >= settings.enter_score:
        return technical
    return "hold"


# ── Entry filters ────────────────────────────────────────────────────────


def count_confirming_indicators(signal: FusedSignal, side: Optional[str] = None) -> int:
    """Number of components voting for *side* (defaults to the signal's own)."""
    side = side or signal.signal
    if side not in ("buy", "sell"):
        return 0
    direction = "bullish" if side == "buy" else "bearish"
    votes = [
        signal.rsi.signal if signal.rsi else None,
        signal.macd.signal if signal.macd else None,
        signal.trend.direction if signal.trend else None,
        signal.bollinger.signal if signal.bollinger else None,
        signal.volume.obv_trend if signal.volume else None,
    ]
    return sum(1 for v in votes if v == direction)


def apply_entry_filters(
    signal: FusedSignal,
    filters: FilterSettings,
    min_confidence: float,
    side: Optional[str] = None,
) -> FilterResult:
    """Quality gates for entering *side*; every failing gate adds a reason."""
    reasons: list[str] = []

    if signal.confidence < min_confidence:
        reasons.append(f"low confidence {signal.confidence:.1f} < {min_confidence:.1f}")

    if filters.require_volume_confirmation and signal.volume is not None:
        if not signal.volume.volume_confirmation:
            reasons.append("no volume confirmation")

    if filters.require_medium_volatility and signal.volatility is not None:
        if signal.volatility.rank != "medium":
            reasons.append(f"volatility rank {signal.volatility.rank}")

    confirming = count_confirming_indicators(signal, side)
    if filters.min_confirming_indicators and confirming < filters.min_confirming_indicators:
        reasons.append(
            f"confirming indicators {confirming}/{filters.min_confirming_indicators}"
        )

    if filters.avoid_extreme_rsi and signal.rsi_value is not None:
        if signal.rsi_value < filters.extreme_rsi_low or signal.rsi_value > filters.extreme_rsi_high:
            reasons.append(f"extreme RSI {signal.rsi_value:.1f}")

    if filters.prefer_divergence and signal.strength > filters.divergence_strength_trigger:
        has_divergence = (
            signal.rsi is not None and signal.rsi.confidence > filters.divergence_min_confidence
        ) or (
            signal.macd is not None and signal.macd.confidence > filters.divergence_min_confidence
        )
        if not has_divergence:
            reasons.append("strong signal without divergence")

    if signal.trend is not None and signal.trend.strength < filters.min_trend_strength:
        reasons.append(f"weak trend {signal.trend.strength:.2f}")

    if signal.bollinger is not None and signal.bollinger.width < filters.min_bollinger_width:
        reasons.append("Bollinger bands too narrow")

    return FilterResult(
        passed=not reasons, reasons=tuple(reasons), confirming_indicators=confirming
    )


def make_decision(
    analysis: MarketAnalysis,
    decision_settings: DecisionSettings,
    filters: FilterSettings,
    min_confidence: float,
) -> Decision:
    """Score, recommend, and filter entries for one symbol."""
    score = calculate_overall_score(analysis)
    action = determine_recommendation(analysis, score, decision_settings)
    details: dict[str, Any] = {
        "recommendation": action,
        "trend_direction": analysis.trend.direction,
        "trend_recommendation": analysis.trend.recommendation,
        "long_term_direction": analysis.trend.long_term.direction,
        "long_term_confidence": analysis.trend.long_term.confidence,
        "position": analysis.position,
    }
    reasoning = f"score {score:.1f}, technical {analysis.technical.signal}"

    if action in ("buy", "sell"):
        result = apply_entry_filters(analysis.technical, filters, min_confidence, action)
        details["filters"] = {
            "passed": result.passed,
            "reasons": list(result.reasons),
            "confirming_indicators": result.confirming_indicators,
        }
        if not result.passed:
            action = "hold"
            reasoning = "filtered: " + ", ".join(result.reasons)
    elif action == "close_position":
        reasoning = f"position {analysis.position.get('reason', 'close')}"

    return Decision(
        symbol=analysis.symbol,
        action=action,
        confidence=score,
        reasoning=reasoning,
        signal=analysis.technical,
        score=score,
        details=details,
    )
