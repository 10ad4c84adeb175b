"""TrendGuard — application configuration.

Loads .env variables into a typed config object, and the tunable
analysis / risk thresholds into a nested ``EngineSettings`` structure.
Every numeric constant used by the analysis pipeline lives here so it can
be overridden from ``trendguard.json`` without touching code.
"""

import dataclasses
import json
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any

from dotenv import load_dotenv


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    symbols: tuple[str, ...]
    short_interval: str
    daily_interval: str
    poll_interval_seconds: int
    initial_balance: float
    settings_path: str
    log_level: str


def _parse(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the variable when a value
    cannot be parsed or the symbol list is empty.
    """
    load_dotenv(dotenv_path=env_path)

    symbols = tuple(
        s.strip().upper()
        for s in os.environ.get("TG_SYMBOLS", "BTCUSDT,ETHUSDT").split(",")
        if s.strip()
    )
    if not symbols:
        raise ValueError("TG_SYMBOLS must name at least one symbol")

    return Config(
        symbols=symbols,
        short_interval=os.environ.get("TG_SHORT_INTERVAL", "5"),
        daily_interval=os.environ.get("TG_DAILY_INTERVAL", "D"),
        poll_interval_seconds=_parse("TG_POLL_INTERVAL_SECONDS", "30", int),
        initial_balance=_parse("TG_INITIAL_BALANCE", "10000", float),
        settings_path=os.environ.get("TG_SETTINGS_PATH", "trendguard.json"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


# ── Tunable settings ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class HistorySettings:
    max_length: int = 500
    short_fetch_count: int = 200
    daily_fetch_count: int = 300
    daily_suffix: str = "_DAILY"


@dataclass(frozen=True)
class IndicatorSettings:
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    atr_period: int = 14
    volume_window: int = 20
    volatility_window: int = 20
    volatility_rank_min_history: int = 100
    volatility_rank_low: float = 0.2
    volatility_rank_high: float = 0.8
    moving_average_periods: tuple[int, ...] = (9, 21, 50)
    # Divergence checks look at this many recent closes / indicator values
    divergence_lookback: int = 20
    divergence_min_points: int = 10
    advanced_min_history: int = 30


@dataclass(frozen=True)
class TrendSettings:
    ema_fast: int = 50
    ema_medium: int = 100
    ema_slow: int = 200
    timeframe_periods: dict[str, int] = field(
        default_factory=lambda: {"short": 20, "medium": 50, "long": 100}
    )
    timeframe_weights: dict[str, float] = field(
        default_factory=lambda: {"short": 0.2, "medium": 0.3, "long": 0.5}
    )
    ema_vote_weight: float = 0.2
    long_term_min_history: int = 200
    daily_analysis_enabled: bool = True
    direction_threshold: float = 0.3
    min_change_intraday: float = 0.02
    daily_threshold_multiplier: float = 2.0
    strong_change_daily: float = 0.15
    volatility_threshold_intraday: float = 0.03
    volatility_threshold_daily: float = 0.05
    high_volatility_factor: float = 0.8
    base_confidence_intraday: float = 50.0
    base_confidence_daily: float = 60.0
    change_confidence_multiplier: float = 500.0
    max_change_confidence: float = 95.0
    strong_move_bonus: float = 10.0
    short_term_window: int = 20
    short_term_min_history: int = 50
    short_term_change_threshold: float = 0.02
    short_term_high_quality: float = 0.05
    structure_window: int = 30
    priority_confidence: float = 50.0
    high_quality_confidence: float = 70.0


@dataclass(frozen=True)
class FusionSettings:
    neutral_baseline_confidence: float = 5.0
    rsi_oversold: float = 25.0
    rsi_overbought: float = 75.0
    rsi_mild_low: tuple[float, float] = (30.0, 35.0)
    rsi_mild_high: tuple[float, float] = (65.0, 70.0)
    rsi_extreme_strength: float = 1.2
    rsi_extreme_confidence: float = 25.0
    rsi_mild_strength: float = 0.8
    rsi_mild_confidence: float = 15.0
    rsi_divergence_strength: float = 1.5
    rsi_divergence_confidence: float = 20.0
    macd_cross_strength: float = 1.0
    macd_cross_confidence: float = 20.0
    macd_histogram_threshold: float = 0.001
    macd_amplified_strength: float = 1.3
    macd_amplified_confidence: float = 10.0
    macd_divergence_strength: float = 1.4
    macd_divergence_confidence: float = 25.0
    trend_strength_weight: float = 1.0
    trend_confidence_weight: float = 15.0
    long_term_weight: float = 2.0
    long_term_confidence_factor: float = 0.8
    strong_recommendation_strength: float = 1.0
    strong_recommendation_confidence: float = 20.0
    moderate_recommendation_strength: float = 0.5
    moderate_recommendation_confidence: float = 10.0
    bollinger_bounce_tolerance: float = 0.001
    bollinger_bounce_min_width: float = 0.02
    bollinger_bounce_strength: float = 1.1
    bollinger_bounce_confidence: float = 20.0
    bollinger_breakout_max_width: float = 0.015
    bollinger_breakout_strength: float = 1.3
    bollinger_breakout_confidence: float = 25.0
    volume_confirmation_ratio: float = 1.5
    volume_strength: float = 0.8
    volume_confidence: float = 15.0
    volume_partial_confidence: float = 8.0
    volume_baseline_confidence: float = 3.0
    volatility_medium_bonus: float = 10.0
    volatility_low_bonus: float = 5.0
    volatility_high_bonus: float = 3.0
    alignment_ratio: float = 0.5
    alignment_strength: float = 0.5
    alignment_confidence: float = 15.0
    contradiction_factor: float = 0.7
    decision_strength: float = 0.4
    decision_confidence: float = 30.0
    veto_confidence: float = 50.0


@dataclass(frozen=True)
class ProfitProtectionSettings:
    enabled: bool = True
    min_profit_percent: float = 2.0
    trend_reversal_threshold: float = 0.4
    critical_reversal_threshold: float = 0.7
    loss_minimization_percent: float = -1.0
    loss_minimization_threshold: float = 0.5
    signal_weight: float = 0.30
    long_term_weight: float = 0.35
    long_term_min_confidence: float = 60.0
    short_term_weight: float = 0.20
    rsi_overbought: float = 75.0
    rsi_oversold: float = 25.0
    rsi_weight: float = 0.075
    macd_weight: float = 0.075
    confidence_weight: float = 0.025
    min_signal_confidence: float = 30.0


@dataclass(frozen=True)
class RiskSettings:
    position_size_fraction: float = 0.05
    min_position_usd: float = 25.0
    max_position_fraction: float = 0.7
    max_strength_multiplier: float = 1.5
    stop_loss_fraction: float = 0.02
    take_profit_fraction: float = 0.04
    reward_ratio: float = 2.0
    max_positions: int = 3
    daily_loss_limit: float = 500.0
    max_drawdown: float = 0.10
    trading_hours_start_utc: int = 0
    trading_hours_end_utc: int = 24
    min_signal_strength: float = 0.4
    min_confidence: float = 40.0
    max_hold_hours: float = 24.0


@dataclass(frozen=True)
class FilterSettings:
    require_volume_confirmation: bool = False
    require_medium_volatility: bool = False
    min_confirming_indicators: int = 2
    avoid_extreme_rsi: bool = False
    extreme_rsi_low: float = 20.0
    extreme_rsi_high: float = 80.0
    prefer_divergence: bool = False
    divergence_strength_trigger: float = 0.8
    divergence_min_confidence: float = 30.0
    min_trend_strength: float = 0.15
    min_bollinger_width: float = 0.005


@dataclass(frozen=True)
class DecisionSettings:
    hold_below_score: float = 40.0
    enter_score: float = 45.0
    long_term_entry_confidence: float = 60.0
    contradiction_confidence: float = 50.0


@dataclass(frozen=True)
class EngineSettings:
    """All tunables of the analysis and risk pipeline."""

    history: HistorySettings = field(default_factory=HistorySettings)
    indicators: IndicatorSettings = field(default_factory=IndicatorSettings)
    trend: TrendSettings = field(default_factory=TrendSettings)
    fusion: FusionSettings = field(default_factory=FusionSettings)
    profit_protection: ProfitProtectionSettings = field(
        default_factory=ProfitProtectionSettings
    )
    risk: RiskSettings = field(default_factory=RiskSettings)
    filters: FilterSettings = field(default_factory=FilterSettings)
    decision: DecisionSettings = field(default_factory=DecisionSettings)


def _overlay(section: Any, overrides: dict, path: str) -> Any:
    """Return a copy of *section* with *overrides* applied.

    Lists are converted to tuples where the default is a tuple so the
    frozen dataclasses stay hashable-friendly.
    """
    known = {f.name: f for f in dataclasses.fields(section)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ValueError(f"Unknown setting '{path}.{key}'")
        current = getattr(section, key)
        if dataclasses.is_dataclass(current):
            if not isinstance(value, dict):
                raise ValueError(f"Setting '{path}.{key}' must be an object")
            changes[key] = _overlay(current, value, f"{path}.{key}")
        elif isinstance(current, tuple) and isinstance(value, list):
            changes[key] = tuple(value)
        else:
            changes[key] = value
    return dataclasses.replace(section, **changes)


def settings_from_dict(data: dict) -> EngineSettings:
    """Build ``EngineSettings`` from a (possibly partial) nested dict."""
    return _overlay(EngineSettings(), data, "settings")


def load_settings(path: str | pathlib.Path | None = None) -> EngineSettings:
    """Load tunables from a JSON file, falling back to defaults.

    A missing file yields the defaults.  Unknown keys raise ``ValueError``
    so typos in the override file do not silently fall back.
    """
    if path is None:
        return EngineSettings()
    p = pathlib.Path(path)
    if not p.exists():
        return EngineSettings()
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{p} must contain a JSON object")
    return settings_from_dict(data)
