"""Internal API routers — /status, /decisions, /positions, /trades, /stats.

Read-only view of a running ``TradingEngine``.  No business logic; every
endpoint delegates to the injected engine and its risk manager.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from trendguard.strategy.decision import Decision

logger = logging.getLogger("trendguard")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_engine = None  # Set via configure_routers()


def configure_routers(engine) -> None:
    """Inject the engine from application startup.

    Args:
        engine: A ``TradingEngine`` instance (or duck-type for tests).
    """
    global _engine  # noqa: PLW0603
    _engine = engine


def _decision_summary(decision: Decision) -> dict:
    signal = decision.signal
    return {
        "symbol": decision.symbol,
        "action": decision.action,
        "confidence": round(decision.confidence, 2),
        "reasoning": decision.reasoning,
        "signal": None if signal is None else {
            "direction": signal.signal,
            "strength": round(signal.strength, 4),
            "confidence": round(signal.confidence, 2),
            "price": signal.current_price,
            "rsi": signal.rsi_value,
            "long_term": signal.long_term.direction if signal.long_term else None,
        },
        "execution": decision.details.get("execution"),
    }


@router.get("/status")
async def get_status():
    """Engine state: running flag, balance, cycle count, risk counters."""
    if _engine is None:
        return {"running": False, "configured": False}
    return {"configured": True, **_engine.status()}


@router.get("/decisions")
async def get_decisions(symbol: Optional[str] = Query(default=None)):
    """Latest decision per symbol."""
    if _engine is None:
        return {"decisions": []}
    decisions = _engine.decisions
    if symbol:
        decisions = [d for d in decisions if d.symbol == symbol.upper()]
    return {"decisions": [_decision_summary(d) for d in decisions]}


@router.get("/positions")
async def get_positions():
    """Open positions with their stop-loss / take-profit details."""
    if _engine is None:
        return {"positions": [], "summary": None}
    risk = _engine.risk
    result = []
    for position in risk.get_active_positions():
        entry = position.to_dict()
        price = _engine.store.get_current_price(position.symbol)
        if price is not None:
            entry["current_price"] = price
            entry["unrealized_pnl"] = position.unrealized_pnl(price)
            entry["pnl_percent"] = position.pnl_percent(price)
        result.append(entry)
    return {"positions": result, "summary": risk.get_positions_summary()}


@router.get("/trades")
async def get_trades(limit: int = Query(default=20, ge=1, le=100)):
    """Most recent closed trades, newest first."""
    if _engine is None:
        return {"trades": [], "total": 0}
    trades = _engine.risk.trades
    recent = list(reversed(trades))[:limit]
    return {"trades": [t.to_dict() for t in recent], "total": len(trades)}


@router.get("/stats")
async def get_stats():
    """Trade statistics plus current portfolio exposure."""
    if _engine is None:
        return {"trading": None, "portfolio": None}
    risk = _engine.risk
    return {
        "trading": risk.get_trading_stats(),
        "portfolio": risk.analyze_portfolio_risk(),
    }
