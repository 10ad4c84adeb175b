"""Trade-history statistics — pure functions over closed trades."""

from trendguard.risk.models import TradeRecord


def calculate_trade_stats(trades: list[TradeRecord]) -> dict:
    """Summary statistics for closed trades.

    Returns:
        Dict with ``total_trades``, ``winning_trades``, ``losing_trades``,
        ``win_rate`` (percent), ``total_pnl``, ``avg_win``, ``avg_loss``
        (negative), ``profit_factor`` (``|avg_win / avg_loss|``, 0 when
        there are no losses) and ``max_drawdown`` of the cumulative P&L.
    """
    if not trades:
        return {
            "total_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "total_pnl": 0.0,
            "avg_win": 0.0,
            "avg_loss": 0.0,
            "profit_factor": 0.0,
            "max_drawdown": 0.0,
        }

    pnls = [t.pnl for t in trades]
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p < 0]

    avg_win = sum(winners) / len(winners) if winners else 0.0
    avg_loss = sum(losers) / len(losers) if losers else 0.0

    return {
        "total_trades": len(pnls),
        "winning_trades": len(winners),
        "losing_trades": len(losers),
        "win_rate": len(winners) / len(pnls) * 100,
        "total_pnl": sum(pnls),
        "avg_win": avg_win,
        "avg_loss": avg_loss,
        "profit_factor": abs(avg_win / avg_loss) if avg_loss != 0 else 0.0,
        "max_drawdown": _max_drawdown(pnls),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _max_drawdown(pnls: list[float]) -> float:
    """Largest peak-to-trough decline of the cumulative P&L, as a positive number."""
    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for p in pnls:
        cumulative += p
        peak = max(peak, cumulative)
        max_dd = max(max_dd, peak - cumulative)
    return max_dd
