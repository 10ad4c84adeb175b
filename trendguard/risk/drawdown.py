"""Drawdown tracking and daily P&L counters — pure math, no I/O.

``DrawdownTracker`` follows peak balance and the fractional decline from
it.  ``DailyPnL`` accumulates realized profit and loss for the current UTC
calendar day and resets itself when the day changes.
"""

from datetime import date, datetime, timezone
from typing import Optional


class DrawdownTracker:
    """Tracks balance peaks and computes drawdown.

    The peak starts at 0 and only rises, so the first observed balance
    becomes the peak.

    Args:
        max_drawdown: Fractional drawdown limit (0.10 == 10 %).
    """

    def __init__(self, max_drawdown: float = 0.10) -> None:
        self._peak_balance: float = 0.0
        self._current_balance: float = 0.0
        self._max_drawdown: float = max_drawdown

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, balance: float) -> None:
        """Record *balance*, raising the peak if exceeded."""
        self._current_balance = balance
        if balance > self._peak_balance:
            self._peak_balance = balance

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def peak_balance(self) -> float:
        return self._peak_balance

    @property
    def current_balance(self) -> float:
        return self._current_balance

    @property
    def drawdown(self) -> float:
        """Fractional decline from peak (0.0 when no peak yet)."""
        if self._peak_balance <= 0:
            return 0.0
        return (self._peak_balance - self._current_balance) / self._peak_balance

    @property
    def within_limit(self) -> bool:
        """``True`` while drawdown is below the configured limit."""
        return self.drawdown < self._max_drawdown


class DailyPnL:
    """Per-day realized profit and loss.

    Args:
        loss_limit: Daily loss (positive USD) at which trading stops.
        today: Optional starting date, defaults to the current UTC date.
    """

    def __init__(self, loss_limit: float = 500.0, today: Optional[date] = None) -> None:
        self._loss_limit = loss_limit
        self._date: date = today or datetime.now(timezone.utc).date()
        self.loss: float = 0.0
        self.profit: float = 0.0

    @property
    def date(self) -> date:
        return self._date

    def roll(self, today: Optional[date] = None) -> bool:
        """Reset the counters if *today* differs from the tracked date.

        Returns ``True`` when a reset happened.
        """
        today = today or datetime.now(timezone.utc).date()
        if today == self._date:
            return False
        self._date = today
        self.loss = 0.0
        self.profit = 0.0
        return True

    def record(self, pnl: float, today: Optional[date] = None) -> None:
        """Add a realized *pnl*; losses accumulate as positive amounts."""
        self.roll(today)
        if pnl > 0:
            self.profit += pnl
        else:
            self.loss += abs(pnl)

    def within_limit(self, today: Optional[date] = None) -> bool:
        self.roll(today)
        return self.loss < self._loss_limit
