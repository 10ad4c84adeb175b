"""Trailing stop — distance-based SL tightening for open positions.

Rules:
  - The trailing distance is fixed when trailing is enabled
    (``|entry - stop|``).
  - On a new favourable extreme the candidate stop is
    ``extreme ∓ distance``.
  - The candidate is applied only if it tightens the stop, so a long's
    stop never decreases and a short's never increases.
"""

from datetime import datetime, timezone
from typing import Optional

from trendguard.risk.models import Position


def enable_trailing(position: Position) -> None:
    """Switch trailing on, anchoring the distance and extremes at entry."""
    position.trailing_enabled = True
    position.trailing_distance = abs(position.entry_price - position.stop_loss)
    position.highest_price_seen = position.entry_price
    position.lowest_price_seen = position.entry_price


def update_trailing_stop(
    position: Position,
    current_price: float,
    now: Optional[datetime] = None,
) -> Optional[float]:
    """Evaluate *current_price* and tighten the stop if warranted.

    Returns:
        The new stop-loss if it moved, ``None`` otherwise.
    """
    if not position.trailing_enabled or position.trailing_distance <= 0:
        return None

    candidate: Optional[float] = None
    if position.side == "long":
        highest = position.highest_price_seen or position.entry_price
        if current_price > highest:
            position.highest_price_seen = current_price
            candidate = current_price - position.trailing_distance
            if candidate <= position.stop_loss:
                candidate = None
    else:
        lowest = position.lowest_price_seen or position.entry_price
        if current_price < lowest:
            position.lowest_price_seen = current_price
            candidate = current_price + position.trailing_distance
            if candidate >= position.stop_loss:
                candidate = None

    if candidate is None:
        return None

    position.stop_loss = candidate
    position.stop_loss_updated_at = now or datetime.now(timezone.utc)
    return candidate
