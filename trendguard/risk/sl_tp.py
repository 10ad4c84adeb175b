"""Stop-loss and take-profit calculation — pure math, no I/O.

Fixed-fraction approach:
    SL is placed ``risk_fraction`` away from entry on the loss side.
    TP is ``reward_ratio`` × the SL distance on the profit side.
"""

from dataclasses import dataclass

from trendguard.errors import InvariantViolation
from trendguard.risk.models import Position


@dataclass(frozen=True)
class RiskLevels:
    """Computed stop-loss and take-profit for a trade."""

    sl: float
    tp: float


def _check_side(side: str) -> None:
    if side not in ("long", "short"):
        raise InvariantViolation(f"side must be 'long' or 'short', got {side!r}")


def calculate_stop_loss(entry_price: float, side: str, risk_fraction: float = 0.02) -> float:
    """``entry × (1 - risk)`` for longs, ``entry × (1 + risk)`` for shorts."""
    _check_side(side)
    if entry_price <= 0:
        raise InvariantViolation(f"entry_price must be positive, got {entry_price}")
    if side == "long":
        return entry_price * (1 - risk_fraction)
    return entry_price * (1 + risk_fraction)


def calculate_take_profit(
    entry_price: float, side: str, stop_loss: float, reward_ratio: float = 2.0
) -> float:
    """Target at ``reward_ratio`` × the entry-to-stop distance."""
    _check_side(side)
    distance = abs(entry_price - stop_loss)
    if side == "long":
        return entry_price + distance * reward_ratio
    return entry_price - distance * reward_ratio


def calculate_risk_levels(
    entry_price: float,
    side: str,
    risk_fraction: float = 0.02,
    reward_ratio: float = 2.0,
) -> RiskLevels:
    sl = calculate_stop_loss(entry_price, side, risk_fraction)
    return RiskLevels(sl=sl, tp=calculate_take_profit(entry_price, side, sl, reward_ratio))


def is_valid_stop_loss(side: str, entry_price: float, stop_loss: float) -> bool:
    """A stop must sit on the loss side: below entry for longs, above for shorts."""
    if side == "long":
        return stop_loss < entry_price
    if side == "short":
        return stop_loss > entry_price
    return False


def stop_loss_hit(position: Position, price: float) -> bool:
    if position.side == "long":
        return price <= position.stop_loss
    return price >= position.stop_loss


def take_profit_hit(position: Position, price: float) -> bool:
    if position.side == "long":
        return price >= position.take_profit
    return price <= position.take_profit


def check_exit(position: Position, price: float) -> str | None:
    """``"stop_loss"``, ``"take_profit"`` or ``None``; stop-loss wins ties."""
    if stop_loss_hit(position, price):
        return "stop_loss"
    if take_profit_hit(position, price):
        return "take_profit"
    return None
