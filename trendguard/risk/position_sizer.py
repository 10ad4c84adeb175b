"""Position sizing — pure math, no I/O.

Sizes a position in USD from balance, signal strength and confidence,
and optionally converts it to an instrument quantity.
"""

import math
from typing import Optional

from trendguard.risk.models import PositionSize
from trendguard.strategy.models import symbol_decimals, symbol_min_qty


def floor_to_decimals(value: float, decimals: int) -> float:
    """Round *value* down to *decimals* places.

    The product is rounded to 9 places first so representation error
    (``0.3 / 0.1 == 2.9999…``) does not drop a whole step.
    """
    factor = 10 ** decimals
    return math.floor(round(value * factor, 9)) / factor


def calculate_position_size(
    balance: float,
    symbol: str,
    signal_strength: float,
    confidence: float = 50.0,
    current_price: Optional[float] = None,
    size_fraction: float = 0.05,
    min_usd: float = 25.0,
    max_fraction: float = 0.7,
    max_multiplier: float = 1.5,
) -> PositionSize:
    """Calculate a position size.

    Formula::

        base_usd     = balance × size_fraction
        adjusted_usd = base_usd × min(strength × 1.5, 1.5) × confidence / 100
        usd          = clamp(adjusted_usd, min_usd, balance × max_fraction)

    When *current_price* is given, ``usd / price`` is floored to the
    instrument's precision and raised to its minimum order quantity.

    Raises:
        ValueError: If *balance* or *current_price* is non-positive.
    """
    if balance <= 0:
        raise ValueError(f"balance must be positive, got {balance}")
    if current_price is not None and current_price <= 0:
        raise ValueError(f"current_price must be positive, got {current_price}")

    base_usd = balance * size_fraction
    multiplier = min(signal_strength * max_multiplier, max_multiplier)
    adjusted = base_usd * multiplier * (confidence / 100.0)

    max_usd = balance * max_fraction
    usd = min(max(adjusted, min_usd), max_usd)

    if current_price is None:
        return PositionSize(usd=usd)

    quantity = floor_to_decimals(usd / current_price, symbol_decimals(symbol))
    quantity = max(quantity, symbol_min_qty(symbol))
    return PositionSize(usd=usd, quantity=quantity)
