"""Collaborator data models — records exchanged with market data and execution."""

from dataclasses import dataclass
from typing import Optional

from trendguard.strategy.models import CandleData


@dataclass(frozen=True)
class KlineRecord:
    """A candle as delivered by the market-data collaborator.

    Prices may arrive as strings; ``to_candle`` normalises them.
    """

    start: int
    open: float | str
    high: float | str
    low: float | str
    close: float | str
    volume: float | str
    confirmed: bool = True

    def to_candle(self) -> CandleData:
        return CandleData(
            timestamp=int(self.start),
            open=float(self.open),
            high=float(self.high),
            low=float(self.low),
            close=float(self.close),
            volume=float(self.volume),
        )


@dataclass(frozen=True)
class OrderRequest:
    """A market order with attached protective levels."""

    symbol: str
    side: str  # "Buy" or "Sell"
    quantity: float
    price: float
    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None
    order_type: str = "Market"


@dataclass(frozen=True)
class OrderResult:
    """Acknowledgement for an order placement or a position close."""

    success: bool
    code: int = 0
    message: str = ""
