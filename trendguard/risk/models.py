"""Risk data models — positions, sizing results and trade records."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Literal, Optional

Side = Literal["long", "short"]


def order_side(side: Side) -> str:
    """Venue order side (``"Buy"`` / ``"Sell"``) that opens *side*."""
    return "Buy" if side == "long" else "Sell"


@dataclass
class Position:
    """An open position owned by the risk manager.

    Mutable: the stop-loss, take-profit and trailing fields move while the
    position is open.
    """

    symbol: str
    side: Side
    size: float
    entry_price: float
    entry_time: datetime
    stop_loss: float
    take_profit: float
    trailing_enabled: bool = False
    trailing_distance: float = 0.0
    highest_price_seen: Optional[float] = None
    lowest_price_seen: Optional[float] = None
    stop_loss_updated_at: Optional[datetime] = None

    def unrealized_pnl(self, price: float) -> float:
        if self.side == "long":
            return (price - self.entry_price) * self.size
        return (self.entry_price - price) * self.size

    def pnl_percent(self, price: float) -> float:
        if self.side == "long":
            return (price - self.entry_price) / self.entry_price * 100
        return (self.entry_price - price) / self.entry_price * 100

    def notional(self) -> float:
        return self.size * self.entry_price

    def to_dict(self) -> dict:
        data = asdict(self)
        data["entry_time"] = self.entry_time.isoformat()
        if self.stop_loss_updated_at is not None:
            data["stop_loss_updated_at"] = self.stop_loss_updated_at.isoformat()
        return data


@dataclass(frozen=True)
class TradeRecord:
    """A closed position moved to trade history."""

    symbol: str
    side: Side
    size: float
    entry_price: float
    exit_price: float
    entry_time: datetime
    exit_time: datetime
    pnl: float
    reason: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["entry_time"] = self.entry_time.isoformat()
        data["exit_time"] = self.exit_time.isoformat()
        return data


@dataclass(frozen=True)
class PositionSize:
    """Sizing result: USD notional and, when a price was given, quantity."""

    usd: float
    quantity: Optional[float] = None


@dataclass(frozen=True)
class CloseInstruction:
    """A request to close the position for *symbol* at *price*."""

    symbol: str
    reason: str
    price: float
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class TradeCheck:
    """Result of ``RiskManager.can_trade``."""

    allowed: bool
    reasons: tuple[str, ...] = ()
    size: Optional[PositionSize] = None
