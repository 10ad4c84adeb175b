"""Collaborator protocols.

The engine talks to the outside world only through these two interfaces,
so any client (a venue REST wrapper, a replay feed, a test double) can
be plugged in.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from trendguard.broker.models import KlineRecord, OrderRequest, OrderResult


@runtime_checkable
class MarketDataProtocol(Protocol):
    """Candle history and current prices."""

    async def fetch_klines(
        self, symbol: str, interval: str, limit: int
    ) -> list[KlineRecord]:
        """Return up to *limit* candles, oldest-first."""
        ...

    async def get_current_price(self, symbol: str) -> Optional[float]:
        """Latest traded price, or ``None`` if unknown."""
        ...


@runtime_checkable
class ExecutionProtocol(Protocol):
    """Order placement and account queries."""

    async def place_order(self, order: OrderRequest) -> OrderResult:
        ...

    async def close_position(self, symbol: str, side: str, quantity: float) -> OrderResult:
        """Close *quantity* of the *side* (``"Buy"``/``"Sell"``) position."""
        ...

    async def get_wallet_balance(self) -> float:
        ...
