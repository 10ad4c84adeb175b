"""Price history store — bounded, time-ordered candle buffers per key.

Keys are plain symbols (``"BTCUSDT"``) or a symbol plus the daily suffix
(``"BTCUSDT_DAILY"``) for the parallel daily-resolution series.
"""

from collections import deque
from typing import Optional

from trendguard.errors import UnavailablePrice
from trendguard.strategy.models import CandleData


class PriceHistoryStore:
    """Owns one FIFO candle buffer per key.

    Args:
        max_length: Capacity of each buffer; the oldest candle is evicted
            when a new one would exceed it.
    """

    def __init__(self, max_length: int = 500) -> None:
        if max_length <= 0:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self._max_length = max_length
        self._histories: dict[str, deque[CandleData]] = {}

    @property
    def max_length(self) -> int:
        return self._max_length

    def keys(self) -> list[str]:
        return list(self._histories.keys())

    def add_candle(self, key: str, candle: CandleData) -> None:
        """Append *candle* to the buffer for *key*."""
        history = self._histories.get(key)
        if history is None:
            history = deque(maxlen=self._max_length)
            self._histories[key] = history
        history.append(candle)

    def add_candles(self, key: str, candles: list[CandleData]) -> None:
        for candle in candles:
            self.add_candle(key, candle)

    def merge_candle(self, key: str, candle: CandleData) -> bool:
        """Add *candle* keeping timestamps strictly increasing.

        A candle with the same timestamp as the latest one replaces it (an
        in-progress bar being updated); older candles are ignored.
        Returns ``True`` if the buffer changed.
        """
        history = self._histories.get(key)
        if not history or candle.timestamp > history[-1].timestamp:
            self.add_candle(key, candle)
            return True
        if candle.timestamp == history[-1].timestamp:
            history[-1] = candle
            return True
        return False

    def merge_candles(self, key: str, candles: list[CandleData]) -> int:
        """Merge a fetched batch; returns how many candles were applied."""
        return sum(1 for candle in candles if self.merge_candle(key, candle))

    def get_history(self, key: str) -> list[CandleData]:
        """Return a copy of the buffer, oldest-first (empty if unknown)."""
        history = self._histories.get(key)
        return list(history) if history else []

    def get_current_price(self, key: str) -> Optional[float]:
        """Close of the latest candle, or ``None`` when nothing is stored."""
        history = self._histories.get(key)
        if not history:
            return None
        return history[-1].close

    def require_current_price(self, key: str) -> float:
        price = self.get_current_price(key)
        if price is None:
            raise UnavailablePrice(key)
        return price

    def __len__(self) -> int:
        return len(self._histories)
