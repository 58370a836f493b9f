"""Abstract strategy: history in, signals out, positions managed."""

from __future__ import annotations
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Sequence

from breakout_bot.core.types import Candle, Signal


class BaseStrategy(ABC):
    """Strategy owns per-symbol history and decides entries and exits."""

    @abstractmethod
    def load_history(self, symbol: str, candles: Sequence[Candle]) -> None:
        """Replace history with a historical backfill."""
        pass

    @abstractmethod
    def update_price_history(self, symbol: str, candles: Sequence[Candle]) -> int:
        """Merge freshly fetched candles. Returns the number appended."""
        pass

    @abstractmethod
    def generate_signal(self, symbol: str) -> Optional[Signal]:
        """Evaluate the latest candle. Pure computation, no I/O."""
        pass

    @abstractmethod
    async def execute_signal(self, signal: Signal, quantity: Optional[Decimal] = None) -> bool:
        pass

    @abstractmethod
    async def update_trailing_stops(self) -> None:
        pass

    @abstractmethod
    async def close_position(self, symbol: str, reason: str) -> bool:
        pass
