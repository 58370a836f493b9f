"""Abstract execution interface: account state and order placement."""

from __future__ import annotations
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List

from breakout_bot.core.types import Balance, MarketSnapshot, OrderResult, Position, SignalSide


class ExecutionClient(ABC):
    """
    Async exchange client. Prices and quantities arrive already rounded to the
    venue increment. Failures raise ExchangeError.
    """

    async def initialize(self) -> None:
        """Open connections / load market metadata. Default no-op."""

    async def close(self) -> None:
        """Release connections. Default no-op."""

    @abstractmethod
    async def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        """Last, bid, ask and mark price for symbol."""

    @abstractmethod
    async def get_open_positions(self) -> List[Position]:
        """All non-empty positions."""

    @abstractmethod
    async def get_balance(self) -> Balance:
        """Available and total margin balance."""

    @abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: SignalSide,
        price: Decimal,
        quantity: Decimal,
        reduce_only: bool = False,
    ) -> OrderResult:
        """Place a GTC limit order."""
