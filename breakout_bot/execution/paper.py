"""
Paper execution: limit orders fill immediately at their price against a
simulated USD balance. Mark prices come from an async price source.
"""

from __future__ import annotations
import itertools
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional

from breakout_bot.core.errors import ExchangeError
from breakout_bot.core.types import Balance, MarketSnapshot, OrderResult, Position, SignalSide, to_decimal
from breakout_bot.execution.base import ExecutionClient

logger = logging.getLogger("breakout_bot.execution.paper")

PriceSource = Callable[[str], Awaitable[Optional[Decimal]]]


class PaperExecutionClient(ExecutionClient):
    """Simulated account; one netted position per symbol."""

    def __init__(self, price_source: PriceSource, initial_balance=1000, leverage: int = 1):
        self._price_source = price_source
        self._cash = to_decimal(initial_balance)
        self._leverage = leverage
        self._positions: Dict[str, Position] = {}
        self._order_ids = itertools.count(1)
        self.realized_pnl = Decimal("0")

    async def _mark(self, symbol: str, fallback: Decimal) -> Decimal:
        price = await self._price_source(symbol)
        return price if price is not None and price > 0 else fallback

    async def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        price = await self._price_source(symbol)
        if price is None:
            raise ExchangeError(f"{symbol}: no paper price available")
        return MarketSnapshot(
            symbol=symbol, last=price, bid=price, ask=price, mark_price=price,
            timestamp=datetime.now(timezone.utc),
        )

    async def get_open_positions(self) -> List[Position]:
        for pos in self._positions.values():
            pos.mark_price = await self._mark(pos.symbol, pos.mark_price)
            pos.unrealized_pnl = self._pnl(pos, pos.mark_price, pos.quantity)
        return list(self._positions.values())

    async def get_balance(self) -> Balance:
        positions = await self.get_open_positions()
        unrealized = sum((p.unrealized_pnl for p in positions), Decimal("0"))
        margin = sum((p.entry_price * p.quantity / self._leverage for p in positions), Decimal("0"))
        total = self._cash + unrealized
        return Balance(available=total - margin, total=total)

    @staticmethod
    def _pnl(pos: Position, price: Decimal, quantity: Decimal) -> Decimal:
        diff = price - pos.entry_price if pos.side is SignalSide.LONG else pos.entry_price - price
        return diff * quantity

    async def place_order(
        self,
        symbol: str,
        side: SignalSide,
        price: Decimal,
        quantity: Decimal,
        reduce_only: bool = False,
    ) -> OrderResult:
        if quantity <= 0 or price <= 0:
            raise ExchangeError(f"{symbol}: invalid order price={price} qty={quantity}")
        pos = self._positions.get(symbol)
        if reduce_only and (pos is None or pos.side is side):
            raise ExchangeError(f"{symbol}: reduce-only order would open a position")

        remaining = quantity
        if pos is not None and pos.side is not side:
            closed = min(pos.quantity, remaining)
            realized = self._pnl(pos, price, closed)
            self._cash += realized
            self.realized_pnl += realized
            pos.quantity -= closed
            remaining -= closed
            if pos.quantity == 0:
                del self._positions[symbol]
            logger.info("Paper close %s %s @ %s realized=%.4f", closed, symbol, price, realized)

        if remaining > 0 and not reduce_only:
            pos = self._positions.get(symbol)
            if pos is None:
                self._positions[symbol] = Position(
                    symbol=symbol, side=side, quantity=remaining, entry_price=price,
                    mark_price=price, leverage=self._leverage,
                )
            else:
                total_qty = pos.quantity + remaining
                pos.entry_price = (pos.entry_price * pos.quantity + price * remaining) / total_qty
                pos.quantity = total_qty
            logger.info("Paper fill %s %s %s @ %s", side.value, remaining, symbol, price)

        return OrderResult(
            order_id=f"paper-{next(self._order_ids)}",
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            reduce_only=reduce_only,
            status="FILLED",
        )
