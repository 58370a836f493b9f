"""Shared fakes: in-memory exchange, recording notifier, controllable clock, candle builders."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pytest

from breakout_bot.core.errors import ExchangeError
from breakout_bot.core.types import Balance, Candle, MarketSnapshot, OrderResult, Position, SignalSide
from breakout_bot.execution.base import ExecutionClient
from breakout_bot.notifications.base import Notifier

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def D(value) -> Decimal:
    return Decimal(str(value))


def make_candle(i: int, close, high=None, low=None, volume=10) -> Candle:
    """Five-minute candle number i; high/low default to the close."""
    close = D(close)
    return Candle(
        timestamp=T0 + timedelta(minutes=5 * i),
        high=D(high) if high is not None else close,
        low=D(low) if low is not None else close,
        close=close,
        volume=D(volume),
    )


def flat_candles(n: int, close=100, high=101, low=99, volume=10, start: int = 0) -> List[Candle]:
    return [make_candle(start + i, close, high, low, volume) for i in range(n)]


def candles_from_closes(closes, volume=10) -> List[Candle]:
    """Candles whose high/low straddle each close by 0.5."""
    return [make_candle(i, c, D(c) + D("0.5"), D(c) - D("0.5"), volume) for i, c in enumerate(closes)]


class FakeExchange(ExecutionClient):
    """Records orders; positions are set by the test."""

    def __init__(self):
        self.positions: dict = {}
        self.orders: List[OrderResult] = []
        self.balance = Balance(available=D(1000), total=D(1000))
        self.fail_orders = False
        self.fail_positions = False
        self.initialized = False
        self.closed = False

    def open_position(self, symbol: str, side: SignalSide, quantity, entry, mark=None, pnl=0) -> Position:
        position = Position(
            symbol=symbol,
            side=side,
            quantity=D(quantity),
            entry_price=D(entry),
            mark_price=D(mark if mark is not None else entry),
            unrealized_pnl=D(pnl),
        )
        self.positions[symbol] = position
        return position

    def set_mark(self, symbol: str, mark) -> None:
        self.positions[symbol].mark_price = D(mark)

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        pos = self.positions[symbol]
        return MarketSnapshot(symbol, pos.mark_price, pos.mark_price, pos.mark_price, pos.mark_price, T0)

    async def get_open_positions(self) -> List[Position]:
        if self.fail_positions:
            raise ExchangeError("positions unavailable")
        return list(self.positions.values())

    async def get_balance(self) -> Balance:
        return self.balance

    async def place_order(self, symbol, side, price, quantity, reduce_only=False) -> OrderResult:
        if self.fail_orders:
            raise ExchangeError("order rejected")
        order = OrderResult(f"fake-{len(self.orders) + 1}", symbol, side, price, quantity, reduce_only)
        self.orders.append(order)
        return order


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.events: list = []
        self.fail = fail

    def _record(self, *event):
        self.events.append(event)
        if self.fail:
            raise RuntimeError("notifier down")

    async def notify_position_opened(self, signal, quantity):
        self._record("opened", signal, quantity)

    async def notify_position_closed(self, trade):
        self._record("closed", trade)

    async def notify_error(self, message, context=None):
        self._record("error", message, context)

    async def notify_bot_started(self, balance):
        self._record("started", balance)

    async def notify_bot_stopped(self, balance, total_pnl):
        self._record("stopped", balance, total_pnl)

    async def notify_daily_summary(self, balance, daily_pnl):
        self._record("daily", balance, daily_pnl)

    def kinds(self) -> List[str]:
        return [e[0] for e in self.events]


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
