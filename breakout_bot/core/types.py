"""
Core data types for candles, signals, positions, and trades.
Prices and volumes are Decimal everywhere.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional


def to_decimal(value) -> Decimal:
    """Convert config floats/ints/strings to Decimal without binary-float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class SignalSide(str, Enum):
    LONG = "BUY"
    SHORT = "SELL"

    @property
    def opposite(self) -> "SignalSide":
        return SignalSide.SHORT if self is SignalSide.LONG else SignalSide.LONG


class Direction(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"

    @property
    def side(self) -> SignalSide:
        return SignalSide.LONG if self is Direction.BULLISH else SignalSide.SHORT


class Trend(str, Enum):
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    SIDEWAYS = "SIDEWAYS"


class PriceStructure(str, Enum):
    HIGHER_HIGHS = "HIGHER_HIGHS"
    LOWER_LOWS = "LOWER_LOWS"
    CHOPPY = "CHOPPY"


@dataclass(frozen=True)
class Candle:
    """OHLCV candle."""
    timestamp: datetime
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    open: Optional[Decimal] = None

    @property
    def typical_price(self) -> Decimal:
        return (self.high + self.low + self.close) / 3


class PriceHistory:
    """
    Bounded candle history for one symbol, oldest first.
    Timestamps strictly increase; overflow evicts the oldest candle.
    """

    def __init__(self, capacity: int, candles: Iterable[Candle] = ()):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._candles: deque[Candle] = deque(maxlen=capacity)
        self.extend(candles)

    @property
    def capacity(self) -> int:
        return self._candles.maxlen or 0

    @property
    def latest(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def __len__(self) -> int:
        return len(self._candles)

    def candles(self) -> List[Candle]:
        return list(self._candles)

    def replace(self, candles: Iterable[Candle]) -> None:
        self._candles.clear()
        self.extend(candles)

    def extend(self, candles: Iterable[Candle]) -> int:
        """
        Merge candles by timestamp. A candle with the newest timestamp replaces
        the in-progress one; older or duplicate candles are ignored.
        Returns the number of candles appended.
        """
        added = 0
        for candle in sorted(candles, key=lambda c: c.timestamp):
            last = self.latest
            if last is None or candle.timestamp > last.timestamp:
                self._candles.append(candle)
                added += 1
            elif candle.timestamp == last.timestamp:
                self._candles[-1] = candle
        return added


@dataclass
class Signal:
    """Entry signal produced by the strategy."""
    symbol: str
    side: SignalSide
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Optional[Decimal]
    confidence: Decimal
    reason: str
    timestamp: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)


@dataclass
class Position:
    """Open position as reported by the exchange."""
    symbol: str
    side: SignalSide
    quantity: Decimal
    entry_price: Decimal
    mark_price: Decimal
    unrealized_pnl: Decimal = Decimal("0")
    leverage: int = 1


@dataclass
class Balance:
    available: Decimal
    total: Decimal
    asset: str = "USDT"


@dataclass
class MarketSnapshot:
    symbol: str
    last: Decimal
    bid: Decimal
    ask: Decimal
    mark_price: Decimal
    timestamp: datetime


@dataclass
class OrderResult:
    """Accepted order."""
    order_id: str
    symbol: str
    side: SignalSide
    price: Decimal
    quantity: Decimal
    reduce_only: bool = False
    status: str = "NEW"


@dataclass
class Trade:
    """Closed position for notifications and session stats."""
    symbol: str
    side: SignalSide
    quantity: Decimal
    entry_price: Decimal
    exit_price: Decimal
    pnl: Decimal
    exit_reason: str
    exit_time: datetime

    @property
    def pnl_pct(self) -> Decimal:
        notional = self.entry_price * self.quantity
        if notional == 0:
            return Decimal("0")
        return self.pnl / notional * 100
