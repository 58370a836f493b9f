"""
Per-symbol engine state with an explicit position lifecycle:

    IDLE -> OPEN -> (COOLDOWN | IDLE),  COOLDOWN -> IDLE once the window elapses

OPEN carries the trailing stop (and the active signal when one is known);
COOLDOWN carries its start time. Data for one phase never outlives it.
"""

from __future__ import annotations
import asyncio
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from breakout_bot.core.types import PriceHistory, Signal, SignalSide, Trend

TREND_HISTORY_SIZE = 10


class PositionPhase(str, Enum):
    IDLE = "IDLE"
    OPEN = "OPEN"
    COOLDOWN = "COOLDOWN"


@dataclass
class TrailingStop:
    """Highest price since entry for longs (lowest for shorts) and the stop derived from it."""
    side: SignalSide
    extremum: Decimal
    stop: Decimal

    def update(self, mark_price: Decimal, stop_pct: Decimal) -> bool:
        """
        Move the stop if mark_price is a new favorable extreme.
        The stop never moves against the position. Returns True when it moved.
        """
        if self.side is SignalSide.LONG:
            if mark_price <= self.extremum:
                return False
            self.extremum = mark_price
            self.stop = max(self.stop, mark_price * (1 - stop_pct / 100))
            return True
        if mark_price >= self.extremum:
            return False
        self.extremum = mark_price
        self.stop = min(self.stop, mark_price * (1 + stop_pct / 100))
        return True

    def is_hit(self, mark_price: Decimal) -> bool:
        if self.side is SignalSide.LONG:
            return mark_price <= self.stop
        return mark_price >= self.stop


class SymbolState:
    """Everything the engine owns for one symbol."""

    def __init__(self, symbol: str, history_capacity: int):
        self.symbol = symbol
        self.history = PriceHistory(history_capacity)
        self.trend_history: deque[Trend] = deque(maxlen=TREND_HISTORY_SIZE)
        self.scan_count = 0
        self.recently_closed_at: Optional[float] = None
        self.lock = asyncio.Lock()
        self._phase = PositionPhase.IDLE
        self._active_signal: Optional[Signal] = None
        self._trailing_stop: Optional[TrailingStop] = None
        self._cooldown_started_at: Optional[float] = None
        self._opened_at: Optional[float] = None

    # -- phase accessors ---------------------------------------------------

    @property
    def phase(self) -> PositionPhase:
        return self._phase

    @property
    def active_signal(self) -> Optional[Signal]:
        return self._active_signal

    @property
    def trailing_stop(self) -> Optional[TrailingStop]:
        return self._trailing_stop

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    @property
    def cooldown_started_at(self) -> Optional[float]:
        return self._cooldown_started_at

    def cooldown_remaining(self, now: float, window: float) -> float:
        if self._phase is not PositionPhase.COOLDOWN:
            return 0.0
        return max(0.0, self._cooldown_started_at + window - now)

    # -- transitions -------------------------------------------------------

    def open(self, trailing_stop: TrailingStop, signal: Optional[Signal] = None, now: float = 0.0) -> None:
        """Enter OPEN. Allowed from IDLE, or from COOLDOWN when adopting an exchange position."""
        if self._phase is PositionPhase.OPEN:
            raise RuntimeError(f"{self.symbol}: position already open")
        self._phase = PositionPhase.OPEN
        self._opened_at = now
        self._active_signal = signal
        self._trailing_stop = trailing_stop
        self._cooldown_started_at = None
        self._check()

    def attach_signal(self, signal: Signal) -> None:
        if self._phase is not PositionPhase.OPEN:
            raise RuntimeError(f"{self.symbol}: no open position to attach a signal to")
        self._active_signal = signal

    def close(self, now: float, stop_loss: bool) -> None:
        """
        Leave OPEN; a stop-loss exit starts the cooldown window.
        Any other exit returns to IDLE, except that a running cooldown is kept.
        """
        self._active_signal = None
        self._trailing_stop = None
        self._opened_at = None
        self.recently_closed_at = now
        if stop_loss:
            self._phase = PositionPhase.COOLDOWN
            self._cooldown_started_at = now
        elif self._phase is not PositionPhase.COOLDOWN:
            self._phase = PositionPhase.IDLE
            self._cooldown_started_at = None
        self._check()

    def release(self) -> None:
        """OPEN -> IDLE with no exit order and no cooldown; the position is gone from the exchange."""
        if self._phase is not PositionPhase.OPEN:
            raise RuntimeError(f"{self.symbol}: no open position to release")
        self._phase = PositionPhase.IDLE
        self._active_signal = None
        self._trailing_stop = None
        self._opened_at = None
        self._check()

    def expire_cooldown(self, now: float, window: float) -> bool:
        """COOLDOWN -> IDLE once the window has elapsed. Returns True on expiry."""
        if self._phase is PositionPhase.COOLDOWN and now - self._cooldown_started_at >= window:
            self._phase = PositionPhase.IDLE
            self._cooldown_started_at = None
            self._check()
            return True
        return False

    def recently_closed(self, now: float, window: float) -> bool:
        return self.recently_closed_at is not None and now - self.recently_closed_at < window

    def _check(self) -> None:
        if self._phase is PositionPhase.OPEN:
            assert self._trailing_stop is not None and self._cooldown_started_at is None
            assert self._opened_at is not None
        elif self._phase is PositionPhase.COOLDOWN:
            assert self._cooldown_started_at is not None
            assert self._active_signal is None and self._trailing_stop is None
        else:
            assert self._active_signal is None and self._trailing_stop is None
            assert self._cooldown_started_at is None and self._opened_at is None
