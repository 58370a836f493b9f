"""Strategies: base interface, breakout engine, per-symbol state and stop policy."""

from breakout_bot.strategies.base import BaseStrategy
from breakout_bot.strategies.breakout import (
    TAKE_PROFIT_HIT,
    TRAILING_STOP_HIT,
    BreakoutConfig,
    BreakoutStrategy,
)
from breakout_bot.strategies.state import PositionPhase, SymbolState, TrailingStop
from breakout_bot.strategies.stops import StopPolicy

__all__ = [
    "BaseStrategy",
    "BreakoutConfig",
    "BreakoutStrategy",
    "TAKE_PROFIT_HIT",
    "TRAILING_STOP_HIT",
    "PositionPhase",
    "SymbolState",
    "TrailingStop",
    "StopPolicy",
]
