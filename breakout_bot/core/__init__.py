"""Core: config, types, errors, logging."""

from breakout_bot.core.config import load_config, validate_config, Config
from breakout_bot.core.errors import (
    BotError,
    ConfigurationError,
    ExchangeError,
    InsufficientDataError,
    ValidationError,
)
from breakout_bot.core.types import (
    Balance,
    Candle,
    Direction,
    MarketSnapshot,
    OrderResult,
    Position,
    PriceHistory,
    PriceStructure,
    Signal,
    SignalSide,
    Trade,
    Trend,
    to_decimal,
)
from breakout_bot.core.logger import setup_logging

__all__ = [
    "load_config",
    "validate_config",
    "Config",
    "BotError",
    "ConfigurationError",
    "ExchangeError",
    "InsufficientDataError",
    "ValidationError",
    "Balance",
    "Candle",
    "Direction",
    "MarketSnapshot",
    "OrderResult",
    "Position",
    "PriceHistory",
    "PriceStructure",
    "Signal",
    "SignalSide",
    "Trade",
    "Trend",
    "to_decimal",
    "setup_logging",
]
