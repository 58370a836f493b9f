"""Utils: Telegram transport, timeframes, exchange filters."""

from breakout_bot.utils.telegram import send_telegram
from breakout_bot.utils.timeframes import candles_since, timeframe_minutes, timeframe_seconds
from breakout_bot.utils.exchange_filters import (
    price_increment,
    quantity_step,
    round_price,
    round_quantity,
    round_symbol_price,
    round_symbol_quantity,
)

__all__ = [
    "send_telegram",
    "candles_since",
    "timeframe_minutes",
    "timeframe_seconds",
    "price_increment",
    "quantity_step",
    "round_price",
    "round_quantity",
    "round_symbol_price",
    "round_symbol_quantity",
]
