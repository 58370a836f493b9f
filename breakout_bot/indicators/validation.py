"""Price-history and level sanity checks run before signal generation."""

from __future__ import annotations
from decimal import Decimal
from typing import Sequence

from breakout_bot.core.errors import ValidationError
from breakout_bot.core.types import Candle


def validate_price_history(symbol: str, history: Sequence[Candle], required_periods: int) -> None:
    """Raise ValidationError on empty/short history, non-positive prices, or high < low."""
    if not history:
        raise ValidationError(symbol, [f"No price history for {symbol}"])

    errors: list[str] = []
    if len(history) < required_periods:
        errors.append(f"Insufficient history: {len(history)} < {required_periods} periods")

    for i, candle in enumerate(history):
        if candle.high <= 0 or candle.low <= 0 or candle.close <= 0:
            errors.append(f"Invalid price at index {i}: high={candle.high} low={candle.low} close={candle.close}")
            break
        if candle.high < candle.low:
            errors.append(f"High < Low at index {i}")
            break

    if errors:
        raise ValidationError(symbol, errors)


def validate_support_resistance(symbol: str, support: Decimal, resistance: Decimal) -> None:
    """Both levels positive and support strictly below resistance."""
    errors: list[str] = []
    if support <= 0:
        errors.append(f"Invalid support: {support}")
    if resistance <= 0:
        errors.append(f"Invalid resistance: {resistance}")
    if support >= resistance:
        errors.append(f"Support >= Resistance: {support} >= {resistance}")
    if errors:
        raise ValidationError(symbol, errors)
