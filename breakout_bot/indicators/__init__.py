"""Indicators: technical analysis over candle history and history validation."""

from breakout_bot.indicators import technical
from breakout_bot.indicators.technical import (
    Alignment,
    BollingerBands,
    MacdAlignment,
    MacdResult,
    MomentumScore,
    atr,
    average_volume,
    bollinger_bands,
    detect_breakout,
    detect_ema_stack,
    detect_price_structure,
    detect_trend,
    ema,
    is_ema_aligned,
    is_macd_aligned,
    is_trend_confirmed,
    is_volume_spike,
    macd,
    min_volume_ratio,
    momentum_score,
    resistance,
    rsi,
    sma,
    support,
    vwap,
)
from breakout_bot.indicators.validation import validate_price_history, validate_support_resistance

__all__ = [
    "technical",
    "Alignment",
    "BollingerBands",
    "MacdAlignment",
    "MacdResult",
    "MomentumScore",
    "atr",
    "average_volume",
    "bollinger_bands",
    "detect_breakout",
    "detect_ema_stack",
    "detect_price_structure",
    "detect_trend",
    "ema",
    "is_ema_aligned",
    "is_macd_aligned",
    "is_trend_confirmed",
    "is_volume_spike",
    "macd",
    "min_volume_ratio",
    "momentum_score",
    "resistance",
    "rsi",
    "sma",
    "support",
    "vwap",
    "validate_price_history",
    "validate_support_resistance",
]
