"""Analytics: session trade statistics."""

from breakout_bot.analytics.metrics import (
    SessionSummary,
    expectancy,
    profit_factor,
    summarize,
    win_rate,
)

__all__ = ["SessionSummary", "expectancy", "profit_factor", "summarize", "win_rate"]
