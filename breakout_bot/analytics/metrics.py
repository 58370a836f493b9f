"""
Session trade statistics: win rate, profit factor, expectancy.
Inputs are per-trade realized PnLs.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence


@dataclass
class SessionSummary:
    """Aggregate stats over closed trades."""
    total_trades: int
    winning_trades: int
    losing_trades: int
    total_pnl: Decimal
    win_rate: float
    profit_factor: float
    expectancy: Decimal


def win_rate(pnls: Sequence[Decimal]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: Sequence[Decimal]) -> float:
    """Gross profit / gross loss. inf with wins and no losses, 0 with neither."""
    wins = sum((p for p in pnls if p > 0), Decimal("0"))
    losses = sum((-p for p in pnls if p < 0), Decimal("0"))
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return float(wins / losses)


def expectancy(pnls: Sequence[Decimal]) -> Decimal:
    """Average PnL per trade."""
    if not pnls:
        return Decimal("0")
    return sum(pnls, Decimal("0")) / len(pnls)


def summarize(pnls: Sequence[Decimal]) -> SessionSummary:
    return SessionSummary(
        total_trades=len(pnls),
        winning_trades=sum(1 for p in pnls if p > 0),
        losing_trades=sum(1 for p in pnls if p < 0),
        total_pnl=sum(pnls, Decimal("0")),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
    )
