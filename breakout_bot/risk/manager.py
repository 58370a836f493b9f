"""
Risk manager: portfolio-level gate consulted before each entry.
Position count, available margin, daily loss cap and max drawdown.
Size = position_size_usd / entry; margin = notional / max_leverage.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence

from breakout_bot.core.types import Balance, Position, to_decimal

logger = logging.getLogger("breakout_bot.risk")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class RiskMetrics:
    """Snapshot for status logs."""
    open_positions: int
    total_exposure: Decimal
    unrealized_pnl: Decimal
    daily_pnl: Decimal
    drawdown_pct: Decimal
    margin_usage_pct: Decimal
    risk_score: str


class RiskManager:
    """
    Tracks daily start balance (reset on UTC date change) and peak balance.
    The engine never consults this; the orchestration loop does.
    """

    def __init__(
        self,
        position_size_usd,
        max_positions: int,
        max_daily_loss_usd,
        max_drawdown_pct,
        max_leverage: int = 1,
    ):
        self.position_size_usd = to_decimal(position_size_usd)
        self.max_positions = max_positions
        self.max_daily_loss_usd = to_decimal(max_daily_loss_usd)
        self.max_drawdown_pct = to_decimal(max_drawdown_pct)
        self.max_leverage = max(1, int(max_leverage))
        self._peak_balance: Decimal = ZERO
        self._current_balance: Decimal = ZERO
        self._daily_start_balance: Decimal = ZERO
        self._daily_reset_date: Optional[date] = None

    def reset_peak_balance(self, total, as_of: Optional[date] = None) -> None:
        """Start tracking from total: peak, current and daily start all equal it."""
        total = to_decimal(total)
        self._peak_balance = total
        self._current_balance = total
        self._daily_start_balance = total
        self._daily_reset_date = as_of or datetime.now(timezone.utc).date()

    def update_balance(self, balance: Balance, as_of: Optional[date] = None) -> None:
        """Record latest total balance. A new UTC date restarts the daily P&L."""
        as_of = as_of or datetime.now(timezone.utc).date()
        total = balance.total
        if self._daily_reset_date != as_of:
            self._daily_reset_date = as_of
            self._daily_start_balance = total
        self._current_balance = total
        if total > self._peak_balance:
            self._peak_balance = total

    def daily_pnl(self) -> Decimal:
        return self._current_balance - self._daily_start_balance

    def drawdown_pct(self) -> Decimal:
        if self._peak_balance <= 0:
            return ZERO
        return (self._peak_balance - self._current_balance) / self._peak_balance * HUNDRED

    def calculate_position_size(self, balance: Balance, entry_price: Decimal, stop_loss: Decimal) -> Decimal:
        """
        Quantity for a fixed-dollar position, capped by what the available
        balance can margin at max leverage. Zero stop distance gives zero.
        """
        if entry_price <= 0 or entry_price == stop_loss:
            return ZERO
        quantity = self.position_size_usd / entry_price
        max_notional = balance.available * self.max_leverage
        if quantity * entry_price > max_notional:
            quantity = max(ZERO, max_notional / entry_price)
        return quantity

    def required_margin(self, entry_price: Decimal, quantity: Decimal) -> Decimal:
        return entry_price * quantity / self.max_leverage

    def can_open_position(self, open_positions: Sequence[Position], balance: Balance,
                          required_margin: Decimal) -> bool:
        """True when position count, margin, daily loss and drawdown all allow a new entry."""
        if len(open_positions) >= self.max_positions:
            logger.warning("Max positions reached: %d >= %d", len(open_positions), self.max_positions)
            return False
        if required_margin <= 0:
            logger.warning("Rejected: required margin %s is not positive", required_margin)
            return False
        if required_margin > balance.available:
            logger.warning("Insufficient margin: need %.2f, available %.2f", required_margin, balance.available)
            return False
        if -self.daily_pnl() >= self.max_daily_loss_usd:
            logger.warning("Daily loss cap reached: %.2f >= %.2f", -self.daily_pnl(), self.max_daily_loss_usd)
            return False
        if self.drawdown_pct() >= self.max_drawdown_pct:
            logger.warning("Max drawdown exceeded: %.2f%% >= %.2f%%", self.drawdown_pct(), self.max_drawdown_pct)
            return False
        return True

    def should_stop_trading(self) -> bool:
        """Emergency stop: daily loss cap or max drawdown breached."""
        if -self.daily_pnl() >= self.max_daily_loss_usd:
            logger.error("Emergency stop: daily loss %.2f >= cap %.2f", -self.daily_pnl(), self.max_daily_loss_usd)
            return True
        if self.drawdown_pct() >= self.max_drawdown_pct:
            logger.error("Emergency stop: drawdown %.2f%% >= %.2f%%", self.drawdown_pct(), self.max_drawdown_pct)
            return True
        return False

    def get_risk_metrics(self, positions: Sequence[Position], balance: Balance) -> RiskMetrics:
        exposure = sum((p.quantity * p.mark_price for p in positions), ZERO)
        unrealized = sum((p.unrealized_pnl for p in positions), ZERO)
        margin_used = exposure / self.max_leverage
        margin_usage = margin_used / balance.total * HUNDRED if balance.total > 0 else ZERO

        daily_loss_used = -self.daily_pnl() / self.max_daily_loss_usd * HUNDRED
        drawdown_used = self.drawdown_pct() / self.max_drawdown_pct * HUNDRED
        pressure = max(margin_usage, daily_loss_used, drawdown_used)
        if pressure >= 75:
            score = "HIGH"
        elif pressure >= 40:
            score = "MEDIUM"
        else:
            score = "LOW"

        return RiskMetrics(
            open_positions=len(positions),
            total_exposure=exposure,
            unrealized_pnl=unrealized,
            daily_pnl=self.daily_pnl(),
            drawdown_pct=self.drawdown_pct(),
            margin_usage_pct=margin_usage,
            risk_score=score,
        )
