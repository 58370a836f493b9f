"""Notification sink interface. Every method is fire-and-forget."""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from breakout_bot.core.types import Signal, Trade


class Notifier:
    """Default sink: does nothing. Subclasses must not raise."""

    async def notify_position_opened(self, signal: Signal, quantity: Decimal) -> None:
        pass

    async def notify_position_closed(self, trade: Trade) -> None:
        pass

    async def notify_error(self, message: str, context: Optional[str] = None) -> None:
        pass

    async def notify_bot_started(self, balance: Decimal) -> None:
        pass

    async def notify_bot_stopped(self, balance: Decimal, total_pnl: Decimal) -> None:
        pass

    async def notify_daily_summary(self, balance: Decimal, daily_pnl: Decimal) -> None:
        pass
