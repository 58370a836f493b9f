"""
Telegram notifier: HTML messages for entries, exits, errors, and summaries.
Sends run in a worker thread so the event loop never blocks on HTTP.
"""

from __future__ import annotations
import asyncio
import html
import logging
from decimal import Decimal
from typing import List, Optional

from breakout_bot.analytics.metrics import summarize
from breakout_bot.core.types import Signal, SignalSide, Trade
from breakout_bot.notifications.base import Notifier
from breakout_bot.utils.telegram import send_telegram

logger = logging.getLogger("breakout_bot.notifications.telegram")


def _direction(side: SignalSide) -> str:
    return "LONG" if side is SignalSide.LONG else "SHORT"


class TelegramNotifier(Notifier):
    """Telegram sink with session trade stats."""

    def __init__(self, bot_token: str, chat_id: str, enabled: bool = True):
        self._bot_token = bot_token
        self._chat_id = chat_id
        self.enabled = enabled and bool(bot_token) and bool(chat_id)
        self.start_balance: Optional[Decimal] = None
        self._pnls: List[Decimal] = []

    @property
    def closed_pnls(self) -> List[Decimal]:
        return list(self._pnls)

    async def send(self, text: str) -> bool:
        if not self.enabled:
            logger.debug("Telegram disabled, dropping message")
            return False
        try:
            return await asyncio.to_thread(send_telegram, text, self._bot_token, self._chat_id)
        except Exception as e:  # never let a notification failure reach the engine
            logger.error("Telegram dispatch failed: %s", e)
            return False

    async def notify_position_opened(self, signal: Signal, quantity: Decimal) -> None:
        lines = [
            "<b>Position Opened</b>",
            "",
            f"<b>{signal.symbol}</b> {_direction(signal.side)}",
            f"Size: {quantity}",
            f"Entry: ${signal.entry_price:.2f}",
            f"Stop Loss: ${signal.stop_loss:.2f}",
        ]
        if signal.take_profit is not None:
            lines.append(f"Take Profit: ${signal.take_profit:.2f}")
        lines += ["", f"Reason: {html.escape(signal.reason)}"]
        await self.send("\n".join(lines))

    async def notify_position_closed(self, trade: Trade) -> None:
        self._pnls.append(trade.pnl)
        outcome = "WIN" if trade.pnl >= 0 else "LOSS"
        text = "\n".join([
            "<b>Position Closed</b>",
            "",
            f"<b>{trade.symbol}</b> {_direction(trade.side)}",
            f"Close Price: ${trade.exit_price:.2f}",
            f"{outcome} P&amp;L: ${trade.pnl:.2f} ({trade.pnl_pct:.2f}%)",
            "",
            f"Reason: {html.escape(trade.exit_reason)}",
        ])
        await self.send(text)

    async def notify_error(self, message: str, context: Optional[str] = None) -> None:
        lines = ["<b>Error Alert</b>", ""]
        if context:
            lines.append(f"Context: {html.escape(context)}")
        lines += [f"Error: {html.escape(message)}", "", "Please check the bot!"]
        await self.send("\n".join(lines))

    async def notify_bot_started(self, balance: Decimal) -> None:
        self.start_balance = balance
        await self.send(f"<b>Bot Started</b>\n\nBalance: ${balance:.2f}")

    async def notify_bot_stopped(self, balance: Decimal, total_pnl: Decimal) -> None:
        await self.send(f"<b>Bot Stopped</b>\n\nBalance: ${balance:.2f}\nSession P&amp;L: ${total_pnl:.2f}")

    async def notify_daily_summary(self, balance: Decimal, daily_pnl: Decimal) -> None:
        stats = summarize(self._pnls)
        pf = "inf" if stats.profit_factor == float("inf") else f"{stats.profit_factor:.2f}"
        text = "\n".join([
            "<b>Daily Summary</b>",
            "",
            f"Balance: ${balance:.2f}",
            f"Daily P&amp;L: ${daily_pnl:.2f}",
            f"Trades: {stats.total_trades} (W {stats.winning_trades} / L {stats.losing_trades})",
            f"Win rate: {stats.win_rate * 100:.1f}%",
            f"Profit factor: {pf}",
            f"Expectancy: ${stats.expectancy:.2f}",
        ])
        await self.send(text)
