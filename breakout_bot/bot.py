"""
Trading bot: wires data, engine, risk gate and notifier together and drives
two periodic loops, a slow signal cycle and a fast trailing-stop cycle.
Each loop awaits its tick before sleeping, so ticks of one kind never overlap.
"""

from __future__ import annotations
import asyncio
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from breakout_bot.core.config import Config
from breakout_bot.core.errors import ExchangeError
from breakout_bot.core.types import Balance, Position
from breakout_bot.data.binance_data import BinanceDataService
from breakout_bot.execution.base import ExecutionClient
from breakout_bot.notifications.base import Notifier
from breakout_bot.risk.manager import RiskManager
from breakout_bot.strategies.breakout import BreakoutConfig, BreakoutStrategy
from breakout_bot.utils.timeframes import candles_since

logger = logging.getLogger("breakout_bot.bot")


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class TradingBot:
    """Orchestration loop. Holds no per-symbol state of its own."""

    def __init__(
        self,
        config: Config,
        client: ExecutionClient,
        data: BinanceDataService,
        notifier: Optional[Notifier] = None,
        today: Callable[[], date] = _utc_today,
    ):
        self.config = config
        self.client = client
        self.data = data
        self.notifier = notifier or Notifier()
        self.strategy = BreakoutStrategy(client, BreakoutConfig.from_config(config), self.notifier)
        self.risk = RiskManager(
            position_size_usd=config.position_size_usd,
            max_positions=config.max_positions,
            max_daily_loss_usd=config.max_daily_loss_usd,
            max_drawdown_pct=config.max_drawdown_pct,
            max_leverage=config.max_leverage,
        )
        self.running = False
        self._today = today
        self._tasks: List[asyncio.Task] = []
        self._stop_requested = asyncio.Event()
        self._start_balance: Optional[Decimal] = None
        self._summary_date: Optional[date] = None

    async def _notify(self, notification: Awaitable[None]) -> None:
        try:
            await notification
        except Exception:
            logger.exception("Notification failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        cfg = self.config
        logger.info("Starting breakout bot | mode=%s | testnet=%s | pairs=%s",
                    cfg.trading_mode, cfg.use_testnet, ",".join(cfg.trading_pairs))
        await self.client.initialize()
        balance = await self.client.get_balance()
        logger.info("Initial balance: %.2f %s", balance.total, cfg.quote_asset)
        self._start_balance = balance.total
        self.risk.reset_peak_balance(balance.total, self._today())
        self._summary_date = self._today()
        await self._notify(self.notifier.notify_bot_started(balance.total))

        await self.load_history()

        self.running = True
        self._tasks = [
            asyncio.create_task(self._periodic("signal", self.signal_tick, cfg.signal_interval_seconds)),
            asyncio.create_task(self._periodic("trailing", self.trailing_tick, cfg.trailing_interval_seconds)),
        ]
        logger.info("Bot started")

    async def run(self) -> None:
        """Start, then run until stop is requested (signal handler or emergency stop)."""
        await self.start()
        try:
            await self._stop_requested.wait()
        finally:
            await self.stop()

    def request_stop(self) -> None:
        self._stop_requested.set()

    async def stop(self) -> None:
        if not self.running and not self._tasks:
            return
        logger.info("Stopping bot...")
        self.running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        try:
            balance = await self.client.get_balance()
            start = self._start_balance if self._start_balance is not None else balance.total
            await self._notify(self.notifier.notify_bot_stopped(balance.total, balance.total - start))
        except ExchangeError as e:
            logger.error("Could not read final balance: %s", e)
        finally:
            await self.client.close()
            await self.data.close()
        logger.info("Bot stopped")

    async def _periodic(self, name: str, tick: Callable[[], Awaitable[None]], interval: float) -> None:
        while self.running:
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Error in %s loop", name)
                await self._notify(self.notifier.notify_error(f"{name} loop error: {e}", name))
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def load_history(self) -> None:
        """Backfill every pair; a pair with no data is skipped, not fatal."""
        cfg = self.config
        logger.info("Loading historical data...")
        for symbol in cfg.trading_pairs:
            candles = await self.data.get_candles(symbol, cfg.timeframe, cfg.history_capacity)
            if candles:
                self.strategy.load_history(symbol, candles)
            else:
                logger.warning("No historical data available for %s", symbol)

    async def refresh_history(self) -> None:
        cfg = self.config
        now = datetime.now(timezone.utc)
        for symbol in cfg.trading_pairs:
            try:
                state = self.strategy.state(symbol)
                latest = state.history.latest if state is not None else None
                if latest is None:
                    candles = await self.data.get_candles(symbol, cfg.timeframe, cfg.history_capacity)
                    if candles:
                        self.strategy.load_history(symbol, candles)
                    continue
                elapsed = (now - latest.timestamp).total_seconds()
                count = min(candles_since(cfg.timeframe, elapsed), cfg.history_capacity)
                candles = await self.data.get_candles(symbol, cfg.timeframe, count)
                self.strategy.update_price_history(symbol, candles)
            except Exception:
                logger.exception("Failed to update price history for %s", symbol)

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def signal_tick(self) -> None:
        balance = await self.client.get_balance()
        positions = await self.client.get_open_positions()

        await self._daily_summary(balance)
        self.risk.update_balance(balance, self._today())
        if self.risk.should_stop_trading():
            logger.error("Risk manager triggered emergency stop")
            await self._notify(self.notifier.notify_error("Emergency stop triggered by risk manager", "signal"))
            self.request_stop()
            return

        await self.refresh_history()
        if len(positions) < self.config.max_positions:
            await self._scan_for_entries(balance, positions)

        metrics = self.risk.get_risk_metrics(positions, balance)
        logger.info("Bot status | balance=%.2f | positions=%d | daily_pnl=%.2f | risk=%s",
                    balance.total, metrics.open_positions, metrics.daily_pnl, metrics.risk_score)

    async def _scan_for_entries(self, balance: Balance, positions: List[Position]) -> None:
        held = {p.symbol for p in positions}
        placed = 0
        for symbol in self.config.trading_pairs:
            if symbol in held:
                continue
            if len(positions) + placed >= self.config.max_positions:
                break
            try:
                signal = self.strategy.generate_signal(symbol)
                if signal is None:
                    continue
                quantity = self.risk.calculate_position_size(balance, signal.entry_price, signal.stop_loss)
                margin = self.risk.required_margin(signal.entry_price, quantity)
                if not self.risk.can_open_position(positions, balance, margin):
                    logger.warning("Risk manager rejected signal for %s", symbol)
                    continue
                logger.info("Executing signal for %s", symbol)
                if await self.strategy.execute_signal(signal, quantity):
                    placed += 1
            except Exception:
                logger.exception("Error processing %s", symbol)

    async def trailing_tick(self) -> None:
        await self.strategy.update_trailing_stops()

    async def _daily_summary(self, balance: Balance) -> None:
        today = self._today()
        if self._summary_date is None or today == self._summary_date:
            return
        await self._notify(self.notifier.notify_daily_summary(balance.total, self.risk.daily_pnl()))
        self._summary_date = today

    async def status(self) -> dict:
        balance = await self.client.get_balance()
        positions = await self.client.get_open_positions()
        return {
            "balance": balance.total,
            "positions": [
                {
                    "symbol": p.symbol,
                    "side": p.side.value,
                    "quantity": p.quantity,
                    "entry_price": p.entry_price,
                    "mark_price": p.mark_price,
                    "unrealized_pnl": p.unrealized_pnl,
                }
                for p in positions
            ],
            "daily_pnl": self.risk.daily_pnl(),
            "running": self.running,
        }
