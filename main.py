#!/usr/bin/env python3
"""
Breakout Bot CLI: live | scan
Usage:
  python main.py live [--config config.yaml]
  python main.py scan [--config config.yaml]
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from breakout_bot.bot import TradingBot
from breakout_bot.core.config import Config, load_config
from breakout_bot.core.errors import ConfigurationError
from breakout_bot.core.logger import setup_logging
from breakout_bot.core.types import Direction, SignalSide
from breakout_bot.data.binance_data import BinanceDataService
from breakout_bot.execution.base import ExecutionClient
from breakout_bot.execution.binance_futures import BinanceFuturesClient
from breakout_bot.execution.paper import PaperExecutionClient
from breakout_bot.indicators import technical
from breakout_bot.notifications.telegram import TelegramNotifier
from breakout_bot.strategies.breakout import BreakoutConfig, BreakoutStrategy

logger = logging.getLogger("breakout_bot")


def build_client(config: Config, data: BinanceDataService) -> ExecutionClient:
    if config.trading_mode == "live":
        return BinanceFuturesClient(
            config.binance_api_key,
            config.binance_api_secret,
            testnet=config.use_testnet,
            quote_asset=config.quote_asset,
        )
    return PaperExecutionClient(data.get_latest_price, config.paper_balance, config.max_leverage)


async def _live(config: Config) -> int:
    data = BinanceDataService(config.quote_asset)
    client = build_client(config, data)
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id, config.telegram_enabled)
    bot = TradingBot(config, client, data, notifier)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_stop)
        except NotImplementedError:
            # not supported on Windows event loops
            pass
    await bot.run()
    return 0


def run_live(config_path: Path | None) -> int:
    """Run the bot until SIGINT/SIGTERM or an emergency stop."""
    try:
        config = load_config(config_path, ROOT)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    setup_logging(config.log_level, config.log_dir, config.log_file)
    try:
        return asyncio.run(_live(config))
    except KeyboardInterrupt:
        logger.info("Shutdown by user")
        return 0


async def _scan(config: Config) -> int:
    data = BinanceDataService(config.quote_asset)
    client = build_client(config, data)
    strategy = BreakoutStrategy(client, BreakoutConfig.from_config(config))
    try:
        print(f"\n--- Breakout scan ({config.timeframe}) ---")
        for symbol in config.trading_pairs:
            candles = await data.get_candles(symbol, config.timeframe, config.history_capacity)
            if not candles:
                print(f"{symbol:<6} no data")
                continue
            strategy.load_history(symbol, candles)
            sig = strategy.generate_signal(symbol)
            direction = Direction.BULLISH if sig is None or sig.side is SignalSide.LONG else Direction.BEARISH
            avg_volume = technical.average_volume(candles, min(20, len(candles)))
            momentum = technical.momentum_score(candles, candles[-1].volume, avg_volume, direction)
            if sig is None:
                print(f"{symbol:<6} no signal  price={candles[-1].close}  "
                      f"momentum({direction.value})={momentum.score:.2f}")
            else:
                print(f"{symbol:<6} {sig.side.name:<5} entry={sig.entry_price} stop={sig.stop_loss:.4f} "
                      f"confidence={sig.confidence:.2f} momentum={momentum.score:.2f}")
                print(f"       {sig.reason}")
    finally:
        await data.close()
    return 0


def run_scan(config_path: Path | None) -> int:
    """Backfill history and print signals without placing orders."""
    try:
        config = load_config(config_path, ROOT)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    setup_logging(config.log_level, config.log_dir, config.log_file)
    return asyncio.run(_scan(config))


def main() -> int:
    parser = argparse.ArgumentParser(description="Breakout Bot CLI")
    parser.add_argument("mode", choices=["live", "scan"], help="Run the bot or scan once")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    args = parser.parse_args()
    if args.mode == "scan":
        return run_scan(args.config)
    return run_live(args.config)


if __name__ == "__main__":
    exit(main())
