"""Execution: exchange abstraction, Binance Futures and paper implementations."""

from breakout_bot.execution.base import ExecutionClient
from breakout_bot.execution.binance_futures import BinanceFuturesClient
from breakout_bot.execution.paper import PaperExecutionClient

__all__ = ["ExecutionClient", "BinanceFuturesClient", "PaperExecutionClient"]
