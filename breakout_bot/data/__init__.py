"""Market data: historical candles."""

from breakout_bot.data.binance_data import BinanceDataService, frame_to_candles, klines_to_frame

__all__ = ["BinanceDataService", "frame_to_candles", "klines_to_frame"]
