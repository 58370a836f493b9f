"""
Historical candles from Binance spot klines. Never raises to the caller:
failures are logged and degrade to an empty result.
"""

from __future__ import annotations
import logging
from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd
from binance import AsyncClient
from binance.exceptions import BinanceAPIException, BinanceRequestException

from breakout_bot.core.types import Candle

logger = logging.getLogger("breakout_bot.data.binance")

KLINE_COLUMNS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_av", "num_trades", "tb_base_av", "tb_quote_av", "ignore",
]

# Markets whose Binance symbol is not <BASE>USDT; None means not listed.
SYMBOL_OVERRIDES: Dict[str, Optional[str]] = {
    "HYPE": None,
}

MAX_KLINES_PER_REQUEST = 1000


def klines_to_frame(raw: list) -> pd.DataFrame:
    """Raw kline rows -> DataFrame[time, open, high, low, close, volume] with string prices."""
    df = pd.DataFrame(raw, columns=KLINE_COLUMNS)
    df["time"] = pd.to_datetime(df["open_time"], unit="ms", utc=True)
    return df[["time", "open", "high", "low", "close", "volume"]]


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    """Decimal candles from a kline frame; prices parsed from their string form."""
    return [
        Candle(
            timestamp=row.time.to_pydatetime(),
            open=Decimal(str(row.open)),
            high=Decimal(str(row.high)),
            low=Decimal(str(row.low)),
            close=Decimal(str(row.close)),
            volume=Decimal(str(row.volume)),
        )
        for row in df.itertuples(index=False)
    ]


class BinanceDataService:
    """Candle fetcher for base-asset symbols ('BTC' -> 'BTCUSDT')."""

    def __init__(self, quote_asset: str = "USDT", client: Optional[AsyncClient] = None):
        self._quote = quote_asset
        self._client = client
        self._owns_client = client is None

    def map_symbol(self, symbol: str) -> Optional[str]:
        symbol = symbol.upper()
        if symbol in SYMBOL_OVERRIDES:
            return SYMBOL_OVERRIDES[symbol]
        return f"{symbol}{self._quote}"

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            self._client = await AsyncClient.create()
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close_connection()
            self._client = None

    async def get_candles(self, symbol: str, interval: str = "5m", count: int = 100) -> List[Candle]:
        """Up to `count` candles, oldest first. Empty list on any failure."""
        market = self.map_symbol(symbol)
        if market is None:
            logger.warning("Symbol %s not available on Binance, skipping historical data", symbol)
            return []
        try:
            client = await self._get_client()
            raw = await client.get_klines(
                symbol=market, interval=interval, limit=min(count, MAX_KLINES_PER_REQUEST)
            )
        except (BinanceAPIException, BinanceRequestException) as e:
            logger.error("Failed to fetch candles for %s: %s", symbol, e)
            return []
        except Exception as e:
            logger.exception("Unexpected error fetching candles for %s: %s", symbol, e)
            return []
        if not raw:
            return []
        candles = frame_to_candles(klines_to_frame(raw))
        logger.debug("Fetched %d candles for %s", len(candles), symbol)
        return candles

    async def get_latest_price(self, symbol: str) -> Optional[Decimal]:
        candles = await self.get_candles(symbol, "1m", 1)
        return candles[-1].close if candles else None

    async def get_24h_stats(self, symbol: str) -> Optional[dict]:
        """24h high, low and volume as Decimals, or None."""
        market = self.map_symbol(symbol)
        if market is None:
            return None
        try:
            client = await self._get_client()
            ticker = await client.get_ticker(symbol=market)
        except (BinanceAPIException, BinanceRequestException, OSError) as e:
            logger.error("Failed to fetch 24h stats for %s: %s", symbol, e)
            return None
        return {
            "high_24h": Decimal(str(ticker["highPrice"])),
            "low_24h": Decimal(str(ticker["lowPrice"])),
            "volume_24h": Decimal(str(ticker["volume"])),
        }
