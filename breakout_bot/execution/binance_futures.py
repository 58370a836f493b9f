"""
Binance USDT-M Futures execution over python-binance's AsyncClient,
with retry on rate limits.
"""

from __future__ import annotations
import asyncio
import functools
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import aiohttp
from binance import AsyncClient
from binance.exceptions import BinanceAPIException, BinanceRequestException

from breakout_bot.core.errors import ExchangeError
from breakout_bot.core.types import Balance, MarketSnapshot, OrderResult, Position, SignalSide
from breakout_bot.execution.base import ExecutionClient
from breakout_bot.utils.exchange_filters import parse_symbol_filters, round_price, round_quantity

logger = logging.getLogger("breakout_bot.execution.binance")


def retry_on_rate_limit(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator: retry on 429 or 418 (rate limit), wrap remaining API and transport errors in ExchangeError."""
    def decorator(f):
        @functools.wraps(f)
        async def wrapped(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return await f(*args, **kwargs)
                except BinanceAPIException as e:
                    if e.status_code in (429, 418) and attempt < max_retries - 1:
                        delay = base_delay * (2 ** attempt)
                        logger.warning("Rate limited, retry in %.1fs (attempt %d)", delay, attempt + 1)
                        await asyncio.sleep(delay)
                        continue
                    raise ExchangeError(f"{f.__name__}: {e}") from e
                except BinanceRequestException as e:
                    raise ExchangeError(f"{f.__name__}: {e}") from e
                except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                    raise ExchangeError(f"{f.__name__}: {type(e).__name__} {e}") from e
            raise ExchangeError(f"{f.__name__}: retries exhausted")
        return wrapped
    return decorator


class BinanceFuturesClient(ExecutionClient):
    """Binance USDT-M Futures client (testnet and live). Symbols are base assets, e.g. 'BTC'."""

    def __init__(self, api_key: str, api_secret: str, testnet: bool = True, quote_asset: str = "USDT"):
        self._api_key = api_key
        self._api_secret = api_secret
        self._testnet = testnet
        self._quote = quote_asset
        self._client: Optional[AsyncClient] = None
        self._filters: Dict[str, tuple[Decimal, Decimal, Decimal]] = {}

    def market(self, symbol: str) -> str:
        return f"{symbol.upper()}{self._quote}"

    def base_asset(self, market: str) -> str:
        return market[: -len(self._quote)] if market.endswith(self._quote) else market

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            raise ExchangeError("Binance client not initialized; call initialize() first")
        return self._client

    async def initialize(self) -> None:
        try:
            self._client = await AsyncClient.create(self._api_key, self._api_secret, testnet=self._testnet)
            info = await self._client.futures_exchange_info()
        except (BinanceAPIException, BinanceRequestException) as e:
            raise ExchangeError(f"initialize: {e}") from e
        for s in info.get("symbols", []):
            if s.get("quoteAsset") == self._quote:
                self._filters[s["symbol"]] = parse_symbol_filters(s)
        logger.info(
            "Binance Futures: using %s (%d markets)", "TESTNET" if self._testnet else "LIVE", len(self._filters)
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close_connection()
            self._client = None

    @retry_on_rate_limit(max_retries=3)
    async def get_market_snapshot(self, symbol: str) -> MarketSnapshot:
        market = self.market(symbol)
        mark = await self.client.futures_mark_price(symbol=market)
        book = await self.client.futures_orderbook_ticker(symbol=market)
        mark_price = Decimal(str(mark["markPrice"]))
        return MarketSnapshot(
            symbol=symbol,
            last=mark_price,
            bid=Decimal(str(book.get("bidPrice", mark_price))),
            ask=Decimal(str(book.get("askPrice", mark_price))),
            mark_price=mark_price,
            timestamp=datetime.now(timezone.utc),
        )

    @retry_on_rate_limit(max_retries=2)
    async def get_open_positions(self) -> List[Position]:
        positions: List[Position] = []
        for p in await self.client.futures_position_information():
            amt = Decimal(str(p.get("positionAmt", "0")))
            if amt == 0:
                continue
            positions.append(Position(
                symbol=self.base_asset(p["symbol"]),
                side=SignalSide.LONG if amt > 0 else SignalSide.SHORT,
                quantity=abs(amt),
                entry_price=Decimal(str(p.get("entryPrice", "0"))),
                mark_price=Decimal(str(p.get("markPrice", "0"))),
                unrealized_pnl=Decimal(str(p.get("unRealizedProfit", "0"))),
                leverage=int(p.get("leverage", 1)),
            ))
        return positions

    @retry_on_rate_limit(max_retries=2)
    async def get_balance(self) -> Balance:
        account = await self.client.futures_account()
        return Balance(
            available=Decimal(str(account.get("availableBalance", "0"))),
            total=Decimal(str(account.get("totalMarginBalance", "0"))),
            asset=self._quote,
        )

    @retry_on_rate_limit(max_retries=2)
    async def place_order(
        self,
        symbol: str,
        side: SignalSide,
        price: Decimal,
        quantity: Decimal,
        reduce_only: bool = False,
    ) -> OrderResult:
        market = self.market(symbol)
        filters = self._filters.get(market)
        if filters is not None:
            min_qty, lot_step, tick = filters
            price = round_price(price, tick)
            quantity = round_quantity(quantity, lot_step, min_qty)
        if quantity <= 0:
            raise ExchangeError(f"{symbol}: quantity below exchange minimum")
        params = dict(
            symbol=market,
            side=side.value,
            type="LIMIT",
            timeInForce="GTC",
            quantity=str(quantity),
            price=str(price),
        )
        if reduce_only:
            params["reduceOnly"] = "true"
        res = await self.client.futures_create_order(**params)
        logger.info("Order %s %s %s @ %s reduce_only=%s -> %s", side.value, quantity, market, price,
                    reduce_only, res.get("orderId"))
        return OrderResult(
            order_id=str(res.get("orderId")),
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            reduce_only=reduce_only,
            status=str(res.get("status", "NEW")),
        )
