"""TradingBot orchestration with in-memory exchange and candle feed."""

import asyncio
from datetime import date

import pytest

from breakout_bot.bot import TradingBot
from breakout_bot.core.config import Config
from breakout_bot.core.types import Balance, Signal, SignalSide
from conftest import D, flat_candles, make_candle

DAY = date(2024, 1, 1)


class FakeData:
    def __init__(self, candles=None, failing=()):
        self.candles = candles or {}
        self.failing = set(failing)
        self.requests = []
        self.closed = False

    async def get_candles(self, symbol, interval="5m", count=100):
        self.requests.append((symbol, interval, count))
        if symbol in self.failing:
            raise RuntimeError("feed down")
        return list(self.candles.get(symbol, []))

    async def close(self):
        self.closed = True


class Today:
    def __init__(self, day=DAY):
        self.day = day

    def __call__(self):
        return self.day


def make_config(**overrides):
    params = dict(trading_pairs=["BTC", "ETH"], min_history=50, max_positions=3,
                  signal_interval_seconds=3600, trailing_interval_seconds=3600)
    params.update(overrides)
    return Config(**params)


@pytest.fixture
def data():
    return FakeData()


def make_bot(exchange, data, notifier, today=None, **overrides):
    bot = TradingBot(make_config(**overrides), exchange, data, notifier, today or Today())
    bot.risk.reset_peak_balance(D(1000), DAY)
    return bot


def fixed_signals(*symbols):
    signals = {s: Signal(s, SignalSide.LONG, D(100), D(98), None, D("0.8"), "test") for s in symbols}
    return lambda symbol: signals.get(symbol)


def test_refresh_isolates_failing_symbol(exchange, notifier):
    data = FakeData({"BTC": [make_candle(30, 105)]}, failing={"ETH"})
    bot = make_bot(exchange, data, notifier)
    bot.strategy.load_history("BTC", flat_candles(30))
    bot.strategy.load_history("ETH", flat_candles(30))

    asyncio.run(bot.refresh_history())

    assert len(bot.strategy.state("BTC").history) == 31
    assert bot.strategy.state("BTC").history.latest.close == D(105)
    assert len(bot.strategy.state("ETH").history) == 30


def test_refresh_backfills_unknown_symbol(exchange, notifier):
    data = FakeData({"ETH": flat_candles(40)})
    bot = make_bot(exchange, data, notifier)

    asyncio.run(bot.refresh_history())

    assert len(bot.strategy.state("ETH").history) == 40
    assert ("ETH", "5m", 50) in data.requests
    assert bot.strategy.state("BTC") is None


def test_signal_is_sized_and_executed(exchange, data, notifier, monkeypatch):
    bot = make_bot(exchange, data, notifier)
    monkeypatch.setattr(bot.strategy, "generate_signal", fixed_signals("BTC"))

    asyncio.run(bot.signal_tick())

    (order,) = exchange.orders
    assert order.symbol == "BTC"
    assert order.quantity == D("0.1")


def test_risk_rejection_places_nothing(exchange, data, notifier, monkeypatch):
    exchange.balance = Balance(available=D(0), total=D(1000))
    bot = make_bot(exchange, data, notifier)
    monkeypatch.setattr(bot.strategy, "generate_signal", fixed_signals("BTC", "ETH"))

    asyncio.run(bot.signal_tick())

    assert exchange.orders == []


def test_entries_capped_by_max_positions(exchange, data, notifier, monkeypatch):
    bot = make_bot(exchange, data, notifier, max_positions=1)
    monkeypatch.setattr(bot.strategy, "generate_signal", fixed_signals("BTC", "ETH"))

    asyncio.run(bot.signal_tick())

    assert [o.symbol for o in exchange.orders] == ["BTC"]


def test_held_symbol_is_not_scanned(exchange, data, notifier, monkeypatch):
    exchange.open_position("BTC", SignalSide.LONG, 1, 100)
    bot = make_bot(exchange, data, notifier)
    monkeypatch.setattr(bot.strategy, "generate_signal", fixed_signals("BTC", "ETH"))

    asyncio.run(bot.signal_tick())

    assert [o.symbol for o in exchange.orders] == ["ETH"]


def test_emergency_stop_on_daily_loss(exchange, data, notifier, monkeypatch):
    exchange.balance = Balance(available=D(850), total=D(850))
    bot = make_bot(exchange, data, notifier)
    monkeypatch.setattr(bot.strategy, "generate_signal", fixed_signals("BTC"))

    asyncio.run(bot.signal_tick())

    assert exchange.orders == []
    assert notifier.kinds() == ["error"]
    assert bot._stop_requested.is_set()


def test_start_and_stop(exchange, notifier):
    data = FakeData({"BTC": flat_candles(30), "ETH": flat_candles(30)})
    bot = TradingBot(make_config(), exchange, data, notifier, Today())

    async def scenario():
        await bot.start()
        assert bot.running
        await asyncio.sleep(0)
        await bot.stop()

    asyncio.run(scenario())

    assert exchange.initialized and exchange.closed
    assert data.closed
    assert not bot.running
    assert notifier.kinds()[0] == "started"
    assert notifier.kinds()[-1] == "stopped"
    assert len(bot.strategy.state("BTC").history) == 30


def test_run_returns_after_stop_request(exchange, notifier, data):
    bot = TradingBot(make_config(), exchange, data, notifier, Today())
    bot.request_stop()

    asyncio.run(bot.run())

    assert exchange.closed
    assert "stopped" in notifier.kinds()


def test_daily_summary_on_date_change(exchange, data, notifier):
    today = Today()
    bot = TradingBot(make_config(), exchange, data, notifier, today)

    async def scenario():
        await bot.start()
        today.day = date(2024, 1, 2)
        await bot.signal_tick()
        await bot.stop()

    asyncio.run(scenario())

    assert notifier.kinds().count("daily") == 1


def test_status(exchange, data, notifier):
    exchange.open_position("SOL", SignalSide.SHORT, 2, 100, mark=95, pnl=10)
    bot = make_bot(exchange, data, notifier)

    status = asyncio.run(bot.status())

    assert status["balance"] == D(1000)
    assert status["positions"][0]["side"] == "SELL"
    assert status["positions"][0]["unrealized_pnl"] == D(10)
    assert status["running"] is False
