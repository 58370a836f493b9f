"""End-to-end signal generation scenarios for strategies.breakout."""

import asyncio
from decimal import Decimal

import pytest

from breakout_bot.core.types import PriceStructure, SignalSide, Trend
from breakout_bot.indicators import technical
from breakout_bot.indicators.technical import Alignment
from breakout_bot.strategies.breakout import (
    KIND_BREAKOUT,
    KIND_CUMULATIVE,
    KIND_TREND_FOLLOWING,
    TAKE_PROFIT_HIT,
    TRAILING_STOP_HIT,
    BreakoutConfig,
    BreakoutStrategy,
)
from breakout_bot.strategies.state import PositionPhase
from conftest import D, flat_candles, make_candle


def breakout_history():
    """29 flat candles (high 101) then a close at 101 * 1.002 on 2x average volume."""
    candles = flat_candles(29, close=100, high=101, low=99, volume=9)
    candles.append(make_candle(29, D(101) * D("1.002"), high="101.5", low="100", volume=19))
    return candles


def cumulative_history():
    """
    No breakout and no volume spike: a +2.1% move over the last 3 candles on
    window volume 0.25x the 20-candle average. Candle 20 pins resistance at 106.
    """
    candles = []
    for i in range(27):
        high = 106 if i == 20 else "100.5"
        candles.append(make_candle(i, 100, high=high, low="99.5", volume=77))
    candles.append(make_candle(27, 100, high="100.5", low="99.5", volume=17))
    candles.append(make_candle(28, "100.9", high="101.2", low="100", volume=17))
    candles.append(make_candle(29, "102.1", high="102.3", low="100.8", volume=17))
    return candles


@pytest.fixture
def market(monkeypatch):
    """Pin the trend/EMA/structure/RSI readings the filters see."""
    readings = {
        "trend": Trend.UPTREND,
        "aligned": True,
        "structure": PriceStructure.HIGHER_HIGHS,
        "rsi": D(55),
    }
    monkeypatch.setattr(technical, "detect_trend", lambda *a, **k: readings["trend"])
    monkeypatch.setattr(
        technical, "is_ema_aligned",
        lambda history, direction: Alignment(readings["aligned"], "EMA check"),
    )
    monkeypatch.setattr(technical, "detect_price_structure", lambda *a, **k: readings["structure"])
    monkeypatch.setattr(technical, "rsi", lambda *a, **k: readings["rsi"])
    return readings


def make_strategy(exchange, notifier, clock, **overrides):
    return BreakoutStrategy(exchange, BreakoutConfig(**overrides), notifier, clock)


def test_bullish_breakout_on_volume_spike(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    history = breakout_history()
    strategy.load_history("BTC", history)

    signal = strategy.generate_signal("BTC")

    assert signal is not None
    assert signal.side is SignalSide.LONG
    assert signal.entry_price == history[-1].close
    assert signal.stop_loss < signal.entry_price
    assert signal.stop_loss == signal.entry_price * (1 - D("1.5") / 100)
    assert signal.take_profit is None
    assert signal.confidence == Decimal("1.00")
    assert signal.metadata["kind"] == KIND_BREAKOUT
    assert signal.metadata["resistance"] == D(101)


def test_overbought_rsi_vetoes_long(exchange, notifier, clock, market):
    market["rsi"] = D(75)
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", breakout_history())
    assert strategy.generate_signal("BTC") is None


def test_cumulative_move_without_volume_spike(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("ETH", cumulative_history())

    signal = strategy.generate_signal("ETH")

    assert signal is not None
    assert signal.side is SignalSide.LONG
    assert signal.metadata["kind"] == KIND_CUMULATIVE
    assert signal.entry_price == D("102.1")


@pytest.mark.parametrize(
    "trend, structure, aligned",
    [
        (Trend.DOWNTREND, PriceStructure.HIGHER_HIGHS, True),
        (Trend.SIDEWAYS, PriceStructure.HIGHER_HIGHS, True),
        (Trend.UPTREND, PriceStructure.HIGHER_HIGHS, False),
        (Trend.UPTREND, PriceStructure.LOWER_LOWS, True),
        (Trend.UPTREND, PriceStructure.CHOPPY, True),
    ],
)
def test_filters_reject_bullish_breakout(exchange, notifier, clock, market, trend, structure, aligned):
    market.update(trend=trend, structure=structure, aligned=aligned)
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", breakout_history())
    assert strategy.generate_signal("BTC") is None


def test_relaxed_strictness_allows_sideways_cumulative(exchange, notifier, clock, market):
    market["trend"] = Trend.SIDEWAYS

    strict = make_strategy(exchange, notifier, clock)
    strict.load_history("ETH", cumulative_history())
    assert strict.generate_signal("ETH") is None

    relaxed = make_strategy(exchange, notifier, clock, trend_strictness="relaxed_cumulative")
    relaxed.load_history("ETH", cumulative_history())
    assert relaxed.generate_signal("ETH") is not None


def test_relaxed_strictness_keeps_breakouts_strict(exchange, notifier, clock, market):
    market["trend"] = Trend.SIDEWAYS
    strategy = make_strategy(exchange, notifier, clock, trend_strictness="relaxed_cumulative")
    strategy.load_history("BTC", breakout_history())
    assert strategy.generate_signal("BTC") is None


def test_bearish_breakout(exchange, notifier, clock, market):
    market.update(trend=Trend.DOWNTREND, structure=PriceStructure.LOWER_LOWS, rsi=D(40))
    candles = flat_candles(29, close=100, high=101, low=99, volume=9)
    candles.append(make_candle(29, D(99) * D("0.998"), high="100", low="98.5", volume=19))
    strategy = make_strategy(exchange, notifier, clock, take_profit_percent=4)
    strategy.load_history("SOL", candles)

    signal = strategy.generate_signal("SOL")

    assert signal.side is SignalSide.SHORT
    assert signal.stop_loss > signal.entry_price
    assert signal.take_profit == signal.entry_price * (1 - D(4) / 100)


def test_oversold_rsi_vetoes_short(exchange, notifier, clock, market):
    market.update(trend=Trend.DOWNTREND, structure=PriceStructure.LOWER_LOWS, rsi=D(25))
    candles = flat_candles(29, close=100, high=101, low=99, volume=9)
    candles.append(make_candle(29, D(99) * D("0.998"), high="100", low="98.5", volume=19))
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("SOL", candles)
    assert strategy.generate_signal("SOL") is None


def test_tiered_stop_policy(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock, stop_policy="tiered", trailing_stop_tiers={"BTC": 6})
    strategy.load_history("BTC", breakout_history())
    signal = strategy.generate_signal("BTC")
    assert signal.stop_loss == signal.entry_price * (1 - D(6) / 100)


def test_insufficient_history_is_no_signal(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    assert strategy.generate_signal("BTC") is None

    strategy.load_history("BTC", flat_candles(5))
    assert strategy.generate_signal("BTC") is None

    # enough for the length check but not for lookback + 1 levels
    strategy.load_history("BTC", flat_candles(10))
    assert strategy.generate_signal("BTC") is None


def test_invalid_history_only_affects_that_symbol(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    bad = breakout_history()
    bad[10] = make_candle(10, 100, high=98, low=102, volume=9)
    strategy.load_history("BAD", bad)
    strategy.load_history("BTC", breakout_history())

    assert strategy.generate_signal("BAD") is None
    assert strategy.generate_signal("BTC") is not None


def test_no_signal_scan_counter(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", flat_candles(30))
    for _ in range(10):
        assert strategy.generate_signal("BTC") is None
    state = strategy.state("BTC")
    assert state.scan_count == 10
    assert list(state.trend_history) == [Trend.SIDEWAYS] * 10


def test_open_position_blocks_generation(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", breakout_history())
    signal = strategy.generate_signal("BTC")

    assert asyncio.run(strategy.execute_signal(signal))
    assert strategy.phase("BTC") is PositionPhase.OPEN
    assert strategy.generate_signal("BTC") is None


def test_stop_loss_cooldown_window(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", breakout_history())
    exchange.open_position("BTC", SignalSide.LONG, "0.001", 100, mark=95)

    assert asyncio.run(strategy.close_position("BTC", TRAILING_STOP_HIT))
    assert strategy.phase("BTC") is PositionPhase.COOLDOWN

    assert strategy.generate_signal("BTC") is None
    clock.advance(15 * 60 - 1)
    assert strategy.generate_signal("BTC") is None
    clock.advance(1)
    assert strategy.generate_signal("BTC") is not None
    assert strategy.phase("BTC") is PositionPhase.IDLE


def test_take_profit_exit_has_no_cooldown(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", breakout_history())
    exchange.open_position("BTC", SignalSide.LONG, "0.001", 100, mark=110)

    assert asyncio.run(strategy.close_position("BTC", TAKE_PROFIT_HIT))
    assert strategy.phase("BTC") is PositionPhase.IDLE
    assert strategy.generate_signal("BTC") is not None


def trend_following_history():
    """Slow grind up: no breakout or cumulative move, volume spike on the last candle."""
    candles = [
        make_candle(i, D(100) + D("0.01") * i, high=D("100.5") + D("0.01") * i,
                    low=D("99.5") + D("0.01") * i, volume=10)
        for i in range(29)
    ]
    candles.append(make_candle(29, "100.29", high="100.79", low="99.79", volume=20))
    return candles


def test_trend_following_needs_consecutive_trends(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock, enable_trend_following=True)
    strategy.load_history("BTC", trend_following_history())

    assert strategy.generate_signal("BTC") is None
    assert strategy.generate_signal("BTC") is None
    signal = strategy.generate_signal("BTC")

    assert signal is not None
    assert signal.side is SignalSide.LONG
    assert signal.confidence == D("0.65")
    assert signal.metadata["kind"] == KIND_TREND_FOLLOWING


def test_trend_following_disabled_by_default(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock)
    strategy.load_history("BTC", trend_following_history())
    for _ in range(5):
        assert strategy.generate_signal("BTC") is None


def test_trend_following_breaks_on_mixed_trend(exchange, notifier, clock, market):
    strategy = make_strategy(exchange, notifier, clock, enable_trend_following=True)
    strategy.load_history("BTC", trend_following_history())
    strategy.generate_signal("BTC")
    market["trend"] = Trend.SIDEWAYS
    strategy.generate_signal("BTC")
    market["trend"] = Trend.UPTREND
    assert strategy.generate_signal("BTC") is None
