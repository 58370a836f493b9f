"""Unit tests for PriceHistory, TrailingStop, SymbolState and StopPolicy."""

import pytest

from breakout_bot.core.types import PriceHistory, Signal, SignalSide
from breakout_bot.strategies.state import PositionPhase, SymbolState, TrailingStop
from breakout_bot.strategies.stops import StopPolicy
from conftest import D, flat_candles, make_candle


def test_history_merges_by_timestamp():
    history = PriceHistory(10, flat_candles(3))

    added = history.extend([make_candle(1, 50), make_candle(2, 105), make_candle(3, 106)])

    assert added == 1
    closes = [c.close for c in history.candles()]
    assert closes == [D(100), D(100), D(105), D(106)]


def test_history_evicts_oldest():
    history = PriceHistory(5, flat_candles(5))
    history.extend(flat_candles(2, close=110, start=5))
    candles = history.candles()
    assert len(candles) == 5
    assert candles[0].timestamp == make_candle(2, 1).timestamp
    assert history.latest.close == D(110)


def test_history_accepts_unsorted_input():
    history = PriceHistory(10)
    history.replace([make_candle(2, 3), make_candle(0, 1), make_candle(1, 2)])
    assert [c.close for c in history.candles()] == [D(1), D(2), D(3)]


def test_history_capacity_must_be_positive():
    with pytest.raises(ValueError):
        PriceHistory(0)


def test_trailing_stop_long_only_ratchets_up():
    tracker = TrailingStop(SignalSide.LONG, D(100), D(98))
    assert tracker.update(D(110), D(2))
    assert tracker.stop == D("107.8")
    assert not tracker.update(D(105), D(2))
    assert tracker.stop == D("107.8")
    assert tracker.is_hit(D("107.8"))
    assert not tracker.is_hit(D("107.81"))


def test_trailing_stop_keeps_tighter_initial_stop():
    tracker = TrailingStop(SignalSide.LONG, D(100), D(99))
    tracker.update(D(101), D(5))
    assert tracker.extremum == D(101)
    assert tracker.stop == D(99)


def test_trailing_stop_short():
    tracker = TrailingStop(SignalSide.SHORT, D(100), D(102))
    assert tracker.update(D(90), D(2))
    assert tracker.stop == D("91.8")
    assert not tracker.update(D(95), D(2))
    assert tracker.is_hit(D(92))


def test_symbol_state_lifecycle():
    state = SymbolState("BTC", 50)
    assert state.phase is PositionPhase.IDLE

    signal = Signal("BTC", SignalSide.LONG, D(100), D(98), None, D("0.8"), "entry")
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)), signal)
    assert state.phase is PositionPhase.OPEN
    with pytest.raises(RuntimeError):
        state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))

    state.close(1000.0, stop_loss=True)
    assert state.phase is PositionPhase.COOLDOWN
    assert state.active_signal is None and state.trailing_stop is None
    assert state.cooldown_remaining(1300.0, 900) == 600
    assert not state.expire_cooldown(1899.0, 900)
    assert state.expire_cooldown(1900.0, 900)
    assert state.phase is PositionPhase.IDLE
    assert state.cooldown_remaining(1900.0, 900) == 0


def test_non_stop_close_keeps_running_cooldown():
    state = SymbolState("BTC", 50)
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))
    state.close(1000.0, stop_loss=True)

    state.close(1200.0, stop_loss=False)

    assert state.phase is PositionPhase.COOLDOWN
    assert state.cooldown_started_at == 1000.0
    assert state.recently_closed_at == 1200.0


def test_cooldown_position_can_be_adopted():
    state = SymbolState("BTC", 50)
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))
    state.close(1000.0, stop_loss=True)

    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))

    assert state.phase is PositionPhase.OPEN
    assert state.cooldown_started_at is None


def test_attach_signal_requires_open_position():
    state = SymbolState("BTC", 50)
    signal = Signal("BTC", SignalSide.LONG, D(100), D(98), None, D("0.8"), "entry")
    with pytest.raises(RuntimeError):
        state.attach_signal(signal)
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))
    state.attach_signal(signal)
    assert state.active_signal is signal


def test_recently_closed_window():
    state = SymbolState("BTC", 50)
    assert not state.recently_closed(0.0, 30)
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)))
    state.close(100.0, stop_loss=False)
    assert state.recently_closed(129.9, 30)
    assert not state.recently_closed(130.0, 30)


def test_release_returns_open_position_to_idle_without_cooldown():
    state = SymbolState("BTC", 50)
    with pytest.raises(RuntimeError):
        state.release()
    signal = Signal("BTC", SignalSide.LONG, D(100), D(98), None, D("0.8"), "entry")
    state.open(TrailingStop(SignalSide.LONG, D(100), D(98)), signal, now=500.0)
    assert state.opened_at == 500.0

    state.release()

    assert state.phase is PositionPhase.IDLE
    assert state.active_signal is None and state.trailing_stop is None
    assert state.opened_at is None
    assert state.cooldown_started_at is None
    assert state.recently_closed_at is None


def test_flat_stop_policy():
    policy = StopPolicy("1.5")
    assert policy.percent_for("HYPE") == D("1.5")
    assert policy.stop_price("BTC", D(100), is_long=True) == D("98.5")
    assert policy.stop_price("BTC", D(100), is_long=False) == D("101.5")


def test_tiered_stop_policy_falls_back_to_default():
    policy = StopPolicy(2, "tiered", {"hype": 4, "BTC": "1.5"})
    assert policy.percent_for("HYPE") == D(4)
    assert policy.percent_for("btc") == D("1.5")
    assert policy.percent_for("SOL") == D(2)


def test_unknown_stop_policy():
    with pytest.raises(ValueError):
        StopPolicy(2, "adaptive")
