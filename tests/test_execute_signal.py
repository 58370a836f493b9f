"""execute_signal: sizing, rounding, reconciliation and the phase guards."""

import asyncio

from breakout_bot.core.types import Signal, SignalSide
from breakout_bot.strategies.breakout import TRAILING_STOP_HIT, BreakoutConfig, BreakoutStrategy
from breakout_bot.strategies.state import PositionPhase
from conftest import D


def make_signal(symbol="BTC", side=SignalSide.LONG, entry="43210.6", stop="42500.4", take_profit=None):
    return Signal(symbol, side, D(entry), D(stop),
                  D(take_profit) if take_profit is not None else None, D("0.9"), "test entry")


def make_strategy(exchange, notifier, clock, **overrides):
    return BreakoutStrategy(exchange, BreakoutConfig(**overrides), notifier, clock)


def test_default_sizing_and_rounding(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    signal = make_signal()

    assert asyncio.run(strategy.execute_signal(signal))

    order = exchange.orders[0]
    assert order.side is SignalSide.LONG
    assert order.price == D(43211)
    assert order.quantity == D("0.00023")
    assert not order.reduce_only

    state = strategy.state("BTC")
    assert state.phase is PositionPhase.OPEN
    assert state.active_signal is signal
    assert state.trailing_stop.extremum == D("43210.6")
    assert state.trailing_stop.stop == D(42500)
    assert notifier.kinds() == ["opened"]


def test_explicit_quantity_is_rounded_to_step(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    signal = make_signal("ETH", entry="2250.37", stop="2216.61")

    assert asyncio.run(strategy.execute_signal(signal, D("0.50004")))
    assert exchange.orders[0].quantity == D("0.5")
    assert exchange.orders[0].price == D("2250.4")


def test_existing_exchange_position_is_adopted(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    exchange.open_position("BTC", SignalSide.LONG, "0.001", 43000)
    signal = make_signal()

    assert not asyncio.run(strategy.execute_signal(signal))

    assert exchange.orders == []
    state = strategy.state("BTC")
    assert state.phase is PositionPhase.OPEN
    assert state.active_signal is signal
    assert state.trailing_stop.extremum == D(43000)
    assert state.trailing_stop.stop == D(43000) * (1 - D("1.5") / 100)


def test_opposite_side_position_does_not_take_the_signal(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    exchange.open_position("TEST", SignalSide.SHORT, 1, 100)
    signal = make_signal("TEST", SignalSide.LONG, entry="100", stop="98", take_profit="105")

    assert not asyncio.run(strategy.execute_signal(signal))
    asyncio.run(strategy.update_trailing_stops())

    assert exchange.orders == []
    state = strategy.state("TEST")
    assert state.phase is PositionPhase.OPEN
    assert state.active_signal is None
    assert state.trailing_stop.side is SignalSide.SHORT
    assert state.trailing_stop.stop == D("101.5")


def test_second_signal_blocked_while_open(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    assert asyncio.run(strategy.execute_signal(make_signal()))
    assert not asyncio.run(strategy.execute_signal(make_signal()))
    assert len(exchange.orders) == 1


def test_blocked_during_stop_loss_cooldown(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    assert asyncio.run(strategy.execute_signal(make_signal()))
    exchange.open_position("BTC", SignalSide.LONG, "0.00023", "43210.6", mark=42400)
    assert asyncio.run(strategy.close_position("BTC", TRAILING_STOP_HIT))
    del exchange.positions["BTC"]

    clock.advance(60)
    assert not asyncio.run(strategy.execute_signal(make_signal()))
    assert len(exchange.orders) == 2

    clock.advance(15 * 60)
    assert asyncio.run(strategy.execute_signal(make_signal()))
    assert len(exchange.orders) == 3
    assert strategy.phase("BTC") is PositionPhase.OPEN


def test_zero_quantity_is_reported_not_ordered(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)

    assert not asyncio.run(strategy.execute_signal(make_signal(), D("0.000001")))

    assert exchange.orders == []
    assert strategy.phase("BTC") is PositionPhase.IDLE
    assert notifier.kinds() == ["error"]


def test_rejected_order_leaves_state_idle(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    exchange.fail_orders = True

    assert not asyncio.run(strategy.execute_signal(make_signal()))

    assert strategy.phase("BTC") is PositionPhase.IDLE
    assert strategy.active_signals() == {}
    assert notifier.events[0][2] == "execute_signal"


def test_short_entry(exchange, notifier, clock):
    strategy = make_strategy(exchange, notifier, clock)
    signal = make_signal("SOL", SignalSide.SHORT, entry="98.802", stop="100.284")

    assert asyncio.run(strategy.execute_signal(signal))

    order = exchange.orders[0]
    assert order.side is SignalSide.SHORT
    assert order.price == D("98.80")
    assert order.quantity == D("0.10")
    assert strategy.state("SOL").trailing_stop.stop == D("100.28")
