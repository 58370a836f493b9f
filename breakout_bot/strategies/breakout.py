"""
Breakout strategy: support/resistance breakouts, large single-candle moves and
cumulative multi-candle moves, filtered by trend, EMA alignment, price
structure and RSI. Manages each position through a trailing stop, optional
take-profit and a post-stop-loss cooldown.

generate_signal is pure computation over in-memory history. Everything that
talks to the exchange is async and serialized per symbol by SymbolState.lock.
"""

from __future__ import annotations
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from breakout_bot.core.config import Config
from breakout_bot.core.errors import ExchangeError, InsufficientDataError, ValidationError
from breakout_bot.core.types import (
    Candle,
    Direction,
    Position,
    PriceStructure,
    Signal,
    SignalSide,
    Trade,
    Trend,
    to_decimal,
)
from breakout_bot.execution.base import ExecutionClient
from breakout_bot.indicators import technical
from breakout_bot.indicators.validation import validate_price_history, validate_support_resistance
from breakout_bot.notifications.base import Notifier
from breakout_bot.strategies.base import BaseStrategy
from breakout_bot.strategies.state import PositionPhase, SymbolState, TrailingStop
from breakout_bot.strategies.stops import StopPolicy
from breakout_bot.utils.exchange_filters import round_symbol_price, round_symbol_quantity

logger = logging.getLogger("breakout_bot.strategy")

TRAILING_STOP_HIT = "Trailing stop hit"
TAKE_PROFIT_HIT = "Take profit target reached"

ZERO = Decimal("0")
HUNDRED = Decimal("100")

SCAN_CANDLES = 5
VOLUME_BASELINE = 20
STRUCTURE_LOOKBACK = 10
LARGE_MOVE_PCT = Decimal("5")
CUMULATIVE_MOVE_PCT = Decimal("1.75")
CUMULATIVE_WINDOWS = (2, 3, 4, 5)
CUMULATIVE_MIN_VOLUME_RATIO = Decimal("0.2")
BASE_CONFIDENCE = Decimal("0.70")
CONFIDENCE_BONUS = Decimal("0.10")
TREND_FOLLOWING_CONFIDENCE = Decimal("0.65")
SCAN_SUMMARY_EVERY = 10

KIND_BREAKOUT = "breakout"
KIND_LARGE_MOVE = "large move"
KIND_CUMULATIVE = "cumulative move"
KIND_TREND_FOLLOWING = "trend following"


@dataclass
class BreakoutConfig:
    """Strategy parameters. Numeric fields are coerced to Decimal."""
    lookback_period: int = 10
    history_capacity: int = 250
    volume_multiplier: Decimal = Decimal("1.5")
    breakout_buffer: Decimal = Decimal("0.001")
    trailing_stop_percent: Decimal = Decimal("1.5")
    take_profit_percent: Optional[Decimal] = None
    position_size_usd: Decimal = Decimal("10")
    stop_policy: str = "flat"
    trailing_stop_tiers: dict = field(default_factory=dict)
    trend_strictness: str = "strict"
    rsi_overbought: Decimal = Decimal("70")
    rsi_oversold: Decimal = Decimal("30")
    stop_loss_cooldown_seconds: float = 15 * 60
    close_cooldown_seconds: float = 30
    unfilled_grace_seconds: float = 300
    enable_trend_following: bool = False
    trend_following_sma_period: int = 20
    trend_following_min_consecutive: int = 3
    trend_following_max_distance_pct: Decimal = Decimal("2")

    def __post_init__(self):
        for name in ("volume_multiplier", "breakout_buffer", "trailing_stop_percent",
                     "position_size_usd", "rsi_overbought", "rsi_oversold",
                     "trend_following_max_distance_pct"):
            setattr(self, name, to_decimal(getattr(self, name)))
        if self.take_profit_percent is not None:
            self.take_profit_percent = to_decimal(self.take_profit_percent)

    @classmethod
    def from_config(cls, config: Config) -> "BreakoutConfig":
        return cls(
            lookback_period=config.lookback_period,
            history_capacity=config.history_capacity,
            volume_multiplier=config.volume_multiplier,
            breakout_buffer=config.breakout_buffer,
            trailing_stop_percent=config.trailing_stop_percent,
            take_profit_percent=config.take_profit_percent,
            position_size_usd=config.position_size_usd,
            stop_policy=config.stop_policy,
            trailing_stop_tiers=dict(config.trailing_stop_tiers),
            trend_strictness=config.trend_strictness,
            rsi_overbought=config.rsi_overbought,
            rsi_oversold=config.rsi_oversold,
            stop_loss_cooldown_seconds=config.stop_loss_cooldown_minutes * 60,
            close_cooldown_seconds=config.close_cooldown_seconds,
            unfilled_grace_seconds=config.unfilled_grace_seconds,
            enable_trend_following=config.enable_trend_following,
            trend_following_sma_period=config.trend_following_sma_period,
            trend_following_min_consecutive=config.trend_following_min_consecutive,
            trend_following_max_distance_pct=config.trend_following_max_distance_pct,
        )


@dataclass(frozen=True)
class _Candidate:
    """Candle accepted by the scan, before filters."""
    direction: Direction
    kind: str
    candle: Candle
    candles_ago: int


class BreakoutStrategy(BaseStrategy):
    """
    Signal engine. Owns all per-symbol state; the caller only invokes the
    public operations. `clock` returns epoch seconds and is injectable for tests.
    """

    def __init__(
        self,
        client: ExecutionClient,
        config: BreakoutConfig,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.config = config
        self.notifier = notifier or Notifier()
        self.clock = clock
        self.stops = StopPolicy(config.trailing_stop_percent, config.stop_policy, config.trailing_stop_tiers)
        self._states: Dict[str, SymbolState] = {}

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def _state(self, symbol: str) -> SymbolState:
        state = self._states.get(symbol)
        if state is None:
            state = SymbolState(symbol, self.config.history_capacity)
            self._states[symbol] = state
        return state

    def state(self, symbol: str) -> Optional[SymbolState]:
        return self._states.get(symbol)

    def phase(self, symbol: str) -> PositionPhase:
        state = self._states.get(symbol)
        return state.phase if state is not None else PositionPhase.IDLE

    def active_signals(self) -> Dict[str, Signal]:
        return {
            symbol: state.active_signal
            for symbol, state in self._states.items()
            if state.active_signal is not None
        }

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def load_history(self, symbol: str, candles: Sequence[Candle]) -> None:
        state = self._state(symbol)
        state.history.replace(candles)
        logger.info("Initialized %s with %d historical candles", symbol, len(state.history))

    def update_price_history(self, symbol: str, candles: Sequence[Candle]) -> int:
        state = self._state(symbol)
        added = state.history.extend(candles)
        latest = state.history.latest
        if latest is not None:
            logger.debug("Updated %s: close %s (+%d, %d candles)", symbol, latest.close, added, len(state.history))
        return added

    # ------------------------------------------------------------------
    # Signal generation
    # ------------------------------------------------------------------

    def generate_signal(self, symbol: str) -> Optional[Signal]:
        cfg = self.config
        state = self._states.get(symbol)
        available = len(state.history) if state is not None else 0
        if state is None or available < cfg.lookback_period:
            logger.debug("Insufficient price history for %s: have %d, need %d",
                         symbol, available, cfg.lookback_period)
            return None

        if state.phase is PositionPhase.OPEN:
            logger.debug("Already have an open position for %s - skipping", symbol)
            return None
        if self._in_cooldown(state):
            return None

        history = state.history.candles()
        try:
            validate_price_history(symbol, history, cfg.lookback_period)
            return self._evaluate(state, history)
        except InsufficientDataError as e:
            logger.debug("%s: no signal yet (%s)", symbol, e)
            return None
        except ValidationError as e:
            logger.error("%s: signal generation aborted: %s", symbol, "; ".join(e.errors))
            return None

    def _in_cooldown(self, state: SymbolState) -> bool:
        """True while a stop-loss cooldown is running; clears an expired one."""
        if state.phase is not PositionPhase.COOLDOWN:
            return False
        window = self.config.stop_loss_cooldown_seconds
        now = self.clock()
        if state.expire_cooldown(now, window):
            logger.info("Stop loss cooldown expired for %s", state.symbol)
            return False
        minutes = math.ceil(state.cooldown_remaining(now, window) / 60)
        logger.info("%s blocked by stop loss cooldown - %d min remaining", state.symbol, minutes)
        return True

    def _evaluate(self, state: SymbolState, history: List[Candle]) -> Optional[Signal]:
        cfg = self.config
        symbol = state.symbol

        res = technical.resistance(history, cfg.lookback_period)
        sup = technical.support(history, cfg.lookback_period)
        validate_support_resistance(symbol, sup, res)

        current_price = history[-1].close
        avg_volume = technical.average_volume(history, min(VOLUME_BASELINE, len(history)))
        trend = technical.detect_trend(history, 20, 50)
        structure = technical.detect_price_structure(history, STRUCTURE_LOOKBACK)
        state.trend_history.append(trend)

        candidate = self._scan(history, res, sup, avg_volume)
        if candidate is None:
            if cfg.enable_trend_following:
                signal = self._trend_following_signal(state, history, structure, avg_volume)
                if signal is not None:
                    return signal
            self._log_scan_summary(state, history, res, sup, avg_volume, trend, structure)
            return None

        rejection = self._rejection(candidate, history, trend, structure)
        if rejection is not None:
            logger.info("%s: %s %s REJECTED - %s", symbol, candidate.direction.value, candidate.kind, rejection)
            return None

        return self._build_signal(symbol, history, candidate, trend, structure, res, sup)

    def _scan(self, history: List[Candle], res: Decimal, sup: Decimal,
              avg_volume: Decimal) -> Optional[_Candidate]:
        """Walk the newest candles, newest first; the first qualifying candle wins."""
        cfg = self.config
        current_price = history[-1].close
        last = len(history) - 1
        for i in range(last, last - min(SCAN_CANDLES, len(history)), -1):
            candle = history[i]
            breakout = technical.detect_breakout(candle.close, res, sup, cfg.breakout_buffer)
            spike = technical.is_volume_spike(candle.volume, avg_volume, cfg.volume_multiplier)
            large_move = self._large_move(history, i) if spike else None
            cumulative = self._cumulative_move(history, i, avg_volume)

            if breakout is not None:
                direction, kind = breakout, KIND_BREAKOUT
            elif large_move is not None:
                direction, kind = large_move, KIND_LARGE_MOVE
            elif cumulative is not None:
                direction, kind = cumulative, KIND_CUMULATIVE
            else:
                continue
            if not (spike or cumulative is not None):
                continue

            # the move must not already be reversed through the opposite level
            if direction is Direction.BULLISH and not current_price > sup:
                continue
            if direction is Direction.BEARISH and not current_price < res:
                continue
            return _Candidate(direction, kind, candle, last - i)
        return None

    @staticmethod
    def _large_move(history: List[Candle], i: int) -> Optional[Direction]:
        if i < 1:
            return None
        prev_close = history[i - 1].close
        change = (history[i].close - prev_close) / prev_close * HUNDRED
        if change < -LARGE_MOVE_PCT:
            return Direction.BEARISH
        if change > LARGE_MOVE_PCT:
            return Direction.BULLISH
        return None

    @staticmethod
    def _cumulative_move(history: List[Candle], i: int, avg_volume: Decimal) -> Optional[Direction]:
        """Smallest window of 2-5 candles ending at i with a >1.75% move on enough volume."""
        end_close = history[i].close
        for window in CUMULATIVE_WINDOWS:
            start = i - window + 1
            if start < 0:
                break
            start_close = history[start].close
            change = (end_close - start_close) / start_close * HUNDRED
            if avg_volume <= 0:
                continue
            window_volume = sum((c.volume for c in history[start:i + 1]), ZERO) / window
            if window_volume / avg_volume < CUMULATIVE_MIN_VOLUME_RATIO:
                continue
            if change < -CUMULATIVE_MOVE_PCT:
                return Direction.BEARISH
            if change > CUMULATIVE_MOVE_PCT:
                return Direction.BULLISH
        return None

    def _rejection(self, candidate: _Candidate, history: List[Candle], trend: Trend,
                   structure: PriceStructure) -> Optional[str]:
        """First failing filter as a diagnostic string, or None when all pass."""
        cfg = self.config
        bullish = candidate.direction is Direction.BULLISH

        wanted = Trend.UPTREND if bullish else Trend.DOWNTREND
        if trend is not wanted:
            relaxed = (
                cfg.trend_strictness == "relaxed_cumulative"
                and candidate.kind == KIND_CUMULATIVE
                and trend is Trend.SIDEWAYS
            )
            if not relaxed:
                return f"trend is {trend.value}"

        alignment = technical.is_ema_aligned(history, candidate.direction)
        if not alignment.aligned:
            return alignment.reason

        if structure is PriceStructure.CHOPPY:
            return "market is CHOPPY"
        if bullish and structure is PriceStructure.LOWER_LOWS:
            return "price structure shows LOWER_LOWS"
        if not bullish and structure is PriceStructure.HIGHER_HIGHS:
            return "price structure shows HIGHER_HIGHS"

        rsi_value = technical.rsi(history)
        if bullish and rsi_value > cfg.rsi_overbought:
            return f"RSI {rsi_value:.2f} overbought"
        if not bullish and rsi_value < cfg.rsi_oversold:
            return f"RSI {rsi_value:.2f} oversold"
        return None

    def _take_profit(self, entry: Decimal, side: SignalSide) -> Optional[Decimal]:
        pct = self.config.take_profit_percent
        if pct is None:
            return None
        if side is SignalSide.LONG:
            return entry * (1 + pct / HUNDRED)
        return entry * (1 - pct / HUNDRED)

    def _build_signal(self, symbol: str, history: List[Candle], candidate: _Candidate,
                      trend: Trend, structure: PriceStructure,
                      res: Decimal, sup: Decimal) -> Signal:
        direction = candidate.direction
        side = direction.side
        entry = history[-1].close
        rsi_value = technical.rsi(history)

        confidence = BASE_CONFIDENCE
        atr_value = technical.atr(history, min(14, len(history) - 1))
        if atr_value / entry * HUNDRED > 1:
            confidence += CONFIDENCE_BONUS
        if (direction is Direction.BULLISH and structure is PriceStructure.HIGHER_HIGHS) or \
                (direction is Direction.BEARISH and structure is PriceStructure.LOWER_LOWS):
            confidence += CONFIDENCE_BONUS
        confidence += CONFIDENCE_BONUS  # recent breakout

        signal = Signal(
            symbol=symbol,
            side=side,
            entry_price=entry,
            stop_loss=self.stops.stop_price(symbol, entry, side is SignalSide.LONG),
            take_profit=self._take_profit(entry, side),
            confidence=confidence,
            reason=(
                f"{direction.value} {candidate.kind} in {trend.value}, "
                f"{structure.value} structure, RSI: {rsi_value:.2f}"
            ),
            timestamp=history[-1].timestamp,
            metadata={
                "kind": candidate.kind,
                "trend": trend.value,
                "structure": structure.value,
                "rsi": rsi_value,
                "resistance": res,
                "support": sup,
                "candles_ago": candidate.candles_ago,
            },
        )
        logger.info("Signal generated for %s: %s in %s (%s)", symbol, side.value, trend.value, signal.reason)
        return signal

    # ------------------------------------------------------------------
    # Trend following
    # ------------------------------------------------------------------

    def _has_consecutive_trend(self, state: SymbolState, expected: Trend) -> bool:
        needed = self.config.trend_following_min_consecutive
        if len(state.trend_history) < needed:
            return False
        return all(t is expected for t in list(state.trend_history)[-needed:])

    def _trend_following_signal(self, state: SymbolState, history: List[Candle],
                                structure: PriceStructure, avg_volume: Decimal) -> Optional[Signal]:
        """
        Continuation entry when no breakout fired: N consecutive same-direction
        trend readings, price on the right side of SMA(period), a volume spike on
        the current candle, price close to the recent extreme, and matching structure.
        """
        cfg = self.config
        period = cfg.trend_following_sma_period
        if len(history) < period or avg_volume <= 0:
            return None

        current = history[-1]
        if current.volume / avg_volume < cfg.volume_multiplier:
            return None

        price = current.close
        sma_value = technical.sma([c.close for c in history], period)
        recent = history[-period:]
        recent_high = max(c.high for c in recent)
        recent_low = min(c.low for c in recent)
        max_distance = cfg.trend_following_max_distance_pct / HUNDRED

        if self._has_consecutive_trend(state, Trend.DOWNTREND) and price < sma_value:
            if (recent_high - price) / recent_high <= max_distance and structure is PriceStructure.LOWER_LOWS:
                return self._trend_following(state.symbol, history, SignalSide.SHORT, period)

        if self._has_consecutive_trend(state, Trend.UPTREND) and price > sma_value:
            if (price - recent_low) / recent_low <= max_distance and structure is PriceStructure.HIGHER_HIGHS:
                return self._trend_following(state.symbol, history, SignalSide.LONG, period)
        return None

    def _trend_following(self, symbol: str, history: List[Candle], side: SignalSide, period: int) -> Signal:
        entry = history[-1].close
        rsi_value = technical.rsi(history)
        n = self.config.trend_following_min_consecutive
        if side is SignalSide.LONG:
            reason = f"TREND-FOLLOWING LONG: {n} consecutive UPTREND, price > SMA({period}), HIGHER_HIGHS"
        else:
            reason = f"TREND-FOLLOWING SHORT: {n} consecutive DOWNTREND, price < SMA({period}), LOWER_LOWS"
        signal = Signal(
            symbol=symbol,
            side=side,
            entry_price=entry,
            stop_loss=self.stops.stop_price(symbol, entry, side is SignalSide.LONG),
            take_profit=self._take_profit(entry, side),
            confidence=TREND_FOLLOWING_CONFIDENCE,
            reason=f"{reason}, RSI: {rsi_value:.2f}",
            timestamp=history[-1].timestamp,
            metadata={"kind": KIND_TREND_FOLLOWING, "rsi": rsi_value},
        )
        logger.info("Trend-following %s signal for %s", side.name, symbol)
        return signal

    def _log_scan_summary(self, state: SymbolState, history: List[Candle], res: Decimal, sup: Decimal,
                          avg_volume: Decimal, trend: Trend, structure: PriceStructure) -> None:
        state.scan_count += 1
        if state.scan_count % SCAN_SUMMARY_EVERY:
            return
        price = history[-1].close
        vol_ratio = history[-1].volume / avg_volume if avg_volume > 0 else ZERO
        sustained = technical.min_volume_ratio(history, avg_volume)
        logger.info(
            "%s: No signal - price %.2f, resistance %.2f (%.2f%%), support %.2f (%.2f%%), "
            "vol %.2fx avg (min %.2fx over 3), trend %s, structure %s",
            state.symbol, price,
            res, (res - price) / price * HUNDRED,
            sup, (price - sup) / price * HUNDRED,
            vol_ratio, sustained, trend.value, structure.value,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _notify(self, notification: Awaitable[None]) -> None:
        try:
            await notification
        except Exception:
            logger.exception("Notification failed")

    def _tracker_for(self, symbol: str, side: SignalSide, entry: Decimal) -> TrailingStop:
        stop = self.stops.stop_price(symbol, entry, side is SignalSide.LONG)
        return TrailingStop(side, entry, stop)

    async def execute_signal(self, signal: Signal, quantity: Optional[Decimal] = None) -> bool:
        """
        Place the entry order for signal. Returns True when an order was placed.
        An existing exchange position for the symbol is adopted instead of duplicated.
        """
        state = self._state(signal.symbol)
        async with state.lock:
            return await self._execute(state, signal, quantity)

    async def _execute(self, state: SymbolState, signal: Signal, quantity: Optional[Decimal]) -> bool:
        symbol = signal.symbol
        logger.info("Executing signal for %s: %s @ %s", symbol, signal.side.value, signal.entry_price)

        if state.phase is PositionPhase.OPEN:
            logger.warning("BLOCKED: already have an open position for %s", symbol)
            return False
        if state.phase is PositionPhase.COOLDOWN:
            now = self.clock()
            window = self.config.stop_loss_cooldown_seconds
            if not state.expire_cooldown(now, window):
                minutes = math.ceil(state.cooldown_remaining(now, window) / 60)
                logger.warning("BLOCKED: %s in cooldown - %d min remaining", symbol, minutes)
                return False

        try:
            positions = await self.client.get_open_positions()
            existing = next((p for p in positions if p.symbol == symbol), None)
            if existing is not None:
                logger.warning("BLOCKED: position already exists for %s - tracking it", symbol)
                self._adopt_orphan(state, existing)
                if existing.side is signal.side:
                    state.attach_signal(signal)
                else:
                    logger.warning("Existing %s position for %s opposes the %s signal; signal dropped",
                                   existing.side.name, symbol, signal.side.name)
                return False

            if quantity is None:
                quantity = self.config.position_size_usd / signal.entry_price
                logger.info("Position sizing: $%s / $%s = %s %s",
                            self.config.position_size_usd, signal.entry_price, quantity, symbol)
            quantity = round_symbol_quantity(to_decimal(quantity), symbol)
            if quantity <= 0:
                raise ExchangeError(f"Order quantity for {symbol} rounds to zero")

            entry_price = round_symbol_price(signal.entry_price, symbol)
            stop_price = round_symbol_price(signal.stop_loss, symbol)
            order = await self.client.place_order(symbol, signal.side, entry_price, quantity)
        except ExchangeError as e:
            logger.error("Failed to execute signal for %s: %s", symbol, e)
            await self._notify(self.notifier.notify_error(f"Failed to execute {symbol}: {e}", "execute_signal"))
            return False
        except Exception as e:
            logger.exception("Unexpected error executing signal for %s", symbol)
            await self._notify(self.notifier.notify_error(f"Failed to execute {symbol}: {e}", "execute_signal"))
            return False

        state.open(TrailingStop(signal.side, signal.entry_price, stop_price), signal, now=self.clock())
        logger.info("Order %s placed for %s: %s %s @ %s",
                    order.order_id, symbol, signal.side.value, quantity, entry_price)
        await self._notify(self.notifier.notify_position_opened(signal, quantity))
        return True

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    async def update_trailing_stops(self) -> None:
        """Ratchet stops and fire exits for every exchange position, then release symbols the exchange dropped."""
        try:
            positions = await self.client.get_open_positions()
        except ExchangeError as e:
            logger.error("Failed to fetch positions for trailing stops: %s", e)
            return

        for position in positions:
            try:
                await self._update_position(position)
            except Exception:
                logger.exception("Failed to update trailing stop for %s", position.symbol)

        held = {p.symbol for p in positions}
        for state in list(self._states.values()):
            if state.symbol not in held and state.phase is PositionPhase.OPEN:
                async with state.lock:
                    self._release_if_gone(state)

    def _release_if_gone(self, state: SymbolState) -> None:
        """Return an OPEN symbol to IDLE once the exchange has stopped reporting its position."""
        if state.phase is not PositionPhase.OPEN:
            return
        age = self.clock() - state.opened_at
        if age < self.config.unfilled_grace_seconds:
            return
        logger.warning("No exchange position for %s after %.0fs - releasing it", state.symbol, age)
        state.release()

    async def _update_position(self, position: Position) -> None:
        symbol = position.symbol
        state = self._state(symbol)
        async with state.lock:
            if state.recently_closed(self.clock(), self.config.close_cooldown_seconds):
                logger.debug("Skipping %s: closed moments ago", symbol)
                return

            if state.phase is not PositionPhase.OPEN:
                self._adopt_orphan(state, position)

            tracker = state.trailing_stop
            mark = position.mark_price
            pct = self.stops.percent_for(symbol)
            if tracker.update(mark, pct):
                logger.info("Updated trailing stop for %s: %s (%s%% stop)", symbol, tracker.stop, pct)

            if tracker.is_hit(mark):
                logger.info("Trailing stop hit for %s at %s (stop %s)", symbol, mark, tracker.stop)
                await self._close(state, TRAILING_STOP_HIT)
                return

            signal = state.active_signal
            if signal is not None and signal.take_profit is not None:
                if position.side is SignalSide.LONG:
                    reached = mark >= signal.take_profit
                else:
                    reached = mark <= signal.take_profit
                if reached:
                    logger.info("Take profit hit for %s at %s", symbol, mark)
                    await self._close(state, TAKE_PROFIT_HIT)

    def _adopt_orphan(self, state: SymbolState, position: Position) -> None:
        """Start tracking an exchange position this engine did not open."""
        symbol = position.symbol
        tracker = self._tracker_for(symbol, position.side, position.entry_price)
        signal = None
        take_profit = self._take_profit(position.entry_price, position.side)
        if take_profit is not None:
            signal = Signal(
                symbol=symbol,
                side=position.side,
                entry_price=position.entry_price,
                stop_loss=tracker.stop,
                take_profit=take_profit,
                confidence=ZERO,
                reason="Recovered orphan position",
                metadata={"orphan": True},
            )
        state.open(tracker, signal, now=self.clock())
        logger.warning("Recovered orphan %s position for %s: entry %s, stop %s",
                       position.side.name, symbol, position.entry_price, tracker.stop)

    async def close_position(self, symbol: str, reason: str) -> bool:
        """
        Close symbol's exchange position with a reduce-only order at the mark price.
        A second call within the post-close window is a no-op. Returns True when
        a close order was placed.
        """
        state = self._state(symbol)
        async with state.lock:
            return await self._close(state, reason)

    async def _close(self, state: SymbolState, reason: str) -> bool:
        symbol = state.symbol
        now = self.clock()
        if state.recently_closed(now, self.config.close_cooldown_seconds):
            logger.info("Ignoring close for %s: already closed moments ago", symbol)
            return False

        try:
            positions = await self.client.get_open_positions()
            position = next((p for p in positions if p.symbol == symbol), None)
            if position is None:
                logger.warning("No position found for %s", symbol)
                return False
            close_price = round_symbol_price(position.mark_price, symbol)
            await self.client.place_order(
                symbol, position.side.opposite, close_price, position.quantity, reduce_only=True
            )
        except ExchangeError as e:
            logger.error("Failed to close position for %s: %s", symbol, e)
            await self._notify(self.notifier.notify_error(f"Failed to close {symbol}: {e}", "close_position"))
            return False
        except Exception as e:
            logger.exception("Unexpected error closing position for %s", symbol)
            await self._notify(self.notifier.notify_error(f"Failed to close {symbol}: {e}", "close_position"))
            return False

        state.close(now, stop_loss="stop" in reason.lower())
        trade = Trade(
            symbol=symbol,
            side=position.side,
            quantity=position.quantity,
            entry_price=position.entry_price,
            exit_price=close_price,
            pnl=position.unrealized_pnl,
            exit_reason=reason,
            exit_time=datetime.fromtimestamp(now, tz=timezone.utc),
        )
        logger.info("Closed position for %s: %s (pnl %s)", symbol, reason, position.unrealized_pnl)
        await self._notify(self.notifier.notify_position_closed(trade))
        return True
