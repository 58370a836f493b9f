"""
Technical indicators over candle sequences (oldest first).

Pure functions, Decimal arithmetic throughout. Every function that needs a
minimum window raises InsufficientDataError when the input is shorter.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from breakout_bot.core.errors import InsufficientDataError
from breakout_bot.core.types import Candle, Direction, PriceStructure, Trend, to_decimal

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Momentum score weights
W_TREND = Decimal("0.35")
W_RSI = Decimal("0.25")
W_MACD = Decimal("0.20")
W_VOLUME = Decimal("0.10")
W_VWAP = Decimal("0.10")
NEUTRAL = Decimal("0.5")


def _require(available: int, required: int, what: str) -> None:
    if available < required:
        raise InsufficientDataError(required, available, what)


def _closes(history: Sequence[Candle]) -> list[Decimal]:
    return [c.close for c in history]


def _highest(candles: Sequence[Candle]) -> Decimal:
    return max(c.high for c in candles)


def _lowest(candles: Sequence[Candle]) -> Decimal:
    return min(c.low for c in candles)


# ---------------------------------------------------------------------------
# Levels and volume
# ---------------------------------------------------------------------------

def resistance(history: Sequence[Candle], lookback: int) -> Decimal:
    """
    Highest high over the `lookback` candles before the current one.
    The current candle is excluded so a live breakout is measured against
    strictly prior candles.
    """
    _require(len(history), lookback + 1, "resistance")
    return _highest(history[-lookback - 1:-1])


def support(history: Sequence[Candle], lookback: int) -> Decimal:
    """Lowest low over the `lookback` candles before the current one."""
    _require(len(history), lookback + 1, "support")
    return _lowest(history[-lookback - 1:-1])


def average_volume(history: Sequence[Candle], periods: int) -> Decimal:
    """Mean volume of the trailing `periods` candles, current candle included."""
    if periods <= 0:
        raise ValueError("periods must be positive")
    _require(len(history), periods, "average volume")
    return sum((c.volume for c in history[-periods:]), ZERO) / periods


def min_volume_ratio(history: Sequence[Candle], avg_volume: Decimal, lookback: int = 3) -> Decimal:
    """Weakest volume / average ratio over the last `lookback` candles (sustained-volume check)."""
    if len(history) < lookback or avg_volume <= 0:
        return ZERO
    return min(c.volume / avg_volume for c in history[-lookback:])


def is_volume_spike(current_volume: Decimal, avg_volume: Decimal, multiplier) -> bool:
    return current_volume > avg_volume * to_decimal(multiplier)


# ---------------------------------------------------------------------------
# Volatility and oscillators
# ---------------------------------------------------------------------------

def true_range(candle: Candle, prev_close: Decimal) -> Decimal:
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def atr(history: Sequence[Candle], periods: int) -> Decimal:
    """Average true range: simple mean of the last `periods` true ranges."""
    if periods <= 0:
        raise ValueError("periods must be positive")
    _require(len(history), periods + 1, "ATR")
    n = len(history)
    total = sum(
        (true_range(history[i], history[i - 1].close) for i in range(n - periods, n)),
        ZERO,
    )
    return total / periods


def rsi(history: Sequence[Candle], periods: int = 14) -> Decimal:
    """
    RSI with Wilder's smoothing. Averages are seeded with the simple mean of
    the first `periods` changes, then avg = (avg * (periods - 1) + current) / periods.
    Returns 100 when the average loss is zero.
    """
    _require(len(history), periods + 1, "RSI")
    gains: list[Decimal] = []
    losses: list[Decimal] = []
    for prev, cur in zip(history, history[1:]):
        change = cur.close - prev.close
        if change > 0:
            gains.append(change)
            losses.append(ZERO)
        else:
            gains.append(ZERO)
            losses.append(-change)

    avg_gain = sum(gains[:periods], ZERO) / periods
    avg_loss = sum(losses[:periods], ZERO) / periods
    smoothing = periods - 1
    for gain, loss in zip(gains[periods:], losses[periods:]):
        avg_gain = (avg_gain * smoothing + gain) / periods
        avg_loss = (avg_loss * smoothing + loss) / periods

    if avg_loss == 0:
        return HUNDRED
    rs = avg_gain / avg_loss
    return HUNDRED - HUNDRED / (rs + 1)


def sma(values: Sequence[Decimal], periods: int) -> Decimal:
    _require(len(values), periods, "SMA")
    return sum(values[-periods:], ZERO) / periods


def ema(values: Sequence[Decimal], periods: int) -> Decimal:
    """EMA seeded with the SMA of the first `periods` values, multiplier 2 / (periods + 1)."""
    _require(len(values), periods, "EMA")
    multiplier = Decimal(2) / (periods + 1)
    value = sma(values[:periods], periods)
    for price in values[periods:]:
        value = price * multiplier + value * (ONE - multiplier)
    return value


@dataclass(frozen=True)
class MacdResult:
    macd: Decimal
    signal: Decimal
    histogram: Decimal


def macd(history: Sequence[Candle], fast: int = 12, slow: int = 26, signal: int = 9) -> MacdResult:
    """
    MACD line = EMA(fast) - EMA(slow). The signal line is the EMA of the MACD
    line recomputed from scratch at every point (closes[:i]), not a streaming
    EMA state.
    """
    _require(len(history), slow + signal, "MACD")
    closes = _closes(history)
    macd_line = ema(closes, fast) - ema(closes, slow)

    macd_history = []
    for i in range(slow, len(closes) + 1):
        window = closes[:i]
        macd_history.append(ema(window, fast) - ema(window, slow))

    signal_line = ema(macd_history, signal) if len(macd_history) >= signal else macd_line
    return MacdResult(macd=macd_line, signal=signal_line, histogram=macd_line - signal_line)


@dataclass(frozen=True)
class BollingerBands:
    upper: Decimal
    middle: Decimal
    lower: Decimal


def bollinger_bands(values: Sequence[Decimal], periods: int = 20, std_dev=2) -> BollingerBands:
    """SMA +/- std_dev * population standard deviation."""
    _require(len(values), periods, "Bollinger Bands")
    middle = sma(values, periods)
    variance = sum(((v - middle) ** 2 for v in values[-periods:]), ZERO) / periods
    width = variance.sqrt() * to_decimal(std_dev)
    return BollingerBands(upper=middle + width, middle=middle, lower=middle - width)


def vwap(history: Sequence[Candle]) -> Decimal:
    """Volume-weighted typical price. Falls back to the last close when volume is zero."""
    _require(len(history), 1, "VWAP")
    total_pv = ZERO
    total_volume = ZERO
    for candle in history:
        total_pv += candle.typical_price * candle.volume
        total_volume += candle.volume
    if total_volume == 0:
        return history[-1].close
    return total_pv / total_volume


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def detect_breakout(price: Decimal, resistance_level: Decimal, support_level: Decimal,
                    buffer=Decimal("0.001")) -> Optional[Direction]:
    """BULLISH above resistance*(1+buffer), BEARISH below support*(1-buffer). Boundaries exclusive."""
    buffer = to_decimal(buffer)
    if price > resistance_level * (ONE + buffer):
        return Direction.BULLISH
    if price < support_level * (ONE - buffer):
        return Direction.BEARISH
    return None


def _split_halves(history: Sequence[Candle], lookback: int) -> tuple[Sequence[Candle], Sequence[Candle]]:
    recent = history[-lookback * 2:]
    return recent[:lookback], recent[lookback:]


def _classify_structure(first: Sequence[Candle], second: Sequence[Candle]) -> PriceStructure:
    first_high, first_low = _highest(first), _lowest(first)
    second_high, second_low = _highest(second), _lowest(second)
    if second_high > first_high and second_low > first_low:
        return PriceStructure.HIGHER_HIGHS
    if second_high < first_high and second_low < first_low:
        return PriceStructure.LOWER_LOWS
    return PriceStructure.CHOPPY


def detect_price_structure(history: Sequence[Candle], lookback: int = 10) -> PriceStructure:
    """Compare the two halves of the last 2*lookback candles."""
    if len(history) < lookback * 2:
        return PriceStructure.CHOPPY
    return _classify_structure(*_split_halves(history, lookback))


def detect_ema_stack(history: Sequence[Candle], fast: int = 20, slow: int = 50,
                     trend: int = 200) -> Trend:
    """EMA20 > EMA50 > EMA200 is an uptrend stack, the mirror a downtrend, anything else sideways."""
    closes = _closes(history)
    _require(len(closes), max(fast, slow, trend), "EMA stack")
    ema_fast = ema(closes, fast)
    ema_slow = ema(closes, slow)
    ema_trend = ema(closes, trend)
    if ema_fast > ema_slow > ema_trend:
        return Trend.UPTREND
    if ema_fast < ema_slow < ema_trend:
        return Trend.DOWNTREND
    return Trend.SIDEWAYS


def detect_trend(history: Sequence[Candle], short_period: int = 20, long_period: int = 50,
                 trend_period: int = 200, atr_period: int = 14, range_window: int = 10) -> Trend:
    """
    Three-layer trend gate:
      1. range filter: a `range_window` high-low range under 2*ATR is sideways
      2. structure: higher high + higher low (or the mirror) across two halves
      3. EMA stack: EMA(short) > EMA(long) > EMA(trend) confirms
    Up/down only when structure and EMA stack agree.
    Fewer than `long_period` candles is sideways; the EMA stack needs
    `trend_period` candles and raises InsufficientDataError below that.
    """
    if len(history) < long_period:
        return Trend.SIDEWAYS

    atr_value = atr(history, atr_period)
    recent = history[-range_window:]
    if _highest(recent) - _lowest(recent) < atr_value * 2:
        return Trend.SIDEWAYS

    structure = _classify_structure(*_split_halves(history, range_window))
    if structure is PriceStructure.CHOPPY:
        return Trend.SIDEWAYS

    stack = detect_ema_stack(history, short_period, long_period, trend_period)
    if structure is PriceStructure.HIGHER_HIGHS and stack is Trend.UPTREND:
        return Trend.UPTREND
    if structure is PriceStructure.LOWER_LOWS and stack is Trend.DOWNTREND:
        return Trend.DOWNTREND
    return Trend.SIDEWAYS


def is_trend_confirmed(history: Sequence[Candle], expected: Trend) -> bool:
    """Trend gate and price structure both point the expected way."""
    structure = detect_price_structure(history)
    trend = detect_trend(history)
    if expected is Trend.UPTREND:
        return trend is Trend.UPTREND and structure is PriceStructure.HIGHER_HIGHS
    if expected is Trend.DOWNTREND:
        return trend is Trend.DOWNTREND and structure is PriceStructure.LOWER_LOWS
    return False


@dataclass(frozen=True)
class Alignment:
    aligned: bool
    reason: str


def is_ema_aligned(history: Sequence[Candle], direction: Direction) -> Alignment:
    """price > EMA9 > EMA21 > EMA50 for bullish, mirrored for bearish."""
    if len(history) < 50:
        return Alignment(False, "Insufficient data for EMA alignment")

    closes = _closes(history)
    price = closes[-1]
    ema9 = ema(closes, 9)
    ema21 = ema(closes, 21)
    ema50 = ema(closes, 50)

    if direction is Direction.BULLISH:
        if price > ema9 > ema21 > ema50:
            return Alignment(True, "EMAs bullish aligned: P > EMA9 > EMA21 > EMA50")
        if not price > ema9:
            return Alignment(False, f"Price {price:.2f} below EMA9 {ema9:.2f}")
        if not ema9 > ema21:
            return Alignment(False, f"EMA9 {ema9:.2f} below EMA21 {ema21:.2f}")
        return Alignment(False, f"EMA21 {ema21:.2f} below EMA50 {ema50:.2f}")

    if price < ema9 < ema21 < ema50:
        return Alignment(True, "EMAs bearish aligned: P < EMA9 < EMA21 < EMA50")
    if not price < ema9:
        return Alignment(False, f"Price {price:.2f} above EMA9 {ema9:.2f}")
    if not ema9 < ema21:
        return Alignment(False, f"EMA9 {ema9:.2f} above EMA21 {ema21:.2f}")
    return Alignment(False, f"EMA21 {ema21:.2f} above EMA50 {ema50:.2f}")


@dataclass(frozen=True)
class MacdAlignment:
    aligned: bool
    reason: str
    result: Optional[MacdResult] = None


def is_macd_aligned(history: Sequence[Candle], direction: Direction) -> MacdAlignment:
    """Bullish: MACD above signal with a positive histogram. Bearish mirrored."""
    try:
        result = macd(history)
    except InsufficientDataError:
        return MacdAlignment(False, "Insufficient data for MACD")

    m, s, h = result.macd, result.signal, result.histogram
    if direction is Direction.BULLISH:
        if m > s and h > 0:
            return MacdAlignment(True, f"MACD bullish: {m:.4f} > {s:.4f}, hist {h:.4f}", result)
        if not m > s:
            return MacdAlignment(False, f"MACD {m:.4f} below signal {s:.4f}", result)
        return MacdAlignment(False, f"MACD histogram negative: {h:.4f}", result)

    if m < s and h < 0:
        return MacdAlignment(True, f"MACD bearish: {m:.4f} < {s:.4f}, hist {h:.4f}", result)
    if not m < s:
        return MacdAlignment(False, f"MACD {m:.4f} above signal {s:.4f}", result)
    return MacdAlignment(False, f"MACD histogram positive: {h:.4f}", result)


# ---------------------------------------------------------------------------
# Momentum score
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MomentumScore:
    score: Decimal
    components: dict = field(default_factory=dict)
    details: str = ""


def _rsi_component(value: Decimal, direction: Direction) -> Decimal:
    if direction is Direction.BULLISH:
        if 50 <= value <= 70:
            return min((value - 40) / 30, ONE)
        if value > 70:
            return Decimal("0.3")
        if value >= 30:
            return NEUTRAL
        return ZERO
    if 30 <= value <= 50:
        return min((60 - value) / 30, ONE)
    if value < 30:
        return Decimal("0.3")
    if value <= 70:
        return NEUTRAL
    return ZERO


def momentum_score(history: Sequence[Candle], current_volume: Decimal, avg_volume: Decimal,
                   direction: Direction) -> MomentumScore:
    """
    Weighted conviction in [0, 1]: trend/EMA alignment 35%, RSI 25%, MACD 20%,
    volume ratio 10%, VWAP side 10%. Auxiliary only, never a hard gate.
    """
    price = history[-1].close
    expected = Trend.UPTREND if direction is Direction.BULLISH else Trend.DOWNTREND

    try:
        trend = detect_trend(history)
    except InsufficientDataError:
        trend = Trend.SIDEWAYS
    trend_strength = ZERO
    if trend is expected:
        trend_strength += NEUTRAL
    if is_ema_aligned(history, direction).aligned:
        trend_strength += NEUTRAL

    try:
        rsi_momentum = _rsi_component(rsi(history), direction)
    except InsufficientDataError:
        rsi_momentum = NEUTRAL

    macd_check = is_macd_aligned(history, direction)
    if macd_check.result is None:
        macd_momentum = NEUTRAL
    elif macd_check.aligned:
        signal_abs = abs(macd_check.result.signal)
        if signal_abs != 0:
            macd_momentum = min(abs(macd_check.result.histogram) / signal_abs, ONE)
        else:
            macd_momentum = Decimal("0.7")
    else:
        macd_momentum = Decimal("0.2")

    volume_momentum = ZERO
    if avg_volume != 0:
        volume_momentum = min(current_volume / avg_volume / 2, ONE)

    vwap_strength = Decimal("0.3")
    level = vwap(history[-20:])
    if direction is Direction.BULLISH and price > level:
        vwap_strength = ONE
    elif direction is Direction.BEARISH and price < level:
        vwap_strength = ONE

    score = (
        trend_strength * W_TREND
        + rsi_momentum * W_RSI
        + macd_momentum * W_MACD
        + volume_momentum * W_VOLUME
        + vwap_strength * W_VWAP
    )
    components = {
        "trend": trend_strength,
        "rsi": rsi_momentum,
        "macd": macd_momentum,
        "volume": volume_momentum,
        "vwap": vwap_strength,
    }
    details = ", ".join(f"{name}={value:.2f}" for name, value in components.items())
    return MomentumScore(score=score, components=components, details=details)
