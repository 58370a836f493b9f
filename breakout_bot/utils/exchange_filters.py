"""Price increments, quantity steps, and Decimal rounding to venue filters."""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional

# Price increment per market.
PRICE_INCREMENTS: dict[str, Decimal] = {
    "BTC": Decimal("1"),
    "ETH": Decimal("0.1"),
    "SOL": Decimal("0.01"),
    "BNB": Decimal("0.01"),
    "AVAX": Decimal("0.01"),
    "LINK": Decimal("0.001"),
    "HYPE": Decimal("0.001"),
    "XRP": Decimal("0.0001"),
    "SUI": Decimal("0.0001"),
}
DEFAULT_PRICE_INCREMENT = Decimal("0.001")

# Order size step per market.
QUANTITY_STEPS: dict[str, Decimal] = {
    "BTC": Decimal("0.00001"),
    "ETH": Decimal("0.0001"),
    "BNB": Decimal("0.001"),
    "SOL": Decimal("0.01"),
    "AVAX": Decimal("0.01"),
    "HYPE": Decimal("0.01"),
    "LINK": Decimal("0.1"),
    "SUI": Decimal("0.1"),
    "XRP": Decimal("1"),
}
DEFAULT_QUANTITY_STEP = Decimal("0.001")


def price_increment(symbol: str) -> Decimal:
    return PRICE_INCREMENTS.get(symbol.upper(), DEFAULT_PRICE_INCREMENT)


def quantity_step(symbol: str) -> Decimal:
    return QUANTITY_STEPS.get(symbol.upper(), DEFAULT_QUANTITY_STEP)


def round_price(price: Decimal, tick_size: Decimal) -> Decimal:
    """Round price half-up to the exchange tick."""
    steps = (price / tick_size).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (steps * tick_size).quantize(tick_size)


def round_quantity(qty: Decimal, step_size: Decimal, min_qty: Optional[Decimal] = None) -> Decimal:
    """Round down to step size; return 0 if below min_qty (defaults to one step)."""
    if qty <= 0:
        return Decimal("0")
    steps = (qty / step_size).to_integral_value(rounding=ROUND_DOWN)
    rounded = (steps * step_size).quantize(step_size)
    if rounded < (min_qty if min_qty is not None else step_size):
        return Decimal("0")
    return rounded


def round_symbol_price(price: Decimal, symbol: str) -> Decimal:
    return round_price(price, price_increment(symbol))


def round_symbol_quantity(qty: Decimal, symbol: str) -> Decimal:
    return round_quantity(qty, quantity_step(symbol))


def parse_symbol_filters(symbol_info: Optional[dict]) -> tuple[Decimal, Decimal, Decimal]:
    """
    Extract (min_qty, lot_step, price_tick) from Binance exchange-info filters.
    Uses defaults if symbol_info is None.
    """
    min_qty = DEFAULT_QUANTITY_STEP
    lot_step = DEFAULT_QUANTITY_STEP
    price_tick = DEFAULT_PRICE_INCREMENT
    if not symbol_info:
        return min_qty, lot_step, price_tick
    for f in symbol_info.get("filters", []):
        if f.get("filterType") == "LOT_SIZE":
            min_qty = Decimal(str(f.get("minQty", min_qty))).normalize()
            lot_step = Decimal(str(f.get("stepSize", lot_step))).normalize()
        if f.get("filterType") == "PRICE_FILTER":
            price_tick = Decimal(str(f.get("tickSize", price_tick))).normalize()
    return min_qty, lot_step, price_tick
