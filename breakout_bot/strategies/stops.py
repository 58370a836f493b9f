"""Trailing-stop percentage per symbol: one flat value, or a volatility tier table."""

from __future__ import annotations
from decimal import Decimal
from typing import Mapping, Optional

from breakout_bot.core.types import to_decimal


class StopPolicy:
    """
    flat:   every symbol uses `default_percent`.
    tiered: symbols listed in `tiers` use their own percentage; unlisted
            symbols fall back to `default_percent`.
    """

    def __init__(self, default_percent, policy: str = "flat",
                 tiers: Optional[Mapping[str, object]] = None):
        if policy not in ("flat", "tiered"):
            raise ValueError(f"Unknown stop policy: {policy}")
        self.policy = policy
        self.default_percent = to_decimal(default_percent)
        self.tiers = {sym.upper(): to_decimal(pct) for sym, pct in (tiers or {}).items()}

    def percent_for(self, symbol: str) -> Decimal:
        if self.policy == "tiered":
            return self.tiers.get(symbol.upper(), self.default_percent)
        return self.default_percent

    def stop_price(self, symbol: str, entry: Decimal, is_long: bool) -> Decimal:
        pct = self.percent_for(symbol)
        if is_long:
            return entry * (1 - pct / 100)
        return entry * (1 + pct / 100)
