"""
Error taxonomy. Indicator and validation errors stay local to one symbol;
exchange errors are reported and retried on the next tick.
"""

from __future__ import annotations


class BotError(Exception):
    """Base for all bot errors."""


class InsufficientDataError(BotError):
    """History shorter than an indicator's required window."""

    def __init__(self, required: int, available: int, what: str = ""):
        self.required = required
        self.available = available
        label = f" for {what}" if what else ""
        super().__init__(f"Insufficient data{label}: need {required} periods, got {available}")


class ValidationError(BotError):
    """Malformed price history or invalid support/resistance ordering."""

    def __init__(self, symbol: str, errors: list[str]):
        self.symbol = symbol
        self.errors = list(errors)
        super().__init__(f"{symbol}: " + "; ".join(self.errors))


class ExchangeError(BotError):
    """Order placement or account query failed."""


class ConfigurationError(BotError):
    """Invalid strategy or risk parameters. Fatal at startup."""
