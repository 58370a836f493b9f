"""Risk management: position count, margin, daily loss, drawdown."""

from breakout_bot.risk.manager import RiskManager, RiskMetrics

__all__ = ["RiskManager", "RiskMetrics"]
