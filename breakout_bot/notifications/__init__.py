"""Notifications: sink interface and Telegram implementation."""

from breakout_bot.notifications.base import Notifier
from breakout_bot.notifications.telegram import TelegramNotifier

__all__ = ["Notifier", "TelegramNotifier"]
