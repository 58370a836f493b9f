"""Telegram Bot API transport. Never log token or chat_id."""

from __future__ import annotations
import logging

import requests

logger = logging.getLogger("breakout_bot.utils.telegram")

TELEGRAM_API = "https://api.telegram.org"


def send_telegram(text: str, bot_token: str = "", chat_id: str = "", parse_mode: str = "HTML") -> bool:
    """Send message to Telegram. Returns True on success, False when unconfigured or failed."""
    if not bot_token or not chat_id:
        logger.debug("Telegram not configured, skipping message (len=%d)", len(text))
        return False
    try:
        url = f"{TELEGRAM_API}/bot{bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        r = requests.post(url, json=payload, timeout=10)
        if r.status_code != 200:
            logger.warning("Telegram send failed: %s %s", r.status_code, r.text[:200])
            return False
        return True
    except requests.RequestException as e:
        logger.error("Telegram error: %s", e)
        return False
