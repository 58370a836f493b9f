"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from breakout_bot.core.errors import ConfigurationError

TRADING_MODES = ("paper", "live")
STOP_POLICIES = ("flat", "tiered")
TREND_STRICTNESS = ("strict", "relaxed_cumulative")

# Tiered trailing-stop percentages by observed volatility bucket.
DEFAULT_STOP_TIERS = {
    "BTC": 6.0, "ETH": 6.0, "BNB": 6.0,
    "SOL": 8.0, "XRP": 8.0,
    "LINK": 10.0, "AVAX": 10.0, "SUI": 10.0, "HYPE": 10.0,
}

DEFAULT_PAIRS = "BTC,ETH,SOL,AVAX,HYPE,BNB,SUI,LINK,XRP"


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns a validated Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    # Env overrides (for secrets and overrides)
    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_bool(key: str, default: bool = False) -> bool:
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_list(key: str, default: Any) -> list[str]:
        raw = os.getenv(key)
        if raw is None:
            if isinstance(default, (list, tuple)):
                return [str(s).strip().upper() for s in default if str(s).strip()]
            raw = str(default)
        return [s.strip().upper() for s in raw.split(",") if s.strip()]

    api = data.get("api", {})
    markets = data.get("markets", {})
    strategy = data.get("strategy", {})
    trend_following = data.get("trend_following", {})
    risk = data.get("risk", {})
    schedule = data.get("schedule", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})

    use_testnet = env_bool("USE_TESTNET", api.get("use_testnet", True))
    if use_testnet:
        binance_api_key = env("BINANCE_TESTNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_TESTNET_API_SECRET") or env("BINANCE_API_SECRET")
    else:
        binance_api_key = env("BINANCE_MAINNET_API_KEY") or env("BINANCE_API_KEY")
        binance_api_secret = env("BINANCE_MAINNET_API_SECRET") or env("BINANCE_API_SECRET")

    tp_raw = os.getenv("TAKE_PROFIT_PERCENT", strategy.get("take_profit_percent"))
    take_profit_percent = float(tp_raw) if tp_raw not in (None, "") else None

    config = Config(
        binance_api_key=binance_api_key,
        binance_api_secret=binance_api_secret,
        use_testnet=use_testnet,
        trading_mode=env("TRADING_MODE", api.get("trading_mode", "paper")).lower(),
        paper_balance=env_float("PAPER_BALANCE", api.get("paper_balance", 1000.0)),
        trading_pairs=env_list("TRADING_PAIRS", markets.get("trading_pairs", DEFAULT_PAIRS)),
        quote_asset=env("QUOTE_ASSET", markets.get("quote_asset", "USDT")).upper(),
        timeframe=env("TIMEFRAME", markets.get("timeframe", "5m")),
        # Strategy
        lookback_period=env_int("LOOKBACK_PERIOD", strategy.get("lookback_period", 10)),
        min_history=env_int("MIN_HISTORY", strategy.get("min_history", 250)),
        volume_multiplier=env_float("VOLUME_MULTIPLIER", strategy.get("volume_multiplier", 1.5)),
        breakout_buffer=env_float("BREAKOUT_BUFFER", strategy.get("breakout_buffer", 0.001)),
        trailing_stop_percent=env_float("TRAILING_STOP_PERCENT", strategy.get("trailing_stop_percent", 1.5)),
        take_profit_percent=take_profit_percent,
        stop_policy=env("STOP_POLICY", strategy.get("stop_policy", "flat")).lower(),
        trailing_stop_tiers={
            str(k).upper(): float(v)
            for k, v in (strategy.get("trailing_stop_tiers") or DEFAULT_STOP_TIERS).items()
        },
        trend_strictness=env("TREND_STRICTNESS", strategy.get("trend_strictness", "strict")).lower(),
        rsi_overbought=env_float("RSI_OVERBOUGHT", strategy.get("rsi_overbought", 70.0)),
        rsi_oversold=env_float("RSI_OVERSOLD", strategy.get("rsi_oversold", 30.0)),
        stop_loss_cooldown_minutes=env_float(
            "STOP_LOSS_COOLDOWN_MINUTES", strategy.get("stop_loss_cooldown_minutes", 15.0)
        ),
        close_cooldown_seconds=env_float("CLOSE_COOLDOWN_SECONDS", strategy.get("close_cooldown_seconds", 30.0)),
        unfilled_grace_seconds=env_float("UNFILLED_GRACE_SECONDS", strategy.get("unfilled_grace_seconds", 300.0)),
        # Trend following
        enable_trend_following=env_bool("ENABLE_TREND_FOLLOWING", trend_following.get("enabled", False)),
        trend_following_sma_period=env_int("TREND_FOLLOWING_SMA_PERIOD", trend_following.get("sma_period", 20)),
        trend_following_min_consecutive=env_int(
            "TREND_FOLLOWING_MIN_CONSECUTIVE_TRENDS", trend_following.get("min_consecutive_trends", 3)
        ),
        trend_following_max_distance_pct=env_float(
            "TREND_FOLLOWING_MAX_DISTANCE_FROM_HIGH", trend_following.get("max_distance_from_high", 2.0)
        ),
        # Risk
        position_size_usd=env_float("POSITION_SIZE", risk.get("position_size_usd", 10.0)),
        max_positions=env_int("MAX_POSITIONS", risk.get("max_positions", 3)),
        max_daily_loss_usd=env_float("MAX_DAILY_LOSS", risk.get("max_daily_loss_usd", 100.0)),
        max_drawdown_pct=env_float("MAX_DRAWDOWN", risk.get("max_drawdown_pct", 10.0)),
        max_leverage=env_int("MAX_LEVERAGE", risk.get("max_leverage", 3)),
        # Schedule
        signal_interval_seconds=env_float("SIGNAL_INTERVAL_SECONDS", schedule.get("signal_interval_seconds", 60.0)),
        trailing_interval_seconds=env_float(
            "TRAILING_INTERVAL_SECONDS", schedule.get("trailing_interval_seconds", 10.0)
        ),
        # Telegram
        telegram_enabled=env_bool("TELEGRAM_ENABLED", telegram.get("enabled", False)),
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", str(telegram.get("chat_id", ""))),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")).upper(),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "breakout_bot.log"),
    )
    validate_config(config)
    return config


def validate_config(config: "Config") -> None:
    """Raise ConfigurationError listing every invalid parameter."""
    errors: list[str] = []
    if config.trading_mode not in TRADING_MODES:
        errors.append(f"TRADING_MODE must be one of {TRADING_MODES}, got {config.trading_mode!r}")
    if config.trading_mode == "live" and (not config.binance_api_key or not config.binance_api_secret):
        errors.append("live trading needs BINANCE_API_KEY and BINANCE_API_SECRET")
    if not config.trading_pairs:
        errors.append("TRADING_PAIRS must contain at least one pair")
    if config.lookback_period < 2:
        errors.append("LOOKBACK_PERIOD must be at least 2")
    if config.min_history < 50:
        errors.append("MIN_HISTORY must be at least 50")
    if config.volume_multiplier <= 0:
        errors.append("VOLUME_MULTIPLIER must be positive")
    if config.breakout_buffer < 0:
        errors.append("BREAKOUT_BUFFER must not be negative")
    if not 0 < config.trailing_stop_percent < 100:
        errors.append("TRAILING_STOP_PERCENT must be between 0 and 100")
    if any(not 0 < pct < 100 for pct in config.trailing_stop_tiers.values()):
        errors.append("trailing_stop_tiers values must be between 0 and 100")
    if config.take_profit_percent is not None and not 0 < config.take_profit_percent < 1000:
        errors.append("TAKE_PROFIT_PERCENT must be between 0 and 1000")
    if config.stop_policy not in STOP_POLICIES:
        errors.append(f"STOP_POLICY must be one of {STOP_POLICIES}")
    if config.trend_strictness not in TREND_STRICTNESS:
        errors.append(f"TREND_STRICTNESS must be one of {TREND_STRICTNESS}")
    if not 0 <= config.rsi_oversold < config.rsi_overbought <= 100:
        errors.append("RSI thresholds must satisfy 0 <= oversold < overbought <= 100")
    if config.stop_loss_cooldown_minutes < 0 or config.close_cooldown_seconds < 0:
        errors.append("cooldowns must not be negative")
    if config.unfilled_grace_seconds < 0:
        errors.append("UNFILLED_GRACE_SECONDS must not be negative")
    if config.trend_following_sma_period < 2 or config.trend_following_min_consecutive < 1:
        errors.append("trend following needs sma_period >= 2 and min_consecutive_trends >= 1")
    if config.position_size_usd <= 0:
        errors.append("POSITION_SIZE must be positive")
    if config.max_positions <= 0:
        errors.append("MAX_POSITIONS must be positive")
    if config.max_daily_loss_usd <= 0:
        errors.append("MAX_DAILY_LOSS must be positive")
    if not 0 < config.max_drawdown_pct <= 100:
        errors.append("MAX_DRAWDOWN must be between 0 and 100")
    if config.max_leverage <= 0:
        errors.append("MAX_LEVERAGE must be positive")
    if config.signal_interval_seconds <= 0 or config.trailing_interval_seconds <= 0:
        errors.append("loop intervals must be positive")
    if errors:
        raise ConfigurationError("; ".join(errors))


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "binance_api_key", "binance_api_secret", "use_testnet", "trading_mode", "paper_balance",
        "trading_pairs", "quote_asset", "timeframe",
        "lookback_period", "min_history", "volume_multiplier", "breakout_buffer",
        "trailing_stop_percent", "take_profit_percent", "stop_policy", "trailing_stop_tiers",
        "trend_strictness", "rsi_overbought", "rsi_oversold",
        "stop_loss_cooldown_minutes", "close_cooldown_seconds", "unfilled_grace_seconds",
        "enable_trend_following", "trend_following_sma_period", "trend_following_min_consecutive",
        "trend_following_max_distance_pct",
        "position_size_usd", "max_positions", "max_daily_loss_usd", "max_drawdown_pct", "max_leverage",
        "signal_interval_seconds", "trailing_interval_seconds",
        "telegram_enabled", "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file",
    )

    def __init__(
        self,
        binance_api_key: str = "",
        binance_api_secret: str = "",
        use_testnet: bool = True,
        trading_mode: str = "paper",
        paper_balance: float = 1000.0,
        trading_pairs: Optional[list[str]] = None,
        quote_asset: str = "USDT",
        timeframe: str = "5m",
        lookback_period: int = 10,
        min_history: int = 250,
        volume_multiplier: float = 1.5,
        breakout_buffer: float = 0.001,
        trailing_stop_percent: float = 1.5,
        take_profit_percent: Optional[float] = None,
        stop_policy: str = "flat",
        trailing_stop_tiers: Optional[dict[str, float]] = None,
        trend_strictness: str = "strict",
        rsi_overbought: float = 70.0,
        rsi_oversold: float = 30.0,
        stop_loss_cooldown_minutes: float = 15.0,
        close_cooldown_seconds: float = 30.0,
        unfilled_grace_seconds: float = 300.0,
        enable_trend_following: bool = False,
        trend_following_sma_period: int = 20,
        trend_following_min_consecutive: int = 3,
        trend_following_max_distance_pct: float = 2.0,
        position_size_usd: float = 10.0,
        max_positions: int = 3,
        max_daily_loss_usd: float = 100.0,
        max_drawdown_pct: float = 10.0,
        max_leverage: int = 3,
        signal_interval_seconds: float = 60.0,
        trailing_interval_seconds: float = 10.0,
        telegram_enabled: bool = False,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "breakout_bot.log",
    ):
        self.binance_api_key = binance_api_key
        self.binance_api_secret = binance_api_secret
        self.use_testnet = use_testnet
        self.trading_mode = trading_mode
        self.paper_balance = paper_balance
        self.trading_pairs = list(trading_pairs) if trading_pairs is not None else DEFAULT_PAIRS.split(",")
        self.quote_asset = quote_asset
        self.timeframe = timeframe
        self.lookback_period = lookback_period
        self.min_history = min_history
        self.volume_multiplier = volume_multiplier
        self.breakout_buffer = breakout_buffer
        self.trailing_stop_percent = trailing_stop_percent
        self.take_profit_percent = take_profit_percent
        self.stop_policy = stop_policy
        self.trailing_stop_tiers = dict(trailing_stop_tiers) if trailing_stop_tiers is not None else dict(DEFAULT_STOP_TIERS)
        self.trend_strictness = trend_strictness
        self.rsi_overbought = rsi_overbought
        self.rsi_oversold = rsi_oversold
        self.stop_loss_cooldown_minutes = stop_loss_cooldown_minutes
        self.close_cooldown_seconds = close_cooldown_seconds
        self.unfilled_grace_seconds = unfilled_grace_seconds
        self.enable_trend_following = enable_trend_following
        self.trend_following_sma_period = trend_following_sma_period
        self.trend_following_min_consecutive = trend_following_min_consecutive
        self.trend_following_max_distance_pct = trend_following_max_distance_pct
        self.position_size_usd = position_size_usd
        self.max_positions = max_positions
        self.max_daily_loss_usd = max_daily_loss_usd
        self.max_drawdown_pct = max_drawdown_pct
        self.max_leverage = max_leverage
        self.signal_interval_seconds = signal_interval_seconds
        self.trailing_interval_seconds = trailing_interval_seconds
        self.telegram_enabled = telegram_enabled
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file

    @property
    def history_capacity(self) -> int:
        """Candles kept per symbol."""
        return max(self.min_history, 2 * self.lookback_period)
