"""Timeframe string conversions."""


def timeframe_minutes(tf: str) -> int:
    """Convert Binance-style timeframe (e.g. '5m', '1h', '1d') to minutes."""
    tf = tf.strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 60 * 24
    raise ValueError(f"Unsupported timeframe: {tf}")


def timeframe_seconds(tf: str) -> int:
    return timeframe_minutes(tf) * 60


def candles_since(tf: str, elapsed_seconds: float, minimum: int = 2) -> int:
    """Candles to request so a refresh after `elapsed_seconds` leaves no gap."""
    per_candle = timeframe_seconds(tf)
    return max(minimum, int(elapsed_seconds // per_candle) + 2)
