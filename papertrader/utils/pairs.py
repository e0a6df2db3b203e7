"""Trading pair helpers."""

import math


def normalize_pair(pair: str) -> str:
    """'btc-usdt' -> 'BTC/USDT'."""
    return str(pair or "").strip().replace("-", "/").upper()


def to_float(value, fallback: float = 0.0) -> float:
    """Coerce to a finite float, else return fallback."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def optional_float(value) -> float | None:
    """Coerce to a finite float, else None."""
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None
