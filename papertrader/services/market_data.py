"""Market data fetching.

Tickers, tickers-by-volume and candles come from public ccxt venues tried in
the order of `settings.market_venues`. ccxt's REST clients are synchronous, so
every call is pushed to the default executor.

Latest-tick results are cached per pair for `settings.price_cache_ttl_seconds`.
Expired entries are kept: when every venue times out, the stale entry is
served instead of failing the caller.
"""

import asyncio
import functools
import logging
import math
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import ccxt
import numpy as np
import pandas as pd

from papertrader.config import settings
from papertrader.errors import MarketDataError
from papertrader.utils.pairs import normalize_pair

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ["time", "open", "high", "low", "close", "volume"]
TOP_COIN_QUOTES = ("USDT", "USD")


@dataclass
class PriceSnapshot:
    pair: str
    price: float
    volume_24h: float
    change_24h: float
    high_24h: float
    low_24h: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class _CacheEntry:
    snapshot: PriceSnapshot
    expires_at: float


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def is_symbol_error(error: Exception) -> bool:
    """The venue does not list this pair; expected while falling back."""
    return isinstance(error, ccxt.BadSymbol)


def is_timeout_error(error: Exception) -> bool:
    return isinstance(error, (ccxt.NetworkError, TimeoutError, asyncio.TimeoutError))


# ---------------------------------------------------------------------------
# Ticker parsing
# ---------------------------------------------------------------------------

def _finite(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def extract_price_snapshot(pair: str, ticker: dict) -> PriceSnapshot:
    """Normalize a ccxt unified ticker.

    Price prefers last trade, then close, ask and bid. 24h change falls back to
    a value computed from the open when the venue omits `percentage`.

    Raises ccxt.ExchangeError when none of the price fields is a positive
    number, so the caller treats the venue as failed.
    """
    price = None
    for key in ("last", "close", "ask", "bid"):
        value = _finite(ticker.get(key))
        if value is not None and value > 0:
            price = value
            break
    if price is None:
        raise ccxt.ExchangeError(f"{pair}: ticker has no price")

    volume = _finite(ticker.get("quoteVolume"))
    if volume is None:
        volume = _finite(ticker.get("baseVolume")) or 0.0

    change = _finite(ticker.get("percentage"))
    if change is None:
        change = 0.0
        open_ = _finite(ticker.get("open"))
        if open_ and price:
            change = (price - open_) / open_ * 100

    high = _finite(ticker.get("high"))
    low = _finite(ticker.get("low"))

    ts = ticker.get("timestamp")
    timestamp = (
        datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
        if isinstance(ts, (int, float)) and ts > 0
        else datetime.now(timezone.utc)
    )
    return PriceSnapshot(
        pair=pair,
        price=price,
        volume_24h=volume,
        change_24h=change,
        high_24h=high if high and high > 0 else price,
        low_24h=low if low and low > 0 else price,
        timestamp=timestamp,
    )


# ---------------------------------------------------------------------------
# Synthetic history
# ---------------------------------------------------------------------------

def build_synthetic_series(price: float, change_24h: float, points: int | None = None) -> list[float]:
    """Linear path from the implied 24h-ago price to the current price.

    Stand-in for real candles in the bot cycle; strategies only see the series.
    """
    length = max(2, points or settings.synthetic_history_points)
    start = price / ((1 + change_24h / 100) or 1)
    return np.linspace(start, price, length).tolist()


def build_synthetic_volumes(volume_24h: float, change_24h: float, points: int | None = None) -> list[float]:
    """Flat 24h volume split with a ramp that grows with the size of the 24h move."""
    length = max(2, points or settings.synthetic_history_points)
    base = volume_24h / length
    spike = min(3.0, abs(change_24h) / 5)
    t = np.linspace(0.0, 1.0, length)
    return (base * (1 + spike * t * 0.2)).tolist()


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class MarketDataGateway:
    """Ordered multi-venue market data source with a per-pair TTL cache."""

    def __init__(
        self,
        venues: list | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._venues = venues
        self.ttl_seconds = settings.price_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}

    @property
    def venues(self) -> list:
        if self._venues is None:
            self._venues = [self._build_venue(v) for v in settings.market_venues]
        return self._venues

    @staticmethod
    def _build_venue(venue_id: str):
        exchange_class = getattr(ccxt, venue_id)
        return exchange_class({
            "enableRateLimit": True,
            "timeout": int(settings.venue_timeout_seconds * 1000),
        })

    @staticmethod
    def _venue_name(venue) -> str:
        return str(getattr(venue, "id", None) or type(venue).__name__)

    async def _call(self, fn, *args, **kwargs):
        # ccxt REST calls are synchronous; run them in the executor
        return await asyncio.get_event_loop().run_in_executor(
            None, functools.partial(fn, *args, **kwargs)
        )

    async def _with_fallback(self, method: str, target: str, *args, parse=None, **kwargs):
        # parse runs per venue; raising from it moves on to the next venue
        errors: list[Exception] = []
        for venue in self.venues:
            try:
                response = await self._call(getattr(venue, method), *args, **kwargs)
                return parse(response) if parse is not None else response
            except Exception as e:
                errors.append(e)
                if not is_symbol_error(e):
                    logger.warning(f"{self._venue_name(venue)} {method} failed for {target}: {e}")
        raise MarketDataError(target, errors)

    # -- cache --------------------------------------------------------------

    def _cached(self, pair: str, allow_stale: bool = False) -> PriceSnapshot | None:
        entry = self._cache.get(pair)
        if entry is None:
            return None
        if not allow_stale and self._clock() > entry.expires_at:
            return None
        return entry.snapshot

    def _store(self, pair: str, snapshot: PriceSnapshot) -> None:
        self._cache[pair] = _CacheEntry(snapshot, self._clock() + self.ttl_seconds)

    def clear_cache(self) -> None:
        self._cache.clear()

    # -- queries ------------------------------------------------------------

    async def get_current_price(self, pair: str) -> PriceSnapshot:
        normalized = normalize_pair(pair)
        cached = self._cached(normalized)
        if cached is not None:
            return cached

        try:
            snapshot = await self._with_fallback(
                "fetch_ticker", normalized, normalized,
                parse=functools.partial(extract_price_snapshot, normalized),
            )
        except MarketDataError as e:
            stale = self._cached(normalized, allow_stale=True)
            if stale is not None and e.errors and all(is_timeout_error(err) for err in e.errors):
                logger.info(f"All venues timed out for {normalized}, serving cached price")
                return stale
            raise

        self._store(normalized, snapshot)
        return snapshot

    async def get_multiple_prices(self, pairs: list[str]) -> dict[str, PriceSnapshot]:
        """Fetch pairs concurrently; pairs that fail are omitted from the result."""
        normalized = list(dict.fromkeys(normalize_pair(p) for p in pairs))
        results = await asyncio.gather(
            *(self.get_current_price(p) for p in normalized), return_exceptions=True
        )
        prices: dict[str, PriceSnapshot] = {}
        for pair, result in zip(normalized, results):
            if isinstance(result, Exception):
                logger.warning(f"Price fetch failed for {pair}: {result}")
                continue
            prices[pair] = result
        return prices

    async def get_top_coins(self, limit: int) -> list[PriceSnapshot]:
        """Highest 24h-volume pairs from the first venue that answers fetch_tickers."""
        tickers = await self._with_fallback("fetch_tickers", "top coins")
        for quote in TOP_COIN_QUOTES:
            snapshots = []
            for symbol, ticker in tickers.items():
                if not symbol.endswith(f"/{quote}"):
                    continue
                try:
                    snapshots.append(extract_price_snapshot(symbol, ticker))
                except ccxt.ExchangeError:
                    continue
            if snapshots:
                snapshots.sort(key=lambda s: s.volume_24h, reverse=True)
                return snapshots[:limit]
        return []

    async def get_ohlcv(self, pair: str, timeframe: str = "1h", limit: int = 100) -> pd.DataFrame:
        normalized = normalize_pair(pair)
        rows = await self._with_fallback(
            "fetch_ohlcv", normalized, normalized, timeframe=timeframe, limit=limit
        )
        df = pd.DataFrame(rows, columns=OHLCV_COLUMNS)
        if df.empty:
            return df
        df["time"] = pd.to_datetime(df["time"], unit="ms", utc=True)
        return df.astype({c: float for c in OHLCV_COLUMNS[1:]})


_gateway: MarketDataGateway | None = None


def get_gateway() -> MarketDataGateway:
    global _gateway
    if _gateway is None:
        _gateway = MarketDataGateway()
    return _gateway


def set_gateway(gateway: MarketDataGateway | None) -> None:
    global _gateway
    _gateway = gateway


# Module-level conveniences over the shared gateway

async def get_current_price(pair: str) -> PriceSnapshot:
    return await get_gateway().get_current_price(pair)


get_price = get_current_price


async def get_multiple_prices(pairs: list[str]) -> dict[str, PriceSnapshot]:
    return await get_gateway().get_multiple_prices(pairs)


get_batch_prices = get_multiple_prices


async def get_top_coins(limit: int) -> list[PriceSnapshot]:
    return await get_gateway().get_top_coins(limit)


async def get_ohlcv(pair: str, timeframe: str = "1h", limit: int = 100) -> pd.DataFrame:
    return await get_gateway().get_ohlcv(pair, timeframe, limit)
