"""Watchlist scanning and coin categorization.

Composes the market data gateway (latest ticks) with synthetic history so
strategies receive complete MarketSnapshot values.
"""

import logging
from dataclasses import dataclass, replace

from papertrader.services.market_data import (
    MarketDataGateway,
    PriceSnapshot,
    build_synthetic_series,
    build_synthetic_volumes,
    get_gateway,
)
from papertrader.strategies.base import MarketSnapshot
from papertrader.utils.pairs import normalize_pair

logger = logging.getLogger(__name__)

# Curated list of liquid, tradeable pairs
DEFAULT_WATCHLIST = [
    "BTC/USDT", "ETH/USDT", "SOL/USDT", "BNB/USDT", "XRP/USDT",
    "ADA/USDT", "DOGE/USDT", "AVAX/USDT", "DOT/USDT", "LINK/USDT",
    "MATIC/USDT", "UNI/USDT", "ATOM/USDT", "LTC/USDT", "FIL/USDT",
    "NEAR/USDT", "APT/USDT", "ARB/USDT", "OP/USDT", "SUI/USDT",
    "PEPE/USDT", "WIF/USDT", "FET/USDT", "RENDER/USDT", "INJ/USDT",
]

STABLECOINS = "stablecoins"
BITCOIN = "bitcoin"
LARGE_CAP = "large_cap_alts"
MID_CAP = "mid_cap_alts"
SMALL_CAP = "small_cap_alts"

CATEGORIES = (STABLECOINS, BITCOIN, LARGE_CAP, MID_CAP, SMALL_CAP)

COIN_CATEGORIES: dict[str, list[str]] = {
    STABLECOINS: ["USDT", "USDC"],
    BITCOIN: ["BTC/USDT"],
    LARGE_CAP: ["ETH/USDT", "SOL/USDT", "BNB/USDT", "XRP/USDT"],
    MID_CAP: [
        "ADA/USDT", "DOGE/USDT", "AVAX/USDT", "DOT/USDT",
        "LINK/USDT", "UNI/USDT", "ATOM/USDT", "LTC/USDT",
    ],
    SMALL_CAP: [
        "NEAR/USDT", "APT/USDT", "ARB/USDT", "OP/USDT", "SUI/USDT",
        "PEPE/USDT", "WIF/USDT", "FET/USDT", "RENDER/USDT", "INJ/USDT",
    ],
}


@dataclass
class CoinData:
    pair: str
    price: float
    volume_24h: float
    change_24h: float
    high_24h: float
    low_24h: float
    category: str

    @classmethod
    def from_price(cls, snapshot: PriceSnapshot) -> "CoinData":
        pair = normalize_pair(snapshot.pair)
        return cls(
            pair=pair,
            price=snapshot.price,
            volume_24h=snapshot.volume_24h,
            change_24h=snapshot.change_24h,
            high_24h=snapshot.high_24h or snapshot.price,
            low_24h=snapshot.low_24h or snapshot.price,
            category=find_category(pair),
        )


def find_category(pair: str) -> str:
    """Static membership lookup; unknown pairs count as stablecoins."""
    normalized = normalize_pair(pair)
    for category in (BITCOIN, LARGE_CAP, MID_CAP, SMALL_CAP):
        if normalized in COIN_CATEGORIES[category]:
            return category
    return STABLECOINS


async def scan_coins(
    watchlist: list[str] | None = None,
    gateway: MarketDataGateway | None = None,
) -> list[CoinData]:
    """Latest stats for each watchlist pair, highest 24h volume first.

    Pairs the gateway could not price are left out.
    """
    gateway = gateway or get_gateway()
    pairs = list(dict.fromkeys(normalize_pair(p) for p in (watchlist or DEFAULT_WATCHLIST)))
    prices = await gateway.get_multiple_prices(pairs)

    coins = [CoinData.from_price(prices[p]) for p in pairs if p in prices]
    coins.sort(key=lambda c: c.volume_24h, reverse=True)
    logger.debug(f"Scanned {len(coins)}/{len(pairs)} pairs")
    return coins


async def get_coins_by_category(
    category: str,
    gateway: MarketDataGateway | None = None,
) -> list[CoinData]:
    pairs = [p for p in COIN_CATEGORIES.get(category, []) if "/" in p]
    if not pairs:
        return []
    return await scan_coins(pairs, gateway=gateway)


def rank_coins_by_opportunity(coins: list[CoinData]) -> list[CoinData]:
    """Order by volume x |24h change|, largest first."""
    return sorted(coins, key=lambda c: c.volume_24h * abs(c.change_24h), reverse=True)


def build_market_snapshots(coins: list[CoinData], points: int | None = None) -> list[MarketSnapshot]:
    """Attach synthetic histories and watchlist-wide average volume.

    market_cap_rank is approximated by 24h-volume rank within the scan and
    volume_stability by the min/max ratio of the volume series.
    """
    if not coins:
        return []
    avg_volume = sum(c.volume_24h for c in coins) / len(coins)
    by_volume = sorted(coins, key=lambda c: c.volume_24h, reverse=True)
    ranks = {c.pair: i + 1 for i, c in enumerate(by_volume)}

    snapshots = []
    for coin in coins:
        prices = build_synthetic_series(coin.price, coin.change_24h, points)
        volumes = build_synthetic_volumes(coin.volume_24h, coin.change_24h, points)
        peak = max(volumes)
        snapshots.append(MarketSnapshot(
            pair=coin.pair,
            price=coin.price,
            volume_24h=coin.volume_24h,
            change_24h=coin.change_24h,
            high_24h=coin.high_24h,
            low_24h=coin.low_24h,
            category=coin.category,
            prices=tuple(prices),
            volumes=tuple(volumes),
            avg_volume_global=avg_volume,
            market_cap_rank=ranks[coin.pair],
            volume_stability=(min(volumes) / peak) if peak > 0 else 0.0,
        ))
    return snapshots


def snapshot_from_price(snapshot: PriceSnapshot, points: int | None = None) -> MarketSnapshot:
    """Single-pair MarketSnapshot for exit checks on an open trade."""
    coin = CoinData.from_price(snapshot)
    return replace(build_market_snapshots([coin], points)[0], market_cap_rank=None)
