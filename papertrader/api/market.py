"""Market API: live prices, top coins, candles and watchlist scans."""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query

from papertrader.services import coin_scanner, market_data

router = APIRouter(prefix="/api/market", tags=["market"])


@router.get("/price")
async def get_price(pair: str):
    snapshot = await market_data.get_current_price(pair)
    return snapshot.to_dict()


@router.get("/prices")
async def get_prices(pairs: str = Query(description="Comma-separated pairs, e.g. BTC/USDT,ETH/USDT")):
    """Batch prices. Pairs no venue could price are left out."""
    wanted = [p.strip() for p in pairs.split(",") if p.strip()]
    snapshots = await market_data.get_multiple_prices(wanted)
    return {pair: s.to_dict() for pair, s in snapshots.items()}


@router.get("/top")
async def top_coins(limit: int = Query(default=20, ge=1, le=200)):
    return [s.to_dict() for s in await market_data.get_top_coins(limit)]


@router.get("/ohlcv")
async def ohlcv(pair: str, timeframe: str = "1h", limit: int = Query(default=100, ge=1, le=1000)):
    frame = await market_data.get_ohlcv(pair, timeframe, limit)
    frame["time"] = frame["time"].astype(str)
    return frame.to_dict(orient="records")


@router.get("/scan")
async def scan(category: str | None = None, ranked: bool = False):
    """Scan the default watchlist, or one category of it."""
    if category is not None:
        if category not in coin_scanner.CATEGORIES:
            raise HTTPException(status_code=404, detail="Unknown category")
        coins = await coin_scanner.get_coins_by_category(category)
    else:
        coins = await coin_scanner.scan_coins()
    if ranked:
        coins = coin_scanner.rank_coins_by_opportunity(coins)
    return [asdict(c) for c in coins]
