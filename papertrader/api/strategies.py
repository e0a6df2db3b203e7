"""Strategy catalog API."""

from fastapi import APIRouter, HTTPException

from papertrader.strategies.registry import TRADING_STYLES, get_strategy, list_strategies, strategies_by_style

router = APIRouter(prefix="/api/strategies", tags=["strategies"])


@router.get("")
def list_all():
    return [s.describe() for s in list_strategies()]


@router.get("/{style}")
def list_style(style: str):
    if style not in TRADING_STYLES:
        raise HTTPException(status_code=404, detail="Unknown trading style")
    return [s.describe() for s in strategies_by_style(style)]


@router.get("/{style}/{substyle}")
def get_one(style: str, substyle: str):
    strategy = get_strategy(style, substyle)
    if not strategy:
        raise HTTPException(status_code=404, detail="Strategy not found")
    return strategy.describe()
