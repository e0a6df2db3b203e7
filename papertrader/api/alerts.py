"""Trade alert API."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from papertrader.models.trade import TERMINAL_STATUSES
from papertrader.schemas.alert import AlertCreate
from papertrader.services import alerts, market_data, trade_ledger

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


class AlertCheckRequest(BaseModel):
    board_id: int
    prices: dict[str, float] | None = None


@router.get("")
def list_alerts(board_id: int, include_triggered: bool = True):
    return alerts.get_alerts_for_board(board_id, include_triggered=include_triggered)


@router.post("", status_code=201)
def create_alert(data: AlertCreate):
    trade = trade_ledger.get_trade(data.trade_id)
    if not trade or trade.board_id != data.board_id:
        raise HTTPException(status_code=404, detail="Trade not found")
    return alerts.create_alert(**data.model_dump())


@router.delete("/{alert_id}", status_code=204)
def delete_alert(alert_id: int):
    if not alerts.delete_alert(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")


@router.post("/check")
async def check_alerts(body: AlertCheckRequest):
    """Evaluate the board's pending alerts. Live prices are fetched when none are given."""
    prices = body.prices
    if prices is None:
        pairs = sorted({
            t.coin_pair for t in trade_ledger.get_trades_for_board(body.board_id)
            if t.status not in TERMINAL_STATUSES
        })
        quotes = await market_data.get_multiple_prices(pairs) if pairs else {}
        prices = {pair: q.price for pair, q in quotes.items()}
    fired = alerts.check_alerts(body.board_id, prices)
    return {"triggered": fired, "count": len(fired)}
