"""Trade board API: cards, lifecycle transitions, activity, journal and stats."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from papertrader.database import get_session
from papertrader.models.trade import Trade
from papertrader.schemas.trade import (
    EnterRequest,
    ExitRequest,
    JournalCreate,
    MoveRequest,
    ParkRequest,
    PriceMap,
    ScanRequest,
    SignalUpdate,
    TradeCreate,
    TradeUpdate,
)
from papertrader.services import trade_ledger

router = APIRouter(prefix="/api/trades", tags=["trades"])


def _found(trade: Trade | None) -> Trade:
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade


@router.get("")
def list_trades(
    board_id: int,
    column_name: str | None = None,
    status: str | None = None,
    bot_id: int | None = None,
    session: Session = Depends(get_session),
):
    stmt = select(Trade).where(Trade.board_id == board_id)
    if column_name:
        stmt = stmt.where(Trade.column_name == column_name)
    if status:
        stmt = stmt.where(Trade.status == status)
    if bot_id is not None:
        stmt = stmt.where(Trade.bot_id == bot_id)
    return session.exec(stmt.order_by(Trade.column_name, Trade.created_at, Trade.id)).all()


@router.post("", status_code=201)
def create_trade(data: TradeCreate):
    payload = data.model_dump(mode="json", exclude={"board_id", "user_id"})
    trade = trade_ledger.create_trade(data.board_id, data.user_id, payload)
    trade_ledger.log_trade_activity(trade.id, "CREATED", None, trade.column_name)
    return trade


@router.get("/stats")
def board_stats(board_id: int):
    return trade_ledger.get_board_trading_stats(board_id)


@router.post("/scan")
def scan(data: ScanRequest):
    """Upsert watchlist cards from scanner output."""
    rows = [row.model_dump() for row in data.scans]
    return trade_ledger.scan_trades(data.board_id, rows, data.user_id, data.actor_name)


@router.post("/prices")
def mark_to_market(data: PriceMap):
    return {"updated": trade_ledger.update_active_trade_prices(data.prices)}


@router.get("/{trade_id}")
def get_trade(trade_id: int, session: Session = Depends(get_session)):
    return _found(session.get(Trade, trade_id))


@router.put("/{trade_id}")
def update_trade(trade_id: int, data: TradeUpdate):
    return _found(trade_ledger.update_trade(trade_id, data.model_dump(exclude_unset=True)))


@router.delete("/{trade_id}", status_code=204)
def delete_trade(trade_id: int):
    if not trade_ledger.delete_trade(trade_id):
        raise HTTPException(status_code=404, detail="Trade not found")


@router.post("/{trade_id}/enter")
def enter_trade(trade_id: int, data: EnterRequest):
    return _found(trade_ledger.enter_trade(trade_id, data.entry_price, actor_name=data.actor_name))


@router.post("/{trade_id}/exit")
def exit_trade(trade_id: int, data: ExitRequest):
    return _found(trade_ledger.exit_trade(
        trade_id, data.exit_price, lesson_tag=data.lesson_tag, actor_name=data.actor_name,
    ))


@router.post("/{trade_id}/park")
def park_trade(trade_id: int, data: ParkRequest):
    return _found(trade_ledger.park_trade(trade_id, data.pause_reason, actor_name=data.actor_name))


@router.post("/{trade_id}/move")
def move_trade(trade_id: int, data: MoveRequest):
    return _found(trade_ledger.move_trade(
        trade_id,
        data.to_column.value,
        actor_name=data.actor_name,
        price=data.price,
        pause_reason=data.pause_reason,
        lesson_tag=data.lesson_tag,
    ))


@router.post("/{trade_id}/signals")
def update_signals(trade_id: int, data: SignalUpdate):
    signals = data.model_dump(exclude={"actor_name"}, exclude_none=True)
    return _found(trade_ledger.update_trade_signals(trade_id, signals, actor_name=data.actor_name))


@router.get("/{trade_id}/activity")
def trade_activity(trade_id: int):
    _found(trade_ledger.get_trade(trade_id))
    return trade_ledger.get_trade_activity(trade_id)


@router.get("/{trade_id}/journal")
def trade_journal(trade_id: int):
    _found(trade_ledger.get_trade(trade_id))
    return trade_ledger.get_journal_entries(trade_id)


@router.post("/{trade_id}/journal", status_code=201)
def add_journal(trade_id: int, data: JournalCreate):
    _found(trade_ledger.get_trade(trade_id))
    return trade_ledger.add_journal_entry(
        trade_id, data.entry_type, data.content, mood=data.mood, created_by=data.created_by,
    )
