"""Bot API: CRUD, run-state control, manual cycles, execution log and portfolio."""

from fastapi import APIRouter, HTTPException

from papertrader.engine import scheduler
from papertrader.engine.bot_job import run_all_active_bots, run_bot_cycle
from papertrader.models.bot import TradingBot
from papertrader.schemas.bot import (
    AutoTradeUpdate,
    BotCreate,
    BotExecutionRead,
    BotRead,
    BotUpdate,
    CycleResultRead,
    PortfolioSnapshotRead,
    RebalancerUpdate,
)
from papertrader.services import bots

router = APIRouter(prefix="/api/bots", tags=["bots"])


def _require(bot_id: int) -> TradingBot:
    bot = bots.get_bot(bot_id)
    if not bot:
        raise HTTPException(status_code=404, detail="Bot not found")
    return bot


def _update(bot_id: int, updates: dict) -> TradingBot:
    bot = bots.update_bot(bot_id, updates)
    if not bot:
        raise HTTPException(status_code=404, detail="Bot not found")
    return bot


@router.get("", response_model=list[BotRead])
def list_bots(
    board_id: int | None = None,
    user_id: int | None = None,
    status: str | None = None,
):
    return bots.list_bots(board_id=board_id, user_id=user_id, status=status)


@router.post("", response_model=BotRead, status_code=201)
def create_bot(data: BotCreate):
    payload = data.model_dump(exclude={"rebalancer_config"})
    if data.rebalancer_config is not None:
        payload["rebalancer_config"] = data.rebalancer_config.model_dump()
    return bots.create_bot(**payload)


@router.post("/run-all")
async def run_all():
    """Run one cycle for every running bot."""
    results = await run_all_active_bots()
    return {"count": len(results), "results": results}


@router.get("/{bot_id}", response_model=BotRead)
def get_bot(bot_id: int):
    return _require(bot_id)


@router.put("/{bot_id}", response_model=BotRead)
def update_bot(bot_id: int, data: BotUpdate):
    update_data = data.model_dump(exclude_unset=True, exclude={"rebalancer_config"})
    if data.rebalancer_config is not None:
        update_data["rebalancer_config"] = data.rebalancer_config.model_dump()
    bot = _update(bot_id, update_data)
    scheduler.sync_bot_job(bot)
    return bot


@router.delete("/{bot_id}", status_code=204)
def delete_bot(bot_id: int):
    _require(bot_id)
    scheduler.remove_bot_job(bot_id)
    bots.delete_bot(bot_id)


@router.post("/{bot_id}/start", response_model=BotRead)
def start_bot(bot_id: int):
    _require(bot_id)
    bot = bots.start_bot(bot_id)
    scheduler.sync_bot_job(bot)
    return bot


@router.post("/{bot_id}/stop", response_model=BotRead)
def stop_bot(bot_id: int):
    _require(bot_id)
    bot = bots.stop_bot(bot_id)
    scheduler.sync_bot_job(bot)
    return bot


@router.post("/{bot_id}/pause", response_model=BotRead)
def pause_bot(bot_id: int):
    _require(bot_id)
    bot = bots.pause_bot(bot_id)
    scheduler.sync_bot_job(bot)
    return bot


@router.put("/{bot_id}/auto-trade", response_model=BotRead)
def set_auto_trade(bot_id: int, data: AutoTradeUpdate):
    return _update(bot_id, {"auto_trade": data.auto_trade})


@router.put("/{bot_id}/rebalancer", response_model=BotRead)
def set_rebalancer(bot_id: int, data: RebalancerUpdate):
    updates = {"rebalancer_config": data.rebalancer_config.model_dump()}
    if data.rebalancer_enabled is not None:
        updates["rebalancer_enabled"] = data.rebalancer_enabled
    return _update(bot_id, updates)


@router.post("/{bot_id}/execute", response_model=CycleResultRead)
async def execute_bot(bot_id: int):
    """Manually run one cycle, regardless of the bot's status."""
    _require(bot_id)
    result = await run_bot_cycle(bot_id)
    return result.to_dict()


@router.get("/{bot_id}/executions", response_model=list[BotExecutionRead])
def list_executions(bot_id: int, limit: int = 50, action: str | None = None):
    _require(bot_id)
    return bots.get_bot_executions(bot_id, limit=limit, action=action)


@router.get("/{bot_id}/portfolio")
def get_portfolio(bot_id: int, limit: int = 20):
    _require(bot_id)
    history = bots.get_portfolio_snapshots(bot_id, limit=limit)
    return {
        "latest": PortfolioSnapshotRead.model_validate(history[0]) if history else None,
        "history": [PortfolioSnapshotRead.model_validate(s) for s in history],
    }
