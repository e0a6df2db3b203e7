"""Bot persistence: CRUD, run-state control, execution log and portfolio snapshots."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlmodel import Session, select

from papertrader.config import settings
from papertrader.database import engine
from papertrader.errors import BotNotFound
from papertrader.models.bot import TradingBot
from papertrader.models.bot_execution import BotExecution
from papertrader.models.portfolio_snapshot import PortfolioSnapshot
from papertrader.services import paper_ledger
from papertrader.strategies.registry import require_strategy

logger = logging.getLogger(__name__)

BOT_FIELDS = {
    "name", "strategy_style", "strategy_substyle", "strategy_config", "status",
    "auto_trade", "schedule_interval", "rebalancer_enabled", "rebalancer_config",
    "performance", "last_run_at",
}


def create_bot(
    name: str,
    board_id: int,
    user_id: int,
    strategy_style: str,
    strategy_substyle: str,
    strategy_config: dict[str, Any] | None = None,
    auto_trade: bool = False,
    rebalancer_enabled: bool = False,
    rebalancer_config: dict[str, Any] | None = None,
    schedule_interval: str | None = None,
    starting_balance: float | None = None,
) -> TradingBot:
    """Create a stopped bot and make sure its paper account exists.

    Raises StrategyNotFound for an unknown (style, substyle).
    """
    strategy = require_strategy(strategy_style, strategy_substyle)
    bot = TradingBot(
        name=name,
        board_id=board_id,
        user_id=user_id,
        strategy_style=strategy_style,
        strategy_substyle=strategy_substyle,
        strategy_config=strategy_config if strategy_config is not None else strategy.default_config.model_dump(),
        auto_trade=auto_trade,
        rebalancer_enabled=rebalancer_enabled,
        rebalancer_config=rebalancer_config or {},
        schedule_interval=schedule_interval or settings.default_schedule_interval,
    )
    with Session(engine) as session:
        session.add(bot)
        session.commit()
        session.refresh(bot)

    paper_ledger.get_or_create(board_id, user_id, starting_balance)
    logger.info(f"Created bot {bot.id} '{name}' ({strategy.key}) on board {board_id}")
    return bot


def get_bot(bot_id: int) -> TradingBot | None:
    with Session(engine) as session:
        return session.get(TradingBot, bot_id)


def require_bot(bot_id: int) -> TradingBot:
    bot = get_bot(bot_id)
    if bot is None:
        raise BotNotFound(f"Bot {bot_id} not found")
    return bot


def list_bots(
    board_id: int | None = None,
    user_id: int | None = None,
    status: str | None = None,
) -> list[TradingBot]:
    with Session(engine) as session:
        stmt = select(TradingBot)
        if board_id is not None:
            stmt = stmt.where(TradingBot.board_id == board_id)
        if user_id is not None:
            stmt = stmt.where(TradingBot.user_id == user_id)
        if status is not None:
            stmt = stmt.where(TradingBot.status == status)
        return list(session.exec(stmt.order_by(TradingBot.id)).all())


def update_bot(bot_id: int, updates: dict[str, Any]) -> TradingBot | None:
    """Apply allow-listed updates. A strategy change is validated first."""
    fields = {k: v for k, v in updates.items() if k in BOT_FIELDS}
    with Session(engine) as session:
        bot = session.get(TradingBot, bot_id)
        if bot is None:
            return None
        if "strategy_style" in fields or "strategy_substyle" in fields:
            require_strategy(
                fields.get("strategy_style", bot.strategy_style),
                fields.get("strategy_substyle", bot.strategy_substyle),
            )
        for key, value in fields.items():
            setattr(bot, key, value)
        bot.updated_at = datetime.now(timezone.utc)
        session.add(bot)
        session.commit()
        session.refresh(bot)
        return bot


def delete_bot(bot_id: int) -> bool:
    """Delete a bot and its logs. Its trades stay on the board."""
    with Session(engine) as session:
        bot = session.get(TradingBot, bot_id)
        if bot is None:
            return False
        for model in (BotExecution, PortfolioSnapshot):
            for row in session.exec(select(model).where(model.bot_id == bot_id)).all():
                session.delete(row)
        session.delete(bot)
        session.commit()
    logger.info(f"Deleted bot {bot_id}")
    return True


def _set_status(bot_id: int, status: str) -> TradingBot | None:
    bot = update_bot(bot_id, {"status": status})
    if bot is not None:
        log_bot_execution(bot_id, status if status != "running" else "started", {"status": status})
        logger.info(f"[bot_{bot_id}] status -> {status}")
    return bot


def start_bot(bot_id: int) -> TradingBot | None:
    return _set_status(bot_id, "running")


def stop_bot(bot_id: int) -> TradingBot | None:
    return _set_status(bot_id, "stopped")


def pause_bot(bot_id: int) -> TradingBot | None:
    return _set_status(bot_id, "paused")


# ---------------------------------------------------------------------------
# Execution log
# ---------------------------------------------------------------------------

def log_bot_execution(bot_id: int, action: str, details: dict[str, Any] | None = None) -> BotExecution:
    row = BotExecution(bot_id=bot_id, action=action, details=details)
    with Session(engine) as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        return row


def get_bot_executions(bot_id: int, limit: int = 50, action: str | None = None) -> list[BotExecution]:
    """Newest first."""
    with Session(engine) as session:
        stmt = select(BotExecution).where(BotExecution.bot_id == bot_id)
        if action:
            stmt = stmt.where(BotExecution.action == action)
        stmt = stmt.order_by(BotExecution.id.desc()).limit(limit)
        return list(session.exec(stmt).all())


# ---------------------------------------------------------------------------
# Portfolio snapshots
# ---------------------------------------------------------------------------

def save_portfolio_snapshot(bot_id: int, allocations: dict[str, float], total_value: float) -> PortfolioSnapshot:
    row = PortfolioSnapshot(bot_id=bot_id, allocations=allocations, total_value=total_value)
    with Session(engine) as session:
        session.add(row)
        session.commit()
        session.refresh(row)
        return row


def get_portfolio_snapshots(bot_id: int, limit: int = 50) -> list[PortfolioSnapshot]:
    """Newest first."""
    with Session(engine) as session:
        stmt = (
            select(PortfolioSnapshot)
            .where(PortfolioSnapshot.bot_id == bot_id)
            .order_by(PortfolioSnapshot.id.desc())
            .limit(limit)
        )
        return list(session.exec(stmt).all())


def get_latest_portfolio_snapshot(bot_id: int) -> PortfolioSnapshot | None:
    snapshots = get_portfolio_snapshots(bot_id, limit=1)
    return snapshots[0] if snapshots else None
