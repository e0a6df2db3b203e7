"""System API: health check, scheduler status and the cross-bot execution log."""

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from papertrader.database import get_session
from papertrader.models.bot_execution import BotExecution
from papertrader.schemas.bot import BotExecutionRead

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status():
    from papertrader.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.get("/executions", response_model=list[BotExecutionRead])
def recent_executions(
    bot_id: int | None = None,
    action: str | None = None,
    limit: int = 100,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    """Execution log across all bots, newest first."""
    stmt = select(BotExecution).order_by(BotExecution.id.desc())
    if bot_id is not None:
        stmt = stmt.where(BotExecution.bot_id == bot_id)
    if action is not None:
        stmt = stmt.where(BotExecution.action == action)
    return session.exec(stmt.offset(offset).limit(limit)).all()
