"""BotExecution model: append-only per-action log for each bot cycle."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class BotExecution(SQLModel, table=True):
    __tablename__ = "bot_executions"

    id: int | None = Field(default=None, primary_key=True)
    bot_id: int = Field(foreign_key="trading_bots.id", index=True)
    action: str  # "cycle", "trade_entry", "trade_exit", "rebalance", "error", ...
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    executed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
