"""PortfolioSnapshot model: category allocation recordings per bot."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class PortfolioSnapshot(SQLModel, table=True):
    __tablename__ = "portfolio_snapshots"

    id: int | None = Field(default=None, primary_key=True)
    bot_id: int = Field(foreign_key="trading_bots.id", index=True)
    allocations: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    total_value: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
