"""TradingBot model: strategy selection, overrides and run state for one bot."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class TradingBot(SQLModel, table=True):
    __tablename__ = "trading_bots"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    board_id: int = Field(index=True)
    user_id: int = Field(index=True)

    # Strategy
    strategy_style: str  # e.g. "swing"
    strategy_substyle: str  # e.g. "momentum"
    strategy_config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Control
    status: str = "stopped"  # "running" | "stopped" | "paused"
    auto_trade: bool = False
    schedule_interval: str = "15m"

    # Rebalancer
    rebalancer_enabled: bool = False
    rebalancer_config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Runtime state
    performance: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    last_run_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
