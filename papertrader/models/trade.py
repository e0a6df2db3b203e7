"""Trade model: one position lifecycle instance on a board, plus its activity and journal."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class Lane(str, Enum):
    WATCHLIST = "Watchlist"
    ANALYZING = "Analyzing"
    ACTIVE = "Active"
    PARKED = "Parked"
    WINS = "Wins"
    LOSSES = "Losses"


class TradeStatus(str, Enum):
    WATCHING = "watching"
    ANALYZING = "analyzing"
    ACTIVE = "active"
    PARKED = "parked"
    WON = "won"
    LOST = "lost"


LANE_STATUS: dict[Lane, TradeStatus] = {
    Lane.WATCHLIST: TradeStatus.WATCHING,
    Lane.ANALYZING: TradeStatus.ANALYZING,
    Lane.ACTIVE: TradeStatus.ACTIVE,
    Lane.PARKED: TradeStatus.PARKED,
    Lane.WINS: TradeStatus.WON,
    Lane.LOSSES: TradeStatus.LOST,
}

TERMINAL_STATUSES = {TradeStatus.WON.value, TradeStatus.LOST.value}
PRE_ACTIVE_STATUSES = {TradeStatus.WATCHING.value, TradeStatus.ANALYZING.value}


class Trade(SQLModel, table=True):
    __tablename__ = "trades"

    id: int | None = Field(default=None, primary_key=True)
    board_id: int = Field(index=True)
    created_by: int  # user id; bot-authored trades also carry bot_id
    bot_id: int | None = Field(default=None, index=True)
    coin_pair: str = Field(index=True)  # normalized BASE/QUOTE
    direction: str = "long"  # "long" | "short"
    column_name: str = Lane.WATCHLIST.value
    status: str = TradeStatus.WATCHING.value

    entry_price: float | None = None
    current_price: float | None = None
    exit_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    position_size: float | None = None  # notional in account currency, not units

    # Signal metadata
    tbo_signal: str | None = None  # strategy-assigned tag
    rsi_value: float | None = None
    macd_status: str | None = None
    volume_assessment: str | None = None
    confidence_score: int | None = None

    pnl_dollar: float | None = None
    pnl_percent: float | None = None

    priority: str | None = None
    pause_reason: str | None = None
    lesson_tag: str | None = None
    notes: str | None = None
    links: list[str] | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    entered_at: datetime | None = None
    exited_at: datetime | None = None


class TradeActivity(SQLModel, table=True):
    __tablename__ = "trade_activity"

    id: int | None = Field(default=None, primary_key=True)
    trade_id: int = Field(foreign_key="trades.id", index=True)
    action: str  # "ENTERED", "EXITED", "PARKED", "SIGNAL_UPDATE", "SCANNED", "move", ...
    from_column: str | None = None
    to_column: str | None = None
    actor_type: str = "user"  # "user" | "bot"
    actor_name: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class JournalEntry(SQLModel, table=True):
    __tablename__ = "trade_journal"

    id: int | None = Field(default=None, primary_key=True)
    trade_id: int = Field(foreign_key="trades.id", index=True)
    entry_type: str  # "entry", "exit", "note", "lesson", ...
    content: str
    mood: str | None = None
    created_by: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
