"""PaperAccount model: virtual cash balance per (board, user), with its adjustment ledger."""

from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class PaperAccount(SQLModel, table=True):
    __tablename__ = "paper_accounts"
    __table_args__ = (UniqueConstraint("board_id", "user_id", name="uq_paper_account_board_user"),)

    id: int | None = Field(default=None, primary_key=True)
    board_id: int = Field(index=True)
    user_id: int = Field(index=True)
    starting_balance: float
    current_balance: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PaperAdjustment(SQLModel, table=True):
    """Append-only record of every delta applied to a paper account."""

    __tablename__ = "paper_adjustments"

    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="paper_accounts.id", index=True)
    delta: float
    balance_after: float
    reason: str  # "entry", "exit", "reset", ...
    trade_id: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
