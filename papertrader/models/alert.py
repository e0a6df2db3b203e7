"""TradeAlert model: price/P&L/confidence rules evaluated against live prices."""

from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class TradeAlert(SQLModel, table=True):
    __tablename__ = "trade_alerts"

    id: int | None = Field(default=None, primary_key=True)
    board_id: int = Field(index=True)
    trade_id: int | None = Field(default=None, foreign_key="trades.id", index=True)
    alert_type: str  # price_above, price_below, pnl_target, stop_loss_hit, confidence_change
    condition_value: float | None = None
    condition_operator: str | None = None  # ">", ">=", "<", "<=", "="
    message: str | None = None
    triggered: bool = False
    triggered_at: datetime | None = None
    created_by: int | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
