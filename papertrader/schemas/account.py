"""Pydantic schemas for paper accounts."""

from datetime import datetime

from pydantic import BaseModel


class PaperAccountRead(BaseModel):
    id: int
    board_id: int
    user_id: int
    starting_balance: float
    current_balance: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaperAdjustmentRead(BaseModel):
    id: int
    account_id: int
    delta: float
    balance_after: float
    reason: str
    trade_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}
