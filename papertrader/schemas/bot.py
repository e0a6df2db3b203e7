"""Pydantic schemas for TradingBot API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from papertrader.services.rebalancer import RebalancerConfig
from papertrader.utils.constants import VALID_INTERVALS


def _check_interval(value: str | None) -> str | None:
    if value is None:
        return None
    if value not in VALID_INTERVALS:
        allowed = ", ".join(VALID_INTERVALS)
        raise ValueError(f"must be one of: {allowed}")
    return value


class BotCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    board_id: int
    user_id: int
    strategy_style: str = Field(min_length=1)
    strategy_substyle: str = Field(min_length=1)
    strategy_config: dict[str, Any] | None = None
    auto_trade: bool = False
    rebalancer_enabled: bool = False
    rebalancer_config: RebalancerConfig | None = None
    schedule_interval: str | None = None
    starting_balance: float | None = Field(default=None, gt=0)

    @field_validator("name")
    @classmethod
    def _trim_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("schedule_interval")
    @classmethod
    def _validate_interval(cls, value: str | None) -> str | None:
        return _check_interval(value)


class BotUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    strategy_style: str | None = None
    strategy_substyle: str | None = None
    strategy_config: dict[str, Any] | None = None
    auto_trade: bool | None = None
    rebalancer_enabled: bool | None = None
    rebalancer_config: RebalancerConfig | None = None
    schedule_interval: str | None = None

    @field_validator("schedule_interval")
    @classmethod
    def _validate_interval(cls, value: str | None) -> str | None:
        return _check_interval(value)


class AutoTradeUpdate(BaseModel):
    auto_trade: bool


class RebalancerUpdate(BaseModel):
    rebalancer_enabled: bool | None = None
    rebalancer_config: RebalancerConfig


class BotRead(BaseModel):
    id: int
    name: str
    board_id: int
    user_id: int
    strategy_style: str
    strategy_substyle: str
    strategy_config: dict[str, Any] | None
    status: str
    auto_trade: bool
    schedule_interval: str
    rebalancer_enabled: bool
    rebalancer_config: dict[str, Any] | None
    performance: dict[str, Any] | None
    last_run_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BotExecutionRead(BaseModel):
    id: int
    bot_id: int
    action: str
    details: dict[str, Any] | None
    executed_at: datetime

    model_config = {"from_attributes": True}


class PortfolioSnapshotRead(BaseModel):
    id: int
    bot_id: int
    allocations: dict[str, float]
    total_value: float
    created_at: datetime

    model_config = {"from_attributes": True}


class CycleResultRead(BaseModel):
    bot_id: int
    actions: list[str]
    errors: list[str]
    skipped: bool = False
