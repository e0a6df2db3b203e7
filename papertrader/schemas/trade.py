"""Pydantic schemas for the trade board API."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from papertrader.models.trade import Lane
from papertrader.utils.pairs import normalize_pair

Direction = Literal["long", "short"]


class TradeCreate(BaseModel):
    board_id: int
    user_id: int
    coin_pair: str = Field(min_length=1, max_length=32)
    direction: Direction = "long"
    column_name: Lane = Lane.WATCHLIST
    current_price: float | None = Field(default=None, gt=0)
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit: float | None = Field(default=None, gt=0)
    position_size: float | None = Field(default=None, ge=0)
    confidence_score: int | None = Field(default=None, ge=0, le=100)
    priority: str | None = None
    notes: str | None = None
    links: list[str] | None = None

    @field_validator("coin_pair")
    @classmethod
    def _normalize(cls, value: str) -> str:
        pair = normalize_pair(value)
        if not pair:
            raise ValueError("must not be empty")
        return pair

    @field_validator("column_name")
    @classmethod
    def _pre_entry_lane(cls, value: Lane) -> Lane:
        # New cards start before entry; use /enter to open a position
        if value not in (Lane.WATCHLIST, Lane.ANALYZING):
            raise ValueError("new trades start in Watchlist or Analyzing")
        return value


class TradeUpdate(BaseModel):
    direction: Direction | None = None
    current_price: float | None = Field(default=None, gt=0)
    stop_loss: float | None = Field(default=None, gt=0)
    take_profit: float | None = Field(default=None, gt=0)
    position_size: float | None = Field(default=None, ge=0)
    confidence_score: int | None = Field(default=None, ge=0, le=100)
    priority: str | None = None
    notes: str | None = None
    links: list[str] | None = None


class EnterRequest(BaseModel):
    entry_price: float | None = Field(default=None, gt=0)
    actor_name: str | None = None


class ExitRequest(BaseModel):
    exit_price: float | None = Field(default=None, gt=0)
    lesson_tag: str | None = None
    actor_name: str | None = None


class ParkRequest(BaseModel):
    pause_reason: str | None = None
    actor_name: str | None = None


class MoveRequest(BaseModel):
    to_column: Lane
    price: float | None = Field(default=None, gt=0)
    pause_reason: str | None = None
    lesson_tag: str | None = None
    actor_name: str | None = None


class SignalUpdate(BaseModel):
    tbo_signal: str | None = None
    rsi_value: float | None = Field(default=None, ge=0, le=100)
    macd_status: str | None = None
    volume_assessment: str | None = None
    confidence_score: int | None = Field(default=None, ge=0, le=100)
    current_price: float | None = Field(default=None, gt=0)
    actor_name: str | None = "Bot"


class JournalCreate(BaseModel):
    entry_type: str = "note"
    content: str = Field(min_length=1)
    mood: str | None = None
    created_by: int | None = None


class ScanRow(BaseModel):
    coin_pair: str = Field(min_length=1)
    direction: Direction | None = None
    tbo_signal: str | None = None
    confidence_score: int | None = Field(default=None, ge=0, le=100)
    rsi_value: float | None = None
    notes: str | None = None


class ScanRequest(BaseModel):
    board_id: int
    user_id: int
    scans: list[ScanRow]
    actor_name: str | None = "Bot"


class PriceMap(BaseModel):
    prices: dict[str, float]
