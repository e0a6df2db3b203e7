"""Pydantic schemas for trade alerts."""

from typing import Literal

from pydantic import BaseModel, model_validator

AlertType = Literal["price_above", "price_below", "pnl_target", "stop_loss_hit", "confidence_change"]
Operator = Literal[">", ">=", "<", "<=", "="]


class AlertCreate(BaseModel):
    board_id: int
    alert_type: AlertType
    trade_id: int | None = None
    condition_value: float | None = None
    condition_operator: Operator | None = None
    message: str | None = None
    created_by: int | None = None

    @model_validator(mode="after")
    def _validate_condition(self):
        if self.trade_id is None:
            raise ValueError("alerts are evaluated against a trade; trade_id is required")
        if self.alert_type != "stop_loss_hit" and self.condition_value is None:
            raise ValueError(f"{self.alert_type} needs a condition_value")
        return self
