"""Trade alerts: price / P&L / confidence rules checked against a live price map."""

import logging
import operator
from datetime import datetime, timezone

from sqlmodel import Session, select

from papertrader.database import engine
from papertrader.models.alert import TradeAlert
from papertrader.models.trade import Trade
from papertrader.services.trade_ledger import compute_pnl
from papertrader.utils.pairs import normalize_pair, optional_float

logger = logging.getLogger(__name__)

ALERT_TYPES = ("price_above", "price_below", "pnl_target", "stop_loss_hit", "confidence_change")

OPERATORS = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
}

DEFAULT_OPERATORS = {
    "price_above": ">=",
    "price_below": "<=",
    "pnl_target": ">=",
    "confidence_change": ">=",
}


def create_alert(
    board_id: int,
    alert_type: str,
    trade_id: int | None = None,
    condition_value: float | None = None,
    condition_operator: str | None = None,
    message: str | None = None,
    created_by: int | None = None,
) -> TradeAlert:
    if alert_type not in ALERT_TYPES:
        raise ValueError(f"Unknown alert type '{alert_type}'")
    if condition_operator is not None and condition_operator not in OPERATORS:
        raise ValueError(f"Unknown operator '{condition_operator}'")
    alert = TradeAlert(
        board_id=board_id,
        trade_id=trade_id,
        alert_type=alert_type,
        condition_value=condition_value,
        condition_operator=condition_operator,
        message=message,
        created_by=created_by,
    )
    with Session(engine) as session:
        session.add(alert)
        session.commit()
        session.refresh(alert)
        return alert


def get_alerts_for_board(board_id: int, include_triggered: bool = True) -> list[TradeAlert]:
    with Session(engine) as session:
        stmt = select(TradeAlert).where(TradeAlert.board_id == board_id)
        if not include_triggered:
            stmt = stmt.where(TradeAlert.triggered == False)  # noqa: E712
        return list(session.exec(stmt.order_by(TradeAlert.id.desc())).all())


def delete_alert(alert_id: int) -> bool:
    with Session(engine) as session:
        alert = session.get(TradeAlert, alert_id)
        if alert is None:
            return False
        session.delete(alert)
        session.commit()
        return True


def _compare(value: float | None, op: str | None, threshold: float | None, default_op: str) -> bool:
    if value is None or threshold is None:
        return False
    fn = OPERATORS.get(op or default_op, OPERATORS[default_op])
    return fn(value, threshold)


def evaluate_alert(alert: TradeAlert, trade: Trade | None, price: float | None) -> bool:
    """True when the alert condition holds for this trade at this price."""
    kind = alert.alert_type
    if kind in ("price_above", "price_below"):
        return _compare(price, alert.condition_operator, alert.condition_value, DEFAULT_OPERATORS[kind])

    if trade is None:
        return False

    if kind == "pnl_target":
        pnl = compute_pnl(trade.entry_price, price, trade.position_size, trade.direction)
        pnl_percent = pnl[1] if pnl is not None else trade.pnl_percent
        return _compare(pnl_percent, alert.condition_operator, alert.condition_value, ">=")

    if kind == "confidence_change":
        confidence = optional_float(trade.confidence_score)
        return _compare(confidence, alert.condition_operator, alert.condition_value, ">=")

    if kind == "stop_loss_hit":
        stop = optional_float(trade.stop_loss)
        if price is None or stop is None:
            return False
        if str(trade.direction or "long").lower() == "short":
            return price >= stop
        return price <= stop

    return False


def check_alerts(board_id: int, prices: dict[str, float]) -> list[TradeAlert]:
    """Evaluate the board's untriggered alerts; mark and return the ones that fire.

    The price for an alert comes from its trade's pair in `prices`, falling
    back to the trade's last known current price.
    """
    quotes = {normalize_pair(k): optional_float(v) for k, v in (prices or {}).items()}
    fired: list[TradeAlert] = []
    with Session(engine) as session:
        alerts = session.exec(
            select(TradeAlert).where(
                TradeAlert.board_id == board_id,
                TradeAlert.triggered == False,  # noqa: E712
            )
        ).all()
        for alert in alerts:
            trade = session.get(Trade, alert.trade_id) if alert.trade_id else None
            price = None
            if trade is not None:
                price = quotes.get(normalize_pair(trade.coin_pair))
                if price is None:
                    price = optional_float(trade.current_price)
            if not evaluate_alert(alert, trade, price):
                continue
            alert.triggered = True
            alert.triggered_at = datetime.now(timezone.utc)
            session.add(alert)
            fired.append(alert)
        session.commit()
        for alert in fired:
            session.refresh(alert)

    if fired:
        logger.info(f"Board {board_id}: {len(fired)} alert(s) triggered")
    return fired
