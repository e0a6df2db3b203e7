"""Trade ledger: CRUD, lifecycle transitions and activity/journal logging.

Lifecycle:
    watching -> analyzing -> active -> won | lost
    parked is reachable from any non-terminal state. A trade parked after
    entry keeps its entry price and can be resumed or exited.

Enter and exit move paper cash. The trade update, the paper-account
adjustment and the activity/journal rows commit in one transaction under the
account lock, so a rejected debit leaves the trade untouched.
"""

import logging
from datetime import datetime, timezone
from typing import Any

import pandas as pd
from sqlmodel import Session, select

from papertrader.database import engine
from papertrader.errors import (
    EntryPriceRequired,
    ExitPriceRequired,
    InvalidTradeTransition,
    PauseReasonRequired,
)
from papertrader.models.alert import TradeAlert
from papertrader.models.trade import (
    LANE_STATUS,
    PRE_ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JournalEntry,
    Lane,
    Trade,
    TradeActivity,
    TradeStatus,
)
from papertrader.services import paper_ledger
from papertrader.utils.constants import BOT_ACTOR_TYPE, USER_ACTOR_TYPE
from papertrader.utils.pairs import normalize_pair, optional_float

logger = logging.getLogger(__name__)

# Fields callers may set through create_trade / update_trade. Others are dropped.
TRADE_FIELDS = {
    "column_name", "coin_pair", "direction", "entry_price", "current_price",
    "exit_price", "stop_loss", "take_profit", "position_size", "tbo_signal",
    "rsi_value", "macd_status", "volume_assessment", "confidence_score",
    "pnl_dollar", "pnl_percent", "bot_id", "priority", "pause_reason",
    "lesson_tag", "notes", "links", "status", "entered_at", "exited_at",
}

SIGNAL_FIELDS = (
    "tbo_signal", "rsi_value", "macd_status", "volume_assessment",
    "confidence_score", "current_price",
)

SCAN_FIELDS = ("direction", "tbo_signal", "confidence_score", "rsi_value", "notes")
# The entry debit and the exit P&L are both computed from these
LOCKED_AFTER_ENTRY = frozenset({"position_size", "direction"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# P&L
# ---------------------------------------------------------------------------

def compute_pnl(
    entry_price: float | None,
    price: float | None,
    position_size: float | None,
    direction: str | None = "long",
) -> tuple[float | None, float] | None:
    """Return (pnl_dollar, pnl_percent) for a notional position.

    per_unit_pct = (P - E) / E for longs, (E - P) / E for shorts.
    pnl_percent = per_unit_pct * 100 and pnl_dollar = per_unit_pct * size,
    where size is account-currency notional, not asset units. pnl_dollar is
    None when the size is unknown. E == 0 yields zero P&L.
    """
    entry = optional_float(entry_price)
    current = optional_float(price)
    if entry is None or current is None:
        return None
    size = optional_float(position_size)

    if entry == 0:
        return (0.0 if size is not None else None), 0.0

    is_short = str(direction or "long").lower() == "short"
    per_unit_pct = (entry - current) / entry if is_short else (current - entry) / entry
    pnl_dollar = per_unit_pct * size if size is not None else None
    return pnl_dollar, per_unit_pct * 100


def closing_lane(pnl_dollar: float | None, pnl_percent: float | None) -> Lane:
    """Losses only for strictly negative P&L; breakeven counts as a win."""
    basis = pnl_dollar if pnl_dollar is not None else pnl_percent
    if basis is not None and basis < 0:
        return Lane.LOSSES
    return Lane.WINS


# ---------------------------------------------------------------------------
# Activity / journal
# ---------------------------------------------------------------------------

def log_trade_activity(
    trade_id: int,
    action: str,
    from_column: str | None,
    to_column: str | None,
    actor_type: str = USER_ACTOR_TYPE,
    actor_name: str | None = None,
    details: dict | None = None,
    session: Session | None = None,
) -> TradeActivity:
    activity = TradeActivity(
        trade_id=trade_id,
        action=action,
        from_column=from_column,
        to_column=to_column,
        actor_type=actor_type,
        actor_name=actor_name,
        details=details,
    )
    if session is not None:
        session.add(activity)
        return activity
    with Session(engine) as own:
        own.add(activity)
        own.commit()
        own.refresh(activity)
        return activity


def get_trade_activity(trade_id: int) -> list[TradeActivity]:
    """Newest first."""
    with Session(engine) as session:
        stmt = (
            select(TradeActivity)
            .where(TradeActivity.trade_id == trade_id)
            .order_by(TradeActivity.id.desc())
        )
        return list(session.exec(stmt).all())


def add_journal_entry(
    trade_id: int,
    entry_type: str,
    content: str,
    mood: str | None = None,
    created_by: int | None = None,
    session: Session | None = None,
) -> JournalEntry:
    entry = JournalEntry(
        trade_id=trade_id,
        entry_type=entry_type,
        content=content,
        mood=mood,
        created_by=created_by,
    )
    if session is not None:
        session.add(entry)
        return entry
    with Session(engine) as own:
        own.add(entry)
        own.commit()
        own.refresh(entry)
        return entry


def get_journal_entries(trade_id: int) -> list[JournalEntry]:
    with Session(engine) as session:
        stmt = (
            select(JournalEntry)
            .where(JournalEntry.trade_id == trade_id)
            .order_by(JournalEntry.id)
        )
        return list(session.exec(stmt).all())


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def _clean_fields(data: dict[str, Any]) -> dict[str, Any]:
    clean = {k: v for k, v in data.items() if k in TRADE_FIELDS}
    if clean.get("coin_pair"):
        clean["coin_pair"] = normalize_pair(clean["coin_pair"])
    if clean.get("direction"):
        clean["direction"] = str(clean["direction"]).lower()
    return clean


def create_trade(board_id: int, user_id: int, data: dict[str, Any]) -> Trade:
    """Insert a trade. Unlisted fields are silently dropped."""
    fields = {k: v for k, v in _clean_fields(data).items() if v is not None}
    lane = fields.get("column_name")
    if lane and "status" not in fields and lane in {l.value for l in Lane}:
        fields["status"] = LANE_STATUS[Lane(lane)].value

    trade = Trade(board_id=board_id, created_by=user_id, **fields)
    with Session(engine) as session:
        session.add(trade)
        session.commit()
        session.refresh(trade)
    logger.debug(f"Created trade {trade.id} {trade.coin_pair} on board {board_id}")
    return trade


def get_trade(trade_id: int) -> Trade | None:
    with Session(engine) as session:
        return session.get(Trade, trade_id)


def update_trade(trade_id: int, updates: dict[str, Any]) -> Trade | None:
    """Apply allow-listed field updates. Returns None for an unknown id.

    Size and direction are fixed once the trade has been entered.
    """
    fields = _clean_fields(updates)
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
        if trade is None:
            return None
        if not fields:
            return trade
        locked = sorted(k for k in LOCKED_AFTER_ENTRY.intersection(fields) if fields[k] != getattr(trade, k))
        if locked and trade.entry_price is not None:
            raise InvalidTradeTransition(
                f"Trade {trade_id} {', '.join(locked)} cannot change after entry"
            )
        for key, value in fields.items():
            setattr(trade, key, value)
        trade.updated_at = _now()
        session.add(trade)
        session.commit()
        session.refresh(trade)
        return trade


def delete_trade(trade_id: int) -> bool:
    """Delete a trade with its activity, journal and alerts."""
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
        if trade is None:
            return False
        for model in (TradeActivity, JournalEntry, TradeAlert):
            for row in session.exec(select(model).where(model.trade_id == trade_id)).all():
                session.delete(row)
        session.delete(trade)
        session.commit()
    logger.info(f"Deleted trade {trade_id}")
    return True


def get_trades_for_board(
    board_id: int,
    column_name: str | None = None,
    status: str | None = None,
) -> list[Trade]:
    with Session(engine) as session:
        stmt = select(Trade).where(Trade.board_id == board_id)
        if column_name:
            stmt = stmt.where(Trade.column_name == column_name)
        if status:
            stmt = stmt.where(Trade.status == status)
        stmt = stmt.order_by(Trade.column_name, Trade.created_at, Trade.id)
        return list(session.exec(stmt).all())


def get_trades_for_bot(bot_id: int) -> list[Trade]:
    with Session(engine) as session:
        stmt = select(Trade).where(Trade.bot_id == bot_id).order_by(Trade.id)
        return list(session.exec(stmt).all())


def get_active_trades_for_bot(bot_id: int) -> list[Trade]:
    with Session(engine) as session:
        stmt = (
            select(Trade)
            .where(Trade.bot_id == bot_id, Trade.status == TradeStatus.ACTIVE.value)
            .order_by(Trade.id)
        )
        return list(session.exec(stmt).all())


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

def _owner(trade_id: int) -> tuple[int, int] | None:
    trade = get_trade(trade_id)
    if trade is None:
        return None
    return trade.board_id, trade.created_by


def enter_trade(
    trade_id: int,
    entry_price: float | None = None,
    actor_type: str = USER_ACTOR_TYPE,
    actor_name: str | None = None,
) -> Trade | None:
    """Open the position: set entry, debit the paper account, move to Active.

    Falls back to the trade's current price when entry_price is omitted.
    """
    owner = _owner(trade_id)
    if owner is None:
        return None
    board_id, user_id = owner

    with paper_ledger.account_lock(board_id, user_id):
        with Session(engine) as session:
            trade = session.get(Trade, trade_id)
            can_enter = trade.status in PRE_ACTIVE_STATUSES or (
                trade.status == TradeStatus.PARKED.value and trade.entry_price is None
            )
            if not can_enter:
                raise InvalidTradeTransition(f"Trade {trade_id} cannot be entered from {trade.status}")

            price = optional_float(entry_price)
            if price is None:
                price = optional_float(trade.current_price)
            if price is None:
                raise EntryPriceRequired(f"Trade {trade_id} has no entry or current price")

            size = optional_float(trade.position_size)
            if size is not None and size > 0:
                paper_ledger.adjust(
                    board_id, user_id, -size,
                    reason="entry", trade_id=trade_id, session=session,
                )

            from_column = trade.column_name
            trade.entry_price = price
            if trade.current_price is None:
                trade.current_price = price
            trade.entered_at = _now()
            trade.status = TradeStatus.ACTIVE.value
            trade.column_name = Lane.ACTIVE.value
            trade.pnl_dollar, trade.pnl_percent = compute_pnl(
                price, trade.current_price, size, trade.direction
            )
            trade.updated_at = _now()
            session.add(trade)

            log_trade_activity(
                trade_id, "ENTERED", from_column, Lane.ACTIVE.value, actor_type, actor_name,
                {"entry_price": price, "direction": trade.direction, "position_size": size},
                session=session,
            )
            size_note = f" with {size:.2f} notional" if size else ""
            add_journal_entry(
                trade_id, "entry",
                f"Entered {trade.direction} {trade.coin_pair} at {price:g}{size_note}",
                created_by=user_id, session=session,
            )
            session.commit()
            session.refresh(trade)

    logger.info(f"Trade {trade_id} entered {trade.coin_pair} at {price:g}")
    return trade


def exit_trade(
    trade_id: int,
    exit_price: float | None,
    lesson_tag: str | None = None,
    actor_type: str = USER_ACTOR_TYPE,
    actor_name: str | None = None,
) -> Trade | None:
    """Close the position at exit_price and credit size + P&L back to the account."""
    owner = _owner(trade_id)
    if owner is None:
        return None
    board_id, user_id = owner

    with paper_ledger.account_lock(board_id, user_id):
        with Session(engine) as session:
            trade = session.get(Trade, trade_id)
            if trade.status in TERMINAL_STATUSES:
                raise InvalidTradeTransition(f"Trade {trade_id} is already closed")
            price = optional_float(exit_price)
            if price is None:
                raise ExitPriceRequired(f"Trade {trade_id} exit needs a price")
            if trade.entry_price is None:
                raise EntryPriceRequired(f"Trade {trade_id} was never entered")

            size = optional_float(trade.position_size)
            pnl_dollar, pnl_percent = compute_pnl(trade.entry_price, price, size, trade.direction)
            lane = closing_lane(pnl_dollar, pnl_percent)

            if size is not None and size > 0:
                paper_ledger.adjust(
                    board_id, user_id, size + (pnl_dollar or 0.0),
                    allow_negative=True, reason="exit", trade_id=trade_id, session=session,
                )

            from_column = trade.column_name
            trade.exit_price = price
            trade.current_price = price
            trade.exited_at = _now()
            trade.pnl_dollar = pnl_dollar
            trade.pnl_percent = pnl_percent
            trade.status = LANE_STATUS[lane].value
            trade.column_name = lane.value
            if lesson_tag:
                trade.lesson_tag = lesson_tag
            trade.updated_at = _now()
            session.add(trade)

            log_trade_activity(
                trade_id, "EXITED", from_column, lane.value, actor_type, actor_name,
                {
                    "exit_price": price,
                    "pnl_dollar": pnl_dollar,
                    "pnl_percent": pnl_percent,
                    "lesson_tag": lesson_tag,
                },
                session=session,
            )
            pnl_note = f"{pnl_percent:+.2f}%"
            if pnl_dollar is not None:
                pnl_note += f" ({pnl_dollar:+.2f})"
            content = f"Exited {trade.coin_pair} at {price:g}, P&L {pnl_note}"
            if lesson_tag:
                content += f". Lesson: {lesson_tag}"
            add_journal_entry(trade_id, "exit", content, created_by=user_id, session=session)
            session.commit()
            session.refresh(trade)

    logger.info(f"Trade {trade_id} exited {trade.coin_pair} at {price:g} -> {trade.column_name}")
    return trade


def park_trade(
    trade_id: int,
    pause_reason: str | None,
    actor_type: str = USER_ACTOR_TYPE,
    actor_name: str | None = None,
) -> Trade | None:
    """Set a non-terminal trade aside. No balance effect."""
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
        if trade is None:
            return None
        if not pause_reason or not str(pause_reason).strip():
            raise PauseReasonRequired(f"Trade {trade_id} park needs a reason")
        if trade.status in TERMINAL_STATUSES:
            raise InvalidTradeTransition(f"Trade {trade_id} is already closed")

        from_column = trade.column_name
        trade.column_name = Lane.PARKED.value
        trade.status = TradeStatus.PARKED.value
        trade.pause_reason = pause_reason
        trade.updated_at = _now()
        session.add(trade)
        log_trade_activity(
            trade_id, "PARKED", from_column, Lane.PARKED.value, actor_type, actor_name,
            {"pause_reason": pause_reason}, session=session,
        )
        session.commit()
        session.refresh(trade)
        return trade


def move_trade(
    trade_id: int,
    to_column: str,
    actor_type: str = USER_ACTOR_TYPE,
    actor_name: str | None = None,
    price: float | None = None,
    pause_reason: str | None = None,
    lesson_tag: str | None = None,
) -> Trade | None:
    """Move a trade between lanes through the lifecycle rules.

    Active enters (or resumes a parked position), Wins/Losses exit at `price`
    with the lane decided by the P&L sign, Parked parks with `pause_reason`.
    Watchlist and Analyzing are only reachable before entry.
    """
    try:
        lane = Lane(to_column)
    except ValueError:
        raise InvalidTradeTransition(f"Unknown lane {to_column!r}")

    trade = get_trade(trade_id)
    if trade is None:
        return None
    if trade.status in TERMINAL_STATUSES:
        raise InvalidTradeTransition(f"Trade {trade_id} is already closed")

    if lane in (Lane.WINS, Lane.LOSSES):
        if price is None:
            raise ExitPriceRequired(f"Trade {trade_id} exit needs a price")
        return exit_trade(trade_id, price, lesson_tag, actor_type, actor_name)
    if lane == Lane.PARKED:
        return park_trade(trade_id, pause_reason, actor_type, actor_name)
    if lane == Lane.ACTIVE:
        if trade.entry_price is None:
            return enter_trade(trade_id, price, actor_type, actor_name)
        if trade.status != TradeStatus.PARKED.value:
            raise InvalidTradeTransition(f"Trade {trade_id} is already active")
        return _plain_move(trade_id, lane, actor_type, actor_name)

    if trade.entry_price is not None:
        raise InvalidTradeTransition(f"Trade {trade_id} has been entered; it cannot return to {lane.value}")
    return _plain_move(trade_id, lane, actor_type, actor_name)


def _plain_move(trade_id: int, lane: Lane, actor_type: str, actor_name: str | None) -> Trade:
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
        from_column = trade.column_name
        trade.column_name = lane.value
        trade.status = LANE_STATUS[lane].value
        trade.updated_at = _now()
        session.add(trade)
        log_trade_activity(trade_id, "move", from_column, lane.value, actor_type, actor_name, session=session)
        session.commit()
        session.refresh(trade)
        return trade


def update_trade_signals(
    trade_id: int,
    signals: dict[str, Any],
    actor_name: str | None = "Bot",
) -> Trade | None:
    """Refresh technical fields; active trades are also marked to market."""
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
        if trade is None:
            return None
        if trade.status in TERMINAL_STATUSES:
            raise InvalidTradeTransition(f"Trade {trade_id} is already closed")

        applied = {k: signals[k] for k in SIGNAL_FIELDS if signals.get(k) is not None}
        for key, value in applied.items():
            setattr(trade, key, value)
        if "current_price" in applied and trade.status == TradeStatus.ACTIVE.value:
            pnl = compute_pnl(trade.entry_price, applied["current_price"], trade.position_size, trade.direction)
            if pnl is not None:
                trade.pnl_dollar, trade.pnl_percent = pnl
        trade.updated_at = _now()
        session.add(trade)
        log_trade_activity(
            trade_id, "SIGNAL_UPDATE", trade.column_name, trade.column_name,
            BOT_ACTOR_TYPE, actor_name, applied, session=session,
        )
        session.commit()
        session.refresh(trade)
        return trade


def update_active_trade_prices(prices: dict[str, float]) -> int:
    """Mark every active trade to market. Returns the number updated."""
    quotes = {normalize_pair(pair): optional_float(p) for pair, p in prices.items()}
    updated = 0
    with Session(engine) as session:
        active = session.exec(select(Trade).where(Trade.status == TradeStatus.ACTIVE.value)).all()
        for trade in active:
            price = quotes.get(normalize_pair(trade.coin_pair))
            if price is None:
                continue
            trade.current_price = price
            pnl = compute_pnl(trade.entry_price, price, trade.position_size, trade.direction)
            trade.pnl_dollar, trade.pnl_percent = pnl if pnl is not None else (None, None)
            trade.updated_at = _now()
            session.add(trade)
            updated += 1
        session.commit()
    return updated


def scan_trades(
    board_id: int,
    scans: list[dict[str, Any]],
    user_id: int,
    actor_name: str | None = "Bot",
) -> list[Trade]:
    """Upsert watchlist rows from scanner output.

    An open trade on the same pair is updated in place; otherwise a new
    Watchlist trade is created. Each row gets a SCANNED activity.
    """
    results: list[Trade] = []
    with Session(engine) as session:
        for scan in scans:
            pair = normalize_pair(scan.get("coin_pair", ""))
            if not pair:
                continue
            updates = {k: scan[k] for k in SCAN_FIELDS if scan.get(k) is not None}
            if "direction" in updates:
                updates["direction"] = str(updates["direction"]).lower()

            existing = session.exec(
                select(Trade)
                .where(
                    Trade.board_id == board_id,
                    Trade.coin_pair == pair,
                    Trade.status.not_in(sorted(TERMINAL_STATUSES)),
                )
                .order_by(Trade.id.desc())
            ).first()

            if existing is not None:
                if existing.entry_price is not None:
                    updates.pop("direction", None)
                for key, value in updates.items():
                    setattr(existing, key, value)
                existing.updated_at = _now()
                session.add(existing)
                session.flush()
                log_trade_activity(
                    existing.id, "SCANNED", existing.column_name, existing.column_name,
                    BOT_ACTOR_TYPE, actor_name, updates, session=session,
                )
                results.append(existing)
            else:
                trade = Trade(
                    board_id=board_id,
                    created_by=user_id,
                    coin_pair=pair,
                    column_name=Lane.WATCHLIST.value,
                    status=TradeStatus.WATCHING.value,
                    **updates,
                )
                session.add(trade)
                session.flush()
                log_trade_activity(
                    trade.id, "SCANNED", None, Lane.WATCHLIST.value,
                    BOT_ACTOR_TYPE, actor_name, {"coin_pair": pair, **updates}, session=session,
                )
                results.append(trade)
        session.commit()
        for trade in results:
            session.refresh(trade)
    return results


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def _pnl_summary(frame: pd.DataFrame) -> dict[str, float]:
    closed = frame[frame["closed"]]
    pnl = closed["pnl_dollar"].fillna(0.0)
    wins = int((closed["column_name"] == Lane.WINS.value).sum())
    losses = int((closed["column_name"] == Lane.LOSSES.value).sum())
    decided = wins + losses
    winners = pnl[pnl > 0]
    losers = pnl[pnl < 0]
    return {
        "wins": wins,
        "losses": losses,
        "win_rate": round(wins / decided * 100, 2) if decided else 0.0,
        "total_pnl": float(pnl.sum()),
        "avg_win": float(winners.mean()) if not winners.empty else 0.0,
        "avg_loss": float(losers.mean()) if not losers.empty else 0.0,
    }


def get_board_trading_stats(board_id: int) -> dict[str, Any]:
    """Totals, win rate, average win/loss, best/worst trade and per-pair breakdown."""
    trades = get_trades_for_board(board_id)
    empty = {
        "total_trades": 0, "active_trades": 0, "closed_trades": 0, "wins": 0, "losses": 0, "win_rate": 0.0,
        "total_pnl": 0.0, "avg_win": 0.0, "avg_loss": 0.0, "best_trade": 0.0,
        "worst_trade": 0.0, "by_coin": [], "recent_trades": [],
    }
    if not trades:
        return empty

    frame = pd.DataFrame([t.model_dump() for t in trades])
    frame["closed"] = frame["status"].isin(TERMINAL_STATUSES)
    frame["pnl_dollar"] = pd.to_numeric(frame["pnl_dollar"], errors="coerce")
    closed_pnl = frame.loc[frame["closed"], "pnl_dollar"].dropna()

    stats = {
        "total_trades": len(frame),
        "active_trades": int((frame["status"] == TradeStatus.ACTIVE.value).sum()),
        "closed_trades": int(frame["closed"].sum()),
        **_pnl_summary(frame),
        "best_trade": float(closed_pnl.max()) if not closed_pnl.empty else 0.0,
        "worst_trade": float(closed_pnl.min()) if not closed_pnl.empty else 0.0,
    }

    stats["by_coin"] = [
        {"coin_pair": pair, "total_trades": len(group), **_pnl_summary(group)}
        for pair, group in frame.groupby("coin_pair", sort=True)
    ]

    recent = sorted(
        (t for t in trades if t.status in TERMINAL_STATUSES),
        key=lambda t: (t.exited_at is not None, t.exited_at or t.updated_at),
        reverse=True,
    )[:10]
    stats["recent_trades"] = [
        {
            "id": t.id,
            "coin_pair": t.coin_pair,
            "direction": t.direction,
            "entry_price": t.entry_price,
            "exit_price": t.exit_price,
            "pnl_dollar": t.pnl_dollar,
            "pnl_percent": t.pnl_percent,
            "exited_at": t.exited_at,
            "column_name": t.column_name,
        }
        for t in recent
    ]
    return stats
