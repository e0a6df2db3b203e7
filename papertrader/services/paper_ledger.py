"""Paper account ledger: virtual cash per (board, user).

current_balance changes only through adjust() (and reset()), and every change
is mirrored by a PaperAdjustment row written in the same transaction, so
starting_balance + sum(deltas) == current_balance always holds.

Concurrent adjustments to the same account are serialized twice: an
in-process re-entrant lock per (board, user) spans the whole transaction, and
the row is read with SELECT ... FOR UPDATE for databases that honour it.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlmodel import Session, select

from papertrader.config import settings
from papertrader.database import engine
from papertrader.errors import InsufficientPaperBalance
from papertrader.models.paper_account import PaperAccount, PaperAdjustment

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_account_locks: dict[tuple[int, int], threading.RLock] = {}


def _lock_for(board_id: int, user_id: int) -> threading.RLock:
    key = (board_id, user_id)
    with _registry_lock:
        lock = _account_locks.get(key)
        if lock is None:
            lock = _account_locks[key] = threading.RLock()
        return lock


@contextmanager
def account_lock(board_id: int, user_id: int):
    """Hold the account's lock; callers wrap their whole transaction in it."""
    lock = _lock_for(board_id, user_id)
    with lock:
        yield


def _select_account(session: Session, board_id: int, user_id: int, for_update: bool = False):
    stmt = select(PaperAccount).where(
        PaperAccount.board_id == board_id,
        PaperAccount.user_id == user_id,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return session.exec(stmt).first()


def _ensure_account(
    session: Session,
    board_id: int,
    user_id: int,
    starting_balance: float | None,
    for_update: bool = False,
) -> PaperAccount:
    account = _select_account(session, board_id, user_id, for_update=for_update)
    if account is None:
        seed = settings.default_starting_balance if starting_balance is None else starting_balance
        account = PaperAccount(
            board_id=board_id,
            user_id=user_id,
            starting_balance=seed,
            current_balance=seed,
        )
        session.add(account)
        session.flush()
        logger.info(f"Opened paper account board={board_id} user={user_id} balance={seed:.2f}")
    return account


def get_account(board_id: int, user_id: int) -> PaperAccount | None:
    with Session(engine) as session:
        return _select_account(session, board_id, user_id)


def get_or_create(board_id: int, user_id: int, starting_balance: float | None = None) -> PaperAccount:
    """Return the existing account, or create one seeded with starting_balance."""
    with account_lock(board_id, user_id):
        with Session(engine) as session:
            account = _ensure_account(session, board_id, user_id, starting_balance)
            session.commit()
            session.refresh(account)
            return account


def adjust(
    board_id: int,
    user_id: int,
    delta: float,
    allow_negative: bool = False,
    reason: str = "adjust",
    trade_id: int | None = None,
    session: Session | None = None,
) -> PaperAccount:
    """Apply delta atomically and return the updated account.

    With `session`, the adjustment joins the caller's transaction and is not
    committed here; the caller must hold account_lock() until it commits.

    Raises InsufficientPaperBalance when the result would be negative and
    allow_negative is False.
    """
    if session is not None:
        with account_lock(board_id, user_id):
            return _apply(session, board_id, user_id, delta, allow_negative, reason, trade_id)

    with account_lock(board_id, user_id):
        with Session(engine) as own_session:
            account = _apply(own_session, board_id, user_id, delta, allow_negative, reason, trade_id)
            own_session.commit()
            own_session.refresh(account)
            return account


def _apply(
    session: Session,
    board_id: int,
    user_id: int,
    delta: float,
    allow_negative: bool,
    reason: str,
    trade_id: int | None,
) -> PaperAccount:
    account = _ensure_account(session, board_id, user_id, None, for_update=True)
    new_balance = account.current_balance + delta
    if new_balance < 0 and not allow_negative:
        logger.warning(
            f"Rejected paper adjustment board={board_id} user={user_id}: "
            f"balance {account.current_balance:.2f} delta {delta:.2f}"
        )
        raise InsufficientPaperBalance(account.current_balance, delta)

    account.current_balance = new_balance
    account.updated_at = datetime.now(timezone.utc)
    session.add(account)
    session.add(PaperAdjustment(
        account_id=account.id,
        delta=delta,
        balance_after=new_balance,
        reason=reason,
        trade_id=trade_id,
    ))
    session.flush()
    return account


def reset(board_id: int, user_id: int) -> PaperAccount:
    """Restore current balance to the starting balance, recording the delta."""
    with account_lock(board_id, user_id):
        with Session(engine) as session:
            account = _ensure_account(session, board_id, user_id, None, for_update=True)
            delta = account.starting_balance - account.current_balance
            if delta:
                _apply(session, board_id, user_id, delta, True, "reset", None)
            session.commit()
            session.refresh(account)
            logger.info(f"Reset paper account board={board_id} user={user_id} to {account.current_balance:.2f}")
            return account


def get_adjustments(board_id: int, user_id: int, limit: int | None = None) -> list[PaperAdjustment]:
    """Adjustment history, newest first."""
    with Session(engine) as session:
        account = _select_account(session, board_id, user_id)
        if account is None:
            return []
        stmt = (
            select(PaperAdjustment)
            .where(PaperAdjustment.account_id == account.id)
            .order_by(PaperAdjustment.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return list(session.exec(stmt).all())
