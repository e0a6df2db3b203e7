"""Tests for the paper account ledger: upsert, adjustments, reset and conservation."""

import threading

import pytest

from papertrader.errors import InsufficientPaperBalance
from papertrader.services import paper_ledger


def _conserved(board_id: int, user_id: int) -> bool:
    account = paper_ledger.get_account(board_id, user_id)
    deltas = sum(a.delta for a in paper_ledger.get_adjustments(board_id, user_id))
    return account.starting_balance + deltas == pytest.approx(account.current_balance)


def test_get_or_create_is_idempotent():
    first = paper_ledger.get_or_create(1, 1, 5000)
    second = paper_ledger.get_or_create(1, 1, 9999)
    assert first.id == second.id
    assert second.starting_balance == 5000
    assert second.current_balance == 5000


def test_default_starting_balance():
    account = paper_ledger.get_or_create(1, 2)
    assert account.starting_balance == 10000


def test_adjust_debits_and_records():
    paper_ledger.get_or_create(1, 1, 1000)
    account = paper_ledger.adjust(1, 1, -250, reason="entry", trade_id=7)
    assert account.current_balance == 750

    [row] = paper_ledger.get_adjustments(1, 1)
    assert row.delta == -250
    assert row.balance_after == 750
    assert row.trade_id == 7


def test_overdraft_rejected_without_side_effects():
    paper_ledger.get_or_create(1, 1, 100)
    with pytest.raises(InsufficientPaperBalance) as exc:
        paper_ledger.adjust(1, 1, -150)
    assert exc.value.code == "INSUFFICIENT_PAPER_BALANCE"
    assert paper_ledger.get_account(1, 1).current_balance == 100
    assert paper_ledger.get_adjustments(1, 1) == []


def test_allow_negative_credit_path():
    paper_ledger.get_or_create(1, 1, 100)
    account = paper_ledger.adjust(1, 1, -150, allow_negative=True)
    assert account.current_balance == -50


def test_adjust_creates_missing_account():
    account = paper_ledger.adjust(3, 3, 25)
    assert account.starting_balance == 10000
    assert account.current_balance == 10025


def test_reset_restores_and_conserves():
    paper_ledger.get_or_create(1, 1, 1000)
    paper_ledger.adjust(1, 1, -400)
    account = paper_ledger.reset(1, 1)
    assert account.current_balance == 1000
    assert paper_ledger.get_adjustments(1, 1)[0].reason == "reset"
    assert _conserved(1, 1)


def test_concurrent_adjustments_conserve_balance():
    paper_ledger.get_or_create(1, 1, 10000)
    errors = []

    def worker(delta):
        try:
            for _ in range(20):
                paper_ledger.adjust(1, 1, delta)
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(d,)) for d in (-10, 15, -5, 20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    account = paper_ledger.get_account(1, 1)
    assert account.current_balance == pytest.approx(10000 + 20 * (-10 + 15 - 5 + 20))
    assert len(paper_ledger.get_adjustments(1, 1)) == 80
    assert _conserved(1, 1)
