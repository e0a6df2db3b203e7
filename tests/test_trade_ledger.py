"""Tests for the trade lifecycle: P&L, enter/exit/park/move and ledger effects."""

import pytest

from papertrader.errors import (
    EntryPriceRequired,
    ExitPriceRequired,
    InsufficientPaperBalance,
    InvalidTradeTransition,
    PauseReasonRequired,
)
from papertrader.models.trade import Lane
from papertrader.services import alerts, paper_ledger, trade_ledger
from papertrader.services.trade_ledger import closing_lane, compute_pnl

BOARD, USER = 1, 1


def _trade(**fields):
    data = {"coin_pair": "btc-usdt", "column_name": "Watchlist"}
    data.update(fields)
    return trade_ledger.create_trade(BOARD, USER, data)


def _balance() -> float:
    return paper_ledger.get_account(BOARD, USER).current_balance


@pytest.fixture
def account():
    return paper_ledger.get_or_create(BOARD, USER, 10000)


# ---------------------------------------------------------------------------
# P&L
# ---------------------------------------------------------------------------

class TestComputePnl:
    def test_long(self):
        assert compute_pnl(100, 110, 1000, "long") == pytest.approx((100.0, 10.0))

    def test_short(self):
        assert compute_pnl(100, 90, 1000, "short") == pytest.approx((100.0, 10.0))

    def test_size_is_notional_not_units(self):
        pnl_dollar, _ = compute_pnl(50000, 51000, 500, "long")
        assert pnl_dollar == pytest.approx(10.0)

    def test_zero_entry(self):
        assert compute_pnl(0, 10, 100, "long") == (0.0, 0.0)

    def test_missing_size(self):
        assert compute_pnl(100, 90, None, "long") == (None, pytest.approx(-10.0))

    def test_missing_price(self):
        assert compute_pnl(None, 90, 100) is None


def test_closing_lane_zero_is_win():
    assert closing_lane(0.0, 0.0) == Lane.WINS
    assert closing_lane(-0.01, -1) == Lane.LOSSES
    assert closing_lane(None, -1) == Lane.LOSSES


# ---------------------------------------------------------------------------
# Create / update
# ---------------------------------------------------------------------------

def test_create_normalizes_and_derives_status():
    trade = _trade(column_name="Analyzing", direction="LONG")
    assert trade.coin_pair == "BTC/USDT"
    assert trade.status == "analyzing"
    assert trade.direction == "long"


def test_update_drops_unlisted_fields():
    trade = _trade()
    updated = trade_ledger.update_trade(trade.id, {"notes": "watch volume", "board_id": 99, "bogus": 1})
    assert updated.notes == "watch volume"
    assert updated.board_id == BOARD


def test_size_and_direction_fixed_after_entry(account):
    trade = _trade(position_size=100)
    trade_ledger.update_trade(trade.id, {"position_size": 200, "direction": "short"})
    trade_ledger.enter_trade(trade.id, 100)
    assert _balance() == 9800

    with pytest.raises(InvalidTradeTransition):
        trade_ledger.update_trade(trade.id, {"position_size": 9000})
    with pytest.raises(InvalidTradeTransition):
        trade_ledger.update_trade(trade.id, {"direction": "long"})
    # Unchanged values and other fields still go through
    updated = trade_ledger.update_trade(trade.id, {"position_size": 200, "notes": "holding"})
    assert updated.notes == "holding"

    closed = trade_ledger.exit_trade(trade.id, 100)
    assert closed.position_size == 200
    assert closed.direction == "short"
    assert _balance() == 10000


def test_scan_keeps_direction_of_entered_trade(account):
    trade = _trade(position_size=100)
    trade_ledger.enter_trade(trade.id, 100)
    trade_ledger.scan_trades(BOARD, [{"coin_pair": "BTC/USDT", "direction": "short", "confidence_score": 30}], USER)

    scanned = trade_ledger.get_trade(trade.id)
    assert scanned.direction == "long"
    assert scanned.confidence_score == 30


def test_unknown_trade_returns_none():
    assert trade_ledger.get_trade(404) is None
    assert trade_ledger.enter_trade(404, 10) is None
    assert trade_ledger.update_trade(404, {"notes": "x"}) is None


# ---------------------------------------------------------------------------
# Lifecycle scenarios
# ---------------------------------------------------------------------------

def test_round_trip_at_same_price_is_won(account):
    trade = _trade(position_size=1000)
    trade_ledger.enter_trade(trade.id, 100)
    assert _balance() == 9000

    closed = trade_ledger.exit_trade(trade.id, 100)
    assert closed.pnl_dollar == 0
    assert closed.pnl_percent == 0
    assert closed.status == "won"
    assert closed.column_name == "Wins"
    assert _balance() == 10000


def test_short_round_trip(account):
    trade = _trade(direction="short", position_size=1000)
    trade_ledger.enter_trade(trade.id, 100)
    closed = trade_ledger.exit_trade(trade.id, 90)
    assert closed.pnl_percent == pytest.approx(10)
    assert closed.pnl_dollar == pytest.approx(100)
    assert closed.column_name == "Wins"
    assert _balance() == pytest.approx(10100)


def test_long_loss_credits_size_plus_pnl(account):
    trade = _trade(position_size=500)
    trade_ledger.enter_trade(trade.id, 100)
    assert _balance() == 9500

    closed = trade_ledger.exit_trade(trade.id, 80, lesson_tag="chased")
    assert closed.pnl_percent == pytest.approx(-20)
    assert closed.pnl_dollar == pytest.approx(-100)
    assert closed.column_name == "Losses"
    assert closed.status == "lost"
    assert closed.lesson_tag == "chased"
    assert _balance() == pytest.approx(9900)

    credit = paper_ledger.get_adjustments(BOARD, USER)[0]
    assert credit.delta == pytest.approx(400)
    assert credit.reason == "exit"


def test_enter_falls_back_to_current_price(account):
    trade = _trade(current_price=42.0)
    entered = trade_ledger.enter_trade(trade.id)
    assert entered.entry_price == 42.0
    assert entered.status == "active"
    assert entered.column_name == "Active"
    assert entered.entered_at is not None


def test_enter_without_any_price(account):
    trade = _trade()
    with pytest.raises(EntryPriceRequired):
        trade_ledger.enter_trade(trade.id)


def test_unfunded_entry_skips_debit(account):
    trade = _trade()
    trade_ledger.enter_trade(trade.id, 10)
    assert _balance() == 10000
    assert paper_ledger.get_adjustments(BOARD, USER) == []


def test_rejected_debit_leaves_trade_untouched(account):
    trade = _trade(position_size=20000)
    with pytest.raises(InsufficientPaperBalance):
        trade_ledger.enter_trade(trade.id, 100)

    again = trade_ledger.get_trade(trade.id)
    assert again.status == "watching"
    assert again.entry_price is None
    assert trade_ledger.get_trade_activity(trade.id) == []
    assert _balance() == 10000


def test_enter_twice_is_invalid(account):
    trade = _trade()
    trade_ledger.enter_trade(trade.id, 10)
    with pytest.raises(InvalidTradeTransition):
        trade_ledger.enter_trade(trade.id, 11)


def test_exit_requires_price_then_entry(account):
    trade = _trade()
    with pytest.raises(ExitPriceRequired):
        trade_ledger.exit_trade(trade.id, None)
    with pytest.raises(EntryPriceRequired):
        trade_ledger.exit_trade(trade.id, 10)


def test_exit_twice_is_invalid(account):
    trade = _trade()
    trade_ledger.enter_trade(trade.id, 10)
    trade_ledger.exit_trade(trade.id, 12)
    with pytest.raises(InvalidTradeTransition):
        trade_ledger.exit_trade(trade.id, 13)


def test_park_requires_reason(account):
    trade = _trade()
    with pytest.raises(PauseReasonRequired):
        trade_ledger.park_trade(trade.id, "  ")
    parked = trade_ledger.park_trade(trade.id, "news pending")
    assert parked.status == "parked"
    assert parked.pause_reason == "news pending"
    assert _balance() == 10000


def test_activity_and_journal_written(account):
    trade = _trade(position_size=100)
    trade_ledger.enter_trade(trade.id, 10, actor_name="alice")
    trade_ledger.exit_trade(trade.id, 11)

    actions = [a.action for a in trade_ledger.get_trade_activity(trade.id)]
    assert actions == ["EXITED", "ENTERED"]
    entries = [j.entry_type for j in trade_ledger.get_journal_entries(trade.id)]
    assert entries == ["entry", "exit"]


def test_prices_stay_consistent_through_lifecycle(account):
    trade = _trade(position_size=100)
    assert trade.entry_price is None and trade.exit_price is None

    active = trade_ledger.enter_trade(trade.id, 10)
    assert active.entry_price is not None and active.exit_price is None

    parked = trade_ledger.park_trade(trade.id, "pause")
    assert parked.entry_price is not None and parked.exit_price is None

    closed = trade_ledger.exit_trade(trade.id, 9)
    assert closed.entry_price is not None and closed.exit_price is not None


# ---------------------------------------------------------------------------
# move_trade
# ---------------------------------------------------------------------------

class TestMoveTrade:
    def test_move_to_active_enters(self, account):
        trade = _trade(position_size=100)
        moved = trade_ledger.move_trade(trade.id, "Active", price=50)
        assert moved.status == "active"
        assert _balance() == 9900

    def test_move_to_wins_needs_price(self, account):
        trade = _trade()
        trade_ledger.enter_trade(trade.id, 10)
        with pytest.raises(ExitPriceRequired):
            trade_ledger.move_trade(trade.id, "Wins")

    def test_move_to_wins_uses_pnl_sign(self, account):
        trade = _trade()
        trade_ledger.enter_trade(trade.id, 10)
        moved = trade_ledger.move_trade(trade.id, "Wins", price=8)
        assert moved.column_name == "Losses"

    def test_resume_parked_position(self, account):
        trade = _trade(position_size=100)
        trade_ledger.enter_trade(trade.id, 10)
        trade_ledger.park_trade(trade.id, "pause")
        resumed = trade_ledger.move_trade(trade.id, "Active")
        assert resumed.status == "active"
        assert _balance() == 9900

    def test_entered_trade_cannot_return_to_watchlist(self, account):
        trade = _trade()
        trade_ledger.enter_trade(trade.id, 10)
        with pytest.raises(InvalidTradeTransition):
            trade_ledger.move_trade(trade.id, "Watchlist")

    def test_pre_entry_lanes(self, account):
        trade = _trade()
        moved = trade_ledger.move_trade(trade.id, "Analyzing")
        assert moved.status == "analyzing"

    def test_terminal_cannot_move(self, account):
        trade = _trade()
        trade_ledger.enter_trade(trade.id, 10)
        trade_ledger.exit_trade(trade.id, 10)
        with pytest.raises(InvalidTradeTransition):
            trade_ledger.move_trade(trade.id, "Parked", pause_reason="x")

    def test_unknown_lane(self, account):
        trade = _trade()
        with pytest.raises(InvalidTradeTransition):
            trade_ledger.move_trade(trade.id, "Nowhere")


# ---------------------------------------------------------------------------
# Signals, marking and scans
# ---------------------------------------------------------------------------

def test_signal_update_recomputes_active_pnl(account):
    trade = _trade(position_size=1000)
    trade_ledger.enter_trade(trade.id, 100)
    updated = trade_ledger.update_trade_signals(trade.id, {"current_price": 110, "rsi_value": 64, "bogus": 1})
    assert updated.pnl_percent == pytest.approx(10)
    assert updated.pnl_dollar == pytest.approx(100)
    assert updated.rsi_value == 64
    assert updated.status == "active"


def test_signal_update_rejects_closed_trade(account):
    trade = _trade()
    trade_ledger.enter_trade(trade.id, 100)
    trade_ledger.exit_trade(trade.id, 100)
    with pytest.raises(InvalidTradeTransition):
        trade_ledger.update_trade_signals(trade.id, {"confidence_score": 80})


def test_update_active_trade_prices(account):
    active = _trade(position_size=100)
    trade_ledger.enter_trade(active.id, 10)
    _trade(coin_pair="ETH/USDT")

    assert trade_ledger.update_active_trade_prices({"btc/usdt": 12, "ETH/USDT": 5}) == 1
    marked = trade_ledger.get_trade(active.id)
    assert marked.current_price == 12
    assert marked.pnl_percent == pytest.approx(20)


def test_scan_upserts_watchlist(account):
    existing = _trade(coin_pair="ETH/USDT")
    results = trade_ledger.scan_trades(BOARD, [
        {"coin_pair": "eth/usdt", "confidence_score": 80},
        {"coin_pair": "SOL/USDT", "direction": "LONG", "tbo_signal": "buy"},
    ], USER)

    assert len(results) == 2
    assert trade_ledger.get_trade(existing.id).confidence_score == 80
    new = [t for t in results if t.coin_pair == "SOL/USDT"][0]
    assert new.column_name == "Watchlist"
    assert trade_ledger.get_trade_activity(new.id)[0].action == "SCANNED"


def test_delete_trade_removes_children(account):
    trade = _trade()
    trade_ledger.add_journal_entry(trade.id, "note", "hello")
    alerts.create_alert(BOARD, "price_above", trade_id=trade.id, condition_value=10)
    assert trade_ledger.delete_trade(trade.id)
    assert trade_ledger.get_trade(trade.id) is None
    assert alerts.get_alerts_for_board(BOARD) == []
    assert not trade_ledger.delete_trade(trade.id)


def test_board_stats(account):
    for entry, exit_, size in ((100, 110, 1000), (100, 90, 500), (100, 120, 100)):
        trade = _trade(position_size=size)
        trade_ledger.enter_trade(trade.id, entry)
        trade_ledger.exit_trade(trade.id, exit_)
    _trade(coin_pair="ETH/USDT")

    stats = trade_ledger.get_board_trading_stats(BOARD)
    assert stats["total_trades"] == 4
    assert stats["closed_trades"] == 3
    assert stats["wins"] == 2
    assert stats["losses"] == 1
    assert stats["win_rate"] == 66.67
    assert stats["total_pnl"] == pytest.approx(100 - 50 + 20)
