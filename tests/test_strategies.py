"""Tests for the strategy registry and individual strategy rules."""

import pytest

from papertrader.errors import StrategyNotFound
from papertrader.strategies.base import MarketSnapshot, PositionState, StrategyConfig
from papertrader.strategies.registry import (
    STRATEGIES,
    get_strategy,
    list_strategies,
    require_strategy,
    strategies_by_style,
)


def _snapshot(pair="BTC/USDT", price=100.0, **kwargs) -> MarketSnapshot:
    return MarketSnapshot(pair=pair, price=price, **kwargs)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_eleven_builtins(self):
        assert len(list_strategies()) == 11
        assert len(STRATEGIES) == 11

    def test_lookup_by_compound_key(self):
        strategy = get_strategy("swing", "momentum")
        assert strategy is not None
        assert strategy.key == "swing:momentum"

    def test_unknown_key_returns_none(self):
        assert get_strategy("swing", "nope") is None

    def test_require_unknown_raises(self):
        with pytest.raises(StrategyNotFound) as exc:
            require_strategy("nope", "nope")
        assert exc.value.code == "STRATEGY_NOT_FOUND"

    def test_by_style(self):
        keys = {s.key for s in strategies_by_style("longterm")}
        assert keys == {"longterm:dca", "longterm:dip-buyer"}

    def test_describe_has_default_config(self):
        described = get_strategy("day", "range").describe()
        assert described["risk_level"] == 4
        assert described["default_config"]["max_positions"] == 4


# ---------------------------------------------------------------------------
# Config merging
# ---------------------------------------------------------------------------

def test_config_overrides_ignore_none():
    base = StrategyConfig(max_positions=3, position_size_percent=20, stop_loss_percent=5, take_profit_percent=15)
    merged = base.merged({"max_positions": 1, "stop_loss_percent": None, "watchlist": ["ETH/USDT"]})
    assert merged.max_positions == 1
    assert merged.stop_loss_percent == 5
    assert merged.get("watchlist") == ["ETH/USDT"]
    assert merged.get("missing", 7) == 7


def test_resolve_config_uses_bot_overrides():
    strategy = get_strategy("swing", "mean-reversion")
    config = strategy.resolve_config({"oversold": 25})
    assert config.get("oversold") == 25
    assert config.get("overbought") == 70


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

def test_mean_reversion_buys_oversold():
    strategy = get_strategy("swing", "mean-reversion")
    falling = tuple(float(x) for x in range(40, 20, -1))
    snapshot = _snapshot(price=falling[-1], prices=falling)

    [signal] = strategy.generate_signals([snapshot])
    assert signal.action == "buy"
    assert signal.confidence == 70
    assert signal.stop_loss == pytest.approx(falling[-1] * 0.92)
    assert strategy.should_enter(snapshot, snapshot.price, strategy.default_config)


def test_short_history_is_not_a_buy():
    strategy = get_strategy("swing", "mean-reversion")
    snapshot = _snapshot(prices=(100.0, 99.0))
    [signal] = strategy.generate_signals([snapshot])
    assert signal.action == "watch"
    assert signal.entry_price is None


def test_day_range_buy_and_exit():
    strategy = get_strategy("day", "range")
    config = strategy.default_config
    near_low = _snapshot(price=101.0, high_24h=120.0, low_24h=100.0)
    assert strategy.should_enter(near_low, near_low.price, config)
    assert strategy.generate_signals([near_low])[0].action == "buy"

    near_high = _snapshot(price=118.0, high_24h=120.0, low_24h=100.0)
    position = PositionState(pair="BTC/USDT", entry_price=101.0, market=near_high)
    decision = strategy.should_exit(position, near_high.price, config)
    assert decision.should_exit
    assert "24h high" in decision.reason


def test_dca_never_exits():
    strategy = get_strategy("longterm", "dca")
    position = PositionState(pair="ETH/USDT", entry_price=100.0, market=_snapshot(price=1.0))
    assert not strategy.should_exit(position, 1.0, strategy.default_config).should_exit


def test_dip_buyer_recovery_exit():
    strategy = get_strategy("longterm", "dip-buyer")
    config = strategy.default_config
    assert strategy.should_enter(_snapshot(change_24h=-12.0), 100.0, config)
    assert not strategy.should_enter(_snapshot(change_24h=-5.0), 100.0, config)

    position = PositionState(pair="BTC/USDT", entry_price=100.0, market=_snapshot(price=121.0))
    assert strategy.should_exit(position, 121.0, config).should_exit


def test_breakout_trailing_stop():
    strategy = get_strategy("swing", "breakout")
    market = _snapshot(price=90.0, prices=(100.0, 110.0, 105.0, 90.0))
    position = PositionState(pair="BTC/USDT", entry_price=100.0, market=market)
    decision = strategy.should_exit(position, 90.0, strategy.default_config)
    assert decision.should_exit
    assert "Trailing stop" in decision.reason


def test_snapshots_without_pair_are_skipped():
    strategy = get_strategy("longterm", "dca")
    assert strategy.generate_signals([_snapshot(pair="")]) == []
