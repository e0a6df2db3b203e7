"""Tests for the rebalancer: targets, valuation, drift and plans."""

from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from papertrader.services import rebalancer
from papertrader.services.coin_scanner import CoinData
from papertrader.services.rebalancer import CASH, Holding, RebalancerConfig


def _trade(pair, size, entry=100.0, price=None, direction="long", trade_id=1):
    return SimpleNamespace(
        id=trade_id, coin_pair=pair, position_size=size, entry_price=entry,
        current_price=price if price is not None else entry, direction=direction,
    )


class TestConfig:
    def test_defaults(self):
        config = RebalancerConfig()
        assert config.risk_level == 5
        assert config.rebalance_threshold == 5.0
        assert config.buy_selection == "primary_holding"

    def test_camel_case_keys(self):
        config = RebalancerConfig.model_validate({"riskLevel": 8, "rebalanceThreshold": 2, "buySelection": "highest_volume"})
        assert config.risk_level == 8
        assert config.rebalance_threshold == 2
        assert config.buy_selection == "highest_volume"

    def test_rejects_bad_values(self):
        with pytest.raises(ValidationError):
            RebalancerConfig(risk_level=11)
        with pytest.raises(ValidationError):
            RebalancerConfig(rebalance_threshold=0)
        with pytest.raises(ValidationError):
            RebalancerConfig(rebalance_interval="3h")


def test_target_tables_sum_to_100():
    for level in range(1, 11):
        assert sum(rebalancer.get_target_allocation(level).values()) == 100


def test_target_glide_path_endpoints():
    assert rebalancer.get_target_allocation(1)["stablecoins"] == 80
    assert rebalancer.get_target_allocation(10)["small_cap_alts"] == 60
    assert rebalancer.get_target_allocation(42) == rebalancer.get_target_allocation(10)


def test_position_value_uses_notional_pnl():
    assert rebalancer.position_value(100, 1000, "long", 110) == pytest.approx(1100)
    assert rebalancer.position_value(100, 1000, "short", 110) == pytest.approx(900)
    assert rebalancer.position_value(100, 0, "long", 110) == 0
    assert rebalancer.position_value(None, 500, "long", 110) == 500


def test_value_holdings_counts_cash_as_stablecoin():
    trades = [_trade("BTC/USDT", 1000, price=110)]
    holdings, total = rebalancer.value_holdings(trades, {}, cash=900)
    assert total == pytest.approx(2000)
    assert holdings["bitcoin"][0].value == pytest.approx(1100)
    assert holdings["stablecoins"] == [Holding(CASH, 900, "stablecoins")]


def test_value_holdings_prefers_live_price():
    trades = [_trade("BTC/USDT", 1000, price=110)]
    _, total = rebalancer.value_holdings(trades, {"BTC/USDT": 120}, cash=0)
    assert total == pytest.approx(1200)


def test_drift_and_threshold():
    drift = rebalancer.calculate_drift({"bitcoin": 30}, {"bitcoin": 25, "stablecoins": 15})
    assert drift == {"bitcoin": 5, "stablecoins": -15}
    assert rebalancer.needs_rebalance({"bitcoin": 4.9}, 5) is False
    assert rebalancer.needs_rebalance({"bitcoin": -5.0}, 5) is True


def test_on_target_portfolio_produces_no_orders():
    target = rebalancer.get_target_allocation(5)
    holdings = {
        "stablecoins": [Holding(CASH, 150, "stablecoins")],
        "bitcoin": [Holding("BTC/USDT", 250, "bitcoin", 1)],
        "large_cap_alts": [Holding("ETH/USDT", 250, "large_cap_alts", 2)],
        "mid_cap_alts": [Holding("ADA/USDT", 200, "mid_cap_alts", 3)],
        "small_cap_alts": [Holding("SUI/USDT", 150, "small_cap_alts", 4)],
    }
    current = rebalancer.allocation_percentages(holdings, 1000)
    drift = rebalancer.calculate_drift(current, target)
    assert not rebalancer.needs_rebalance(drift, 5)
    assert rebalancer.calculate_rebalance_trades(holdings, target, 1000).is_empty


def test_plan_sells_pro_rata_and_buys_primary():
    holdings = {
        "bitcoin": [Holding("BTC/USDT", 600, "bitcoin", 1), Holding("BTC/USDT", 200, "bitcoin", 2)],
        "large_cap_alts": [Holding("ETH/USDT", 100, "large_cap_alts", 3)],
    }
    target = {"bitcoin": 50, "large_cap_alts": 50, "mid_cap_alts": 0}
    plan = rebalancer.calculate_rebalance_trades(holdings, target, 1000)

    # bitcoin holds 800 vs 500 target: 300 excess split 3:1
    assert [(o.trade_id, round(o.amount, 2)) for o in plan.sells] == [(1, 225.0), (2, 75.0)]
    [buy] = plan.buys
    assert buy.pair == "ETH/USDT"
    assert buy.amount == pytest.approx(400)


def test_plan_uses_basket_when_nothing_held():
    target = {"mid_cap_alts": 100}
    plan = rebalancer.calculate_rebalance_trades({"mid_cap_alts": []}, target, 500)
    [buy] = plan.buys
    assert buy.pair == "mid_cap_alts_BASKET"
    assert buy.is_placeholder


def test_plan_highest_volume_selection():
    coins = [
        CoinData("ADA/USDT", 1, 100, 0, 1, 1, "mid_cap_alts"),
        CoinData("DOT/USDT", 1, 900, 0, 1, 1, "mid_cap_alts"),
    ]
    plan = rebalancer.calculate_rebalance_trades(
        {"mid_cap_alts": [Holding("ADA/USDT", 10, "mid_cap_alts", 1)]},
        {"mid_cap_alts": 100}, 500, "highest_volume", coins,
    )
    assert plan.buys[0].pair == "DOT/USDT"


def test_generate_rebalance_trades_never_sells_stablecoins():
    current = {"stablecoins": 60, "bitcoin": 40}
    target = {"stablecoins": 15, "bitcoin": 25, "small_cap_alts": 60}
    coins = [
        {"pair": "BTC/USDT", "category": "bitcoin", "is_holding": True, "value": 400},
        {"pair": "PEPE/USDT", "category": "small_cap_alts", "volume_24h": 5},
        {"pair": "wif/usdt", "category": "small_cap_alts", "volume_24h": 50},
    ]
    plan = rebalancer.generate_rebalance_trades(current, target, 1000, coins)
    assert [(o.pair, o.amount) for o in plan.sells] == [("BTC/USDT", pytest.approx(150))]
    assert [(o.pair, o.amount) for o in plan.buys] == [("WIF/USDT", pytest.approx(600))]


def test_current_allocation_ignores_cash():
    trades = [_trade("BTC/USDT", 500, trade_id=1), _trade("ETH/USDT", 500, trade_id=2)]
    allocation = rebalancer.calculate_current_allocation(trades, {})
    assert allocation["bitcoin"] == pytest.approx(50)
    assert allocation["large_cap_alts"] == pytest.approx(50)
    assert allocation["stablecoins"] == 0
