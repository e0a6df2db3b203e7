import pytest
from pydantic import ValidationError

from papertrader.models.trade import Lane
from papertrader.schemas.alert import AlertCreate
from papertrader.schemas.bot import BotCreate, BotUpdate, RebalancerUpdate
from papertrader.schemas.trade import MoveRequest, TradeCreate


def test_trade_create_normalizes_pair():
    body = TradeCreate(board_id=1, user_id=1, coin_pair="eth-usdt")
    assert body.coin_pair == "ETH/USDT"
    assert body.column_name == Lane.WATCHLIST


@pytest.mark.parametrize("lane", ["Active", "Wins", "Parked"])
def test_trade_create_rejects_post_entry_lanes(lane):
    with pytest.raises(ValidationError):
        TradeCreate(board_id=1, user_id=1, coin_pair="BTC/USDT", column_name=lane)


def test_trade_create_bounds():
    with pytest.raises(ValidationError):
        TradeCreate(board_id=1, user_id=1, coin_pair="BTC/USDT", confidence_score=101)
    with pytest.raises(ValidationError):
        TradeCreate(board_id=1, user_id=1, coin_pair="BTC/USDT", direction="sideways")


def test_move_request_requires_known_lane():
    assert MoveRequest(to_column="Losses").to_column == Lane.LOSSES
    with pytest.raises(ValidationError):
        MoveRequest(to_column="Done")


def test_bot_create_validates_interval_and_name():
    body = BotCreate(
        name="  Swing  ", board_id=1, user_id=1,
        strategy_style="swing", strategy_substyle="momentum", schedule_interval="15m",
    )
    assert body.name == "Swing"
    with pytest.raises(ValidationError):
        BotCreate(
            name="x", board_id=1, user_id=1,
            strategy_style="swing", strategy_substyle="momentum", schedule_interval="7m",
        )
    with pytest.raises(ValidationError):
        BotCreate(name="   ", board_id=1, user_id=1, strategy_style="swing", strategy_substyle="momentum")


def test_bot_update_is_partial():
    body = BotUpdate(name="Renamed")
    assert body.model_dump(exclude_unset=True) == {"name": "Renamed"}


def test_rebalancer_update_nests_config():
    body = RebalancerUpdate.model_validate({"rebalancer_config": {"riskLevel": 3}})
    assert body.rebalancer_config.risk_level == 3
    with pytest.raises(ValidationError):
        RebalancerUpdate.model_validate({"rebalancer_config": {"riskLevel": 0}})


def test_alert_create_requires_trade_and_condition():
    with pytest.raises(ValidationError):
        AlertCreate(board_id=1, alert_type="price_above", condition_value=1)
    with pytest.raises(ValidationError):
        AlertCreate(board_id=1, alert_type="price_above", trade_id=1)
    assert AlertCreate(board_id=1, alert_type="stop_loss_hit", trade_id=1).condition_value is None
