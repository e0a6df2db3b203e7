"""Long-term accumulation strategies."""

import math

from papertrader.strategies.base import NO_EXIT, ExitDecision, Strategy, StrategyConfig, make_signal


class LongTermDCA(Strategy):
    """Buys on every cycle and never exits on its own."""

    name = "Long-Term DCA"
    style = "longterm"
    substyle = "dca"
    description = "Dollar cost average at fixed intervals regardless of price."
    risk_level = 2
    default_config = StrategyConfig(
        max_positions=8,
        position_size_percent=8,
        stop_loss_percent=15,
        take_profit_percent=40,
        timeframe="1w",
        dca_interval_days=7,
    )

    def classify(self, snapshot, config):
        return make_signal(snapshot, "buy", 55, "DCA interval signal", config)

    def should_enter(self, snapshot, price, config):
        return True

    def should_exit(self, position, price, config):
        return NO_EXIT


class LongTermDipBuyer(Strategy):
    name = "Long-Term Dip Buyer"
    style = "longterm"
    substyle = "dip-buyer"
    description = "Buy only on significant dips from recent highs."
    risk_level = 4
    default_config = StrategyConfig(
        max_positions=6,
        position_size_percent=12,
        stop_loss_percent=12,
        take_profit_percent=30,
        timeframe="1d",
        dip_threshold_percent=10,
        recovery_percent=20,
        lookback=30,
    )

    def classify(self, snapshot, config):
        threshold = config.get("dip_threshold_percent", 10)
        if snapshot.change_24h < -threshold:
            return make_signal(snapshot, "buy", 66, f"24h change below -{threshold:g}%", config)
        return make_signal(snapshot, "watch", 40, f"Waiting for -{threshold:g}% dip", config)

    def should_enter(self, snapshot, price, config):
        return snapshot.change_24h < -config.get("dip_threshold_percent", 10) and math.isfinite(price)

    def should_exit(self, position, price, config: StrategyConfig) -> ExitDecision:
        entry = position.entry_price
        recovery = config.get("recovery_percent", 20)
        if entry is not None and price >= entry * (1 + recovery / 100):
            return ExitDecision(True, f"Recovered {recovery:g}%+")
        return NO_EXIT
