"""Scalping strategies: very short holds with tight stop/target brackets."""

from papertrader.strategies.base import Strategy, StrategyConfig, bracket_exit, make_signal


class ScalperGrid(Strategy):
    name = "Scalper Grid"
    style = "scalper"
    substyle = "grid"
    description = "Place virtual buy/sell levels and profit from oscillation."
    risk_level = 3
    default_config = StrategyConfig(
        max_positions=12,
        position_size_percent=5,
        stop_loss_percent=0.8,
        take_profit_percent=1,
        timeframe="5m",
        grid_spacing_percent=0.7,
    )

    @staticmethod
    def _step_change(prices, price: float) -> float | None:
        if len(prices) < 2 or prices[-2] == 0:
            return None
        return (price - prices[-2]) / prices[-2]

    def classify(self, snapshot, config):
        if len(snapshot.prices) < 3:
            return None
        change = self._step_change(snapshot.prices, snapshot.price)
        if change is None:
            return None
        if abs(change) >= config.get("grid_spacing_percent", 0.7) / 100:
            if change < 0:
                return make_signal(snapshot, "buy", 55, "Price dipped to next grid level", config)
            return make_signal(snapshot, "sell", 55, "Price reached upper grid level", config)
        return make_signal(snapshot, "hold", 40, "Price within grid band", config)

    def should_enter(self, snapshot, price, config):
        change = self._step_change(snapshot.prices, price)
        if change is None:
            return False
        return abs(change) >= config.get("grid_spacing_percent", 0.7) / 100

    def should_exit(self, position, price, config):
        return bracket_exit(position, price, config)


class ScalperMomentum(Strategy):
    name = "Scalper Momentum"
    style = "scalper"
    substyle = "momentum"
    description = "Ultra-quick entries on micro-trends with tight risk controls."
    risk_level = 7
    default_config = StrategyConfig(
        max_positions=10,
        position_size_percent=6,
        stop_loss_percent=1,
        take_profit_percent=1.5,
        timeframe="1m",
        micro_trend_threshold=0.002,
    )

    @staticmethod
    def _micro_trend(prices) -> float | None:
        if len(prices) < 3 or prices[-3] == 0:
            return None
        return (prices[-1] - prices[-3]) / prices[-3]

    def classify(self, snapshot, config):
        change = self._micro_trend(snapshot.prices)
        if change is None:
            return None
        threshold = config.get("micro_trend_threshold", 0.002)
        if change > threshold:
            return make_signal(snapshot, "buy", 62, "Micro-trend accelerating upward", config)
        if change < -threshold:
            return make_signal(snapshot, "sell", 60, "Micro-trend reversing", config)
        return make_signal(snapshot, "watch", 40, "No clear micro-trend", config)

    def should_enter(self, snapshot, price, config):
        change = self._micro_trend(snapshot.prices)
        return change is not None and change > config.get("micro_trend_threshold", 0.002)

    def should_exit(self, position, price, config):
        return bracket_exit(position, price, config)
