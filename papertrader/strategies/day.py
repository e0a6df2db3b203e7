"""Intraday strategies."""

from papertrader.services import indicators
from papertrader.strategies.base import (
    NO_EXIT,
    VOLUME_SPIKE_THRESHOLD,
    ExitDecision,
    MarketSnapshot,
    Strategy,
    StrategyConfig,
    make_signal,
)


class DayMomentum(Strategy):
    name = "Day Momentum"
    style = "day"
    substyle = "momentum"
    description = "Follow intraday trends with quick entries on volume spikes."
    risk_level = 6
    default_config = StrategyConfig(
        max_positions=5,
        position_size_percent=10,
        stop_loss_percent=2,
        take_profit_percent=5,
        timeframe="15m",
        min_move_percent=5,
        exit_stop_percent=2,
        exit_target_percent=3,
    )

    def _admits(self, snapshot: MarketSnapshot, config: StrategyConfig) -> bool:
        min_move = config.get("min_move_percent", 5)
        intraday_move = (
            snapshot.change_24h >= min_move
            or indicators.momentum(snapshot.prices, 5) >= min_move
        )
        current, average = snapshot.volume_stats()
        return intraday_move and indicators.is_volume_spike(current, average, VOLUME_SPIKE_THRESHOLD)

    def classify(self, snapshot, config):
        if self._admits(snapshot, config):
            return make_signal(snapshot, "buy", 68, "5%+ move with volume", config)
        return make_signal(snapshot, "watch", 45, "Waiting for intraday momentum", config)

    def should_enter(self, snapshot, price, config):
        return self._admits(snapshot, config)

    def should_exit(self, position, price, config):
        entry = position.entry_price
        if entry is None:
            return NO_EXIT
        stop = config.get("exit_stop_percent", 2)
        target = config.get("exit_target_percent", 3)
        if price <= entry * (1 - stop / 100):
            return ExitDecision(True, f"Stop loss hit (-{stop:g}%)")
        if price >= entry * (1 + target / 100):
            return ExitDecision(True, f"Take profit reached (+{target:g}%)")
        return NO_EXIT


class DayRange(Strategy):
    name = "Day Range"
    style = "day"
    substyle = "range"
    description = "Buy at daily support and sell near daily resistance."
    risk_level = 4
    default_config = StrategyConfig(
        max_positions=4,
        position_size_percent=12,
        stop_loss_percent=3,
        take_profit_percent=4,
        timeframe="1h",
    )

    def classify(self, snapshot, config):
        if snapshot.price <= snapshot.low * 1.02:
            return make_signal(snapshot, "buy", 60, "Near 24h low (within 2%)", config)
        if snapshot.price >= snapshot.high * 0.98:
            return make_signal(snapshot, "sell", 60, "Near 24h high (within 2%)", config)
        return make_signal(snapshot, "watch", 40, "Mid-range consolidation", config)

    def should_enter(self, snapshot, price, config):
        low = snapshot.low_24h if snapshot.low_24h is not None else price
        return price <= low * 1.02

    def should_exit(self, position, price, config):
        high = position.market.high_24h if position.market.high_24h is not None else price
        if price >= high * 0.98:
            return ExitDecision(True, "Near 24h high (within 2%)")
        return NO_EXIT
