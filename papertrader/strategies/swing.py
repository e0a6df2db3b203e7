"""Swing strategies: multi-day holds driven by trend, RSI and breakouts."""

from papertrader.services import indicators
from papertrader.strategies.base import (
    NO_EXIT,
    VOLUME_SPIKE_THRESHOLD,
    ExitDecision,
    MarketSnapshot,
    PositionState,
    Strategy,
    StrategyConfig,
    make_signal,
)


class SwingMomentum(Strategy):
    name = "Swing Momentum"
    style = "swing"
    substyle = "momentum"
    description = "Buy when price is above the 20-period SMA with rising volume."
    risk_level = 5
    default_config = StrategyConfig(
        max_positions=3,
        position_size_percent=20,
        stop_loss_percent=5,
        take_profit_percent=15,
        timeframe="1d",
        sma_period=20,
    )

    def _admits(self, snapshot: MarketSnapshot, price: float, config: StrategyConfig) -> bool:
        avg = indicators.sma(snapshot.prices, int(config.get("sma_period", 20)))
        current, average = snapshot.volume_stats()
        return price > avg and indicators.is_volume_spike(current, average, VOLUME_SPIKE_THRESHOLD)

    def classify(self, snapshot, config):
        if self._admits(snapshot, snapshot.price, config):
            return make_signal(snapshot, "buy", 72, "Price above SMA with volume spike", config)
        return make_signal(snapshot, "watch", 45, "Waiting for SMA breakout + volume spike", config)

    def should_enter(self, snapshot, price, config):
        return self._admits(snapshot, price, config)

    def should_exit(self, position: PositionState, price: float, config: StrategyConfig) -> ExitDecision:
        avg = indicators.sma(position.prices, int(config.get("sma_period", 20)))
        if price < avg:
            return ExitDecision(True, "Price dropped below SMA")
        return NO_EXIT


class SwingMeanReversion(Strategy):
    name = "Swing Mean Reversion"
    style = "swing"
    substyle = "mean-reversion"
    description = "Buy oversold coins when RSI is below 30 and sell when RSI recovers."
    risk_level = 4
    default_config = StrategyConfig(
        max_positions=3,
        position_size_percent=20,
        stop_loss_percent=8,
        take_profit_percent=12,
        timeframe="1d",
        rsi_period=14,
        oversold=30,
        overbought=70,
    )

    def _rsi(self, prices, config) -> float:
        return indicators.rsi(prices, int(config.get("rsi_period", 14)))

    def classify(self, snapshot, config):
        if self._rsi(snapshot.prices, config) < config.get("oversold", 30):
            return make_signal(snapshot, "buy", 70, "RSI oversold (<30)", config)
        return make_signal(snapshot, "watch", 40, "Waiting for RSI oversold signal", config)

    def should_enter(self, snapshot, price, config):
        return self._rsi(snapshot.prices, config) < config.get("oversold", 30)

    def should_exit(self, position, price, config):
        if self._rsi(position.prices, config) > config.get("overbought", 70):
            return ExitDecision(True, "RSI overbought (>70)")
        return NO_EXIT


class SwingBreakout(Strategy):
    name = "Swing Breakout"
    style = "swing"
    substyle = "breakout"
    description = "Buy when price breaks above recent highs with a volume surge."
    risk_level = 6
    default_config = StrategyConfig(
        max_positions=3,
        position_size_percent=20,
        stop_loss_percent=4,
        take_profit_percent=20,
        timeframe="1d",
        breakout_lookback=20,
        trailing_stop_percent=4,
    )

    def _admits(self, snapshot: MarketSnapshot, price: float) -> bool:
        current, average = snapshot.volume_stats()
        return price > snapshot.high * 0.98 and indicators.is_volume_spike(
            current, average, VOLUME_SPIKE_THRESHOLD
        )

    def classify(self, snapshot, config):
        if self._admits(snapshot, snapshot.price):
            return make_signal(snapshot, "buy", 75, "Breakout near 24h high with volume spike", config)
        return make_signal(snapshot, "watch", 42, "Waiting for breakout confirmation", config)

    def should_enter(self, snapshot, price, config):
        return self._admits(snapshot, price)

    def should_exit(self, position, price, config):
        entry = position.entry_price if position.entry_price is not None else price
        lookback = int(config.get("breakout_lookback", 20))
        series_high = indicators.recent_high(position.prices, lookback)
        peak = max(entry, price, series_high if series_high is not None else entry)
        trail = config.get("trailing_stop_percent", 4)
        if price <= peak * (1 - trail / 100):
            return ExitDecision(True, f"Trailing stop hit ({trail:g}% drop from peak)")
        return NO_EXIT
