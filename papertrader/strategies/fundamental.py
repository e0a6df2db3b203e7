"""Fundamental strategies keyed on rank, volume stability and narrative."""

from papertrader.strategies.base import (
    MarketSnapshot,
    Strategy,
    StrategyConfig,
    bracket_exit,
    make_signal,
)


class FundamentalValue(Strategy):
    name = "Fundamental Value"
    style = "fundamental"
    substyle = "value"
    description = "Target large-cap, stable-volume assets for long holds."
    risk_level = 3
    default_config = StrategyConfig(
        max_positions=5,
        position_size_percent=15,
        stop_loss_percent=10,
        take_profit_percent=25,
        timeframe="1w",
        max_rank=25,
        min_volume_stability=0.7,
    )

    def _admits(self, snapshot: MarketSnapshot, config: StrategyConfig) -> bool:
        rank = snapshot.market_cap_rank
        stability = snapshot.volume_stability or 0.0
        return (
            rank is not None
            and 0 < rank <= config.get("max_rank", 25)
            and stability >= config.get("min_volume_stability", 0.7)
        )

    def classify(self, snapshot, config):
        if self._admits(snapshot, config):
            return make_signal(snapshot, "buy", 65, "Large-cap with stable volume", config)
        return make_signal(snapshot, "watch", 38, "Waiting for fundamental confirmation", config)

    def should_enter(self, snapshot, price, config):
        return self._admits(snapshot, config)

    def should_exit(self, position, price, config):
        return bracket_exit(position, price, config, target_reason="Target reached")


class FundamentalNarrative(Strategy):
    name = "Fundamental Narrative"
    style = "fundamental"
    substyle = "narrative"
    description = "Focus on coins aligned with trending categories or narratives."
    risk_level = 6
    default_config = StrategyConfig(
        max_positions=6,
        position_size_percent=12,
        stop_loss_percent=12,
        take_profit_percent=30,
        timeframe="1d",
        min_narrative_score=70,
    )

    def _admits(self, snapshot: MarketSnapshot, config: StrategyConfig) -> bool:
        score = snapshot.narrative_score or 0.0
        return snapshot.trending or score >= config.get("min_narrative_score", 70)

    def classify(self, snapshot, config):
        if self._admits(snapshot, config):
            return make_signal(snapshot, "buy", 68, "Narrative trend detected", config)
        return make_signal(snapshot, "watch", 40, "Narrative momentum not detected", config)

    def should_enter(self, snapshot, price, config):
        return self._admits(snapshot, config)

    def should_exit(self, position, price, config):
        return bracket_exit(position, price, config, target_reason="Target reached")
