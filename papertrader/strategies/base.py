"""Strategy interface and the value types strategies operate on.

Strategies are pure: they read only the MarketSnapshot / PositionState they
are handed and never perform I/O.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field

from papertrader.services import indicators

SignalAction = Literal["buy", "sell", "hold", "watch"]

VOLUME_SPIKE_THRESHOLD = 1.5


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MarketSnapshot:
    """Current stats plus short price/volume history for one pair."""
    pair: str
    price: float
    volume_24h: float = 0.0
    change_24h: float = 0.0
    high_24h: float | None = None
    low_24h: float | None = None
    category: str = "stablecoins"
    prices: tuple[float, ...] = ()
    volumes: tuple[float, ...] = ()
    avg_volume_global: float = 0.0
    market_cap_rank: int | None = None
    volume_stability: float | None = None
    trending: bool = False
    narrative_score: float | None = None

    @property
    def high(self) -> float:
        return self.high_24h if self.high_24h is not None else self.price

    @property
    def low(self) -> float:
        return self.low_24h if self.low_24h is not None else self.price

    def volume_stats(self) -> tuple[float, float]:
        return indicators.volume_stats(self.volumes, self.volume_24h)


@dataclass
class PositionState:
    """An open trade as seen by should_exit: its entry plus the live market."""
    pair: str
    entry_price: float | None
    market: MarketSnapshot
    direction: str = "long"
    position_size: float | None = None
    trade_id: int | None = None

    @property
    def prices(self) -> tuple[float, ...]:
        return self.market.prices


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class Signal:
    pair: str
    action: SignalAction
    confidence: int  # 0-100
    reason: str
    entry_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None


@dataclass
class ExitDecision:
    should_exit: bool
    reason: str = ""


NO_EXIT = ExitDecision(should_exit=False)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class StrategyConfig(BaseModel):
    """Common sizing/risk parameters; strategy-specific parameters ride along as extras."""

    model_config = ConfigDict(extra="allow")

    max_positions: int = Field(ge=0)
    position_size_percent: float = Field(ge=0)
    stop_loss_percent: float = Field(ge=0)
    take_profit_percent: float = Field(ge=0)
    timeframe: str = "1d"

    def get(self, name: str, default: Any = None) -> Any:
        value = getattr(self, name, None)
        return default if value is None else value

    def merged(self, overrides: dict[str, Any] | None) -> "StrategyConfig":
        """Return defaults <- overrides as a new config. None values are ignored."""
        data = self.model_dump()
        for key, value in (overrides or {}).items():
            if value is not None:
                data[key] = value
        return StrategyConfig(**data)


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------

class Strategy(ABC):
    name: str
    style: str
    substyle: str
    description: str
    risk_level: int
    version: str = "1.0"
    default_config: StrategyConfig

    @property
    def key(self) -> str:
        return f"{self.style}:{self.substyle}"

    def resolve_config(self, overrides: dict[str, Any] | None = None) -> StrategyConfig:
        return self.default_config.merged(overrides)

    def generate_signals(
        self,
        snapshots: Iterable[MarketSnapshot],
        config: StrategyConfig | None = None,
    ) -> list[Signal]:
        """Classify every snapshot with a usable price into a Signal."""
        cfg = config or self.default_config
        signals = []
        for snap in snapshots:
            if not snap.pair or snap.price is None:
                continue
            signal = self.classify(snap, cfg)
            if signal is not None:
                signals.append(signal)
        return signals

    @abstractmethod
    def classify(self, snapshot: MarketSnapshot, config: StrategyConfig) -> Signal | None:
        """Single-snapshot signal. None means the snapshot lacks the history to judge."""

    @abstractmethod
    def should_enter(self, snapshot: MarketSnapshot, price: float, config: StrategyConfig) -> bool:
        ...

    @abstractmethod
    def should_exit(self, position: PositionState, price: float, config: StrategyConfig) -> ExitDecision:
        ...

    def describe(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "style": self.style,
            "substyle": self.substyle,
            "description": self.description,
            "risk_level": self.risk_level,
            "version": self.version,
            "default_config": self.default_config.model_dump(),
        }


def make_signal(
    snapshot: MarketSnapshot,
    action: SignalAction,
    confidence: int,
    reason: str,
    config: StrategyConfig,
) -> Signal:
    """Build a Signal; entry/stop/target levels are attached to buys only."""
    signal = Signal(pair=snapshot.pair, action=action, confidence=confidence, reason=reason)
    if action == "buy":
        price = snapshot.price
        signal.entry_price = price
        signal.stop_loss = price * (1 - config.stop_loss_percent / 100)
        signal.take_profit = price * (1 + config.take_profit_percent / 100)
    return signal


def bracket_exit(
    position: PositionState,
    price: float,
    config: StrategyConfig,
    target_reason: str = "Take profit reached",
) -> ExitDecision:
    """Exit on the configured stop-loss / take-profit band around the entry."""
    entry = position.entry_price
    if entry is None:
        return NO_EXIT
    if price <= entry * (1 - config.stop_loss_percent / 100):
        return ExitDecision(True, "Stop loss hit")
    if price >= entry * (1 + config.take_profit_percent / 100):
        return ExitDecision(True, target_reason)
    return NO_EXIT
