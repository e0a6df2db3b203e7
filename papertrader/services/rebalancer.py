"""Portfolio rebalancer: risk-level target allocation vs. current holdings.

Pure computation. The bot cycle values its open positions, asks for a plan
here and executes the sells before the buys.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from papertrader.services.coin_scanner import CATEGORIES, STABLECOINS, find_category
from papertrader.utils.constants import VALID_INTERVALS
from papertrader.utils.pairs import normalize_pair, optional_float, to_float

CASH = "CASH"
BASKET_SUFFIX = "_BASKET"

# Risk level -> target % per category. Hand-tuned glide path from cash-heavy
# (1) to small-cap-heavy (10).
RISK_ALLOCATIONS: dict[int, dict[str, float]] = {
    1: {"stablecoins": 80, "bitcoin": 15, "large_cap_alts": 5, "mid_cap_alts": 0, "small_cap_alts": 0},
    2: {"stablecoins": 60, "bitcoin": 25, "large_cap_alts": 10, "mid_cap_alts": 5, "small_cap_alts": 0},
    3: {"stablecoins": 40, "bitcoin": 30, "large_cap_alts": 20, "mid_cap_alts": 10, "small_cap_alts": 0},
    4: {"stablecoins": 25, "bitcoin": 30, "large_cap_alts": 25, "mid_cap_alts": 15, "small_cap_alts": 5},
    5: {"stablecoins": 15, "bitcoin": 25, "large_cap_alts": 25, "mid_cap_alts": 20, "small_cap_alts": 15},
    6: {"stablecoins": 10, "bitcoin": 20, "large_cap_alts": 25, "mid_cap_alts": 25, "small_cap_alts": 20},
    7: {"stablecoins": 5, "bitcoin": 15, "large_cap_alts": 25, "mid_cap_alts": 30, "small_cap_alts": 25},
    8: {"stablecoins": 5, "bitcoin": 10, "large_cap_alts": 20, "mid_cap_alts": 30, "small_cap_alts": 35},
    9: {"stablecoins": 0, "bitcoin": 10, "large_cap_alts": 15, "mid_cap_alts": 30, "small_cap_alts": 45},
    10: {"stablecoins": 0, "bitcoin": 5, "large_cap_alts": 10, "mid_cap_alts": 25, "small_cap_alts": 60},
}


class RebalancerConfig(BaseModel):
    """Accepts snake_case or camelCase keys (riskLevel, rebalanceThreshold, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool = False
    risk_level: int = Field(default=5, ge=1, le=10)
    rebalance_threshold: float = Field(default=5.0, gt=0)
    rebalance_interval: str = "4h"
    watchlist_size: int = Field(default=10, gt=0)
    buy_selection: Literal["primary_holding", "highest_volume"] = "primary_holding"

    @field_validator("rebalance_interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        if v not in VALID_INTERVALS:
            raise ValueError(f"Invalid interval '{v}'. Must be one of {VALID_INTERVALS}")
        return v


@dataclass
class Holding:
    pair: str
    value: float
    category: str
    trade_id: int | None = None


@dataclass
class Order:
    pair: str
    amount: float
    category: str
    trade_id: int | None = None

    @property
    def is_placeholder(self) -> bool:
        return self.pair == CASH or self.pair.endswith(BASKET_SUFFIX)


@dataclass
class RebalancePlan:
    sells: list[Order] = field(default_factory=list)
    buys: list[Order] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.sells and not self.buys

    def to_dict(self) -> dict[str, Any]:
        return {"sells": [asdict(o) for o in self.sells], "buys": [asdict(o) for o in self.buys]}


# ---------------------------------------------------------------------------
# Targets and drift
# ---------------------------------------------------------------------------

def get_target_allocation(risk_level: int) -> dict[str, float]:
    level = max(1, min(10, int(risk_level)))
    return dict(RISK_ALLOCATIONS[level])


def calculate_drift(current: dict[str, float], target: dict[str, float]) -> dict[str, float]:
    """Signed percentage-point gap, current minus target, per category."""
    return {cat: to_float(current.get(cat)) - pct for cat, pct in target.items()}


def needs_rebalance(drift: dict[str, float], threshold: float) -> bool:
    limit = abs(threshold)
    return any(abs(v) >= limit for v in drift.values())


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------

def position_value(
    entry_price: float | None,
    position_size: float | None,
    direction: str | None,
    price: float | None,
) -> float:
    """Notional size marked to market with the per-unit P&L percentage."""
    size = to_float(position_size)
    if size <= 0:
        return 0.0
    entry = optional_float(entry_price)
    current = optional_float(price)
    if entry is None or entry <= 0 or current is None:
        return size
    change = (current - entry) / entry
    if str(direction or "long").lower() == "short":
        change = -change
    return size + size * change


def value_holdings(trades, prices: dict[str, float], cash: float = 0.0) -> tuple[dict[str, list[Holding]], float]:
    """Group open positions (plus free cash as a stablecoin) by category.

    Returns (holdings by category, total value).
    """
    holdings: dict[str, list[Holding]] = {cat: [] for cat in CATEGORIES}
    total = 0.0
    for trade in trades:
        pair = normalize_pair(trade.coin_pair)
        price = prices.get(pair, trade.current_price)
        value = position_value(trade.entry_price, trade.position_size, trade.direction, price)
        if value <= 0:
            continue
        category = find_category(pair)
        holdings[category].append(Holding(pair, value, category, trade.id))
        total += value
    if cash > 0:
        holdings[STABLECOINS].append(Holding(CASH, cash, STABLECOINS))
        total += cash
    return holdings, total


def allocation_percentages(holdings: dict[str, list[Holding]], total: float) -> dict[str, float]:
    if total <= 0:
        return {cat: 0.0 for cat in CATEGORIES}
    return {cat: sum(h.value for h in holdings.get(cat, [])) / total * 100 for cat in CATEGORIES}


def calculate_current_allocation(trades, prices: dict[str, float]) -> dict[str, float]:
    """Category percentages over open trades (no cash)."""
    holdings, total = value_holdings(trades, prices)
    return allocation_percentages(holdings, total)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------

def _highest_volume_pair(category: str, available_coins) -> str | None:
    options = [c for c in (available_coins or []) if c.category == category]
    if not options:
        return None
    return max(options, key=lambda c: c.volume_24h).pair


def calculate_rebalance_trades(
    holdings: dict[str, list[Holding]],
    target: dict[str, float],
    total_value: float,
    buy_selection: str = "primary_holding",
    available_coins=None,
) -> RebalancePlan:
    """Sell each over-allocated category pro rata across its holdings, buy each
    under-allocated one.

    Buys go to the category's first holding (primary_holding) or the
    highest-volume scanned coin of the category (highest_volume), falling
    back to a "<category>_BASKET" placeholder.
    """
    plan = RebalancePlan()
    for category, target_pct in target.items():
        members = holdings.get(category, [])
        current_value = sum(h.value for h in members)
        diff = current_value - total_value * target_pct / 100

        if diff > 0.01:
            for h in members:
                if current_value <= 0 or h.value <= 0:
                    continue
                portion = h.value / current_value * diff
                if portion > 0.01:
                    plan.sells.append(Order(h.pair, portion, category, h.trade_id))

        elif diff < -0.01:
            pair = None
            if buy_selection == "highest_volume":
                pair = _highest_volume_pair(category, available_coins)
            elif members:
                pair = members[0].pair
            plan.buys.append(Order(pair or f"{category}{BASKET_SUFFIX}", abs(diff), category))
    return plan


def generate_rebalance_trades(
    current: dict[str, float],
    target: dict[str, float],
    total_value: float,
    available_coins: list[dict[str, Any]],
) -> RebalancePlan:
    """Volume-ranked plan from percentages and a candidate list.

    Each candidate is a dict with pair, category, and optionally value,
    is_holding and volume_24h. Stablecoins are never sold; moves under $1
    are ignored.
    """
    plan = RebalancePlan()
    candidates = available_coins or []
    for category, target_pct in target.items():
        dollar_diff = (to_float(current.get(category)) - target_pct) / 100 * total_value

        if dollar_diff > 1 and category != STABLECOINS:
            held = [c for c in candidates if c.get("category") == category and c.get("is_holding")]
            held_value = sum(to_float(c.get("value")) for c in held)
            for coin in held:
                if held_value <= 0:
                    break
                portion = to_float(coin.get("value")) / held_value * dollar_diff
                if portion > 1:
                    plan.sells.append(Order(normalize_pair(coin["pair"]), portion, category))

        if dollar_diff < -1:
            options = [c for c in candidates if c.get("category") == category]
            best = max(options, key=lambda c: to_float(c.get("volume_24h")), default=None)
            pair = normalize_pair(best["pair"]) if best else f"{category}{BASKET_SUFFIX}"
            plan.buys.append(Order(pair, abs(dollar_diff), category))
    return plan
