"""Strategy catalog keyed by "style:substyle", built once at import."""

from papertrader.errors import StrategyNotFound
from papertrader.strategies.base import Strategy
from papertrader.strategies.day import DayMomentum, DayRange
from papertrader.strategies.fundamental import FundamentalNarrative, FundamentalValue
from papertrader.strategies.longterm import LongTermDCA, LongTermDipBuyer
from papertrader.strategies.scalper import ScalperGrid, ScalperMomentum
from papertrader.strategies.swing import SwingBreakout, SwingMeanReversion, SwingMomentum

TRADING_STYLES = ("swing", "day", "scalper", "fundamental", "longterm")

_BUILTINS: tuple[Strategy, ...] = (
    SwingMomentum(),
    SwingMeanReversion(),
    SwingBreakout(),
    DayMomentum(),
    DayRange(),
    ScalperGrid(),
    ScalperMomentum(),
    FundamentalValue(),
    FundamentalNarrative(),
    LongTermDCA(),
    LongTermDipBuyer(),
)

STRATEGIES: dict[str, Strategy] = {s.key: s for s in _BUILTINS}


def strategy_key(style: str, substyle: str) -> str:
    return f"{style}:{substyle}"


def get_strategy(style: str, substyle: str) -> Strategy | None:
    return STRATEGIES.get(strategy_key(style, substyle))


def require_strategy(style: str, substyle: str) -> Strategy:
    strategy = get_strategy(style, substyle)
    if strategy is None:
        raise StrategyNotFound(f"Unknown strategy {strategy_key(style, substyle)}")
    return strategy


def list_strategies() -> list[Strategy]:
    return list(STRATEGIES.values())


def strategies_by_style(style: str) -> list[Strategy]:
    return [s for s in STRATEGIES.values() if s.style == style]
