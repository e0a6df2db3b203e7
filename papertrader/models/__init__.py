"""Database models."""

from papertrader.models.trade import Trade, TradeActivity, JournalEntry, Lane, TradeStatus
from papertrader.models.paper_account import PaperAccount, PaperAdjustment
from papertrader.models.bot import TradingBot
from papertrader.models.bot_execution import BotExecution
from papertrader.models.portfolio_snapshot import PortfolioSnapshot
from papertrader.models.alert import TradeAlert

__all__ = [
    "Trade",
    "TradeActivity",
    "JournalEntry",
    "Lane",
    "TradeStatus",
    "PaperAccount",
    "PaperAdjustment",
    "TradingBot",
    "BotExecution",
    "PortfolioSnapshot",
    "TradeAlert",
]
