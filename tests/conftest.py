"""Shared fixtures: in-memory database and a scripted market data gateway."""

import os

# Must be set before papertrader.config is imported anywhere
os.environ["PT_DATABASE_URL"] = "sqlite://"
os.environ["PT_SCHEDULER_ENABLED"] = "false"

import pytest
from sqlmodel import SQLModel

import papertrader.models  # noqa: F401
from papertrader.database import engine
from papertrader.engine import bot_job
from papertrader.errors import MarketDataError
from papertrader.services import market_data
from papertrader.services.market_data import PriceSnapshot
from papertrader.utils.pairs import normalize_pair


@pytest.fixture(autouse=True)
def db():
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    bot_job._bot_locks.clear()
    yield engine
    market_data.set_gateway(None)


class FakeGateway:
    """Serves fixed quotes; unknown pairs fail like an exhausted venue chain."""

    def __init__(self, quotes: dict[str, dict] | None = None):
        self.quotes: dict[str, PriceSnapshot] = {}
        self.calls: list[str] = []
        for pair, fields in (quotes or {}).items():
            self.set_quote(pair, **fields)

    def set_quote(self, pair, price, volume_24h=1_000_000.0, change_24h=0.0, high_24h=None, low_24h=None):
        pair = normalize_pair(pair)
        self.quotes[pair] = PriceSnapshot(
            pair=pair,
            price=price,
            volume_24h=volume_24h,
            change_24h=change_24h,
            high_24h=high_24h if high_24h is not None else price,
            low_24h=low_24h if low_24h is not None else price,
        )

    async def get_current_price(self, pair):
        pair = normalize_pair(pair)
        self.calls.append(pair)
        if pair not in self.quotes:
            raise MarketDataError(pair, [])
        return self.quotes[pair]

    async def get_multiple_prices(self, pairs):
        return {normalize_pair(p): self.quotes[normalize_pair(p)] for p in pairs if normalize_pair(p) in self.quotes}

    async def get_top_coins(self, limit):
        ranked = sorted(self.quotes.values(), key=lambda s: s.volume_24h, reverse=True)
        return ranked[:limit]


@pytest.fixture
def gateway():
    gw = FakeGateway()
    market_data.set_gateway(gw)
    return gw
