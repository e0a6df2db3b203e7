"""Tests for the market data gateway: venue fallback, cache and ticker parsing."""

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import ccxt
import pytest

from papertrader.errors import MarketDataError
from papertrader.services.market_data import (
    MarketDataGateway,
    build_synthetic_series,
    build_synthetic_volumes,
    extract_price_snapshot,
)

TICKER = {"last": 100.0, "quoteVolume": 5_000_000.0, "percentage": 2.5, "high": 105.0, "low": 95.0}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


# ---------------------------------------------------------------------------
# Ticker parsing
# ---------------------------------------------------------------------------

class TestExtractPriceSnapshot:
    def test_prefers_last(self):
        snap = extract_price_snapshot("BTC/USDT", {"last": 10, "close": 11, "bid": 9})
        assert snap.price == 10

    def test_falls_back_to_close_then_ask_then_bid(self):
        assert extract_price_snapshot("X/USDT", {"close": 11, "bid": 9}).price == 11
        assert extract_price_snapshot("X/USDT", {"ask": 12, "bid": 9}).price == 12
        assert extract_price_snapshot("X/USDT", {"bid": 9}).price == 9

    def test_change_computed_from_open(self):
        snap = extract_price_snapshot("X/USDT", {"last": 110, "open": 100})
        assert snap.change_24h == pytest.approx(10.0)

    def test_high_low_default_to_price(self):
        snap = extract_price_snapshot("X/USDT", {"last": 50, "baseVolume": 7})
        assert snap.high_24h == 50
        assert snap.low_24h == 50
        assert snap.volume_24h == 7

    @pytest.mark.parametrize("ticker", [
        {"last": None, "close": None, "ask": None, "bid": None},
        {"last": 0, "bid": float("nan")},
        {"quoteVolume": 1000},
    ])
    def test_priceless_ticker_raises(self, ticker):
        with pytest.raises(ccxt.ExchangeError):
            extract_price_snapshot("X/USDT", ticker)


def test_synthetic_series_runs_from_implied_open():
    series = build_synthetic_series(110.0, 10.0, points=5)
    assert len(series) == 5
    assert series[0] == pytest.approx(100.0)
    assert series[-1] == pytest.approx(110.0)


def test_synthetic_volumes_ramp_with_move():
    flat = build_synthetic_volumes(2000.0, 0.0, points=4)
    ramp = build_synthetic_volumes(2000.0, 10.0, points=4)
    assert flat == [500.0] * 4
    assert ramp[-1] > ramp[0]


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_falls_back_to_next_venue():
    first = SimpleNamespace(id="first", fetch_ticker=MagicMock(side_effect=ccxt.ExchangeError("down")))
    second = SimpleNamespace(id="second", fetch_ticker=MagicMock(return_value=TICKER))
    gateway = MarketDataGateway(venues=[first, second])

    snap = await gateway.get_current_price("btc-usdt")
    assert snap.pair == "BTC/USDT"
    assert snap.price == 100.0
    second.fetch_ticker.assert_called_once_with("BTC/USDT")


@pytest.mark.asyncio
async def test_priceless_ticker_falls_back_and_is_not_cached():
    empty = {"last": None, "close": None, "ask": None, "bid": None, "quoteVolume": 10.0}
    first = SimpleNamespace(id="first", fetch_ticker=MagicMock(return_value=empty))
    second = SimpleNamespace(id="second", fetch_ticker=MagicMock(return_value=TICKER))
    gateway = MarketDataGateway(venues=[first, second])

    snap = await gateway.get_current_price("BTC/USDT")
    assert snap.price == 100.0
    second.fetch_ticker.assert_called_once_with("BTC/USDT")

    lone = MarketDataGateway(venues=[SimpleNamespace(id="v", fetch_ticker=MagicMock(return_value=empty))])
    with pytest.raises(MarketDataError):
        await lone.get_current_price("BTC/USDT")
    assert lone._cached("BTC/USDT", allow_stale=True) is None


@pytest.mark.asyncio
async def test_cache_hit_within_ttl():
    venue = SimpleNamespace(id="v", fetch_ticker=MagicMock(return_value=TICKER))
    clock = FakeClock()
    gateway = MarketDataGateway(venues=[venue], ttl_seconds=60, clock=clock)

    await gateway.get_current_price("BTC/USDT")
    clock.now = 30
    await gateway.get_current_price("BTC/USDT")
    assert venue.fetch_ticker.call_count == 1

    clock.now = 61
    await gateway.get_current_price("BTC/USDT")
    assert venue.fetch_ticker.call_count == 2


@pytest.mark.asyncio
async def test_stale_entry_served_when_all_venues_time_out():
    venue = SimpleNamespace(id="v", fetch_ticker=MagicMock(return_value=TICKER))
    clock = FakeClock()
    gateway = MarketDataGateway(venues=[venue], ttl_seconds=60, clock=clock)
    await gateway.get_current_price("BTC/USDT")

    clock.now = 120
    venue.fetch_ticker.side_effect = ccxt.RequestTimeout("timed out")
    snap = await gateway.get_current_price("BTC/USDT")
    assert snap.price == 100.0


@pytest.mark.asyncio
async def test_non_timeout_failure_propagates_despite_stale_entry():
    venue = SimpleNamespace(id="v", fetch_ticker=MagicMock(return_value=TICKER))
    clock = FakeClock()
    gateway = MarketDataGateway(venues=[venue], ttl_seconds=60, clock=clock)
    await gateway.get_current_price("BTC/USDT")

    clock.now = 120
    venue.fetch_ticker.side_effect = ccxt.ExchangeError("boom")
    with pytest.raises(MarketDataError):
        await gateway.get_current_price("BTC/USDT")


@pytest.mark.asyncio
async def test_symbol_errors_are_not_logged_as_warnings(caplog):
    missing = SimpleNamespace(id="missing", fetch_ticker=MagicMock(side_effect=ccxt.BadSymbol("no such pair")))
    broken = SimpleNamespace(id="broken", fetch_ticker=MagicMock(side_effect=ccxt.ExchangeError("500")))
    gateway = MarketDataGateway(venues=[missing, broken])

    with caplog.at_level(logging.WARNING, logger="papertrader.services.market_data"):
        with pytest.raises(MarketDataError) as exc:
            await gateway.get_current_price("ABC/USDT")

    assert len(exc.value.errors) == 2
    messages = [r.getMessage() for r in caplog.records]
    assert not any("missing" in m for m in messages)
    assert any("broken" in m for m in messages)


@pytest.mark.asyncio
async def test_batch_omits_failed_pairs():
    def fetch_ticker(symbol):
        if symbol == "BAD/USDT":
            raise ccxt.BadSymbol(symbol)
        return TICKER

    venue = SimpleNamespace(id="v", fetch_ticker=MagicMock(side_effect=fetch_ticker))
    gateway = MarketDataGateway(venues=[venue])

    prices = await gateway.get_multiple_prices(["BTC/USDT", "BAD/USDT", "eth/usdt"])
    assert set(prices) == {"BTC/USDT", "ETH/USDT"}


@pytest.mark.asyncio
async def test_top_coins_sorted_by_volume():
    tickers = {
        "BTC/USDT": {"last": 100, "quoteVolume": 10},
        "ETH/USDT": {"last": 10, "quoteVolume": 30},
        "ETH/BTC": {"last": 0.1, "quoteVolume": 99},
        "DEAD/USDT": {"last": None, "quoteVolume": 500},
    }
    venue = SimpleNamespace(id="v", fetch_tickers=MagicMock(return_value=tickers))
    gateway = MarketDataGateway(venues=[venue])

    top = await gateway.get_top_coins(5)
    assert [s.pair for s in top] == ["ETH/USDT", "BTC/USDT"]


@pytest.mark.asyncio
async def test_ohlcv_frame():
    rows = [[1_700_000_000_000, 1, 2, 0.5, 1.5, 100], [1_700_003_600_000, 1.5, 2.5, 1, 2, 120]]
    venue = SimpleNamespace(id="v", fetch_ohlcv=MagicMock(return_value=rows))
    gateway = MarketDataGateway(venues=[venue])

    frame = await gateway.get_ohlcv("BTC/USDT", "1h", 2)
    assert list(frame.columns) == ["time", "open", "high", "low", "close", "volume"]
    assert frame["close"].tolist() == [1.5, 2.0]
    venue.fetch_ohlcv.assert_called_once_with("BTC/USDT", timeframe="1h", limit=2)
