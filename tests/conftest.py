"""
Shared fixtures: synthetic candles, order books, tapes and a fake market
data provider.
"""

import pytest

from factories import (
    INTERVAL_MS,
    FakeClock,
    FakeProvider,
    make_book,
    make_candles,
    make_trades,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def uptrend_candles():
    return make_candles(120)


@pytest.fixture
def balanced_book():
    return make_book()


@pytest.fixture
def bullish_book():
    return make_book(bid_qty=10.0, ask_qty=2.0)


@pytest.fixture
def buying_tape():
    return make_trades(count=20, sell_every=2)


@pytest.fixture
def candles_by_timeframe():
    return {tf: make_candles(120, interval_ms=ms) for tf, ms in INTERVAL_MS.items()}


@pytest.fixture
def provider(bullish_book, buying_tape, candles_by_timeframe):
    return FakeProvider(bullish_book, buying_tape, candles_by_timeframe)
