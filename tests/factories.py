"""
Builders for synthetic market data shared by the test modules.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from signal_engine.core.models import Candle, OrderBookSnapshot, Trade
from signal_engine.market_data.provider import MarketDataProvider
from signal_engine.utils.time_utils import to_millis


START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

INTERVAL_MS = {
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
}


class FakeClock:
    """Mutable clock for stateful gates."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_candles(
    count: int,
    start_price: float = 100.0,
    step: float = 0.1,
    volume: float = 1000.0,
    interval_ms: int = 300_000,
    end: datetime = START
) -> List[Candle]:
    """Steady trend of green (step > 0) or red (step < 0) candles ending at ``end``."""
    end_ms = to_millis(end)
    candles = []
    for i in range(count):
        open_ = start_price + step * i
        close = open_ + step
        candles.append(Candle(
            timestamp=end_ms - (count - i) * interval_ms,
            open=open_,
            high=max(open_, close) + abs(step) * 0.5,
            low=min(open_, close) - abs(step) * 0.5,
            close=close,
            volume=volume,
        ))
    return candles


def make_book(
    mid: float = 100.0,
    levels: int = 10,
    bid_qty: float = 5.0,
    ask_qty: float = 5.0,
    tick: float = 0.01
) -> OrderBookSnapshot:
    """Symmetric ladder around ``mid`` with configurable quantities per side."""
    bids = [(mid - tick * (i + 1), bid_qty) for i in range(levels)]
    asks = [(mid + tick * (i + 1), ask_qty) for i in range(levels)]
    return OrderBookSnapshot.from_levels(bids, asks)


def make_trades(
    count: int = 20,
    start_price: float = 100.0,
    step: float = 0.1,
    sell_every: int = 0,
    qty: float = 1.0,
    end: datetime = START
) -> List[Trade]:
    """
    Trades one second apart ending at ``end``.

    Every ``sell_every``-th trade among the first half is a sell (0 for buys only).
    """
    end_ms = to_millis(end)
    trades = []
    for i in range(count):
        is_sell = sell_every > 0 and i < count // 2 and i % sell_every == 0
        trades.append(Trade(
            price=start_price + step * i,
            qty=qty,
            time=end_ms - (count - i) * 1000,
            is_buy=not is_sell,
        ))
    return trades


class FakeProvider(MarketDataProvider):
    """In-memory provider; ``failures`` maps a method name to the exception it raises."""

    def __init__(
        self,
        book: OrderBookSnapshot,
        trades: List[Trade],
        candles: Dict[str, List[Candle]],
        failures: Optional[Dict[str, Exception]] = None
    ):
        self.book = book
        self.trades = trades
        self.candles = candles
        self.failures = failures or {}
        self.calls: List[str] = []

    def _maybe_fail(self, method: str) -> None:
        self.calls.append(method)
        if method in self.failures:
            raise self.failures[method]

    async def get_order_book(self, symbol, depth):
        self._maybe_fail("get_order_book")
        return self.book

    async def get_trades(self, symbol, limit):
        self._maybe_fail("get_trades")
        return self.trades[-limit:]

    async def get_ohlcv(self, symbol, timeframe, limit):
        self._maybe_fail("get_ohlcv")
        return self.candles.get(timeframe, [])[-limit:]


def zigzag(count: int = 48, trend: float = 0.05, amplitude: float = 1.0) -> List[Candle]:
    """Triangle wave (period 8) drifting by ``trend`` per bar."""
    candles = []
    for i in range(count):
        phase = i % 8
        wave = phase if phase <= 4 else 8 - phase
        close = 100 + trend * i + amplitude * wave
        candles.append(Candle(
            timestamp=i * 60_000,
            open=close,
            high=close + 0.1,
            low=close - 0.1,
            close=close,
            volume=100.0,
        ))
    return candles
