"""
Market Data Provider - collaborator contract for the analysis loop.

The engine never talks to an exchange directly. Schedulers and monitors fetch
order books, trades and OHLCV through a ``MarketDataProvider`` implementation
(exchange REST client, websocket cache, replay file...).

Conventions:
- Order book levels are ``(price, qty)`` pairs, best level first
- Trade and candle timestamps are epoch milliseconds
- Failures raise; callers decide how to degrade
"""

from abc import ABC, abstractmethod
from typing import List

from ..core.models import Candle, OrderBookSnapshot, Trade


class MarketDataProvider(ABC):
    """
    Abstract source of market data.

    All methods are coroutines so implementations can be awaited together.
    """

    @abstractmethod
    async def get_order_book(self, symbol: str, depth: int) -> OrderBookSnapshot:
        """
        Fetch an order book snapshot.

        Args:
            symbol: Trading pair (e.g. 'BTC/USDT')
            depth: Levels per side

        Returns:
            OrderBookSnapshot
        """

    @abstractmethod
    async def get_trades(self, symbol: str, limit: int) -> List[Trade]:
        """
        Fetch recent trades, oldest first.

        Args:
            symbol: Trading pair
            limit: Maximum number of trades
        """

    @abstractmethod
    async def get_ohlcv(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        """
        Fetch closed candles, oldest first.

        Args:
            symbol: Trading pair
            timeframe: '1m', '5m', '15m', '1h', '4h' or '1d'
            limit: Maximum number of candles
        """

    @property
    def exchange(self) -> str:
        """Exchange name stamped on generated signals."""
        return "binance"
