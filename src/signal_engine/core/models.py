"""
Market data and decision value types.

Everything here is an immutable snapshot: scorers receive these objects,
never mutate them, and produce new result objects.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


# ============================================================================
# Enums
# ============================================================================

class Direction(str, Enum):
    """Trade direction."""
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"

    @property
    def opposite(self) -> "Direction":
        if self is Direction.LONG:
            return Direction.SHORT
        if self is Direction.SHORT:
            return Direction.LONG
        return Direction.NEUTRAL


class LevelType(str, Enum):
    """Support/resistance level type."""
    SUPPORT = "support"
    RESISTANCE = "resistance"


# ============================================================================
# Market Data
# ============================================================================

@dataclass(frozen=True)
class Candle:
    """OHLCV candle. ``timestamp`` is epoch milliseconds."""
    timestamp: float
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open

    @classmethod
    def from_ohlcv(cls, row: Sequence[float]) -> "Candle":
        """Build from an exchange ``[timestamp, open, high, low, close, volume]`` row."""
        volume = row[5] if len(row) > 5 and row[5] is not None else 0.0
        return cls(
            timestamp=float(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(volume),
        )


@dataclass(frozen=True)
class Trade:
    """
    Executed trade from the tape.

    Attributes:
        price: Execution price
        qty: Base-asset amount
        time: Epoch milliseconds
        is_buy: True when the aggressor was the buyer
        quote_qty: Quote notional if the exchange reports it
    """
    price: float
    qty: float
    time: float
    is_buy: bool
    quote_qty: Optional[float] = None

    @property
    def notional(self) -> float:
        if self.quote_qty is not None:
            return self.quote_qty
        return self.price * self.qty


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Bid/ask ladders as ``(price, qty)`` pairs, best level first."""
    bids: Tuple[Tuple[float, float], ...] = ()
    asks: Tuple[Tuple[float, float], ...] = ()

    @classmethod
    def from_levels(cls, bids: Sequence[Sequence[float]], asks: Sequence[Sequence[float]]) -> "OrderBookSnapshot":
        return cls(
            bids=tuple((float(p), float(q)) for p, q, *_ in bids or ()),
            asks=tuple((float(p), float(q)) for p, q, *_ in asks or ()),
        )

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None

    @property
    def mid_price(self) -> Optional[float]:
        if not self.bids or not self.asks:
            return None
        return (self.bids[0][0] + self.asks[0][0]) / 2

    @property
    def is_empty(self) -> bool:
        return not self.bids or not self.asks


@dataclass
class MarketSnapshot:
    """Per-symbol bundle of inputs for one analysis cycle."""
    symbol: str
    order_book: OrderBookSnapshot = field(default_factory=OrderBookSnapshot)
    trades: List[Trade] = field(default_factory=list)
    candles_by_timeframe: Dict[str, List[Candle]] = field(default_factory=dict)
    exchange: str = "binance"
    current_price: Optional[float] = None

    def candles(self, timeframe: str) -> List[Candle]:
        return self.candles_by_timeframe.get(timeframe, [])

    def entry_price(self, timeframe: str = "5m") -> float:
        """
        Best available current price.

        Uses the explicit current price, then the last trade, then the book
        mid, then the last close of ``timeframe``.
        """
        if self.current_price:
            return self.current_price
        if self.trades:
            return max(self.trades, key=lambda t: t.time).price
        mid = self.order_book.mid_price
        if mid:
            return mid
        candles = self.candles(timeframe)
        return candles[-1].close if candles else 0.0


# ============================================================================
# Decision Outputs
# ============================================================================

@dataclass(frozen=True)
class TradingSignal:
    """
    Immutable trading signal.

    For LONG: stop_loss < entry_price < take_profit[0] < take_profit[1] < take_profit[2].
    For SHORT the inequalities are inverted.
    """
    id: str
    timestamp: datetime
    symbol: str
    exchange: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: Tuple[float, float, float]
    risk_reward: float
    confidence: float
    timeframe: str
    triggers: Tuple[str, ...]
    expires_at: datetime
    trailing_stop_config: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "symbol": self.symbol,
            "exchange": self.exchange,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": list(self.take_profit),
            "risk_reward": self.risk_reward,
            "confidence": self.confidence,
            "timeframe": self.timeframe,
            "triggers": list(self.triggers),
            "expires_at": self.expires_at.isoformat(),
            "trailing_stop_config": dict(self.trailing_stop_config),
        }

    def __repr__(self) -> str:
        return (
            f"TradingSignal({self.id} {self.direction.value} {self.symbol} @ {self.entry_price}, "
            f"SL={self.stop_loss}, TP={list(self.take_profit)}, conf={self.confidence:.2f})"
        )


@dataclass(frozen=True)
class PriceLevel:
    """Support/resistance level. Timestamps are epoch milliseconds."""
    price: float
    type: LevelType
    strength: float
    touches: int
    volume: float
    last_touch: float = 0.0
    created_at: float = 0.0


@dataclass(frozen=True)
class EntryZone:
    """Price band in which a breakout entry is acceptable."""
    optimal: float
    min: float
    max: float


@dataclass(frozen=True)
class BreakoutSignal:
    """Confirmed breakout of a price level."""
    level: PriceLevel
    direction: Direction
    confidence: float
    volume_confirmation: bool
    false_breakout_risk: float
    entry_zone: EntryZone
    invalidation_price: float
    reasons: Tuple[str, ...]
    metrics: Dict[str, float] = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"BreakoutSignal({self.direction.value} through {self.level.type.value} "
            f"{self.level.price}, conf={self.confidence:.2f})"
        )
