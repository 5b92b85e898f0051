"""Core value types and the async event bus."""

from .models import (
    Direction,
    Candle,
    Trade,
    OrderBookSnapshot,
    MarketSnapshot,
    TradingSignal,
    PriceLevel,
    LevelType,
    BreakoutSignal,
    EntryZone,
)
from .events import EventBus, Event, SignalGenerated, BreakoutDetected, TrailingStopHit

__all__ = [
    "Direction",
    "Candle",
    "Trade",
    "OrderBookSnapshot",
    "MarketSnapshot",
    "TradingSignal",
    "PriceLevel",
    "LevelType",
    "BreakoutSignal",
    "EntryZone",
    "EventBus",
    "Event",
    "SignalGenerated",
    "BreakoutDetected",
    "TrailingStopHit",
]
