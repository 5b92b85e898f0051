"""
Analytics - per-domain market scorers.

Components:
- OrderBookScorer: DOM, imbalance zones, pressure, walls, breakout pressure
- TapeScorer: weighted delta, CVD divergence, aggression, time windows
- CandleScorer: candlestick patterns, RSI, MACD, Bollinger, EMA stack, volume
- MTFAggregator: cross-timeframe direction and alignment
- LevelDetector: swing and volume-profile support/resistance
- BreakoutConfirmer: level breakout confidence
"""

from .order_book import OrderBookScorer, OrderBookScore, NEUTRAL_ORDER_BOOK
from .tape import TapeScorer, TapeScore, TapeWindowsResult, NEUTRAL_TAPE
from .candles import CandleScorer, CandleScore, NEUTRAL_CANDLES
from .multi_timeframe import MTFAggregator, MTFResult, TimeframeReading
from .levels import LevelDetector
from .breakout import BreakoutConfirmer, FundingHint, tape_delta
from . import indicators, patterns

__all__ = [
    # Order book
    'OrderBookScorer',
    'OrderBookScore',
    'NEUTRAL_ORDER_BOOK',

    # Tape
    'TapeScorer',
    'TapeScore',
    'TapeWindowsResult',
    'NEUTRAL_TAPE',

    # Candles
    'CandleScorer',
    'CandleScore',
    'NEUTRAL_CANDLES',

    # Multi-timeframe
    'MTFAggregator',
    'MTFResult',
    'TimeframeReading',

    # Levels & breakouts
    'LevelDetector',
    'BreakoutConfirmer',
    'FundingHint',
    'tape_delta',

    # Modules
    'indicators',
    'patterns',
]
