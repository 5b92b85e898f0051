"""Risk gates: position/trade limits, emotional filter and position sizing."""

from .controller import BalanceCheck, RiskCheck, RiskController
from .emotional_filter import EmotionalFilter, TradeGate, TradingState
from .sizing import PositionSize, calc_position_size_from_risk, volatility_size_multiplier

__all__ = [
    "RiskController",
    "RiskCheck",
    "BalanceCheck",
    "EmotionalFilter",
    "TradeGate",
    "TradingState",
    "PositionSize",
    "calc_position_size_from_risk",
    "volatility_size_multiplier",
]
