"""
Analysis Breakdown

Per-component explanation of one analysis cycle: what each domain saw, how
many agreed, and the resulting forecast.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..analytics.candles import CandleScore
from ..analytics.order_book import OrderBookScore
from ..analytics.tape import TapeScore
from ..core.models import Direction


def _finite(value: float) -> Optional[float]:
    return value if math.isfinite(value) else None


@dataclass
class AnalysisBreakdown:
    """
    Breakdown of one analysis.

    Attributes:
        order_book: direction, score, DOM score, imbalance, spread, walls
        tape: direction, score, delta, CVD divergence
        candles: direction, score, patterns, RSI, EMA trend
        confluence: agreeing domain count, agreed direction, confidence
        forecast: direction, confidence, human-readable reason
        multi_tf: per-timeframe readings plus ``align_count``
        tape_windows: per-window tape direction and delta
        volatility_multiplier: position size multiplier from ATR
        auto_tradable: False for fallback directions
    """
    order_book: Dict[str, Any]
    tape: Dict[str, Any]
    candles: Dict[str, Any]
    confluence: Dict[str, Any]
    forecast: Dict[str, Any]
    multi_tf: Dict[str, Any] = field(default_factory=dict)
    tape_windows: Dict[str, Any] = field(default_factory=dict)
    volatility_multiplier: float = 1.0
    auto_tradable: bool = False

    @property
    def reason(self) -> str:
        return self.forecast.get("reason", "")

    @classmethod
    def build(
        cls,
        order_book: OrderBookScore,
        tape: TapeScore,
        candles: CandleScore,
        direction: Optional[Direction],
        confidence: float,
        reason: Optional[str] = None,
        **extra: Any
    ) -> "AnalysisBreakdown":
        """
        Assemble a breakdown from the three domain readings.

        Args:
            order_book: Order book reading
            tape: Tape reading
            candles: Candle/MTF reading
            direction: Final direction (None for no signal)
            confidence: Final confidence
            reason: Explanation; defaults to a forecast summary
            **extra: multi_tf, tape_windows, volatility_multiplier, auto_tradable
        """
        directions = [order_book.direction, tape.direction, candles.direction]
        long_count = sum(1 for d in directions if d == Direction.LONG)
        short_count = sum(1 for d in directions if d == Direction.SHORT)
        if long_count >= 2:
            agreed = Direction.LONG.value
        elif short_count >= 2:
            agreed = Direction.SHORT.value
        else:
            agreed = None

        if reason is None:
            if direction is not None:
                reason = f"Forecast: {direction.value}, confidence {confidence * 100:.0f}%"
            else:
                reason = "No signal"

        return cls(
            order_book={
                "direction": order_book.direction.value,
                "score": order_book.score,
                "dom_score": order_book.dom_score,
                "imbalance": order_book.imbalance,
                "spread_pct": _finite(order_book.spread_pct),
                "walls_bid": order_book.bid_walls,
                "walls_ask": order_book.ask_walls,
            },
            tape={
                "direction": tape.direction.value,
                "score": tape.score,
                "delta": tape.delta,
                "cvd_divergence": tape.cvd_divergence,
            },
            candles={
                "direction": candles.direction.value,
                "score": candles.score,
                "patterns": list(candles.patterns),
                "rsi": candles.rsi,
                "ema_trend": candles.ema_trend,
            },
            confluence={
                "count": max(long_count, short_count),
                "direction": agreed,
                "confidence": confidence,
            },
            forecast={
                "direction": direction.value if direction is not None else None,
                "confidence": confidence,
                "reason": reason,
            },
            **extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_book": dict(self.order_book),
            "tape": dict(self.tape),
            "candles": dict(self.candles),
            "confluence": dict(self.confluence),
            "forecast": dict(self.forecast),
            "multi_tf": dict(self.multi_tf),
            "tape_windows": dict(self.tape_windows),
            "volatility_multiplier": self.volatility_multiplier,
            "auto_tradable": self.auto_tradable,
        }
