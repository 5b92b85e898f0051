"""
Multi-Timeframe Aggregator - combine per-timeframe candle readings.

Manages:
1. Per-timeframe CandleScorer readings, higher timeframes first
2. EMA21/EMA50 position and swing structure resolving NEUTRAL readings
3. Weighted direction vote with alignment count
4. Higher-timeframe (1d/4h) structure opposition

Timeframe Hierarchy:
- 1d / 4h: trend direction
- 1h: confirmation
- 15m / 5m / 1m: entry timing
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

from ..config.settings import MTFConfig
from ..core.models import Candle, Direction
from .candles import CandleScorer
from .patterns import detect_market_structure

logger = logging.getLogger(__name__)


@dataclass
class TimeframeReading:
    """Direction and score of one timeframe."""
    direction: Direction
    score: float


@dataclass
class MTFResult:
    """Multi-timeframe aggregation result."""
    direction: Direction
    score: float
    align_count: int
    long_weight: float
    short_weight: float
    against_htf: bool = False
    htf_structure: Dict[str, str] = field(default_factory=dict)
    readings: Dict[str, TimeframeReading] = field(default_factory=dict)

    @property
    def evaluated(self) -> int:
        """Number of timeframes that had enough candles."""
        return len(self.readings)

    @property
    def first_direction(self) -> Direction:
        """Direction of the highest evaluated timeframe (NEUTRAL if none)."""
        for reading in self.readings.values():
            return reading.direction
        return Direction.NEUTRAL

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            tf: {"direction": r.direction.value, "score": r.score}
            for tf, r in self.readings.items()
        }
        data["align_count"] = self.align_count
        return data

    def __repr__(self) -> str:
        return (
            f"MTFResult({self.direction.value}, align={self.align_count}/{self.evaluated}, "
            f"L={self.long_weight:.2f} S={self.short_weight:.2f}, against_htf={self.against_htf})"
        )


class MTFAggregator:
    """
    Multi-Timeframe Aggregator.

    Timeframes are evaluated in the order of ``timeframe_weights`` (highest
    first). A timeframe's NEUTRAL reading is resolved by EMA position on
    1h/4h/1d and then by swing structure. The MTF direction needs a weight
    margin above 0.15.
    """

    def __init__(
        self,
        config: MTFConfig = None,
        candle_scorer: CandleScorer = None,
        name: str = "MTFAggregator"
    ):
        """
        Initialize Multi-Timeframe Aggregator.

        Args:
            config: Timeframe weights and structure parameters
            candle_scorer: Scorer applied to each timeframe
            name: Logger suffix
        """
        self.config = config or MTFConfig()
        self.candle_scorer = candle_scorer or CandleScorer()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def structure(self, candles: Sequence[Candle]) -> str:
        """Swing structure ('bullish' / 'bearish' / 'neutral') with configured parameters."""
        cfg = self.config
        return detect_market_structure(
            candles,
            lookback=cfg.structure_lookback,
            min_candles=cfg.structure_min_candles,
            swings=cfg.structure_swings,
        )

    def read_timeframe(self, timeframe: str, candles: Sequence[Candle]) -> TimeframeReading:
        """
        Direction and score for a single timeframe.

        Args:
            timeframe: Timeframe label (e.g. '4h')
            candles: Candles of that timeframe (oldest first)

        Returns:
            TimeframeReading
        """
        result = self.candle_scorer.score(candles)
        direction = result.direction
        last_close = candles[-1].close

        if (
            direction == Direction.NEUTRAL
            and timeframe in self.config.ema_fallback_timeframes
            and result.ema_mid is not None
            and result.ema_slow is not None
        ):
            if last_close > result.ema_mid and last_close > result.ema_slow:
                direction = Direction.LONG
            elif last_close < result.ema_mid and last_close < result.ema_slow:
                direction = Direction.SHORT

        if direction == Direction.NEUTRAL:
            structure = self.structure(candles)
            if structure == "bullish":
                direction = Direction.LONG
            elif structure == "bearish":
                direction = Direction.SHORT

        return TimeframeReading(direction=direction, score=result.score)

    def aggregate(self, candles_by_timeframe: Mapping[str, Sequence[Candle]]) -> MTFResult:
        """
        Combine all available timeframes.

        Args:
            candles_by_timeframe: Timeframe -> candles (oldest first)

        Returns:
            MTFResult with direction, score (winning weight × 15), alignment
            count and higher-timeframe opposition flag
        """
        cfg = self.config
        readings: Dict[str, TimeframeReading] = {}
        long_weight = 0.0
        short_weight = 0.0

        for timeframe, weight in cfg.timeframe_weights.items():
            candles = candles_by_timeframe.get(timeframe) or []
            if len(candles) < cfg.min_candles:
                continue

            reading = self.read_timeframe(timeframe, candles)
            readings[timeframe] = reading
            if reading.direction == Direction.LONG:
                long_weight += weight
            elif reading.direction == Direction.SHORT:
                short_weight += weight

        if long_weight > short_weight + cfg.direction_margin:
            direction = Direction.LONG
        elif short_weight > long_weight + cfg.direction_margin:
            direction = Direction.SHORT
        else:
            direction = Direction.NEUTRAL

        align_count = sum(1 for r in readings.values() if r.direction == direction)

        htf_structure = {
            tf: self.structure(candles_by_timeframe.get(tf) or [])
            for tf in cfg.htf_structure_timeframes
        }
        htf_bull = "bullish" in htf_structure.values()
        htf_bear = "bearish" in htf_structure.values()
        against_htf = (
            (direction == Direction.LONG and htf_bear)
            or (direction == Direction.SHORT and htf_bull)
        )

        result = MTFResult(
            direction=direction,
            score=max(long_weight, short_weight) * cfg.score_multiplier,
            align_count=align_count,
            long_weight=long_weight,
            short_weight=short_weight,
            against_htf=against_htf,
            htf_structure=htf_structure,
            readings=readings,
        )
        self.logger.debug(f"{result}")
        return result
