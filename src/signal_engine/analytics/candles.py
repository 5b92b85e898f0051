"""
Candle Scorer - patterns, momentum, bands, trend and volume for one timeframe.

Scoring (bull/bear sub-scores):
1. Pattern reliability table (engulfing/stars 3, hammer family 2, doji 1, ...)
2. RSI extremes: <30 +2, <40 +1, >70 bear +2, >60 bear +1
3. MACD histogram sign +1, histogram crossover +2
4. Close outside the Bollinger bands +1 (mean reversion)
5. EMA 9/21/50 stack +2
6. Volume confirmation, volume spike and candle-volume balance +1 each
The final score is scaled by current/average volume (clamped to [0.5, 2]).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ..config.settings import CandleConfig
from ..core.models import Candle, Direction
from ..utils.math_utils import clamp, safe_divide
from .indicators import (
    bollinger_width,
    calculate_bollinger_bands,
    calculate_macd,
    calculate_rsi,
    closes_of,
    ema_stack,
    macd_crossover,
)
from .patterns import detect_patterns
from .scoring import resolve_direction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandleScore:
    """Candle scoring result for one timeframe."""
    direction: Direction
    score: float
    patterns: Tuple[str, ...] = ()
    rsi: Optional[float] = None
    ema_trend: Optional[str] = None
    volume_confirm: bool = False
    bb_squeeze: bool = False
    high_volatility: bool = False
    ema_mid: Optional[float] = None
    ema_slow: Optional[float] = None

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "patterns": list(self.patterns),
            "rsi": self.rsi,
            "ema_trend": self.ema_trend,
            "volume_confirm": self.volume_confirm,
            "bb_squeeze": self.bb_squeeze,
            "high_volatility": self.high_volatility,
        }

    def __repr__(self) -> str:
        rsi = f"{self.rsi:.1f}" if self.rsi is not None else "n/a"
        return (
            f"CandleScore({self.direction.value}, score={self.score}, rsi={rsi}, "
            f"patterns={list(self.patterns)})"
        )


NEUTRAL_CANDLES = CandleScore(direction=Direction.NEUTRAL, score=0)


class CandleScorer:
    """
    Scores one timeframe's candles into a direction and score.

    Pure and stateless: safe to call concurrently for many symbols.
    """

    def __init__(self, config: CandleConfig = None, name: str = "CandleScorer"):
        self.config = config or CandleConfig()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def score(self, candles: Sequence[Candle], patterns: Optional[Sequence[str]] = None) -> CandleScore:
        """
        Score a candle window.

        Args:
            candles: Candles (oldest first)
            patterns: Pre-detected patterns; detected from ``candles`` when None

        Returns:
            CandleScore (NEUTRAL with score 0 for an empty window)
        """
        if not candles:
            return NEUTRAL_CANDLES

        cfg = self.config
        last = candles[-1]
        closes = closes_of(candles)
        if patterns is None:
            patterns = detect_patterns(candles)
        patterns = tuple(p for p in patterns if p and p != "none")

        bullish = 0.0
        bearish = 0.0
        candle_side = 1 if last.close >= last.open else -1

        # Volume confirmation
        if len(candles) >= cfg.volume_avg_period:
            avg_volume = float(np.mean([c.volume for c in candles[-cfg.volume_avg_period:]]))
        else:
            avg_volume = last.volume
        volume_confirm = avg_volume > 0 and last.volume > avg_volume * cfg.volume_confirm_ratio
        if volume_confirm:
            if candle_side > 0:
                bullish += 1
            else:
                bearish += 1

        volume_weight = (
            clamp(last.volume / avg_volume, cfg.volume_weight_min, cfg.volume_weight_max)
            if avg_volume > 0 else 1.0
        )

        # Volume spike versus the previous bar
        if len(candles) >= 2 and candles[-2].volume > 0:
            if last.volume > candles[-2].volume * cfg.volume_spike_ratio:
                if candle_side > 0:
                    bullish += 1
                else:
                    bearish += 1

        # BB squeeze
        width = bollinger_width(closes, cfg.bb_period, cfg.bb_std, cfg.bb_width_lookback)
        bb_squeeze = bool(width and width[1] > 0 and width[0] < width[1] * cfg.bb_squeeze_ratio)

        # 1. Patterns
        for pattern in patterns:
            weights = cfg.pattern_weights.get(pattern)
            if weights:
                bullish += weights[0]
                bearish += weights[1]

        # 2. RSI
        rsi = calculate_rsi(closes, cfg.rsi_period)
        if rsi is not None:
            if rsi < cfg.rsi_oversold:
                bullish += 2
            elif rsi < cfg.rsi_weak_oversold:
                bullish += 1
            elif rsi > cfg.rsi_overbought:
                bearish += 2
            elif rsi > cfg.rsi_weak_overbought:
                bearish += 1

        # 3. MACD
        macd = calculate_macd(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        if macd is not None:
            if macd.histogram > 0:
                bullish += 1
            elif macd.histogram < 0:
                bearish += 1
        crossover = macd_crossover(closes, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        if crossover == "bullish":
            bullish += cfg.macd_crossover_score
        elif crossover == "bearish":
            bearish += cfg.macd_crossover_score

        # 4. Bollinger Bands
        bands = calculate_bollinger_bands(closes, cfg.bb_period, cfg.bb_std)
        if bands is not None:
            if last.close < bands.lower:
                bullish += 1
            elif last.close > bands.upper:
                bearish += 1

        # 5. EMA stack
        emas = ema_stack(closes, cfg.ema_fast, cfg.ema_mid, cfg.ema_slow)
        ema_trend = emas.trend if emas else None
        if ema_trend == "bullish":
            bullish += cfg.ema_trend_score
        elif ema_trend == "bearish":
            bearish += cfg.ema_trend_score

        # 6. Candle volume balance
        total_volume = sum(c.volume for c in candles)
        if total_volume > 0:
            up_volume = sum(c.volume for c in candles if c.close >= c.open)
            balance = safe_divide(up_volume - (total_volume - up_volume), total_volume)
            if balance > cfg.vpa_threshold:
                bullish += 1
            if balance < -cfg.vpa_threshold:
                bearish += 1

        direction, _ = resolve_direction(bullish, bearish, cfg.direction_ratio, cfg.min_confidence_pct)

        high_volatility = last.close > 0 and last.range / last.close > cfg.high_volatility_range

        result = CandleScore(
            direction=direction,
            score=round(max(bullish, bearish) * volume_weight, 1),
            patterns=patterns,
            rsi=rsi,
            ema_trend=ema_trend,
            volume_confirm=volume_confirm,
            bb_squeeze=bb_squeeze,
            high_volatility=high_volatility,
            ema_mid=emas.mid if emas else None,
            ema_slow=emas.slow if emas else None,
        )
        self.logger.debug(f"{result} (bull={bullish}, bear={bearish}, vol_w={volume_weight:.2f})")
        return result
