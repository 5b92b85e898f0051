"""
Candlestick pattern and setup detectors.

Pattern detectors look at the last one to three candles. Setup detectors
(lower-band reversal, low-volume dip, EMA/RSI cross, volatility breakout)
and the swing-structure classifier need a longer history and return
None/False/'neutral' when it is missing.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..core.models import Candle, Direction
from .indicators import (
    bollinger_series,
    calculate_adx,
    calculate_atr,
    calculate_bollinger_bands,
    ema_series,
    rsi_series,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Single-Candle Patterns
# ============================================================================

def is_hammer(candle: Candle) -> bool:
    """Long lower shadow (> 2× body), almost no upper shadow."""
    return (
        candle.range > 0
        and candle.lower_shadow > candle.body * 2
        and candle.upper_shadow < candle.range * 0.1
    )


def is_inverted_hammer(candle: Candle) -> bool:
    """Long upper shadow (> 2× body), almost no lower shadow."""
    return (
        candle.range > 0
        and candle.upper_shadow > candle.body * 2
        and candle.lower_shadow < candle.range * 0.1
    )


def is_doji(candle: Candle) -> bool:
    return candle.range > 0 and candle.body / candle.range < 0.05


def is_dragonfly_doji(candle: Candle) -> bool:
    return is_doji(candle) and candle.lower_shadow > candle.upper_shadow * 2


def is_gravestone_doji(candle: Candle) -> bool:
    return is_doji(candle) and candle.upper_shadow > candle.lower_shadow * 2


def is_spinning_top(candle: Candle) -> bool:
    return (
        candle.range > 0
        and candle.body / candle.range < 0.3
        and candle.lower_shadow > candle.body
        and candle.upper_shadow > candle.body
    )


def is_bull_marubozu(candle: Candle) -> bool:
    body = candle.close - candle.open
    if body <= 0 or candle.range <= 0:
        return False
    return (
        body / candle.range > 0.9
        and candle.open - candle.low < candle.range * 0.05
        and candle.high - candle.close < candle.range * 0.05
    )


def is_bear_marubozu(candle: Candle) -> bool:
    body = candle.open - candle.close
    if body <= 0 or candle.range <= 0:
        return False
    return (
        body / candle.range > 0.9
        and candle.close - candle.low < candle.range * 0.05
        and candle.high - candle.open < candle.range * 0.05
    )


# ============================================================================
# Multi-Candle Patterns
# ============================================================================

def detect_engulfing(candles: Sequence[Candle]) -> Optional[str]:
    """'bullish_engulfing', 'bearish_engulfing' or None."""
    if len(candles) < 2:
        return None
    prev, curr = candles[-2], candles[-1]

    if (
        prev.is_red and curr.is_green
        and curr.open <= prev.close and curr.close >= prev.open
        and curr.body > prev.body
    ):
        return "bullish_engulfing"
    if (
        prev.is_green and curr.is_red
        and curr.open >= prev.close and curr.close <= prev.open
        and curr.body > prev.body
    ):
        return "bearish_engulfing"
    return None


def detect_harami(candles: Sequence[Candle]) -> Optional[str]:
    """Small body inside the previous body: 'bullish_harami' / 'bearish_harami' / None."""
    if len(candles) < 2:
        return None
    prev, curr = candles[-2], candles[-1]
    if curr.body >= prev.body * 0.9:
        return None

    curr_top, curr_bottom = max(curr.open, curr.close), min(curr.open, curr.close)
    prev_top, prev_bottom = max(prev.open, prev.close), min(prev.open, prev.close)
    if curr_top < prev_top and curr_bottom > prev_bottom:
        return "bullish_harami" if curr.is_green else "bearish_harami"
    return None


def is_tweezer_tops(candles: Sequence[Candle]) -> bool:
    if len(candles) < 2:
        return False
    a, b = candles[-2], candles[-1]
    tolerance = (a.range + b.range) * 0.02
    return abs(a.high - b.high) <= tolerance and a.high > a.open and b.is_red


def is_tweezer_bottoms(candles: Sequence[Candle]) -> bool:
    if len(candles) < 2:
        return False
    a, b = candles[-2], candles[-1]
    tolerance = (a.range + b.range) * 0.02
    return abs(a.low - b.low) <= tolerance and a.is_red and b.is_green


def is_piercing_line(candles: Sequence[Candle]) -> bool:
    """Green bar opening below the red bar's low and closing above its body midpoint."""
    if len(candles) < 2:
        return False
    prev, curr = candles[-2], candles[-1]
    if not (prev.is_red and curr.is_green):
        return False
    prev_mid = (prev.open + prev.close) / 2
    return curr.open < prev.low and curr.close > prev_mid and curr.close < prev.open


def is_dark_cloud_cover(candles: Sequence[Candle]) -> bool:
    """Red bar opening above the green bar's high and closing below its body midpoint."""
    if len(candles) < 2:
        return False
    prev, curr = candles[-2], candles[-1]
    if not (prev.is_green and curr.is_red):
        return False
    prev_mid = (prev.open + prev.close) / 2
    return curr.open > prev.high and curr.close < prev_mid and curr.close > prev.open


def _is_small_body(candle: Candle) -> bool:
    return candle.body / (candle.range or 0.001) < 0.3


def is_morning_star(candles: Sequence[Candle]) -> bool:
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    return a.is_red and _is_small_body(b) and c.is_green and c.close > (a.open + a.close) / 2


def is_evening_star(candles: Sequence[Candle]) -> bool:
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    return a.is_green and _is_small_body(b) and c.is_red and c.close < (a.open + a.close) / 2


def is_three_white_soldiers(candles: Sequence[Candle]) -> bool:
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    return (
        a.is_green and b.is_green and c.is_green
        and b.high > a.high and c.high > b.high
        and a.close < b.open and b.close < c.open
    )


def is_three_black_crows(candles: Sequence[Candle]) -> bool:
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    return (
        a.is_red and b.is_red and c.is_red
        and b.low < a.low and c.low < b.low
        and a.open > b.open > c.open
    )


def detect_patterns(candles: Sequence[Candle]) -> List[str]:
    """
    All candlestick patterns present on the last bars.

    Hammer-shaped bars are read as 'hammer'/'inverted_hammer' after a
    decline (two or more red bars among the three before the last) and as
    'hanging_man'/'shooting_star' otherwise.

    Args:
        candles: Candles (oldest first)

    Returns:
        Pattern names in detection order
    """
    patterns: List[str] = []
    if len(candles) < 2:
        return patterns

    last = candles[-1]

    engulfing = detect_engulfing(candles)
    if engulfing:
        patterns.append(engulfing)

    prior_down = sum(1 for c in candles[-4:-1] if c.is_red) >= 2
    if is_hammer(last):
        patterns.append("hammer" if prior_down else "hanging_man")
    if is_inverted_hammer(last):
        patterns.append("inverted_hammer" if prior_down else "shooting_star")

    if is_doji(last):
        if is_dragonfly_doji(last):
            patterns.append("dragonfly_doji")
        elif is_gravestone_doji(last):
            patterns.append("gravestone_doji")
        else:
            patterns.append("doji")

    if is_spinning_top(last):
        patterns.append("spinning_top")
    if is_tweezer_tops(candles):
        patterns.append("tweezer_tops")
    if is_tweezer_bottoms(candles):
        patterns.append("tweezer_bottoms")

    harami = detect_harami(candles)
    if harami:
        patterns.append(harami)

    if is_piercing_line(candles):
        patterns.append("piercing_line")
    if is_dark_cloud_cover(candles):
        patterns.append("dark_cloud_cover")
    if is_morning_star(candles):
        patterns.append("morning_star")
    if is_evening_star(candles):
        patterns.append("evening_star")
    if is_three_white_soldiers(candles):
        patterns.append("three_white_soldiers")
    if is_three_black_crows(candles):
        patterns.append("three_black_crows")
    if is_bull_marubozu(last):
        patterns.append("bull_marubozu")
    if is_bear_marubozu(last):
        patterns.append("bear_marubozu")

    return patterns


# ============================================================================
# Setup Detectors
# ============================================================================

def detect_lower_band_reversal(candles: Sequence[Candle], bb_period: int = 40, bb_std: float = 2.0) -> bool:
    """
    Close under the previous lower band with a short tail (BinHV45 setup).

    Requires a drop of more than 0.8% versus the previous close and a tail
    (close - low) shorter than a quarter of the middle-to-lower band gap.
    """
    if len(candles) < bb_period + 2:
        return False

    _, middle, lower = bollinger_series([c.close for c in candles], bb_period, bb_std)
    if len(lower) < 2 or not lower[-1] or not lower[-2]:
        return False

    last, prev = candles[-1], candles[-2]
    bb_delta = abs(middle[-1] - lower[-1])
    tail = abs(last.close - last.low)
    close_delta = abs(last.close - prev.close)

    return bool(
        last.close < lower[-2]
        and last.close <= prev.close
        and close_delta > last.close * 0.008
        and bb_delta > 0
        and tail < bb_delta * 0.25
    )


def detect_low_volume_dip(candles: Sequence[Candle]) -> bool:
    """
    Dip below EMA50 and 98.5% of the typical-price lower band on
    non-climactic volume (ClucMay72018 setup).
    """
    if len(candles) < 50:
        return False

    closes = [c.close for c in candles]
    typical = [(c.high + c.low + c.close) / 3 for c in candles]
    ema50 = ema_series(closes, 50)[-1]
    bands = calculate_bollinger_bands(typical, 20, 2.0)
    if bands is None or not bands.lower:
        return False

    last = candles[-1]
    prev_volume_mean = float(np.mean([c.volume for c in candles[-31:-1]]))

    return bool(
        last.close < ema50
        and last.close < 0.985 * bands.lower
        and prev_volume_mean > 0
        and last.volume < prev_volume_mean * 20
    )


def detect_ema_rsi_cross(candles: Sequence[Candle], rsi_period: int = 10, adx_min: float = 25.0) -> Optional[Direction]:
    """
    RSI(hl2) crossing 50 together with EMA5/EMA10 crossing, in a trending
    market (ADX >= ``adx_min``). HLHB setup.

    Returns:
        Direction.LONG, Direction.SHORT or None
    """
    if len(candles) < 50:
        return None

    adx = calculate_adx(candles, 14)
    if adx is None or adx < adx_min:
        return None

    closes = [c.close for c in candles]
    hl2 = [(c.high + c.low) / 2 for c in candles]
    rsi = rsi_series(hl2, rsi_period)
    ema5 = ema_series(closes, 5)
    ema10 = ema_series(closes, 10)
    if len(rsi) < 2:
        return None

    rsi_up = rsi[-2] < 50 <= rsi[-1]
    rsi_down = rsi[-2] > 50 >= rsi[-1]
    ema_up = ema5[-2] <= ema10[-2] and ema5[-1] > ema10[-1]
    ema_down = ema5[-2] >= ema10[-2] and ema5[-1] < ema10[-1]

    if rsi_up and ema_up:
        return Direction.LONG
    if rsi_down and ema_down:
        return Direction.SHORT
    return None


def detect_volatility_breakout(candles: Sequence[Candle], atr_period: int = 14, multiplier: float = 2.0) -> Optional[Direction]:
    """Close-to-close move larger than ``multiplier`` × ATR."""
    if len(candles) < 20:
        return None
    atr = calculate_atr(candles, atr_period)
    if not atr or atr <= 0:
        return None

    change = candles[-1].close - candles[-2].close
    if change > atr * multiplier:
        return Direction.LONG
    if change < -atr * multiplier:
        return Direction.SHORT
    return None


# ============================================================================
# Market Structure
# ============================================================================

def detect_market_structure(
    candles: Sequence[Candle],
    lookback: int = 3,
    min_candles: int = 15,
    swings: int = 4
) -> str:
    """
    Classify swing structure.

    A swing high (low) is a bar whose high (low) is strictly beyond every
    neighbour within ``lookback`` bars. Comparing the last two of the most
    recent ``swings`` swing points: higher-high + higher-low is 'bullish',
    lower-high + lower-low is 'bearish', anything else 'neutral'.
    """
    if len(candles) < min_candles:
        return "neutral"

    swing_highs: List[float] = []
    swing_lows: List[float] = []
    for i in range(lookback, len(candles) - lookback):
        high, low = candles[i].high, candles[i].low
        is_high = all(
            candles[i - j].high < high and candles[i + j].high < high
            for j in range(1, lookback + 1)
        )
        is_low = all(
            candles[i - j].low > low and candles[i + j].low > low
            for j in range(1, lookback + 1)
        )
        if is_high:
            swing_highs.append(high)
        if is_low:
            swing_lows.append(low)

    highs = swing_highs[-swings:]
    lows = swing_lows[-swings:]
    if len(highs) < 2 or len(lows) < 2:
        return "neutral"

    if highs[-1] > highs[-2] and lows[-1] > lows[-2]:
        return "bullish"
    if highs[-1] < highs[-2] and lows[-1] < lows[-2]:
        return "bearish"
    return "neutral"
