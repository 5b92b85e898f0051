"""
Technical Indicators - RSI, EMA, MACD, Bollinger Bands, ATR, ADX.

Implements:
1. EMA / SMA series - trend
2. RSI (Wilder) - momentum oscillator, plus EMA-of-RSI
3. MACD with signal line, histogram and histogram crossover
4. Bollinger Bands and band width (squeeze detection)
5. ATR (Wilder) and its recent average - volatility
6. ADX - trend strength
7. Supertrend direction

Scalar helpers return None when there is not enough data.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.models import Candle

logger = logging.getLogger(__name__)


@dataclass
class MACDResult:
    """Latest MACD values."""
    macd: float
    signal: float
    histogram: float


@dataclass
class BollingerBands:
    """Latest Bollinger band values."""
    upper: float
    middle: float
    lower: float


@dataclass
class EMAStack:
    """Fast/mid/slow EMA values (9/21/50 by default)."""
    fast: float
    mid: float
    slow: float

    @property
    def trend(self) -> Optional[str]:
        if self.fast > self.mid > self.slow:
            return "bullish"
        if self.fast < self.mid < self.slow:
            return "bearish"
        return None


# ============================================================================
# Moving Averages
# ============================================================================

def ema_series(values: Sequence[float], period: int) -> np.ndarray:
    """
    EMA series seeded with the SMA of the first ``period`` values.

    Formula:
        EMA = (value - EMA_prev) × multiplier + EMA_prev
        where multiplier = 2 / (period + 1)

    Args:
        values: Input series (most recent last)
        period: EMA period

    Returns:
        Array of length ``len(values) - period + 1`` (empty if insufficient data)
    """
    data = np.asarray(values, dtype=float)
    if period <= 0 or len(data) < period:
        return np.array([], dtype=float)

    multiplier = 2 / (period + 1)
    out = np.empty(len(data) - period + 1)
    out[0] = np.mean(data[:period])
    for i, value in enumerate(data[period:], start=1):
        out[i] = (value - out[i - 1]) * multiplier + out[i - 1]
    return out


def calculate_ema(values: Sequence[float], period: int) -> Optional[float]:
    """Current EMA value or None if insufficient data."""
    series = ema_series(values, period)
    if len(series) == 0:
        logger.debug(f"Insufficient data for EMA({period}): got {len(values)}")
        return None
    return float(series[-1])


def sma_series(values: Sequence[float], period: int) -> np.ndarray:
    """Simple moving average series (length ``len(values) - period + 1``)."""
    data = np.asarray(values, dtype=float)
    if period <= 0 or len(data) < period:
        return np.array([], dtype=float)
    cumsum = np.cumsum(np.insert(data, 0, 0.0))
    return (cumsum[period:] - cumsum[:-period]) / period


def ema_stack(closes: Sequence[float], fast: int = 9, mid: int = 21, slow: int = 50) -> Optional[EMAStack]:
    """Fast/mid/slow EMAs, available once ``slow`` closes exist."""
    if len(closes) < slow:
        return None
    return EMAStack(
        fast=float(ema_series(closes, fast)[-1]),
        mid=float(ema_series(closes, mid)[-1]),
        slow=float(ema_series(closes, slow)[-1]),
    )


# ============================================================================
# RSI
# ============================================================================

def rsi_series(values: Sequence[float], period: int = 14) -> np.ndarray:
    """
    RSI series using Wilder's smoothing.

    First average gain/loss is the mean over ``period`` changes; each later
    average is ((prev × (period - 1)) + current) / period.

    Returns:
        Array of length ``len(values) - period`` (empty if insufficient data)
    """
    data = np.asarray(values, dtype=float)
    if period <= 0 or len(data) < period + 1:
        return np.array([], dtype=float)

    deltas = np.diff(data)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = np.mean(gains[:period])
    avg_loss = np.mean(losses[:period])

    out = np.empty(len(deltas) - period + 1)
    out[0] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, len(deltas)):
        avg_gain = ((avg_gain * (period - 1)) + gains[i]) / period
        avg_loss = ((avg_loss * (period - 1)) + losses[i]) / period
        out[i - period + 1] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def calculate_rsi(prices: Sequence[float], period: int = 14) -> Optional[float]:
    """
    Calculate Relative Strength Index (RSI).

    Args:
        prices: List of closing prices (most recent last)
        period: RSI period (default: 14)

    Returns:
        RSI value (0-100) or None if insufficient data
    """
    series = rsi_series(prices, period)
    if len(series) == 0:
        logger.debug(f"Insufficient data for RSI calculation: need {period + 1}, got {len(prices)}")
        return None
    return float(series[-1])


def calculate_emarsi(closes: Sequence[float], rsi_period: int = 5, ema_period: int = 5) -> Optional[float]:
    """EMA of RSI. Needs ``rsi_period + ema_period + 5`` closes."""
    if len(closes) < rsi_period + ema_period + 5:
        return None
    smoothed = ema_series(rsi_series(closes, rsi_period), ema_period)
    if len(smoothed) == 0:
        return None
    return float(smoothed[-1])


# ============================================================================
# MACD
# ============================================================================

def macd_series(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    MACD line, signal line and histogram, all aligned on the last value.

    Returns:
        (macd, signal, histogram) arrays of equal length (empty if insufficient data)
    """
    empty = np.array([], dtype=float)
    if len(closes) < slow + signal - 1:
        return empty, empty, empty

    fast_ema = ema_series(closes, fast)
    slow_ema = ema_series(closes, slow)
    macd_line = fast_ema[-len(slow_ema):] - slow_ema
    signal_line = ema_series(macd_line, signal)
    if len(signal_line) == 0:
        return empty, empty, empty

    macd_line = macd_line[-len(signal_line):]
    return macd_line, signal_line, macd_line - signal_line


def calculate_macd(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> Optional[MACDResult]:
    """Latest MACD values. Needs ``slow + signal - 1`` closes (34 by default)."""
    macd_line, signal_line, histogram = macd_series(closes, fast, slow, signal)
    if len(histogram) == 0:
        return None
    return MACDResult(
        macd=float(macd_line[-1]),
        signal=float(signal_line[-1]),
        histogram=float(histogram[-1]),
    )


def macd_crossover(
    closes: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9
) -> Optional[str]:
    """
    Histogram zero-line crossover on the last bar.

    Returns:
        'bullish' when the histogram crosses above zero, 'bearish' when it
        crosses below, otherwise None. Needs one more close than MACD.
    """
    if len(closes) < slow + signal:
        return None
    _, _, histogram = macd_series(closes, fast, slow, signal)
    if len(histogram) < 2:
        return None
    prev_h, curr_h = histogram[-2], histogram[-1]
    if prev_h < 0 < curr_h:
        return "bullish"
    if prev_h > 0 > curr_h:
        return "bearish"
    return None


# ============================================================================
# Bollinger Bands
# ============================================================================

def bollinger_series(
    values: Sequence[float],
    period: int = 20,
    num_std: float = 2.0
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Bollinger band series (population standard deviation).

    Returns:
        (upper, middle, lower) arrays of length ``len(values) - period + 1``
    """
    data = np.asarray(values, dtype=float)
    if period <= 0 or len(data) < period:
        empty = np.array([], dtype=float)
        return empty, empty, empty

    windows = np.lib.stride_tricks.sliding_window_view(data, period)
    middle = windows.mean(axis=1)
    std = windows.std(axis=1)
    return middle + num_std * std, middle, middle - num_std * std


def calculate_bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    num_std: float = 2.0
) -> Optional[BollingerBands]:
    """Latest Bollinger bands or None if insufficient data."""
    upper, middle, lower = bollinger_series(values, period, num_std)
    if len(middle) == 0:
        return None
    return BollingerBands(upper=float(upper[-1]), middle=float(middle[-1]), lower=float(lower[-1]))


def bollinger_width(
    closes: Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
    lookback: int = 20
) -> Optional[Tuple[float, float]]:
    """
    Current relative band width and its average over ``lookback`` bands.

    Width = (upper - lower) / middle. Needs ``period + lookback`` closes.

    Returns:
        (width, avg_width) or None
    """
    if len(closes) < period + lookback:
        return None
    upper, middle, lower = bollinger_series(closes, period, num_std)
    if middle[-1] <= 0:
        return None

    widths = np.where(middle > 0, (upper - lower) / np.where(middle > 0, middle, 1.0), 0.0)
    return float(widths[-1]), float(np.mean(widths[-lookback:]))


# ============================================================================
# ATR / ADX / Supertrend
# ============================================================================

def true_range(candles: Sequence[Candle]) -> np.ndarray:
    """True range for every bar after the first."""
    if len(candles) < 2:
        return np.array([], dtype=float)
    highs = np.array([c.high for c in candles[1:]], dtype=float)
    lows = np.array([c.low for c in candles[1:]], dtype=float)
    prev_closes = np.array([c.close for c in candles[:-1]], dtype=float)
    return np.maximum.reduce([
        highs - lows,
        np.abs(highs - prev_closes),
        np.abs(lows - prev_closes),
    ])


def _wilder_smooth(values: np.ndarray, period: int) -> np.ndarray:
    """Wilder running average seeded with the mean of the first ``period`` values."""
    if len(values) < period:
        return np.array([], dtype=float)
    out = np.empty(len(values) - period + 1)
    out[0] = np.mean(values[:period])
    for i in range(period, len(values)):
        out[i - period + 1] = (out[i - period] * (period - 1) + values[i]) / period
    return out


def atr_series(candles: Sequence[Candle], period: int = 14) -> np.ndarray:
    """ATR series (Wilder). Needs ``period + 1`` candles."""
    if len(candles) < period + 1:
        return np.array([], dtype=float)
    return _wilder_smooth(true_range(candles), period)


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """
    Average True Range.

    TR = max(High - Low, |High - Close_prev|, |Low - Close_prev|)

    Returns:
        Latest ATR or None if insufficient data
    """
    series = atr_series(candles, period)
    if len(series) == 0:
        return None
    return float(series[-1])


def calculate_atr_average(candles: Sequence[Candle], period: int = 14, lookback: int = 5) -> Optional[float]:
    """Mean of the last ``lookback`` ATR values. Needs ``period + lookback`` candles."""
    if len(candles) < period + lookback:
        return None
    series = atr_series(candles, period)
    if len(series) == 0:
        return None
    return float(np.mean(series[-lookback:]))


def calculate_adx(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """
    Average Directional Index (trend strength, 0-100).

    Needs ``period + 15`` candles.
    """
    if len(candles) < period + 15:
        return None

    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)

    up_moves = highs[1:] - highs[:-1]
    down_moves = lows[:-1] - lows[1:]
    plus_dm = np.where((up_moves > down_moves) & (up_moves > 0), up_moves, 0.0)
    minus_dm = np.where((down_moves > up_moves) & (down_moves > 0), down_moves, 0.0)

    tr_smooth = _wilder_smooth(true_range(candles), period)
    plus_smooth = _wilder_smooth(plus_dm, period)
    minus_smooth = _wilder_smooth(minus_dm, period)

    safe_tr = np.where(tr_smooth > 0, tr_smooth, 1.0)
    plus_di = np.where(tr_smooth > 0, 100 * plus_smooth / safe_tr, 0.0)
    minus_di = np.where(tr_smooth > 0, 100 * minus_smooth / safe_tr, 0.0)

    di_sum = plus_di + minus_di
    dx = np.where(di_sum > 0, 100 * np.abs(plus_di - minus_di) / np.where(di_sum > 0, di_sum, 1.0), 0.0)

    adx = _wilder_smooth(dx, period)
    if len(adx) == 0:
        return None
    return float(adx[-1])


def supertrend_direction(candles: Sequence[Candle], multiplier: float = 3.0, period: int = 10) -> Optional[str]:
    """
    Simplified Supertrend read on the last bar.

    Close above hl2 + multiplier×ATR is 'up', below hl2 - multiplier×ATR is
    'down'; inside the band the previous bar decides ('up' when its close is
    within one ATR of its high).
    """
    if len(candles) < period + 5:
        return None
    atr = calculate_atr(candles, period)
    if not atr or atr <= 0:
        return None

    last, prev = candles[-1], candles[-2]
    hl2 = (last.high + last.low) / 2
    if last.close > hl2 + multiplier * atr:
        return "up"
    if last.close < hl2 - multiplier * atr:
        return "down"
    return "up" if prev.close > prev.high - atr else "down"


def closes_of(candles: Sequence[Candle]) -> List[float]:
    """Close prices of a candle sequence."""
    return [c.close for c in candles]
