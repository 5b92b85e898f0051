"""
Mathematical Utilities

Guarded arithmetic used by every scorer:
- Division that tolerates zero/NaN denominators
- Clamping into a closed interval
- Means over possibly empty windows
- Rounding to a price's own precision
"""

import math
from typing import Iterable, List, Sequence

import numpy as np


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division that handles zero denominators."""
    if denominator == 0 or math.isnan(denominator):
        return default
    return numerator / denominator


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return max(min_val, min(value, max_val))


def mean_or_default(values: Iterable[float], default: float = 0.0) -> float:
    """Arithmetic mean, or ``default`` for an empty window."""
    data = list(values)
    if not data:
        return default
    return float(np.mean(data))


def imbalance(first: float, second: float) -> float:
    """
    Normalized imbalance (first - second) / (first + second).

    Returns 0.0 when both sides are empty.
    """
    return safe_divide(first - second, first + second)


def round_price(price: float, decimals: int = 2) -> float:
    """
    Round a price for display in a signal.

    Prices below 1 keep four significant digits so sub-unit symbols do not
    collapse to zero.
    """
    if price == 0 or abs(price) >= 1:
        return round(price, decimals)
    magnitude = int(math.floor(math.log10(abs(price))))
    return round(price, max(decimals, 3 - magnitude))


def price_decimals_for(step: float, minimum: int = 2) -> int:
    """
    Decimals needed so one rounding unit stays below a tenth of ``step``.

    Stop and targets rounded to this precision keep their strict order
    around the entry.
    """
    if step <= 0:
        return minimum
    return max(minimum, int(math.ceil(-math.log10(step / 10))))


def last_n(values: Sequence[float], n: int) -> List[float]:
    """Last ``n`` elements as a list (all of them if fewer)."""
    if n <= 0:
        return []
    return list(values[-n:])


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))
