"""
Shared bull/bear scoring rule for the domain scorers.
"""

from typing import Tuple

from ..core.models import Direction


def resolve_direction(
    bullish: float,
    bearish: float,
    ratio: float = 1.3,
    min_confidence_pct: float = 25.0
) -> Tuple[Direction, float]:
    """
    Resolve a direction from summed bull/bear sub-scores.

    The stronger side must exceed the weaker by ``ratio`` AND the confidence
    |bull - bear| / (bull + bear) × 100 must exceed ``min_confidence_pct``.

    Args:
        bullish: Summed bullish score
        bearish: Summed bearish score
        ratio: Required dominance factor
        min_confidence_pct: Required confidence (%)

    Returns:
        (direction, confidence_pct)
    """
    total = bullish + bearish
    confidence = abs(bullish - bearish) / total * 100 if total > 0 else 0.0

    if bullish > bearish * ratio and confidence > min_confidence_pct:
        return Direction.LONG, confidence
    if bearish > bullish * ratio and confidence > min_confidence_pct:
        return Direction.SHORT, confidence
    return Direction.NEUTRAL, confidence
