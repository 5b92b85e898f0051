"""
Position Sizing

Risk-based sizing from deposit and stop distance, plus a size reduction
when volatility runs above its recent average.
"""

from dataclasses import dataclass
from typing import Optional

from ..config.settings import SizingConfig


@dataclass(frozen=True)
class PositionSize:
    """Sizing result in quote currency."""
    size_usd: float
    risk_usd: float
    stop_pct: float


def calc_position_size_from_risk(
    deposit: float,
    entry_price: float,
    stop_price: float,
    risk_pct: float = 0.02,
    max_risk_pct: float = 0.03
) -> PositionSize:
    """
    Position size risking a fraction of the deposit.

    Args:
        deposit: Account balance
        entry_price: Planned entry
        stop_price: Stop loss
        risk_pct: Fraction of deposit to risk (capped by max_risk_pct)
        max_risk_pct: Hard cap on risked fraction

    Returns:
        PositionSize; all zeros when the stop distance is zero
    """
    if entry_price <= 0:
        return PositionSize(0.0, 0.0, 0.0)
    stop_pct = abs(entry_price - stop_price) / entry_price
    if stop_pct <= 0:
        return PositionSize(0.0, 0.0, 0.0)

    risk_usd = deposit * min(risk_pct, max_risk_pct)
    return PositionSize(size_usd=risk_usd / stop_pct, risk_usd=risk_usd, stop_pct=stop_pct)


def volatility_size_multiplier(
    atr: Optional[float],
    avg_atr: Optional[float],
    config: SizingConfig = None
) -> float:
    """0.7 when ATR exceeds 1.5x its average, otherwise 1.0 (also without data)."""
    config = config or SizingConfig()
    if not atr or not avg_atr or avg_atr <= 0:
        return 1.0
    if atr / avg_atr > config.high_volatility_ratio:
        return config.high_volatility_multiplier
    return 1.0
