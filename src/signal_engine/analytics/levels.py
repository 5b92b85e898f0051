"""
Level Detector - support/resistance detection from a candle window.

Levels come from two sources:
1. Swing highs/lows (local extrema within a sensitivity-dependent window)
2. Volume profile peaks (highest-volume price buckets)

Levels closer than an adaptive tolerance band are merged; the result is
sorted by strength (0-10).
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config.settings import LevelConfig, Sensitivity
from ..core.models import Candle, LevelType, PriceLevel
from ..utils.math_utils import clamp, round_half_up, safe_divide

logger = logging.getLogger(__name__)


class LevelDetector:
    """
    Detect support and resistance levels.

    Strength of a swing level = min(6, touches * 2) + min(4, volume / 10000),
    capped at 10. Volume-profile levels count as a single touch.
    """

    def __init__(self, config: LevelConfig = None, name: str = "LevelDetector"):
        self.config = config or LevelConfig()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    # ========================================================================
    # Public API
    # ========================================================================

    def detect_levels(
        self,
        candles: Sequence[Candle],
        sensitivity: Union[Sensitivity, str] = Sensitivity.MEDIUM
    ) -> List[PriceLevel]:
        """
        Detect levels on a candle window.

        Args:
            candles: Candles, oldest first
            sensitivity: 'high' (lookback 3), 'medium' (5) or 'low' (7)

        Returns:
            Merged levels sorted by strength, strongest first. Empty when
            fewer than ``min_candles`` candles are given.
        """
        if len(candles) < self.config.min_candles:
            return []

        sensitivity = Sensitivity(sensitivity)
        tolerance = self.tolerance_pct(candles)

        swing = self._swing_levels(candles, sensitivity, tolerance)
        profile = self._volume_levels(candles)
        merged = self.merge_levels(swing + profile, tolerance)
        merged.sort(key=lambda level: level.strength, reverse=True)

        self.logger.debug(
            f"Detected {len(merged)} levels ({len(swing)} swing, {len(profile)} profile, "
            f"tolerance={tolerance:.4f})"
        )
        return merged

    def find_nearest_level(
        self,
        price: float,
        levels: Sequence[PriceLevel],
        max_distance: Optional[float] = None
    ) -> Optional[PriceLevel]:
        """
        Closest level within ``max_distance`` (fraction of price).

        Returns:
            The nearest level, or None when none lies within the distance
        """
        if max_distance is None:
            max_distance = self.config.nearest_max_distance
        if price <= 0:
            return None

        nearest = None
        best = float("inf")
        for level in levels:
            distance = abs((price - level.price) / price)
            if distance < best and distance <= max_distance:
                best = distance
                nearest = level
        return nearest

    def is_approaching_level(
        self,
        price: float,
        level: PriceLevel,
        threshold: Optional[float] = None
    ) -> bool:
        """True when price is within ``threshold`` (fraction) of the level."""
        if threshold is None:
            threshold = self.config.approach_threshold
        if price <= 0:
            return False
        return abs((price - level.price) / price) <= threshold

    def is_level_broken(
        self,
        current_price: float,
        previous_price: float,
        level: PriceLevel,
        confirmation_pct: Optional[float] = None
    ) -> bool:
        """
        Check whether price crossed the level with confirmation.

        Resistance breaks upward (prev < level < current, current beyond
        level * (1 + confirmation)); support breaks downward.
        """
        if confirmation_pct is None:
            confirmation_pct = self.config.broken_confirmation

        if level.type == LevelType.RESISTANCE:
            crossed = previous_price < level.price < current_price
            return crossed and current_price > level.price * (1 + confirmation_pct)

        crossed = previous_price > level.price > current_price
        return crossed and current_price < level.price * (1 - confirmation_pct)

    def tolerance_pct(self, candles: Sequence[Candle]) -> float:
        """Merge/touch tolerance: 30% of the average range as a fraction of price."""
        cfg = self.config
        if not candles:
            return (cfg.tolerance_min + cfg.tolerance_max) / 2
        avg_price = float(np.mean([c.close for c in candles]))
        avg_range = float(np.mean([c.range for c in candles]))
        range_pct = safe_divide(avg_range, avg_price)
        return clamp(range_pct * cfg.tolerance_factor, cfg.tolerance_min, cfg.tolerance_max)

    def strength(self, touches: int, volume: float) -> float:
        cfg = self.config
        touch_score = min(cfg.touch_cap, touches * cfg.touch_weight)
        volume_score = min(cfg.volume_cap, round_half_up(volume / cfg.volume_unit))
        return float(min(cfg.max_strength, touch_score + volume_score))

    def merge_levels(self, levels: Sequence[PriceLevel], tolerance: float) -> List[PriceLevel]:
        """
        Merge levels whose prices lie within ``tolerance`` of each other.

        Merged price is the strength-weighted average (plain average when both
        strengths are zero); the stronger level's type wins; strength grows by
        half of the absorbed level's strength.
        """
        if not levels:
            return []

        ordered = sorted(levels, key=lambda level: level.price)
        merged: List[PriceLevel] = []
        current = ordered[0]

        for candidate in ordered[1:]:
            distance = abs(safe_divide(candidate.price - current.price, current.price, default=float("inf")))
            if distance > tolerance:
                merged.append(current)
                current = candidate
                continue

            total = current.strength + candidate.strength
            if total > 0:
                price = (current.price * current.strength + candidate.price * candidate.strength) / total
            else:
                price = (current.price + candidate.price) / 2

            current = PriceLevel(
                price=price,
                type=current.type if current.strength >= candidate.strength else candidate.type,
                strength=min(self.config.max_strength, current.strength + candidate.strength / 2),
                touches=current.touches + candidate.touches,
                volume=current.volume + candidate.volume,
                last_touch=max(current.last_touch, candidate.last_touch),
                created_at=min(current.created_at, candidate.created_at),
            )

        merged.append(current)
        return merged

    # ========================================================================
    # Swing Levels
    # ========================================================================

    def _swing_levels(
        self,
        candles: Sequence[Candle],
        sensitivity: Sensitivity,
        tolerance: float
    ) -> List[PriceLevel]:
        lookback = self.config.lookback.get(sensitivity.value, 5)
        levels: List[PriceLevel] = []

        for i in range(lookback, len(candles) - lookback):
            candle = candles[i]
            window = [candles[j] for j in range(i - lookback, i + lookback + 1) if j != i]

            if all(other.high < candle.high for other in window):
                levels.append(self._swing_level(candles, i, candle.high, LevelType.RESISTANCE, tolerance))

            if all(other.low > candle.low for other in window):
                levels.append(self._swing_level(candles, i, candle.low, LevelType.SUPPORT, tolerance))

        return levels

    def _swing_level(
        self,
        candles: Sequence[Candle],
        index: int,
        price: float,
        level_type: LevelType,
        tolerance: float
    ) -> PriceLevel:
        # Touches: the swing bar itself plus later bars whose extreme returns to the level
        touches = 1
        for later in candles[index + 1:]:
            touch_price = later.high if level_type == LevelType.RESISTANCE else later.low
            if abs(safe_divide(touch_price - price, price, default=float("inf"))) <= tolerance:
                touches += 1

        volume = sum(
            c.volume for c in candles[index:]
            if abs(safe_divide(c.close - price, price, default=float("inf"))) <= tolerance
        )

        timestamp = candles[index].timestamp
        return PriceLevel(
            price=price,
            type=level_type,
            strength=self.strength(touches, volume),
            touches=touches,
            volume=volume,
            last_touch=timestamp,
            created_at=timestamp,
        )

    # ========================================================================
    # Volume Profile
    # ========================================================================

    def _volume_levels(self, candles: Sequence[Candle]) -> List[PriceLevel]:
        cfg = self.config
        if len(candles) < cfg.profile_min_candles:
            return []

        df = pd.DataFrame(
            [(c.high, c.low, c.close, c.volume) for c in candles],
            columns=["high", "low", "close", "volume"],
        )
        step = max(cfg.profile_min_step, float((df["high"] - df["low"]).mean()) * cfg.profile_step_factor)
        typical = (df["high"] + df["low"] + df["close"]) / 3
        df["bucket"] = np.floor(typical / step + 0.5) * step

        profile = df.groupby("bucket", sort=True)["volume"].sum()
        top = profile.nlargest(cfg.profile_top, keep="first")

        current_price = candles[-1].close
        last_touch = candles[-1].timestamp
        created_at = candles[0].timestamp

        levels = []
        for bucket, volume in top.items():
            price = float(bucket)
            levels.append(PriceLevel(
                price=price,
                type=LevelType.SUPPORT if price < current_price else LevelType.RESISTANCE,
                strength=float(min(cfg.max_strength, round_half_up(volume / cfg.profile_volume_unit * 2))),
                touches=1,
                volume=float(volume),
                last_touch=last_touch,
                created_at=created_at,
            ))
        return levels
