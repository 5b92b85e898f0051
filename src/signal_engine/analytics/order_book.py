"""
Order Book Scorer - depth-of-market imbalance, zones, pressure and walls.

Scoring (bull/bear sub-scores, each mirrored):
1. DOM score over the ±1% band around mid: >0.3 +3, >0.2 +2, >0.1 +1
2. Whole-book imbalance: >0.3 +2, >0.2 +1
3. Nested zones (0.05-1%): zone imbalance >0.3 +1 each
4. Distance-weighted pressure (qty × e^(-distance × 100)): >60% share +2
5. Walls (qty > 3× band average): side with more walls +2
6. Spread compression: tight spread with |DOM| > 0.15 +1
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from ..config.settings import OrderBookConfig
from ..core.models import Direction, OrderBookSnapshot
from ..utils.math_utils import imbalance, safe_divide
from .scoring import resolve_direction

logger = logging.getLogger(__name__)

Levels = Sequence[Tuple[float, float]]


@dataclass(frozen=True)
class OrderBookScore:
    """Order book scoring result."""
    direction: Direction
    score: float
    spread_pct: float
    dom_score: float
    imbalance: float
    bid_walls: int
    ask_walls: int

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "spread_pct": self.spread_pct,
            "dom_score": self.dom_score,
            "imbalance": self.imbalance,
            "bid_walls": self.bid_walls,
            "ask_walls": self.ask_walls,
        }

    def __repr__(self) -> str:
        return (
            f"OrderBookScore({self.direction.value}, score={self.score}, "
            f"dom={self.dom_score:+.2f}, spread={self.spread_pct:.3f}%)"
        )


NEUTRAL_ORDER_BOOK = OrderBookScore(
    direction=Direction.NEUTRAL,
    score=0,
    spread_pct=float("inf"),
    dom_score=0.0,
    imbalance=0.0,
    bid_walls=0,
    ask_walls=0,
)


def volume_in_band(levels: Levels, center: float, band_pct: float) -> float:
    """Sum of quantity at levels within ``band_pct`` percent of ``center``."""
    threshold = center * (band_pct / 100)
    return sum(qty for price, qty in levels if abs(price - center) <= threshold)


def count_walls(levels: Levels, mid_price: float, band_pct: float, multiplier: float = 3.0, min_levels: int = 3) -> int:
    """
    Count levels within the band whose quantity exceeds ``multiplier`` × the band average.

    Returns 0 when fewer than ``min_levels`` levels sit inside the band.
    """
    in_band = [qty for price, qty in levels if abs(price - mid_price) / mid_price <= band_pct / 100]
    if len(in_band) < min_levels:
        return 0
    threshold = (sum(in_band) / len(in_band)) * multiplier
    return sum(1 for qty in in_band if qty > threshold)


class OrderBookScorer:
    """
    Scores an order book snapshot into a direction and score.

    Pure and stateless: safe to call concurrently for many symbols.
    """

    def __init__(self, config: OrderBookConfig = None, name: str = "OrderBookScorer"):
        self.config = config or OrderBookConfig()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def score(self, book: OrderBookSnapshot) -> OrderBookScore:
        """
        Score an order book.

        Args:
            book: Bid/ask ladders, best level first

        Returns:
            OrderBookScore (NEUTRAL with score 0 and infinite spread for an empty side)
        """
        if book.is_empty:
            return NEUTRAL_ORDER_BOOK

        cfg = self.config
        bids, asks = book.bids, book.asks
        mid_price = book.mid_price
        if not mid_price or mid_price <= 0:
            return NEUTRAL_ORDER_BOOK

        spread_pct = (asks[0][0] - bids[0][0]) / mid_price * 100
        bullish = 0
        bearish = 0

        # 1. DOM score within the band around mid
        dom_score = imbalance(
            volume_in_band(bids, mid_price, cfg.dom_band_pct),
            volume_in_band(asks, mid_price, cfg.dom_band_pct),
        )
        bullish += self._tiered(dom_score, ((cfg.dom_strong, 3), (cfg.dom_medium, 2), (cfg.dom_weak, 1)))
        bearish += self._tiered(-dom_score, ((cfg.dom_strong, 3), (cfg.dom_medium, 2), (cfg.dom_weak, 1)))

        # 2. Whole-book imbalance
        total_bid = sum(qty for _, qty in bids)
        total_ask = sum(qty for _, qty in asks)
        total_volume = total_bid + total_ask
        book_imbalance = imbalance(total_bid, total_ask)
        if total_volume > 0:
            bullish += self._tiered(book_imbalance, ((cfg.imbalance_strong, 2), (cfg.imbalance_medium, 1)))
            bearish += self._tiered(-book_imbalance, ((cfg.imbalance_strong, 2), (cfg.imbalance_medium, 1)))

        # 3. Nested zones
        for zone in cfg.zones_pct:
            bid_depth = volume_in_band(bids, mid_price, zone)
            ask_depth = volume_in_band(asks, mid_price, zone)
            if bid_depth + ask_depth > 0:
                zone_imbalance = imbalance(bid_depth, ask_depth)
                if zone_imbalance > cfg.zone_threshold:
                    bullish += 1
                if zone_imbalance < -cfg.zone_threshold:
                    bearish += 1

        # 4. Distance-weighted pressure
        bid_pressure = self._pressure(bids, mid_price)
        ask_pressure = self._pressure(asks, mid_price)
        pressure_total = bid_pressure + ask_pressure
        if pressure_total > 0:
            if bid_pressure / pressure_total > cfg.pressure_dominance:
                bullish += 2
            if ask_pressure / pressure_total > cfg.pressure_dominance:
                bearish += 2

        # 5. Walls
        bid_walls = count_walls(bids, mid_price, cfg.wall_band_pct, cfg.wall_multiplier, cfg.wall_min_levels)
        ask_walls = count_walls(asks, mid_price, cfg.wall_band_pct, cfg.wall_multiplier, cfg.wall_min_levels)
        if bid_walls > ask_walls and bid_walls > 0:
            bullish += 2
        if ask_walls > bid_walls and ask_walls > 0:
            bearish += 2

        # 6. Spread compression
        if spread_pct < cfg.compression_spread_pct and total_volume > 0:
            if dom_score > cfg.compression_dom:
                bullish += 1
            if dom_score < -cfg.compression_dom:
                bearish += 1

        direction, _ = resolve_direction(bullish, bearish, cfg.direction_ratio, cfg.min_confidence_pct)

        result = OrderBookScore(
            direction=direction,
            score=max(bullish, bearish),
            spread_pct=spread_pct,
            dom_score=dom_score,
            imbalance=book_imbalance,
            bid_walls=bid_walls,
            ask_walls=ask_walls,
        )
        self.logger.debug(f"{result} (bull={bullish}, bear={bearish})")
        return result

    def breakout_pressure(self, book: OrderBookSnapshot, level: float, direction: str) -> Tuple[float, float]:
        """
        Book pressure supporting a breakout through ``level``.

        Args:
            book: Order book snapshot
            level: Level price
            direction: 'up' or 'down'

        Returns:
            (pressure, confidence). Pressure is bid/ask volume near the level
            for 'up' (ask/bid for 'down'), 2.0 when the opposing side is
            empty; (1.0, 0.5) when there is no volume near the level.
        """
        if book.is_empty:
            return 1.0, 0.5

        threshold = level * self.config.breakout_band_pct
        bid_volume = sum(qty for price, qty in book.bids if abs(price - level) <= threshold)
        ask_volume = sum(qty for price, qty in book.asks if abs(price - level) <= threshold)
        if bid_volume + ask_volume <= 0:
            return 1.0, 0.5

        if direction == "up":
            pressure = safe_divide(bid_volume, ask_volume, default=2.0)
        else:
            pressure = safe_divide(ask_volume, bid_volume, default=2.0)

        if pressure >= 2:
            confidence = 0.8
        elif pressure >= 1.2:
            confidence = 0.6
        else:
            confidence = 0.5
        return pressure, confidence

    def _pressure(self, levels: Levels, mid_price: float) -> float:
        cfg = self.config
        return sum(
            qty * math.exp(-abs((price - mid_price) / mid_price) * cfg.pressure_decay)
            for price, qty in levels[:cfg.pressure_levels]
        )

    @staticmethod
    def _tiered(value: float, tiers) -> int:
        for threshold, points in tiers:
            if value > threshold:
                return points
        return 0
