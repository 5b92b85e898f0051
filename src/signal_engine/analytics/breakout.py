"""
Breakout Confirmer - score a price level break.

A break needs a directional cross of the level (previous close on one side,
current price beyond it by the confirmation margin). Confidence then starts
from a base of 0.5 and is adjusted by:
- volume ratio vs the 20-bar average
- order book pressure in the breakout direction
- tape delta alignment
- level strength
- false breakout risk (low volume, weak body, no close beyond the level)
- candle closed beyond the level
- unfavorable funding hint

Breakouts below the confidence floor are not emitted.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config.settings import BreakoutConfig
from ..core.models import (
    BreakoutSignal,
    Candle,
    Direction,
    EntryZone,
    LevelType,
    OrderBookSnapshot,
    PriceLevel,
    Trade,
)
from ..utils.math_utils import clamp, imbalance, mean_or_default, safe_divide
from .order_book import OrderBookScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundingHint:
    """Funding-rate bias against one side of the market."""
    avoid_long: bool = False
    avoid_short: bool = False


def tape_delta(trades: Sequence[Trade]) -> float:
    """Notional-weighted buy/sell imbalance in [-1, 1] (0 for an empty tape)."""
    buy = sum(t.notional for t in trades if t.is_buy)
    sell = sum(t.notional for t in trades if not t.is_buy)
    return imbalance(buy, sell)


class BreakoutConfirmer:
    """Confirm level breakouts against volume, book, tape and candle evidence."""

    def __init__(
        self,
        config: BreakoutConfig = None,
        order_book_scorer: OrderBookScorer = None,
        name: str = "BreakoutConfirmer"
    ):
        self.config = config or BreakoutConfig()
        self.order_book_scorer = order_book_scorer or OrderBookScorer()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def break_direction(self, current_price: float, previous_price: float, level: PriceLevel) -> Optional[Direction]:
        """
        Direction of a confirmed cross, or None.

        Resistance only breaks upward (LONG), support only downward (SHORT).
        """
        margin = self.config.confirmation_pct
        if level.type == LevelType.RESISTANCE:
            crossed = previous_price < level.price < current_price
            if crossed and current_price > level.price * (1 + margin):
                return Direction.LONG
            return None

        crossed = previous_price > level.price > current_price
        if crossed and current_price < level.price * (1 - margin):
            return Direction.SHORT
        return None

    def false_breakout_risk(self, volume_ratio: float, last: Candle, level: PriceLevel, direction: Direction) -> float:
        """Risk in [0, 1] that the break fails."""
        cfg = self.config
        risk = 0.0

        if volume_ratio < cfg.false_volume_min:
            risk += cfg.low_volume_risk
        elif volume_ratio < cfg.volume_confirm_ratio:
            risk += cfg.below_confirm_risk

        body_ratio = safe_divide(last.body, last.range)
        if body_ratio < cfg.weak_body_ratio:
            risk += cfg.weak_body_risk

        if direction == Direction.LONG:
            closed_beyond = last.close > level.price * (1 + cfg.close_beyond_pct)
        else:
            closed_beyond = last.close < level.price * (1 - cfg.close_beyond_pct)
        if not closed_beyond:
            risk += cfg.no_close_beyond_risk

        return min(1.0, risk)

    def entry_zone(self, level_price: float, direction: Direction) -> EntryZone:
        """Retest entry band just beyond the broken level."""
        cfg = self.config
        if direction == Direction.LONG:
            return EntryZone(
                optimal=level_price * (1 + cfg.entry_optimal_pct),
                min=level_price * (1 + cfg.entry_near_pct),
                max=level_price * (1 + cfg.entry_far_pct),
            )
        return EntryZone(
            optimal=level_price * (1 - cfg.entry_optimal_pct),
            min=level_price * (1 - cfg.entry_far_pct),
            max=level_price * (1 - cfg.entry_near_pct),
        )

    def invalidation_price(self, level_price: float, direction: Direction) -> float:
        """Price back through the level at which the breakout is void."""
        if direction == Direction.LONG:
            return level_price * (1 - self.config.invalidation_pct)
        return level_price * (1 + self.config.invalidation_pct)

    def confirm(
        self,
        current_price: float,
        level: PriceLevel,
        book: OrderBookSnapshot,
        trades: Sequence[Trade],
        candles: Sequence[Candle],
        funding_hint: Optional[FundingHint] = None
    ) -> Optional[BreakoutSignal]:
        """
        Confirm a breakout of ``level``.

        Args:
            current_price: Latest price
            level: Level under test
            book: Order book snapshot
            trades: Recent trades
            candles: Candles, oldest first (at least ``min_candles``)
            funding_hint: Optional funding bias; an unfavorable side costs 0.12

        Returns:
            BreakoutSignal, or None when there is no confirmed cross or the
            confidence ends below the floor
        """
        cfg = self.config
        if len(candles) < cfg.min_candles:
            return None

        last = candles[-1]
        previous = candles[-2]
        direction = self.break_direction(current_price, previous.close, level)
        if direction is None:
            return None

        avg_volume = mean_or_default(c.volume for c in candles[-cfg.volume_lookback:])
        volume_ratio = safe_divide(last.volume, avg_volume)
        volume_confirmation = volume_ratio >= cfg.volume_confirm_ratio
        risk = self.false_breakout_risk(volume_ratio, last, level, direction)

        pressure, pressure_confidence = self.order_book_scorer.breakout_pressure(
            book, level.price, "up" if direction == Direction.LONG else "down"
        )
        delta = tape_delta(trades)

        reasons: List[str] = []
        confidence = cfg.base_confidence

        # Volume
        if volume_confirmation:
            confidence += cfg.volume_bonus
            reasons.append(f"Volume {volume_ratio:.1f}x average")
        elif volume_ratio > 1.0:
            confidence += cfg.above_average_bonus
        else:
            confidence -= cfg.low_volume_penalty
            reasons.append("Low volume - caution")

        # Order book pressure
        if pressure > cfg.strong_pressure:
            confidence += cfg.strong_pressure_bonus
            side = "buy" if direction == Direction.LONG else "sell"
            reasons.append(f"Strong {side} pressure in book")
        elif pressure > cfg.moderate_pressure:
            confidence += cfg.moderate_pressure_bonus
        if pressure_confidence > 0.6:
            reasons.append(f"Breakout pressure {pressure_confidence * 100:.0f}%")
        if pressure_confidence >= 0.8:
            confidence += cfg.pressure_confidence_bonus

        # Tape
        tape_aligned = (
            (direction == Direction.LONG and delta > cfg.tape_delta_threshold)
            or (direction == Direction.SHORT and delta < -cfg.tape_delta_threshold)
        )
        if tape_aligned:
            confidence += cfg.tape_bonus
            reasons.append(f"Tape delta {delta * 100:.0f}% confirms")

        # Level strength
        if level.strength >= cfg.strong_level:
            confidence += cfg.strong_level_bonus
            reasons.append(f"Strong level ({level.strength:g}/10)")
        elif level.strength >= cfg.medium_level:
            confidence += cfg.medium_level_bonus

        # False breakout risk
        if risk > cfg.high_risk:
            confidence -= cfg.high_risk_penalty
            reasons.append(f"High false breakout risk ({risk * 100:.0f}%)")
        elif risk > cfg.medium_risk:
            confidence -= cfg.medium_risk_penalty

        closed_beyond = last.close > level.price if direction == Direction.LONG else last.close < level.price
        if closed_beyond:
            confidence += cfg.close_beyond_bonus
            reasons.append("Candle closed beyond level")

        if funding_hint is not None:
            if direction == Direction.LONG and funding_hint.avoid_long:
                confidence -= cfg.funding_penalty
                reasons.append("Funding rate unfavorable for long")
            elif direction == Direction.SHORT and funding_hint.avoid_short:
                confidence -= cfg.funding_penalty
                reasons.append("Funding rate unfavorable for short")

        confidence = clamp(confidence, 0.0, 1.0)
        if confidence < cfg.min_confidence:
            self.logger.debug(
                f"Breakout of {level.type.value} {level.price} rejected: confidence {confidence:.2f}"
            )
            return None

        signal = BreakoutSignal(
            level=level,
            direction=direction,
            confidence=confidence,
            volume_confirmation=volume_confirmation,
            false_breakout_risk=risk,
            entry_zone=self.entry_zone(level.price, direction),
            invalidation_price=self.invalidation_price(level.price, direction),
            reasons=tuple(reasons),
            metrics={
                "volume_ratio": volume_ratio,
                "price_distance": abs(safe_divide(current_price - level.price, level.price)),
                "tape_delta": delta,
                "order_book_pressure": pressure,
            },
        )
        self.logger.info(f"💥 {signal}")
        return signal

    @staticmethod
    def is_false_breakout(breakout: BreakoutSignal, current_price: float) -> bool:
        """True once price has returned through the broken level."""
        if breakout.direction == Direction.LONG:
            return current_price < breakout.level.price
        return current_price > breakout.level.price
