"""
Confluence Engine

Merges the three per-domain readings (order book, tape, candles/MTF) into a
single direction and confidence.

WEIGHTS:
- Order Book: 0.40
- Tape: 0.35
- Candles / MTF: 0.25

Pipeline:
1. Hard reject on wide spread
2. At least 2 of 3 domains must agree on a direction
3. Base confidence from the weighted domain scores
4. Ordered, individually capped adjustments
5. Final reject below the confidence floor

When confluence fails the engine can fall back to a majority vote that is
never auto-tradable.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional
import logging

from ..config.settings import ConfluenceConfig
from ..core.models import Direction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfluenceContext:
    """
    Auxiliary inputs to the confluence merge.

    Attributes:
        spread_pct: Order book spread in percent
        risk_reward: Estimated R:R (None uses the configured default)
        tape_delta: Raw tape delta, used for the weak-contradiction check
        recent_delta: Delta of the most recent half of the tape
        dom_score: Depth-of-market score in [-1, 1]
        cvd_divergence: 'bullish' / 'bearish' / None
        volume_confirm: Last bar volume above the confirmation ratio
        bb_squeeze: Bollinger squeeze on the working timeframe
        high_volatility: Last bar range above the volatility threshold
        false_breakout_hint: Breakout-type pattern without volume
    """
    spread_pct: float = 0.0
    risk_reward: Optional[float] = None
    tape_delta: float = 0.0
    recent_delta: Optional[float] = None
    dom_score: float = 0.0
    cvd_divergence: Optional[str] = None
    volume_confirm: bool = False
    bb_squeeze: bool = False
    high_volatility: bool = False
    false_breakout_hint: bool = False


@dataclass(frozen=True)
class AuxiliarySignals:
    """Trend detectors outside the three domains."""
    hlhb: Optional[Direction] = None
    volatility_breakout: Optional[Direction] = None
    supertrend: Optional[str] = None  # 'up' / 'down'
    adx: Optional[float] = None


@dataclass(frozen=True)
class ConfluenceResult:
    """
    Result of a confluence merge.

    Attributes:
        direction: LONG/SHORT, or None when no signal
        confidence: Confidence in [0, 1] (0 on rejection)
        confluence: Whether 2-of-3 confluence held
        reason: Rejection or fallback explanation
        auto_tradable: False for fallback directions
        long_count: Domains voting LONG
        short_count: Domains voting SHORT
    """
    direction: Optional[Direction]
    confidence: float
    confluence: bool
    reason: Optional[str] = None
    auto_tradable: bool = True
    long_count: int = 0
    short_count: int = 0

    @property
    def agree_count(self) -> int:
        return max(self.long_count, self.short_count)

    def __repr__(self) -> str:
        direction = self.direction.value if self.direction else None
        return (
            f"ConfluenceResult({direction}, conf={self.confidence:.2f}, "
            f"confluence={self.confluence}, L/S={self.long_count}/{self.short_count})"
        )


class ConfluenceEngine:
    """
    Weighted 2-of-3 confluence with ordered confidence adjustments.

    Adjustments, in order (each capped):
    1. 3/3 agreement +0.10
    2. 2/3 with a strong aligned order book (>= 6) or candles (>= 5) +0.04, cap 0.90
    3. CVD divergence in direction +0.05
    4. Recent tape delta aligned beyond +-0.15 +0.04
    5. Volume confirm and/or BB squeeze with aligned candles +0.06 / +0.04
    6. |DOM| > 0.2 aligned +0.03
    7. R:R below 1.5 scales by max(0.65, rr / 1.5)
    8. Spread in the caution band -0.03 (floor 0.55)
    9. High volatility -0.05 (floor 0.52)
    10. False breakout hint -0.06 (floor 0.52)

    Stateless: safe to share between symbols.
    """

    def __init__(self, config: ConfluenceConfig = None, name: str = "ConfluenceEngine"):
        self.config = config or ConfluenceConfig()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    # ========================================================================
    # Confluence
    # ========================================================================

    def evaluate(
        self,
        order_book: Any,
        tape: Any,
        candles: Any,
        context: Optional[ConfluenceContext] = None
    ) -> ConfluenceResult:
        """
        Merge the three domain readings.

        Args:
            order_book: Reading with ``direction`` and ``score`` (0-10)
            tape: Reading with ``direction`` and ``score`` (0-10)
            candles: Reading with ``direction`` and ``score``
            context: Auxiliary inputs

        Returns:
            ConfluenceResult; ``direction`` is None when rejected
        """
        cfg = self.config
        ctx = context or ConfluenceContext()

        directions = [order_book.direction, tape.direction, candles.direction]
        long_count = sum(1 for d in directions if d == Direction.LONG)
        short_count = sum(1 for d in directions if d == Direction.SHORT)

        if ctx.spread_pct > cfg.max_spread_pct:
            return self._reject(
                f"spread {ctx.spread_pct:.3f}% > {cfg.max_spread_pct:g}%", long_count, short_count
            )

        if long_count >= cfg.min_agreeing:
            direction = Direction.LONG
        elif short_count >= cfg.min_agreeing:
            direction = Direction.SHORT
        else:
            return self._reject(f"< {cfg.min_agreeing} components agree", long_count, short_count)

        agree_count = long_count if direction == Direction.LONG else short_count

        # Contradicting tape with a weak delta counts at half weight
        tape_factor = 1.0
        if tape.direction == direction.opposite and abs(ctx.tape_delta) < cfg.weak_tape_delta:
            tape_factor = cfg.weak_tape_factor

        weighted = (
            order_book.score * cfg.order_book_weight
            + tape.score * cfg.tape_weight * tape_factor
            + candles.score * cfg.candle_weight
        )
        confidence = min(cfg.base_cap, cfg.base_confidence + weighted * cfg.per_point)
        cap = cfg.adjustment_cap

        if agree_count == 3:
            confidence = min(cap, confidence + cfg.all_agree_bonus)

        if agree_count == 2:
            strong = order_book.score >= cfg.strong_order_book or candles.score >= cfg.strong_candles
            aligned = order_book.direction == direction or candles.direction == direction
            if strong and aligned:
                confidence = min(cfg.strong_pair_cap, confidence + cfg.strong_pair_bonus)

        if (
            (ctx.cvd_divergence == "bullish" and direction == Direction.LONG)
            or (ctx.cvd_divergence == "bearish" and direction == Direction.SHORT)
        ):
            confidence = min(cap, confidence + cfg.cvd_bonus)

        if ctx.recent_delta is not None and self._aligned(ctx.recent_delta, direction, cfg.recent_delta_threshold):
            confidence = min(cap, confidence + cfg.recent_delta_bonus)

        if (ctx.volume_confirm or ctx.bb_squeeze) and candles.direction == direction:
            bonus = cfg.volume_both_bonus if ctx.volume_confirm and ctx.bb_squeeze else cfg.volume_single_bonus
            confidence = min(cap, confidence + bonus)

        if self._aligned(ctx.dom_score, direction, cfg.dom_threshold):
            confidence = min(cap, confidence + cfg.dom_bonus)

        risk_reward = ctx.risk_reward if ctx.risk_reward is not None else cfg.default_risk_reward
        if 0 < risk_reward < cfg.min_risk_reward:
            confidence *= max(cfg.risk_reward_floor, risk_reward / cfg.min_risk_reward)

        if cfg.caution_spread_pct < ctx.spread_pct <= cfg.max_spread_pct:
            confidence = max(cfg.caution_floor, confidence - cfg.caution_penalty)

        if ctx.high_volatility:
            confidence = max(cfg.high_volatility_floor, confidence - cfg.high_volatility_penalty)

        if ctx.false_breakout_hint:
            confidence = max(cfg.false_breakout_floor, confidence - cfg.false_breakout_penalty)

        if confidence < cfg.min_confidence:
            return self._reject(
                f"confidence {confidence * 100:.0f}% < {cfg.min_confidence * 100:.0f}%",
                long_count,
                short_count,
            )

        result = ConfluenceResult(
            direction=direction,
            confidence=confidence,
            confluence=True,
            long_count=long_count,
            short_count=short_count,
        )
        self.logger.debug(f"✅ {result}")
        return result

    # ========================================================================
    # Multi-Timeframe Policy
    # ========================================================================

    def apply_mtf_policy(
        self,
        result: ConfluenceResult,
        mtf: Any,
        aux: Optional[AuxiliarySignals] = None
    ) -> ConfluenceResult:
        """
        Adjust a confluent result by timeframe alignment and trend detectors.

        Order: alignment bonus, weak-alignment penalty, partial-alignment cap,
        higher-timeframe opposition clamp, HLHB / volatility breakout /
        supertrend / ADX bonuses. A non-confluent result is returned as is.

        Args:
            result: Output of ``evaluate``
            mtf: Aggregation with ``align_count``, ``evaluated`` and ``against_htf``
            aux: Auxiliary detector readings

        Returns:
            ConfluenceResult with the adjusted confidence
        """
        if not result.confluence or result.direction is None:
            return result

        policy = self.config.mtf_policy
        aux = aux or AuxiliarySignals()
        direction = result.direction
        confidence = result.confidence
        align = mtf.align_count
        evaluated = mtf.evaluated

        if align >= policy.strong_align:
            confidence = min(policy.strong_align_cap, confidence + policy.strong_align_bonus)
        elif align >= policy.good_align:
            confidence = min(policy.good_align_cap, confidence + policy.good_align_bonus)
        elif align >= policy.min_align:
            confidence = min(policy.min_align_cap, confidence + policy.min_align_bonus)

        if evaluated >= policy.penalty_min_timeframes:
            if align < policy.min_align:
                confidence = max(policy.weak_align_floor, confidence - policy.weak_align_penalty)
            if align < policy.good_align:
                confidence = min(confidence, policy.partial_align_cap)

        if mtf.against_htf:
            confidence = max(policy.htf_floor, min(confidence - policy.htf_penalty, policy.htf_cap))

        if aux.hlhb == direction:
            confidence = min(policy.hlhb_cap, confidence + policy.hlhb_bonus)
        if aux.volatility_breakout == direction:
            confidence = min(policy.volatility_breakout_cap, confidence + policy.volatility_breakout_bonus)
        if aux.supertrend == ("up" if direction == Direction.LONG else "down"):
            confidence = min(policy.supertrend_cap, confidence + policy.supertrend_bonus)
        if aux.adx is not None and aux.adx > policy.adx_threshold:
            confidence = min(policy.adx_cap, confidence + policy.adx_bonus)

        self.logger.debug(
            f"MTF policy: align={align}/{evaluated}, against_htf={mtf.against_htf}, "
            f"{result.confidence:.3f} -> {confidence:.3f}"
        )
        return replace(result, confidence=confidence)

    # ========================================================================
    # Fallback
    # ========================================================================

    def fallback_vote(
        self,
        order_book_direction: Direction,
        tape_direction: Direction,
        candle_direction: Direction,
        aux: Optional[AuxiliarySignals] = None
    ) -> ConfluenceResult:
        """
        Majority vote used when confluence fails.

        HLHB and volatility breakout add half a vote each. Any conflict gives
        the majority (SHORT on ties) at reduced confidence; otherwise the
        voted side gets min(0.75, 0.6 + votes * 0.04). Never auto-tradable.
        """
        fb = self.config.fallback
        aux = aux or AuxiliarySignals()

        directions = [order_book_direction, tape_direction, candle_direction]
        long_votes = float(sum(1 for d in directions if d == Direction.LONG))
        short_votes = float(sum(1 for d in directions if d == Direction.SHORT))
        for detector in (aux.hlhb, aux.volatility_breakout):
            if detector == Direction.LONG:
                long_votes += fb.auxiliary_vote
            elif detector == Direction.SHORT:
                short_votes += fb.auxiliary_vote

        if long_votes > 0 and short_votes > 0:
            direction = Direction.SHORT if short_votes >= long_votes else Direction.LONG
            confidence = fb.conflict_confidence
            reason = (
                f"Component conflict - majority direction ({direction.value}), confidence reduced. "
                f"Not recommended for auto-entry."
            )
        elif short_votes > long_votes:
            direction = Direction.SHORT
            confidence = min(fb.max_confidence, fb.base_confidence + short_votes * fb.per_vote)
            reason = f"Fallback: direction by component votes ({direction.value}), no full confluence."
        else:
            direction = Direction.LONG
            confidence = min(fb.max_confidence, fb.base_confidence + max(long_votes, 1.0) * fb.per_vote)
            reason = f"Fallback: direction by component votes ({direction.value}), no full confluence."

        self.logger.debug(f"Fallback vote L={long_votes} S={short_votes} -> {direction.value} {confidence:.2f}")
        return ConfluenceResult(
            direction=direction,
            confidence=confidence,
            confluence=False,
            reason=reason,
            auto_tradable=False,
            long_count=sum(1 for d in directions if d == Direction.LONG),
            short_count=sum(1 for d in directions if d == Direction.SHORT),
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _aligned(value: float, direction: Direction, threshold: float) -> bool:
        if direction == Direction.LONG:
            return value > threshold
        if direction == Direction.SHORT:
            return value < -threshold
        return False

    def _reject(self, reason: str, long_count: int, short_count: int) -> ConfluenceResult:
        self.logger.debug(f"No confluence: {reason}")
        return ConfluenceResult(
            direction=None,
            confidence=0.0,
            confluence=False,
            reason=reason,
            long_count=long_count,
            short_count=short_count,
        )
