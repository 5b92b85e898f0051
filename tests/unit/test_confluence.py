"""
Unit tests for the ConfluenceEngine.

Tests:
- 2-of-3 agreement, weighting and adjustment caps
- Spread and low-confidence rejection
- Multi-timeframe policy
- Fallback majority vote
"""

from types import SimpleNamespace

import pytest

from signal_engine.config.settings import ConfluenceConfig
from signal_engine.core.models import Direction
from signal_engine.decision.confluence import AuxiliarySignals, ConfluenceContext, ConfluenceEngine


def reading(direction: Direction, score: float):
    return SimpleNamespace(direction=direction, score=score)


def mtf(align_count: int, evaluated: int = 6, against_htf: bool = False):
    return SimpleNamespace(align_count=align_count, evaluated=evaluated, against_htf=against_htf)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def engine():
    return ConfluenceEngine()


@pytest.fixture
def strong_long(engine):
    """Order book 8, tape 7, candles 6, all LONG."""
    return engine.evaluate(
        reading(Direction.LONG, 8),
        reading(Direction.LONG, 7),
        reading(Direction.LONG, 6),
        ConfluenceContext(spread_pct=0.02),
    )


# ============================================================================
# Confluence
# ============================================================================

def test_three_domains_agree(strong_long):
    assert strong_long.confluence
    assert strong_long.direction == Direction.LONG
    assert strong_long.auto_tradable
    assert strong_long.agree_count == 3
    # 0.62 + 7.15 * 0.026 + 0.10
    assert strong_long.confidence == pytest.approx(0.9059)
    assert strong_long.confidence <= 0.95


def test_wide_spread_rejected(engine):
    result = engine.evaluate(
        reading(Direction.LONG, 8),
        reading(Direction.LONG, 7),
        reading(Direction.LONG, 6),
        ConfluenceContext(spread_pct=0.15),
    )

    assert result.direction is None
    assert result.confidence == 0
    assert not result.confluence
    assert "spread" in result.reason
    assert result.reason == "spread 0.150% > 0.1%"


def test_no_agreement_rejected(engine):
    result = engine.evaluate(
        reading(Direction.LONG, 8),
        reading(Direction.SHORT, 7),
        reading(Direction.NEUTRAL, 0),
    )

    assert result.direction is None
    assert result.reason == "< 2 components agree"
    assert result.long_count == 1
    assert result.short_count == 1


def test_weak_contradicting_tape_half_weight(engine):
    """Tape against the pair with |delta| < 0.25 counts half; strong order book adds 0.04."""
    result = engine.evaluate(
        reading(Direction.LONG, 8),
        reading(Direction.SHORT, 7),
        reading(Direction.LONG, 6),
        ConfluenceContext(tape_delta=-0.1),
    )

    assert result.direction == Direction.LONG
    assert result.confidence == pytest.approx(0.62 + 5.925 * 0.026 + 0.04)


def test_adjustments_never_exceed_cap(engine):
    result = engine.evaluate(
        reading(Direction.SHORT, 10),
        reading(Direction.SHORT, 10),
        reading(Direction.SHORT, 10),
        ConfluenceContext(
            cvd_divergence="bearish",
            recent_delta=-0.5,
            dom_score=-0.6,
            volume_confirm=True,
            bb_squeeze=True,
        ),
    )

    assert result.direction == Direction.SHORT
    assert result.confidence == pytest.approx(0.95)


def test_low_risk_reward_scales_and_rejects(engine):
    result = engine.evaluate(
        reading(Direction.LONG, 1),
        reading(Direction.LONG, 1),
        reading(Direction.LONG, 1),
        ConfluenceContext(risk_reward=0.5),
    )

    assert result.direction is None
    assert result.confidence == 0
    assert result.reason == "confidence 48% < 60%"


def test_penalties_respect_floors(engine):
    result = engine.evaluate(
        reading(Direction.LONG, 8),
        reading(Direction.LONG, 8),
        reading(Direction.NEUTRAL, 0),
        ConfluenceContext(spread_pct=0.08, high_volatility=True, false_breakout_hint=True),
    )

    assert result.direction == Direction.LONG
    # caution spread, high volatility and false breakout applied in order
    assert result.confidence == pytest.approx(0.62 + 6.0 * 0.026 + 0.04 - 0.03 - 0.05 - 0.06)


def test_spread_band_validation():
    with pytest.raises(ValueError):
        ConfluenceConfig(caution_spread_pct=0.2, max_spread_pct=0.1)


# ============================================================================
# Multi-Timeframe Policy
# ============================================================================

def test_strong_alignment_bonus(engine, strong_long):
    result = engine.apply_mtf_policy(strong_long, mtf(6))
    assert result.confidence == pytest.approx(0.96)


def test_weak_alignment_penalty_and_cap(engine, strong_long):
    result = engine.apply_mtf_policy(strong_long, mtf(2))
    assert result.confidence == pytest.approx(0.9059 - 0.08)


def test_partial_alignment_capped(engine, strong_long):
    result = engine.apply_mtf_policy(strong_long, mtf(3))
    # +0.02 bonus then the 0.88 partial-alignment cap
    assert result.confidence == pytest.approx(0.88)


def test_penalties_skipped_with_few_timeframes(engine, strong_long):
    result = engine.apply_mtf_policy(strong_long, mtf(2, evaluated=3))
    assert result.confidence == pytest.approx(strong_long.confidence)


def test_against_higher_timeframe_clamped(engine, strong_long):
    result = engine.apply_mtf_policy(strong_long, mtf(6, against_htf=True))
    assert result.confidence == pytest.approx(0.70)


def test_auxiliary_bonuses(engine):
    base = engine.evaluate(
        reading(Direction.LONG, 5),
        reading(Direction.LONG, 5),
        reading(Direction.NEUTRAL, 0),
    )
    aux = AuxiliarySignals(hlhb=Direction.LONG, supertrend="up", adx=35.0)
    result = engine.apply_mtf_policy(base, mtf(4, evaluated=4), aux)

    expected = base.confidence + 0.06 + 0.04 + 0.02 + 0.02
    assert result.confidence == pytest.approx(min(expected, 0.94))


def test_policy_ignores_rejected_result(engine):
    rejected = engine.evaluate(
        reading(Direction.LONG, 8), reading(Direction.LONG, 7), reading(Direction.LONG, 6),
        ConfluenceContext(spread_pct=0.5),
    )
    assert engine.apply_mtf_policy(rejected, mtf(6)) is rejected


# ============================================================================
# Fallback
# ============================================================================

def test_fallback_conflict_prefers_short_on_tie(engine):
    result = engine.fallback_vote(Direction.LONG, Direction.SHORT, Direction.NEUTRAL)

    assert result.direction == Direction.SHORT
    assert result.confidence == pytest.approx(0.55)
    assert not result.auto_tradable
    assert "Not recommended for auto-entry" in result.reason


def test_fallback_single_side_with_auxiliary_vote(engine):
    result = engine.fallback_vote(
        Direction.LONG, Direction.NEUTRAL, Direction.NEUTRAL,
        AuxiliarySignals(hlhb=Direction.LONG),
    )

    assert result.direction == Direction.LONG
    assert result.confidence == pytest.approx(0.66)
    assert not result.confluence


def test_fallback_always_yields_direction(engine):
    result = engine.fallback_vote(Direction.NEUTRAL, Direction.NEUTRAL, Direction.NEUTRAL)

    assert result.direction == Direction.LONG
    assert result.confidence == pytest.approx(0.64)
    assert not result.auto_tradable


def test_fallback_short_votes(engine):
    result = engine.fallback_vote(Direction.SHORT, Direction.SHORT, Direction.SHORT)

    assert result.direction == Direction.SHORT
    assert result.confidence == pytest.approx(0.72)
