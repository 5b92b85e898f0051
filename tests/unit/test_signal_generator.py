"""
Unit tests for the SignalGenerator and the trailing stop.

Tests:
- ATR and fixed-percentage stop/target ladders
- Ordering invariants for LONG and SHORT
- Confidence reductions and triggers
- Signal id format and expiry
- Trailing stop ratchet and TrailingStopManager exits
"""

from datetime import timedelta

import pytest

from signal_engine.config.settings import TradingMode
from signal_engine.core.events import EventBus
from signal_engine.core.models import Direction
from signal_engine.decision.signal_generator import SignalGenerator
from signal_engine.position.trailing_stop import TrailingStopManager, should_exit, update_trailing_stop

from factories import START, FakeClock


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def generator(clock):
    return SignalGenerator(clock=clock)


# ============================================================================
# Stop / Target Tests
# ============================================================================

def test_atr_long_ladder(generator):
    """ATR 2 on entry 100: stop capped at 0.7%, targets at 2.0/3.2/4.5 R."""
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, confidence=0.8)

    assert signal.stop_loss == pytest.approx(99.3)
    assert signal.take_profit == pytest.approx((101.4, 102.24, 103.15))
    assert signal.risk_reward == pytest.approx(4.5)


def test_atr_short_ladder_mirrors(generator):
    signal = generator.generate(Direction.SHORT, 100.0, atr=2.0, confidence=0.8)

    assert signal.stop_loss == pytest.approx(100.7)
    assert signal.take_profit == pytest.approx((98.6, 97.76, 96.85))
    assert signal.stop_loss > signal.entry_price > signal.take_profit[0] > signal.take_profit[1] > signal.take_profit[2]


def test_small_atr_used_directly(generator):
    stop, targets = generator.levels(Direction.LONG, 100.0, atr=0.2)

    assert stop == pytest.approx(100 - 0.27)
    assert targets[0] == pytest.approx(100 + 0.27 * 2)


def test_fixed_percentages_without_atr(generator):
    signal = generator.generate(Direction.SHORT, 100.0, confidence=0.8)

    assert signal.stop_loss == pytest.approx(101.3)
    assert signal.take_profit == pytest.approx((97.4, 95.84, 92.98))


def test_scalping_uses_lower_rr_min(generator):
    stop, targets = generator.levels(Direction.LONG, 100.0, atr=2.0, mode=TradingMode.SCALPING)

    assert generator.rr_min("scalping") == 1.5
    assert stop == pytest.approx(99.45)
    assert targets[0] == pytest.approx(100 + 0.55 * 1.5)


def test_long_ordering_invariant(generator):
    for mode in ("default", "scalping", "futures25x"):
        for atr in (None, 0.05, 3.0):
            s = generator.generate(Direction.LONG, 250.0, atr=atr, mode=mode, confidence=0.8)
            assert s.stop_loss < s.entry_price < s.take_profit[0] < s.take_profit[1] < s.take_profit[2]


def test_small_stop_distance_keeps_ordering(generator):
    """Entry 2 with ATR 0.002: risk 0.0027 needs four decimals."""
    signal = generator.generate(Direction.LONG, 2.0, atr=0.002, confidence=0.8)

    assert signal.stop_loss == pytest.approx(1.9973)
    assert signal.take_profit[0] == pytest.approx(2.0054)
    assert signal.stop_loss < signal.entry_price < signal.take_profit[0] < signal.take_profit[1] < signal.take_profit[2]


def test_low_priced_ordering_invariant(generator):
    for entry in (0.05, 1.5, 2.0, 7.3):
        for atr in (0.0001, 0.002, 0.01):
            s = generator.generate(Direction.SHORT, entry, atr=atr, mode="scalping", confidence=0.8)
            assert s.stop_loss > s.entry_price > s.take_profit[0] > s.take_profit[1] > s.take_profit[2]


# ============================================================================
# Validation Tests
# ============================================================================

def test_neutral_direction_rejected(generator):
    with pytest.raises(ValueError):
        generator.generate(Direction.NEUTRAL, 100.0)


def test_non_positive_entry_rejected(generator):
    with pytest.raises(ValueError):
        generator.generate(Direction.LONG, 0.0)


# ============================================================================
# Confidence / Trigger Tests
# ============================================================================

def test_default_confidence_from_triggers(generator):
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, patterns=("bullish_engulfing", "none"), rsi=50.0)

    assert signal.triggers == ("bullish_engulfing",)
    assert signal.confidence == pytest.approx(0.75)


def test_no_triggers_marked_manual(generator):
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, rsi=50.0)
    assert signal.triggers == ("manual",)


def test_rsi_triggers_per_mode(generator):
    assert "rsi_oversold_reversal" in generator.triggers([], 30.0)
    assert "rsi_oversold_reversal" not in generator.triggers([], 30.0, TradingMode.SCALPING)
    assert "rsi_overbought_reversal" in generator.triggers([], 80.0, TradingMode.SCALPING)


def test_failed_signal_penalty(generator):
    signal = generator.generate(
        Direction.LONG, 100.0, atr=2.0, rsi=25.0, price_direction="down", confidence=0.8
    )
    assert signal.confidence == pytest.approx(0.68)


def test_false_breakout_penalty(generator):
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, confidence=0.8, false_breakout_risk=True)

    assert signal.confidence == pytest.approx(0.72)
    assert "false_breakout_risk" in signal.triggers


def test_confidence_levels(generator):
    assert generator.confidence_level(0.9) == "high"
    assert generator.confidence_level(0.75) == "medium"
    assert generator.confidence_level(0.5) == "low"


# ============================================================================
# Identity Tests
# ============================================================================

def test_ids_sequential_per_generator(generator):
    first = generator.generate(Direction.LONG, 100.0, atr=2.0)
    second = generator.generate(Direction.SHORT, 100.0, atr=2.0)

    assert first.id == "sig_20240301_001"
    assert second.id == "sig_20240301_002"


def test_expiry_and_trailing_config(generator):
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, symbol="ETH/USDT")

    assert signal.timestamp == START
    assert signal.expires_at == START + timedelta(minutes=30)
    assert signal.trailing_stop_config["initial_stop"] == pytest.approx(99.3)
    assert signal.trailing_stop_config["trail_step_pct"] == 0.003
    assert signal.to_dict()["symbol"] == "ETH/USDT"


# ============================================================================
# Trailing Stop Tests
# ============================================================================

def test_trailing_not_active_below_profit_threshold():
    assert update_trailing_stop(100.0, 100.5, Direction.LONG, 99.3) == 99.3


def test_trailing_long_ratchets_up_only():
    stop = update_trailing_stop(100.0, 101.5, Direction.LONG, 99.3)
    assert stop == pytest.approx(101.2)

    assert update_trailing_stop(100.0, 101.3, Direction.LONG, stop) == stop


def test_trailing_short_ratchets_down_only():
    stop = update_trailing_stop(100.0, 98.5, Direction.SHORT, 100.7)
    assert stop == pytest.approx(98.8)

    assert update_trailing_stop(100.0, 98.7, Direction.SHORT, stop) == stop


def test_trailing_rejects_neutral():
    with pytest.raises(ValueError):
        update_trailing_stop(100.0, 101.0, Direction.NEUTRAL, 99.0)


def test_should_exit():
    assert should_exit(99.0, 99.3, Direction.LONG)
    assert not should_exit(99.5, 99.3, Direction.LONG)
    assert should_exit(101.0, 100.7, Direction.SHORT)


@pytest.mark.asyncio
async def test_manager_publishes_stop_hit():
    """Stop trails to 101.2 and a drop to 101.1 exits the position."""
    clock = FakeClock()
    bus = EventBus()
    hits = []

    async def on_hit(event):
        hits.append(event)

    await bus.subscribe("TrailingStopHit", on_hit)

    signal = SignalGenerator(clock=clock).generate(Direction.LONG, 100.0, atr=2.0, symbol="BTC/USDT")
    manager = TrailingStopManager(event_bus=bus, clock=clock)
    await manager.add_signal(signal)

    assert await manager.update_on_tick("BTC/USDT", 101.5) == []
    assert manager.get_stop(signal.id) == pytest.approx(101.2)

    assert await manager.update_on_tick("BTC/USDT", 101.1) == [signal.id]
    assert manager.get_stop(signal.id) is None
    assert len(hits) == 1
    assert hits[0].signal_id == signal.id
    assert hits[0].exit_price == 101.1
    assert hits[0].stop_price == pytest.approx(101.2)


@pytest.mark.asyncio
async def test_manager_ignores_other_symbols(generator, clock):
    signal = generator.generate(Direction.LONG, 100.0, atr=2.0, symbol="BTC/USDT")
    manager = TrailingStopManager(clock=clock)
    await manager.add_signal(signal)

    assert await manager.update_on_tick("ETH/USDT", 50.0) == []
    assert manager.get_stats() == {"tracked": 1, "symbols": ["BTC/USDT"]}
    assert await manager.remove_signal(signal.id)
    assert not await manager.remove_signal(signal.id)


@pytest.mark.asyncio
async def test_manager_tracks_one_signal_per_symbol(generator, clock):
    manager = TrailingStopManager(clock=clock)
    first = generator.generate(Direction.LONG, 100.0, atr=2.0, symbol="BTC/USDT")
    await manager.add_signal(first)

    for _ in range(5):
        again = generator.generate(Direction.LONG, 100.0, atr=2.0, symbol="BTC/USDT")
        tracked = await manager.add_signal(again)
        assert tracked.signal_id == first.id

    await manager.add_signal(generator.generate(Direction.SHORT, 50.0, atr=1.0, symbol="ETH/USDT"))

    assert manager.get_stats() == {"tracked": 2, "symbols": ["BTC/USDT", "ETH/USDT"]}


@pytest.mark.asyncio
async def test_manager_evicts_expired_signals(generator, clock):
    manager = TrailingStopManager(clock=clock)
    old = generator.generate(Direction.LONG, 100.0, atr=2.0, symbol="BTC/USDT")
    await manager.add_signal(old)

    clock.advance(minutes=29)
    assert manager.evict_expired() == []

    clock.advance(minutes=1)
    assert await manager.update_on_tick("BTC/USDT", 100.2) == []
    assert manager.get_stop(old.id) is None

    fresh = generator.generate(Direction.LONG, 100.2, atr=2.0, symbol="BTC/USDT")
    assert (await manager.add_signal(fresh)).signal_id == fresh.id
    assert manager.get_stats()["tracked"] == 1
