"""
Unit tests for level detection, breakout confirmation and the breakout monitor.

Tests:
- Level strength, merging, proximity and break checks
- Swing + volume-profile detection on a ranging market
- Breakout confidence, entry zone and rejection of weak breaks
- Monitor publishing BreakoutDetected, degrading failed fetches and skipping quiet symbols
"""

import pytest

from signal_engine.analytics.breakout import BreakoutConfirmer, FundingHint, tape_delta
from signal_engine.analytics.levels import LevelDetector
from signal_engine.core.events import EventBus
from signal_engine.core.models import Candle, Direction, LevelType, OrderBookSnapshot, PriceLevel
from signal_engine.scheduler import BreakoutMonitor

from factories import FakeProvider, make_candles, make_trades, zigzag


def level(price: float, level_type: LevelType = LevelType.RESISTANCE, strength: float = 8.0) -> PriceLevel:
    return PriceLevel(price=price, type=level_type, strength=strength, touches=3, volume=1000.0)


def breakout_candles(last_close: float = 101.0, last_volume: float = 300.0, last_high: float = 101.1):
    """19 quiet bars under 100, then one wide bar through it."""
    candles = [
        Candle(timestamp=i * 900_000, open=99.4, high=99.7, low=99.3, close=99.5, volume=100.0)
        for i in range(19)
    ]
    candles.append(Candle(
        timestamp=19 * 900_000, open=99.6, high=last_high, low=99.5, close=last_close, volume=last_volume
    ))
    return candles


class FixedLevelDetector(LevelDetector):
    """Detector that always reports the same levels."""

    def __init__(self, levels):
        super().__init__()
        self.levels = levels

    def detect_levels(self, candles, sensitivity="medium"):
        return list(self.levels)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def detector():
    return LevelDetector()


@pytest.fixture
def confirmer():
    return BreakoutConfirmer()


@pytest.fixture
def pressure_book():
    return OrderBookSnapshot.from_levels([(99.8, 10.0)], [(100.3, 2.0)])


# ============================================================================
# Level Detector Tests
# ============================================================================

def test_strength_formula(detector):
    assert detector.strength(2, 25_000) == 7.0
    assert detector.strength(5, 100_000) == 10.0
    assert detector.strength(1, 0) == 2.0


def test_merge_weighted_by_strength(detector):
    merged = detector.merge_levels(
        [level(100.0, LevelType.SUPPORT, 6.0), level(100.2, LevelType.RESISTANCE, 2.0)],
        tolerance=0.003,
    )

    assert len(merged) == 1
    assert merged[0].price == pytest.approx((100.0 * 6 + 100.2 * 2) / 8)
    assert merged[0].type == LevelType.SUPPORT
    assert merged[0].strength == pytest.approx(7.0)
    assert merged[0].touches == 6


def test_merge_keeps_distant_levels(detector):
    merged = detector.merge_levels([level(100.0), level(105.0)], tolerance=0.003)
    assert [lv.price for lv in merged] == [100.0, 105.0]


def test_detect_levels_needs_history(detector):
    assert detector.detect_levels(make_candles(19)) == []


def test_detect_levels_on_range(detector):
    """Flat zigzag between ~100 and ~104 gives resistance on top and support below."""
    levels = detector.detect_levels(zigzag(count=60, trend=0.0))

    assert levels
    strengths = [lv.strength for lv in levels]
    assert strengths == sorted(strengths, reverse=True)

    top = detector.find_nearest_level(104.0, levels, 0.01)
    assert top.type == LevelType.RESISTANCE
    assert 103.9 <= top.price <= 104.2

    bottom = detector.find_nearest_level(100.0, levels, 0.005)
    assert bottom.type == LevelType.SUPPORT


@pytest.mark.parametrize("bar_volume, strength", [(20.0, 2.0), (70.0, 7.0), (200.0, 10.0)])
def test_volume_profile_strength(detector, bar_volume, strength):
    """Profile levels score volume / 1000 * 2, capped at 10, with one touch."""
    flat = [
        Candle(timestamp=i * 900_000, open=100.0, high=100.5, low=99.5, close=100.0, volume=bar_volume)
        for i in range(50)
    ]

    levels = detector._volume_levels(flat)

    assert len(levels) == 1
    assert levels[0].price == pytest.approx(100.0)
    assert levels[0].volume == pytest.approx(50 * bar_volume)
    assert levels[0].strength == strength
    assert levels[0].touches == 1


def test_find_nearest_level_respects_distance(detector):
    levels = [level(100.0), level(110.0)]

    assert detector.find_nearest_level(101.0, levels).price == 100.0
    assert detector.find_nearest_level(105.0, levels) is None


def test_is_approaching_level(detector):
    assert detector.is_approaching_level(100.5, level(100.0))
    assert not detector.is_approaching_level(102.0, level(100.0))


def test_is_level_broken(detector):
    resistance = level(100.0)
    support = level(100.0, LevelType.SUPPORT)

    assert detector.is_level_broken(100.3, 99.9, resistance)
    assert not detector.is_level_broken(100.1, 99.9, resistance)
    assert detector.is_level_broken(99.7, 100.1, support)
    assert not detector.is_level_broken(100.3, 99.9, support)


# ============================================================================
# Breakout Confirmer Tests
# ============================================================================

def test_confirmed_breakout(confirmer, pressure_book):
    trades = make_trades(count=10)
    breakout = confirmer.confirm(101.0, level(100.0), pressure_book, trades, breakout_candles())

    assert breakout is not None
    assert breakout.direction == Direction.LONG
    assert breakout.confidence == pytest.approx(1.0)
    assert breakout.volume_confirmation
    assert breakout.false_breakout_risk == pytest.approx(0.0)
    assert breakout.entry_zone.optimal == pytest.approx(100.3)
    assert breakout.entry_zone.min < breakout.entry_zone.optimal < breakout.entry_zone.max
    assert breakout.invalidation_price == pytest.approx(99.5)
    assert "Candle closed beyond level" in breakout.reasons


def test_weak_breakout_rejected(confirmer):
    sells = [t.__class__(t.price, t.qty, t.time, False) for t in make_trades(count=10)]
    candles = breakout_candles(last_close=100.16, last_volume=50.0, last_high=100.2)

    assert confirmer.confirm(100.16, level(100.0, strength=2.0), OrderBookSnapshot(), sells, candles) is None


def test_no_cross_no_breakout(confirmer, pressure_book):
    candles = breakout_candles()
    assert confirmer.confirm(99.9, level(100.0), pressure_book, [], candles) is None
    # support only breaks downward
    assert confirmer.confirm(101.0, level(100.0, LevelType.SUPPORT), pressure_book, [], candles) is None


def test_funding_hint_penalty(confirmer, pressure_book):
    candles = breakout_candles(last_volume=115.0)
    trades = make_trades(count=10)

    plain = confirmer.confirm(101.0, level(100.0, strength=5.0), pressure_book, trades, candles)
    hinted = confirmer.confirm(
        101.0, level(100.0, strength=5.0), pressure_book, trades, candles, FundingHint(avoid_long=True)
    )

    assert plain.confidence - hinted.confidence == pytest.approx(0.12)
    assert "Funding rate unfavorable for long" in hinted.reasons


def test_false_breakout_after_return(confirmer, pressure_book):
    breakout = confirmer.confirm(101.0, level(100.0), pressure_book, make_trades(count=10), breakout_candles())

    assert BreakoutConfirmer.is_false_breakout(breakout, 99.8)
    assert not BreakoutConfirmer.is_false_breakout(breakout, 100.5)


def test_tape_delta():
    assert tape_delta([]) == 0.0
    assert tape_delta(make_trades(count=10)) == pytest.approx(1.0)


# ============================================================================
# Breakout Monitor Tests
# ============================================================================

@pytest.mark.asyncio
async def test_monitor_publishes_breakout(pressure_book, clock):
    bus = EventBus()
    received = []

    async def on_breakout(event):
        received.append(event)

    await bus.subscribe("BreakoutDetected", on_breakout)

    provider = FakeProvider(pressure_book, make_trades(count=10), {"15m": breakout_candles()})
    monitor = BreakoutMonitor(
        provider,
        ["BTC/USDT"],
        event_bus=bus,
        level_detector=FixedLevelDetector([level(100.0)]),
        clock=clock,
    )

    alerts = await monitor.scan()

    assert len(alerts) == 1
    assert alerts[0].breakout.direction == Direction.LONG
    assert len(received) == 1
    assert received[0].symbol == "BTC/USDT"
    assert received[0].timestamp == clock.now
    assert monitor.get_stats() == {"scans": 1, "alerts_published": 1, "errors": 0}


@pytest.mark.asyncio
async def test_monitor_skips_failing_and_quiet_symbols(pressure_book):
    failing = FakeProvider(pressure_book, [], {}, failures={"get_ohlcv": ConnectionError("timeout")})
    monitor = BreakoutMonitor(failing, ["BTC/USDT", "ETH/USDT"])
    assert await monitor.scan() == []
    assert [r.errors for r in monitor.last_results] == [["ohlcv: timeout"], ["ohlcv: timeout"]]

    quiet = FakeProvider(pressure_book, [], {"15m": make_candles(40)})
    monitor = BreakoutMonitor(quiet, ["BTC/USDT"], level_detector=FixedLevelDetector([]))
    assert await monitor.scan() == []


@pytest.mark.asyncio
async def test_monitor_scores_with_empty_tape_when_trades_fail(pressure_book):
    provider = FakeProvider(
        pressure_book, [], {"15m": breakout_candles()},
        failures={"get_trades": ConnectionError("trades endpoint down")},
    )
    monitor = BreakoutMonitor(provider, ["BTC/USDT"], level_detector=FixedLevelDetector([level(100.0)]))

    result = await monitor.scan_symbol("BTC/USDT")

    assert result.degraded
    assert result.errors == ["trades: trades endpoint down"]
    assert result.breakout is not None
    assert result.breakout.metrics["tape_delta"] == 0.0


@pytest.mark.asyncio
async def test_monitor_scores_with_empty_book_when_book_fails():
    provider = FakeProvider(
        OrderBookSnapshot(), make_trades(count=10), {"15m": breakout_candles()},
        failures={"get_order_book": ConnectionError("book endpoint down")},
    )
    monitor = BreakoutMonitor(provider, ["BTC/USDT"], level_detector=FixedLevelDetector([level(100.0)]))

    alerts = await monitor.scan()

    assert len(alerts) == 1
    assert alerts[0].breakout.metrics["order_book_pressure"] == 1.0
    assert monitor.last_results[0].errors == ["order_book: book endpoint down"]
    assert monitor.get_stats()["errors"] == 1


@pytest.mark.asyncio
async def test_monitor_start_stop(pressure_book):
    provider = FakeProvider(pressure_book, [], {"15m": make_candles(40)})
    monitor = BreakoutMonitor(provider, ["BTC/USDT"], level_detector=FixedLevelDetector([]))

    await monitor.start()
    assert monitor.is_running
    await monitor.stop()
    assert not monitor.is_running
