"""
Unit tests for the application wiring and structured logging.

Tests:
- Signals routed to the trailing stop manager
- Start / stop lifecycle
- JSON log records carry signal extras
"""

import json
import logging

import pytest

from signal_engine.app import SignalEngineApp
from signal_engine.config.settings import EngineConfig, SchedulerConfig
from signal_engine.core.events import SignalGenerated
from signal_engine.core.models import Direction
from signal_engine.decision.signal_generator import SignalGenerator
from signal_engine.utils.logger import JSONFormatter

from factories import START


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def app(provider, clock):
    config = EngineConfig(scheduler=SchedulerConfig(symbols=["BTC/USDT"]))
    return SignalEngineApp(provider, config=config, clock=clock, configure_logging=False)


def signal_event(auto_tradable: bool) -> SignalGenerated:
    signal = SignalGenerator().generate(Direction.LONG, 100.0, atr=2.0, confidence=0.9)
    return SignalGenerated(timestamp=START, metadata={}, signal=signal, breakdown={}, auto_tradable=auto_tradable)


# ============================================================================
# Wiring Tests
# ============================================================================

@pytest.mark.asyncio
async def test_auto_tradable_signal_tracked(app):
    await app.setup_event_subscriptions()

    await app.event_bus.publish(signal_event(auto_tradable=True))

    assert app.trailing_stops.get_stats()["tracked"] == 1


@pytest.mark.asyncio
async def test_manual_signal_not_tracked(app):
    await app.setup_event_subscriptions()

    await app.event_bus.publish(signal_event(auto_tradable=False))

    assert app.trailing_stops.get_stats()["tracked"] == 0


@pytest.mark.asyncio
async def test_repeated_signals_tracked_once_per_symbol(app):
    await app.setup_event_subscriptions()

    for _ in range(50):
        await app.event_bus.publish(signal_event(auto_tradable=True))

    assert app.trailing_stops.get_stats() == {"tracked": 1, "symbols": ["BTC/USDT"]}


@pytest.mark.asyncio
async def test_price_update_closes_tracked_signal(app):
    """LONG from 100 with stop 99.3: a print at 99.0 exits."""
    await app.setup_event_subscriptions()
    stop_hits = []

    async def on_hit(event):
        stop_hits.append(event)

    await app.event_bus.subscribe("TrailingStopHit", on_hit)
    await app.event_bus.publish(signal_event(auto_tradable=True))

    await app.on_price("BTC/USDT", 99.0)

    assert app.trailing_stops.get_stats()["tracked"] == 0
    assert len(stop_hits) == 1
    assert stop_hits[0].exit_price == 99.0


@pytest.mark.asyncio
async def test_expired_signal_dropped_on_price_update(app, clock):
    await app.setup_event_subscriptions()
    signal = SignalGenerator(clock=clock).generate(Direction.LONG, 100.0, atr=2.0, confidence=0.9)
    await app.event_bus.publish(
        SignalGenerated(timestamp=START, metadata={}, signal=signal, breakdown={}, auto_tradable=True)
    )

    clock.advance(minutes=31)
    await app.on_price("BTC/USDT", 100.1)

    assert app.trailing_stops.get_stats()["tracked"] == 0


@pytest.mark.asyncio
async def test_subscriptions_installed_once(app):
    await app.setup_event_subscriptions()
    await app.setup_event_subscriptions()

    assert app.event_bus.subscriber_count("SignalGenerated") == 1
    assert app.event_bus.subscriber_count("BreakoutDetected") == 1
    assert app.event_bus.subscriber_count("TrailingStopHit") == 1


@pytest.mark.asyncio
async def test_tick_end_to_end(app):
    await app.setup_event_subscriptions()

    result = (await app.scheduler.tick())[0]

    assert result.published
    assert not result.degraded
    expected = 1 if result.auto_tradable else 0
    assert app.trailing_stops.get_stats()["tracked"] == expected


@pytest.mark.asyncio
async def test_start_stop(app):
    await app.start()
    assert app.is_running
    assert app.scheduler.is_running
    assert app.breakout_monitor.is_running

    await app.stop()
    assert not app.is_running
    assert not app.scheduler.is_running
    assert not app.breakout_monitor.is_running
    assert app.get_stats()["running"] is False


# ============================================================================
# Logging Tests
# ============================================================================

def test_json_formatter_includes_signal_extras():
    record = logging.LogRecord("signal_engine.test", logging.INFO, __file__, 1, "Signal: %s", ("LONG",), None)
    record.symbol = "BTC/USDT"
    record.confidence = 0.9

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Signal: LONG"
    assert entry["level"] == "INFO"
    assert entry["symbol"] == "BTC/USDT"
    assert entry["confidence"] == 0.9
    assert "direction" not in entry
