"""
Unit tests for the EventBus.

Tests:
- Event publishing and subscription
- Routing by event class name
- Error isolation
- Unsubscribe
"""

import asyncio

import pytest

from signal_engine.core.events import BreakoutDetected, EventBus, SignalGenerated, TrailingStopHit
from signal_engine.core.models import Direction

from factories import START


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def stop_hit_event():
    return TrailingStopHit(
        timestamp=START,
        metadata={},
        signal_id="sig_20240301_001",
        symbol="BTC/USDT",
        direction=Direction.LONG,
        entry_price=100.0,
        exit_price=101.1,
        stop_price=101.2,
    )


# ============================================================================
# Basic Functionality Tests
# ============================================================================

@pytest.mark.asyncio
async def test_subscribe_and_publish(event_bus, stop_hit_event):
    """Test subscribers receive published events."""
    received = []

    async def handler(event):
        received.append(event)

    await event_bus.subscribe("TrailingStopHit", handler)
    errors = await event_bus.publish(stop_hit_event)

    assert errors == []
    assert received == [stop_hit_event]
    assert event_bus.subscriber_count("TrailingStopHit") == 1


@pytest.mark.asyncio
async def test_events_routed_by_class_name(event_bus, stop_hit_event):
    """Test subscribers of other event types are not called."""
    signals = []

    async def on_signal(event):
        signals.append(event)

    await event_bus.subscribe(SignalGenerated.__name__, on_signal)
    await event_bus.subscribe(BreakoutDetected.__name__, on_signal)
    await event_bus.publish(stop_hit_event)

    assert signals == []


@pytest.mark.asyncio
async def test_publish_without_subscribers(event_bus, stop_hit_event):
    assert await event_bus.publish(stop_hit_event) == []


@pytest.mark.asyncio
async def test_all_subscribers_run_concurrently(event_bus, stop_hit_event):
    """Test a slow subscriber does not serialize the others."""
    started = []
    gate = asyncio.Event()

    async def slow(event):
        started.append("slow")
        await gate.wait()

    async def fast(event):
        started.append("fast")
        gate.set()

    await event_bus.subscribe("TrailingStopHit", slow)
    await event_bus.subscribe("TrailingStopHit", fast)

    await asyncio.wait_for(event_bus.publish(stop_hit_event), timeout=1.0)

    assert sorted(started) == ["fast", "slow"]


# ============================================================================
# Error Handling Tests
# ============================================================================

@pytest.mark.asyncio
async def test_failing_subscriber_isolated(event_bus, stop_hit_event):
    """Test one failing subscriber neither aborts the publish nor the others."""
    received = []

    async def broken(event):
        raise RuntimeError("handler crashed")

    async def healthy(event):
        received.append(event)

    await event_bus.subscribe("TrailingStopHit", broken)
    await event_bus.subscribe("TrailingStopHit", healthy)

    errors = await event_bus.publish(stop_hit_event)

    assert len(errors) == 1
    assert str(errors[0]) == "handler crashed"
    assert received == [stop_hit_event]


@pytest.mark.asyncio
async def test_sync_callable_reported_as_error(event_bus, stop_hit_event):
    """Test a non-coroutine subscriber is reported, not raised."""
    def not_async(event):
        return None

    await event_bus.subscribe("TrailingStopHit", not_async)

    errors = await event_bus.publish(stop_hit_event)

    assert len(errors) == 1


# ============================================================================
# Unsubscribe Tests
# ============================================================================

@pytest.mark.asyncio
async def test_unsubscribe(event_bus, stop_hit_event):
    received = []

    async def handler(event):
        received.append(event)

    await event_bus.subscribe("TrailingStopHit", handler)

    assert await event_bus.unsubscribe("TrailingStopHit", handler)
    assert not await event_bus.unsubscribe("TrailingStopHit", handler)

    await event_bus.publish(stop_hit_event)
    assert received == []
    assert event_bus.subscriber_count("TrailingStopHit") == 0
