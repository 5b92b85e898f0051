"""
Event bus and event definitions for signal distribution.

Signals, breakouts and trailing-stop exits are published here; downstream
collaborators (broadcast, persistence, execution) subscribe by event class
name. A failing subscriber is logged and never aborts the publisher.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List
from collections import defaultdict
import asyncio
import inspect
import logging

from .models import BreakoutSignal, Direction, TradingSignal


logger = logging.getLogger(__name__)


# ============================================================================
# Base Event Classes
# ============================================================================

@dataclass
class Event:
    """Base class for all events."""
    timestamp: datetime
    metadata: Dict[str, Any]


# ============================================================================
# Signal Events
# ============================================================================

@dataclass
class SignalGenerated(Event):
    """Analysis produced a signal for a symbol."""
    signal: TradingSignal
    breakdown: Dict[str, Any]
    auto_tradable: bool = True


@dataclass
class BreakoutDetected(Event):
    """A level breakout was confirmed."""
    symbol: str
    breakout: BreakoutSignal


# ============================================================================
# Position Events
# ============================================================================

@dataclass
class TrailingStopHit(Event):
    """Price reached the trailing stop of a tracked signal."""
    signal_id: str
    symbol: str
    direction: Direction
    entry_price: float
    exit_price: float
    stop_price: float


# ============================================================================
# Event Bus
# ============================================================================

Subscriber = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    In-process publish/subscribe keyed by event class name.

    Subscribers of one event run concurrently; their exceptions are logged
    and returned to the publisher instead of raised.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"{__name__}.EventBus")

    async def subscribe(self, event_type: str, callback: Subscriber) -> None:
        """
        Register ``callback`` for events whose class name is ``event_type``.

        Args:
            event_type: Event class name (e.g. ``"SignalGenerated"``)
            callback: Coroutine function taking the event
        """
        async with self._lock:
            self._subscribers[event_type].append(callback)
        self.logger.debug(f"{_callback_name(callback)} subscribed to {event_type}")

    async def unsubscribe(self, event_type: str, callback: Subscriber) -> bool:
        """Returns True if ``callback`` was registered for ``event_type``."""
        async with self._lock:
            callbacks = self._subscribers.get(event_type)
            if not callbacks or callback not in callbacks:
                return False
            callbacks.remove(callback)
            return True

    async def publish(self, event: Event) -> List[Exception]:
        """
        Deliver ``event`` to every subscriber of its class.

        Returns:
            Exceptions raised by subscribers, in subscription order
        """
        event_type = type(event).__name__
        async with self._lock:
            callbacks = list(self._subscribers.get(event_type, ()))

        outcomes = await asyncio.gather(
            *(self._deliver(callback, event) for callback in callbacks),
            return_exceptions=True,
        )

        errors: List[Exception] = []
        for callback, outcome in zip(callbacks, outcomes):
            if isinstance(outcome, Exception):
                self.logger.error(f"❌ {event_type} subscriber {_callback_name(callback)} failed: {outcome}")
                errors.append(outcome)
        return errors

    @staticmethod
    async def _deliver(callback: Subscriber, event: Event) -> None:
        result = callback(event)
        if not inspect.isawaitable(result):
            raise TypeError(f"{_callback_name(callback)} is not a coroutine function")
        await result

    def subscriber_count(self, event_type: str) -> int:
        return len(self._subscribers.get(event_type, ()))


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)
