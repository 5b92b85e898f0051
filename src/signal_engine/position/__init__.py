"""Trailing stop ratchet and the manager tracking open signals."""

from .trailing_stop import TrailingStopManager, TrackedSignal, should_exit, update_trailing_stop

__all__ = [
    "TrailingStopManager",
    "TrackedSignal",
    "should_exit",
    "update_trailing_stop",
]
