"""
Trailing Stop Manager for signal risk management.

Ratchet policy:
- Activates once unrealized profit reaches activation_profit_pct (1%)
- Stop trails current price by a fixed step of entry * trail_step_pct (0.3%)
- The stop only ever tightens and never crosses current price
- Exit when price reaches or passes the stop on the adverse side

One signal per symbol is tracked at a time; a tracked signal is dropped
once its expiry passes without a stop hit.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.settings import TrailingStopConfig
from ..core.events import EventBus, TrailingStopHit
from ..core.models import Direction, TradingSignal
from ..utils.time_utils import Clock, utc_now


logger = logging.getLogger(__name__)


def update_trailing_stop(
    entry_price: float,
    current_price: float,
    direction: Direction,
    current_stop: float,
    config: TrailingStopConfig = None
) -> float:
    """
    Advance a trailing stop.

    Args:
        entry_price: Position entry
        current_price: Latest price
        direction: LONG or SHORT
        current_stop: Stop in force
        config: Activation and step parameters

    Returns:
        New stop, or ``current_stop`` when not activated or not an improvement

    Raises:
        ValueError: direction is NEUTRAL
    """
    config = config or TrailingStopConfig()
    direction = Direction(direction)
    if direction == Direction.NEUTRAL:
        raise ValueError("Trailing stop needs a LONG or SHORT direction")

    if direction == Direction.LONG:
        profit_pct = (current_price - entry_price) / entry_price
    else:
        profit_pct = (entry_price - current_price) / entry_price

    if profit_pct < config.activation_profit_pct:
        return current_stop

    step = entry_price * config.trail_step_pct
    if direction == Direction.LONG:
        new_stop = current_price - step
        if current_stop < new_stop < current_price:
            return new_stop
        return current_stop

    new_stop = current_price + step
    if current_price < new_stop < current_stop:
        return new_stop
    return current_stop


def should_exit(current_price: float, stop_price: float, direction: Direction) -> bool:
    """True when price reached or passed the stop on the adverse side."""
    if Direction(direction) == Direction.LONG:
        return current_price <= stop_price
    return current_price >= stop_price


@dataclass
class TrackedSignal:
    """Open signal under trailing-stop supervision."""
    signal_id: str
    symbol: str
    direction: Direction
    entry_price: float
    stop_price: float
    last_price: float
    expires_at: Optional[datetime] = None


class TrailingStopManager:
    """
    Manages trailing stops for all open signals.

    Features:
    - Per-signal asyncio locks around every update
    - Initial stop taken from the signal's trailing config
    - Publishes TrailingStopHit on the event bus when a stop is hit
    """

    def __init__(
        self,
        config: TrailingStopConfig = None,
        event_bus: Optional[EventBus] = None,
        clock: Clock = utc_now
    ):
        """
        Initialize the trailing stop manager.

        Args:
            config: Ratchet parameters
            event_bus: Bus receiving TrailingStopHit events (optional)
            clock: Source of event timestamps
        """
        self.config = config or TrailingStopConfig()
        self.event_bus = event_bus
        self.clock = clock
        self.positions: Dict[str, TrackedSignal] = {}
        self.position_locks: Dict[str, asyncio.Lock] = {}
        self.logger = logging.getLogger(f"{__name__}.TrailingStopManager")

    async def add_signal(self, signal: TradingSignal) -> TrackedSignal:
        """
        Start tracking a signal.

        Args:
            signal: Signal whose trailing config holds the initial stop

        Returns:
            Tracking record (the existing one when the symbol is already tracked)
        """
        self.evict_expired()
        open_signal = self.get_by_symbol(signal.symbol)
        if open_signal is not None:
            self.logger.debug(
                f"[TSL] {signal.symbol} already tracked as {open_signal.signal_id}, {signal.id} ignored"
            )
            return open_signal

        initial_stop = signal.trailing_stop_config.get("initial_stop", signal.stop_loss)
        tracked = TrackedSignal(
            signal_id=signal.id,
            symbol=signal.symbol,
            direction=signal.direction,
            entry_price=signal.entry_price,
            stop_price=initial_stop,
            last_price=signal.entry_price,
            expires_at=signal.expires_at,
        )
        self.position_locks[signal.id] = asyncio.Lock()
        self.positions[signal.id] = tracked

        self.logger.info(
            f"[TSL] Added {signal.symbol} {signal.direction.value} | "
            f"Entry: {signal.entry_price:.8f} | Initial Stop: {initial_stop:.8f}"
        )
        return tracked

    async def update_on_tick(self, symbol: str, current_price: float) -> List[str]:
        """
        Update trailing stops for all signals of this symbol.

        Args:
            symbol: Symbol that received a price update
            current_price: New market price

        Returns:
            Ids of signals whose stop was hit on this tick
        """
        self.evict_expired()
        signal_ids = [sid for sid, tracked in self.positions.items() if tracked.symbol == symbol]
        hits: List[str] = []

        for signal_id in signal_ids:
            lock = self.position_locks.get(signal_id)
            if lock is None:
                continue
            async with lock:
                tracked = self.positions.get(signal_id)
                if tracked is None:
                    continue

                tracked.last_price = current_price
                new_stop = update_trailing_stop(
                    tracked.entry_price, current_price, tracked.direction, tracked.stop_price, self.config
                )
                if new_stop != tracked.stop_price:
                    self.logger.debug(
                        f"[TSL] {symbol} {tracked.direction.value} stop trailed to {new_stop:.8f} "
                        f"(price: {current_price:.8f})"
                    )
                    tracked.stop_price = new_stop

                if should_exit(current_price, tracked.stop_price, tracked.direction):
                    await self._trigger_stop(tracked, current_price)
                    hits.append(signal_id)

        return hits

    async def _trigger_stop(self, tracked: TrackedSignal, exit_price: float) -> None:
        """Publish the exit and stop tracking. Caller holds the signal lock."""
        if tracked.direction == Direction.LONG:
            pnl_pct = (exit_price - tracked.entry_price) / tracked.entry_price * 100
        else:
            pnl_pct = (tracked.entry_price - exit_price) / tracked.entry_price * 100

        self.logger.warning(
            f"[TSL] 🛑 STOP TRIGGERED: {tracked.symbol} {tracked.direction.value} | "
            f"Entry: {tracked.entry_price:.8f} | Exit: {exit_price:.8f} | P&L: {pnl_pct:+.2f}%"
        )

        self._forget(tracked.signal_id)

        if self.event_bus is not None:
            event = TrailingStopHit(
                timestamp=self.clock(),
                metadata={"pnl_pct": pnl_pct},
                signal_id=tracked.signal_id,
                symbol=tracked.symbol,
                direction=tracked.direction,
                entry_price=tracked.entry_price,
                exit_price=exit_price,
                stop_price=tracked.stop_price,
            )
            await self.event_bus.publish(event)

    async def remove_signal(self, signal_id: str) -> bool:
        """
        Stop tracking a signal.

        Returns:
            True if the signal was tracked
        """
        lock = self.position_locks.get(signal_id)
        if lock is None:
            return False
        async with lock:
            return self._forget(signal_id)

    def _forget(self, signal_id: str) -> bool:
        tracked = self.positions.pop(signal_id, None)
        self.position_locks.pop(signal_id, None)
        if tracked is not None:
            self.logger.info(f"[TSL] Removed {tracked.symbol} from trailing stop tracking")
        return tracked is not None

    def evict_expired(self) -> List[str]:
        """
        Stop tracking signals whose ``expires_at`` has passed.

        Returns:
            Ids of evicted signals
        """
        now = self.clock()
        expired = [
            sid for sid, tracked in self.positions.items()
            if tracked.expires_at is not None and tracked.expires_at <= now
        ]
        for signal_id in expired:
            self.logger.info(f"[TSL] {signal_id} expired")
            self._forget(signal_id)
        return expired

    def get_by_symbol(self, symbol: str) -> Optional[TrackedSignal]:
        return next((t for t in self.positions.values() if t.symbol == symbol), None)

    def get_stop(self, signal_id: str) -> Optional[float]:
        tracked = self.positions.get(signal_id)
        return tracked.stop_price if tracked else None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about tracked signals.

        Returns:
            Statistics dictionary
        """
        return {
            "tracked": len(self.positions),
            "symbols": sorted({t.symbol for t in self.positions.values()}),
        }
