"""
Emotional Filter - loss-streak cooldown and daily drawdown breaker.

State machine:
- A loss increments loss_streak and resets win_streak (a win does the reverse)
- loss_streak reaching max_loss_streak opens a cooldown window
- Every outcome updates the balance and the day's drawdown
- Drawdown at or beyond max_daily_drawdown_pct sets daily_stop_active until
  the UTC day changes

``can_open_trade`` is the single gate to consult before acting on a signal.
"""

import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from ..config.settings import EmotionalFilterConfig
from ..utils.time_utils import Clock, utc_day_key, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradingState:
    """Snapshot of the filter state."""
    loss_streak: int
    win_streak: int
    cooldown_until: Optional[datetime]
    day_start_balance: float
    current_balance: float
    day_key: str
    daily_stop_active: bool

    @property
    def drawdown_pct(self) -> float:
        if self.day_start_balance <= 0:
            return 0.0
        return (self.day_start_balance - self.current_balance) / self.day_start_balance * 100


@dataclass(frozen=True)
class TradeGate:
    """Answer of ``can_open_trade``."""
    allowed: bool
    reason: Optional[str] = None


class EmotionalFilter:
    """
    Injectable cooldown / drawdown gate.

    All methods are serialised by a lock; the clock is injectable so tests
    can move through cooldowns and day boundaries.
    """

    def __init__(self, config: EmotionalFilterConfig = None, clock: Clock = utc_now):
        self.config = config or EmotionalFilterConfig()
        self.clock = clock
        self._lock = threading.Lock()
        balance = self.config.initial_balance
        self._state = TradingState(
            loss_streak=0,
            win_streak=0,
            cooldown_until=None,
            day_start_balance=balance,
            current_balance=balance,
            day_key=utc_day_key(self.clock()),
            daily_stop_active=False,
        )
        self.logger = logging.getLogger(f"{__name__}.EmotionalFilter")

    # ========================================================================
    # Gate
    # ========================================================================

    def can_open_trade(self) -> TradeGate:
        """
        Whether a new trade may be opened.

        Cooldown is checked first; when the daily stop is active as well both
        reasons are reported.
        """
        with self._lock:
            self._roll_day()
            state = self._state
            now = self.clock()

            reasons = []
            if state.cooldown_until is not None and now < state.cooldown_until:
                minutes_left = math.ceil((state.cooldown_until - now).total_seconds() / 60)
                reasons.append(f"Cooldown active. {minutes_left} min left.")
            if state.daily_stop_active:
                reasons.append("Daily drawdown limit reached. Trading paused until next day.")

        if reasons:
            return TradeGate(allowed=False, reason=" ".join(reasons))
        return TradeGate(allowed=True)

    # ========================================================================
    # Mutations
    # ========================================================================

    def record_trade_outcome(self, pnl: float) -> TradingState:
        """
        Register a closed trade.

        Args:
            pnl: Realized profit (negative for a loss)

        Returns:
            State after the update
        """
        cfg = self.config
        with self._lock:
            self._roll_day()
            state = self._state
            balance = state.current_balance + pnl

            if pnl >= 0:
                state = replace(state, win_streak=state.win_streak + 1, loss_streak=0)
            else:
                state = replace(state, loss_streak=state.loss_streak + 1, win_streak=0)
                if state.loss_streak >= cfg.max_loss_streak:
                    until = self.clock() + timedelta(minutes=cfg.cooldown_minutes)
                    state = replace(state, cooldown_until=until)
                    self.logger.warning(
                        f"🧊 Loss streak {state.loss_streak}: cooldown until {until.isoformat()}"
                    )

            state = replace(state, current_balance=balance)
            if state.drawdown_pct >= cfg.max_daily_drawdown_pct and not state.daily_stop_active:
                state = replace(state, daily_stop_active=True)
                self.logger.warning(
                    f"🛑 Daily drawdown {state.drawdown_pct:.2f}% >= {cfg.max_daily_drawdown_pct:g}%: "
                    f"trading paused until next day"
                )

            self._state = state
            return state

    def set_balance(self, balance: float, start_of_day: bool = False) -> TradingState:
        """
        Set the running balance (e.g. after connecting to an exchange).

        Args:
            balance: Current balance
            start_of_day: Also use it as the day's drawdown baseline
        """
        with self._lock:
            self._roll_day()
            state = replace(self._state, current_balance=balance)
            if start_of_day:
                state = replace(state, day_start_balance=balance)
            self._state = state
            return state

    def get_state(self) -> TradingState:
        with self._lock:
            self._roll_day()
            return self._state

    def reset(self) -> TradingState:
        """Clear streaks, cooldown and the daily stop; the balance is kept."""
        with self._lock:
            balance = self._state.current_balance
            self._state = TradingState(
                loss_streak=0,
                win_streak=0,
                cooldown_until=None,
                day_start_balance=balance,
                current_balance=balance,
                day_key=utc_day_key(self.clock()),
                daily_stop_active=False,
            )
            self.logger.info("Emotional filter reset")
            return self._state

    def _roll_day(self) -> None:
        # Caller holds the lock
        today = utc_day_key(self.clock())
        if self._state.day_key != today:
            self._state = replace(
                self._state,
                day_key=today,
                day_start_balance=self._state.current_balance,
                daily_stop_active=False,
            )
            self.logger.info(f"New trading day {today}: daily stop cleared")
