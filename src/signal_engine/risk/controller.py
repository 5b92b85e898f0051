"""
Risk Controller - pure limit checks for the execution collaborator.

Checks:
- Open positions in total and per symbol
- Trades per UTC calendar day (counter keyed by day, reset on rollover)
- Maximum holding duration
- Balance warning / critical thresholds

``record_trade`` is the only mutation.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config.settings import RiskLimitsConfig
from ..utils.time_utils import Clock, utc_day_key, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskCheck:
    """Outcome of a limit check."""
    ok: bool
    reason: Optional[str] = None
    count: Optional[int] = None
    hours: Optional[float] = None


@dataclass(frozen=True)
class BalanceCheck:
    """Balance level: 'ok', 'warning' or 'critical'."""
    level: str
    reason: Optional[str] = None


class RiskController:
    """
    Position, daily-trade, duration and balance limits.

    One instance is shared by everything that opens trades; a lock keeps the
    daily counter consistent across threads.
    """

    def __init__(self, config: RiskLimitsConfig = None, clock: Clock = utc_now):
        self.config = config or RiskLimitsConfig()
        self.clock = clock
        self._daily_trades: Dict[str, int] = {}
        self._last_day: Optional[str] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(f"{__name__}.RiskController")

    def check_position_limits(self, current_positions: int, current_for_symbol: int, symbol: str) -> RiskCheck:
        """
        Check open position limits.

        Args:
            current_positions: Open positions across all symbols
            current_for_symbol: Open positions on ``symbol``
            symbol: Symbol about to be traded
        """
        cfg = self.config
        if current_positions >= cfg.max_positions_total:
            return RiskCheck(
                ok=False,
                reason=f"max_positions_total: {current_positions} >= {cfg.max_positions_total}",
            )
        if current_for_symbol >= cfg.max_positions_per_symbol:
            return RiskCheck(
                ok=False,
                reason=f"max_positions_per_symbol ({symbol}): {current_for_symbol} >= {cfg.max_positions_per_symbol}",
            )
        return RiskCheck(ok=True)

    def check_daily_trade_limit(self) -> RiskCheck:
        """Not ok once today's trade count reaches ``max_daily_trades``."""
        with self._lock:
            count = self._today_count()
        limit = self.config.max_daily_trades
        if count >= limit:
            return RiskCheck(ok=False, reason=f"max_daily_trades: {count} >= {limit}", count=count)
        return RiskCheck(ok=True, count=count)

    def record_trade(self) -> int:
        """
        Count a trade against today's limit.

        Returns:
            Today's count after recording
        """
        with self._lock:
            count = self._today_count() + 1
            self._daily_trades[self._last_day] = count
        self.logger.debug(f"Recorded trade {count}/{self.config.max_daily_trades} for {self._last_day}")
        return count

    def check_position_duration(self, open_time: datetime) -> RiskCheck:
        """
        Check holding time against ``max_position_duration_hours``.

        Args:
            open_time: Position open time (naive values are treated as UTC)
        """
        max_hours = self.config.max_position_duration_hours
        if open_time.tzinfo is None:
            open_time = open_time.replace(tzinfo=timezone.utc)
        hours = (self.clock() - open_time).total_seconds() / 3600
        if hours > max_hours:
            return RiskCheck(ok=False, hours=hours, reason=f"position_duration: {hours:.1f}h > {max_hours:g}h")
        return RiskCheck(ok=True, hours=hours)

    def check_balance(self, balance: float) -> BalanceCheck:
        """Classify balance against the critical and warning thresholds."""
        cfg = self.config
        if balance < cfg.min_balance_critical:
            return BalanceCheck(level="critical", reason=f"balance {balance:g} < {cfg.min_balance_critical:g}")
        if balance < cfg.min_balance_warning:
            return BalanceCheck(level="warning", reason=f"balance {balance:g} < {cfg.min_balance_warning:g}")
        return BalanceCheck(level="ok")

    def update_config(self, **changes: Any) -> RiskLimitsConfig:
        """
        Replace selected limits (validated).

        Raises:
            pydantic.ValidationError: the merged limits are invalid
        """
        with self._lock:
            merged = {**self.config.model_dump(), **changes}
            self.config = RiskLimitsConfig(**merged)
        self.logger.info(f"Risk limits updated: {changes}")
        return self.config

    def get_config(self) -> RiskLimitsConfig:
        return self.config.model_copy()

    def _today_count(self) -> int:
        # Caller holds the lock
        today = utc_day_key(self.clock())
        if self._last_day != today:
            self._daily_trades = {}
            self._last_day = today
        return self._daily_trades.get(today, 0)
