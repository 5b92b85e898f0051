"""
Signal Generator - build an executable TradingSignal.

Stop placement:
- With ATR: distance = min(ATR * 1.35, entry * sl%), sl% 0.55% for
  futures25x/scalping, 0.7% otherwise
- Without ATR: fixed sl% per mode (0.55% futures25x, 0.7% scalping, 1.3% default)

Targets are three R-multiples: rr_min, rr_min + 1.2, rr_min + 2.5
(rr_min 2.0, 1.5 in scalping mode). Reported risk:reward uses TP3.

Confidence is only ever reduced here: low R:R, failed-signal hint (RSI in an
extreme zone while price runs against the implied reversal) and explicit
false breakout risk.
"""

import itertools
import logging
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple, Union

from ..config.settings import SignalConfig, TradingMode, TrailingStopConfig
from ..core.models import Direction, TradingSignal
from ..utils.math_utils import clamp, price_decimals_for, round_price, safe_divide
from ..utils.time_utils import Clock, utc_now

logger = logging.getLogger(__name__)


class SignalGenerator:
    """
    Construct trading signals with stop, target ladder and trailing config.

    Ids have the form ``sig_YYYYMMDD_NNN``; the counter is per generator
    instance and the date comes from the injected clock.
    """

    def __init__(
        self,
        config: SignalConfig = None,
        trailing_config: TrailingStopConfig = None,
        clock: Clock = utc_now,
        name: str = "SignalGenerator"
    ):
        """
        Initialize signal generator.

        Args:
            config: Stop/target/confidence parameters
            trailing_config: Trailing policy embedded in every signal
            clock: Source of "now" (UTC)
            name: Logger suffix
        """
        self.config = config or SignalConfig()
        self.trailing_config = trailing_config or TrailingStopConfig()
        self.clock = clock
        self.name = name
        self._counter = itertools.count(1)
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    # ========================================================================
    # Stop / Target Construction
    # ========================================================================

    def rr_min(self, mode: Union[TradingMode, str]) -> float:
        """Minimum R multiple for TP1 in the given mode."""
        if TradingMode(mode) == TradingMode.SCALPING:
            return self.config.rr_min_scalping
        return self.config.rr_min

    def levels(
        self,
        direction: Direction,
        entry_price: float,
        atr: Optional[float] = None,
        mode: Union[TradingMode, str] = TradingMode.DEFAULT
    ) -> Tuple[float, Tuple[float, float, float]]:
        """
        Unrounded stop and target ladder.

        Args:
            direction: LONG or SHORT
            entry_price: Entry price (> 0)
            atr: Average true range, ignored when missing or non-positive
            mode: Trading mode

        Returns:
            (stop_loss, (tp1, tp2, tp3))
        """
        cfg = self.config
        mode = TradingMode(mode)
        rr_min = self.rr_min(mode)
        sign = 1.0 if direction == Direction.LONG else -1.0

        if atr is not None and atr > 0:
            tight = mode in (TradingMode.FUTURES_25X, TradingMode.SCALPING)
            sl_pct = cfg.atr_sl_pct_tight if tight else cfg.atr_sl_pct_default
            risk = min(atr * cfg.atr_multiplier, entry_price * sl_pct)
            stop = entry_price - sign * risk
            targets = tuple(
                entry_price + sign * risk * multiple
                for multiple in (rr_min, rr_min + cfg.tp2_offset, rr_min + cfg.tp3_offset)
            )
        else:
            sl_pct = cfg.fixed_sl_pct.get(mode.value, cfg.fixed_sl_pct.get(TradingMode.DEFAULT.value, 0.013))
            tp_pct = sl_pct * rr_min
            stop = entry_price * (1 - sign * sl_pct)
            targets = tuple(entry_price * (1 + sign * tp_pct * leg) for leg in cfg.fixed_tp_legs[:3])

        return stop, targets

    # ========================================================================
    # Triggers / Confidence
    # ========================================================================

    def triggers(
        self,
        patterns: Sequence[str],
        rsi: Optional[float],
        mode: Union[TradingMode, str] = TradingMode.DEFAULT
    ) -> List[str]:
        """Pattern triggers plus RSI reversal triggers for the mode."""
        cfg = self.config
        triggers = [p for p in patterns if p != "none"]
        if TradingMode(mode) == TradingMode.SCALPING:
            low, high = cfg.rsi_oversold_scalping, cfg.rsi_overbought_scalping
        else:
            low, high = cfg.rsi_oversold, cfg.rsi_overbought
        if rsi is not None and rsi < low:
            triggers.append("rsi_oversold_reversal")
        if rsi is not None and rsi > high:
            triggers.append("rsi_overbought_reversal")
        return triggers

    def is_failed_signal(self, rsi: Optional[float], price_direction: Optional[str], direction: Direction) -> bool:
        """
        RSI sits in an extreme zone while price contradicts the reversal.

        LONG with RSI <= 30 and price falling, or SHORT with RSI >= 70 and
        price rising.
        """
        if rsi is None or price_direction is None:
            return False
        cfg = self.config
        return (
            (rsi <= cfg.failed_rsi_low and price_direction == "down" and direction == Direction.LONG)
            or (rsi >= cfg.failed_rsi_high and price_direction == "up" and direction == Direction.SHORT)
        )

    def confidence_level(self, confidence: float) -> str:
        """
        Bucket a confidence value.

        Returns:
            'high' (>= 0.85), 'medium' (>= 0.70) or 'low'
        """
        if confidence >= self.config.high_confidence:
            return "high"
        if confidence >= self.config.medium_confidence:
            return "medium"
        return "low"

    def next_id(self) -> str:
        day = self.clock().strftime("%Y%m%d")
        return f"sig_{day}_{next(self._counter):03d}"

    # ========================================================================
    # Generation
    # ========================================================================

    def generate(
        self,
        direction: Union[Direction, str],
        entry_price: float,
        *,
        atr: Optional[float] = None,
        mode: Union[TradingMode, str] = TradingMode.DEFAULT,
        patterns: Sequence[str] = (),
        rsi: Optional[float] = None,
        confidence: Optional[float] = None,
        price_direction: Optional[str] = None,
        false_breakout_risk: bool = False,
        symbol: str = "BTC/USDT",
        exchange: str = "binance",
        timeframe: str = "5m"
    ) -> TradingSignal:
        """
        Generate a trading signal.

        Args:
            direction: LONG or SHORT
            entry_price: Entry price (> 0)
            atr: Average true range of the working timeframe
            mode: 'default', 'scalping' or 'futures25x'
            patterns: Detected pattern names ('none' is ignored)
            rsi: RSI of the working timeframe
            confidence: Upstream confidence; defaults to 0.7 + 0.05 per trigger
            price_direction: 'up' / 'down' over the last bars
            false_breakout_risk: Breakout pattern without volume
            symbol: Trading pair
            exchange: Exchange name
            timeframe: Working timeframe

        Returns:
            Immutable TradingSignal

        Raises:
            ValueError: direction is not LONG/SHORT or entry price is not positive
        """
        direction = Direction(direction)
        if direction == Direction.NEUTRAL:
            raise ValueError("Signal direction must be LONG or SHORT")
        if entry_price <= 0:
            raise ValueError(f"Entry price must be positive, got {entry_price}")

        cfg = self.config
        mode = TradingMode(mode)
        stop, targets = self.levels(direction, entry_price, atr, mode)

        risk = abs(entry_price - stop)
        reward = abs(targets[2] - entry_price)
        risk_reward = safe_divide(reward, risk)

        triggers = self.triggers(patterns, rsi, mode)
        if confidence is None:
            confidence = min(cfg.max_confidence, cfg.base_confidence + len(triggers) * cfg.per_trigger)

        if 0 < risk_reward < cfg.rr_min and mode != TradingMode.SCALPING:
            confidence = max(cfg.rr_penalty_floor, confidence - cfg.rr_penalty_per_unit * (cfg.rr_min - risk_reward))

        if self.is_failed_signal(rsi, price_direction, direction):
            confidence = max(cfg.failed_signal_floor, confidence - cfg.failed_signal_penalty)

        if false_breakout_risk:
            confidence = max(cfg.false_breakout_floor, confidence - cfg.false_breakout_penalty)
            triggers.append("false_breakout_risk")

        now = self.clock()
        decimals = price_decimals_for(risk, cfg.price_decimals)
        signal = TradingSignal(
            id=self.next_id(),
            timestamp=now,
            symbol=symbol,
            exchange=exchange,
            direction=direction,
            entry_price=entry_price,
            stop_loss=round_price(stop, decimals),
            take_profit=tuple(round_price(tp, decimals) for tp in targets),
            risk_reward=round(risk_reward, 1),
            confidence=round(clamp(confidence, 0.0, 1.0), 2),
            timeframe=timeframe,
            triggers=tuple(triggers) if triggers else ("manual",),
            expires_at=now + timedelta(minutes=cfg.expiry_minutes),
            trailing_stop_config={
                "initial_stop": stop,
                "trail_step_pct": self.trailing_config.trail_step_pct,
                "activation_profit_pct": self.trailing_config.activation_profit_pct,
            },
        )

        self.logger.debug(f"Generated {signal} [{self.confidence_level(signal.confidence)}]")
        return signal
