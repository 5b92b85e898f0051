"""
Tape Scorer - volume delta, CVD divergence, aggression and whale flow.

Scoring (bull/bear sub-scores, each mirrored):
1. Raw volume delta: >20% +3, >10% +2
2. Tier-weighted delta (×1/×2/×5/×10 by notional): >25% +2
3. CVD divergence (first-5 vs last-5 trades): price up + CVD down -> bearish +4
4. Aggressor share >65% +2
5. Large-trade volume one side >1.3× the other +2
6. Trade count one side >1.3× the other +1
"""

import bisect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..config.settings import TapeConfig
from ..core.models import Direction, Trade
from ..utils.math_utils import imbalance
from .scoring import resolve_direction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TapeScore:
    """Tape scoring result."""
    direction: Direction
    score: float
    delta: float
    cvd_divergence: Optional[str] = None
    recent_delta: float = 0.0

    @property
    def metrics(self) -> Dict[str, Any]:
        return {
            "delta": self.delta,
            "cvd_divergence": self.cvd_divergence,
            "recent_delta": self.recent_delta,
        }

    def __repr__(self) -> str:
        return (
            f"TapeScore({self.direction.value}, score={self.score}, delta={self.delta:+.2f}, "
            f"cvd={self.cvd_divergence})"
        )


NEUTRAL_TAPE = TapeScore(direction=Direction.NEUTRAL, score=0, delta=0.0)


@dataclass
class TapeWindowsResult:
    """Direction voted across trailing tape windows."""
    direction: Direction
    long_weight: float
    short_weight: float
    windows: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class TapeScorer:
    """
    Scores the executed-trade tape into a direction and score.

    Pure and stateless: safe to call concurrently for many symbols.
    """

    def __init__(self, config: TapeConfig = None, name: str = "TapeScorer"):
        self.config = config or TapeConfig()
        self.name = name
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def trade_weight(self, notional: float) -> float:
        """Tier weight for a trade notional."""
        tier = bisect.bisect_right(self.config.tier_bounds, notional)
        return self.config.tier_weights[tier]

    def score(self, trades: Sequence[Trade]) -> TapeScore:
        """
        Score a trade tape.

        Args:
            trades: Executed trades in any order

        Returns:
            TapeScore (NEUTRAL with score 0 for an empty tape)
        """
        if not trades:
            return NEUTRAL_TAPE

        cfg = self.config
        ordered = sorted(trades, key=lambda t: t.time)

        buy_volume = sell_volume = 0.0
        buy_weighted = sell_weighted = 0.0
        buy_aggression = sell_aggression = 0.0
        cvd_steps: List[float] = []

        for i, trade in enumerate(ordered):
            notional = trade.notional
            weight = self.trade_weight(notional)
            if trade.is_buy:
                buy_volume += notional
                buy_weighted += notional * weight
                if i > 0 and trade.price >= ordered[i - 1].price:
                    buy_aggression += notional
            else:
                sell_volume += notional
                sell_weighted += notional * weight
                if i > 0 and trade.price <= ordered[i - 1].price:
                    sell_aggression += notional
            cvd_steps.append(notional if trade.is_buy else -notional)

        bullish = 0.0
        bearish = 0.0
        cvd_divergence: Optional[str] = None

        # 1. Raw volume delta
        delta = imbalance(buy_volume, sell_volume)
        if delta > cfg.delta_strong:
            bullish += 3
        elif delta > cfg.delta_medium:
            bullish += 2
        if delta < -cfg.delta_strong:
            bearish += 3
        elif delta < -cfg.delta_medium:
            bearish += 2

        # 2. Tier-weighted delta
        weighted_delta = imbalance(buy_weighted, sell_weighted)
        if weighted_delta > cfg.weighted_delta:
            bullish += 2
        if weighted_delta < -cfg.weighted_delta:
            bearish += 2

        # 3. CVD divergence
        if len(ordered) >= cfg.cvd_min_trades:
            cvd_divergence = self._cvd_divergence(ordered, cvd_steps)
            if cvd_divergence == "bearish":
                bearish += cfg.cvd_score
            elif cvd_divergence == "bullish":
                bullish += cfg.cvd_score

        # 4. Aggression
        aggression_total = buy_aggression + sell_aggression
        if aggression_total > 0:
            if buy_aggression / aggression_total > cfg.aggression_share:
                bullish += 2
            if sell_aggression / aggression_total > cfg.aggression_share:
                bearish += 2

        # 5. Large / whale trades
        if len(ordered) > cfg.large_min_trades:
            big_buy = big_sell = 0.0
            for trade in ordered:
                notional = trade.notional
                if notional >= cfg.large_trade_notional:
                    if trade.is_buy:
                        big_buy += notional * self.trade_weight(notional)
                    else:
                        big_sell += notional * self.trade_weight(notional)
            if big_buy + big_sell > 0:
                if big_buy > big_sell * cfg.large_ratio:
                    bullish += 2
                if big_sell > big_buy * cfg.large_ratio:
                    bearish += 2

        # 6. Trade count
        if len(ordered) > cfg.count_min_trades:
            buy_count = sum(1 for t in ordered if t.is_buy)
            sell_count = len(ordered) - buy_count
            if buy_count > sell_count * cfg.count_ratio:
                bullish += 1
            if sell_count > buy_count * cfg.count_ratio:
                bearish += 1

        recent_delta = 0.0
        if len(ordered) >= cfg.recent_min_trades:
            recent = ordered[len(ordered) // 2:]
            recent_delta = imbalance(
                sum(t.notional for t in recent if t.is_buy),
                sum(t.notional for t in recent if not t.is_buy),
            )

        direction, _ = resolve_direction(bullish, bearish, cfg.direction_ratio, cfg.min_confidence_pct)

        result = TapeScore(
            direction=direction,
            score=max(bullish, bearish),
            delta=delta,
            cvd_divergence=cvd_divergence,
            recent_delta=recent_delta,
        )
        self.logger.debug(f"{result} (bull={bullish}, bear={bearish}, trades={len(ordered)})")
        return result

    def _cvd_divergence(self, ordered: Sequence[Trade], cvd_steps: Sequence[float]) -> Optional[str]:
        """Compare price movement against signed volume over the first and last windows."""
        cfg = self.config
        window = cfg.cvd_window
        price_first = sum(t.price for t in ordered[:window]) / window
        price_last = sum(t.price for t in ordered[-window:]) / window
        cvd_first = sum(cvd_steps[:window])
        cvd_last = sum(cvd_steps[-window:])

        price_up = price_last > price_first * (1 + cfg.cvd_price_move)
        price_down = price_last < price_first * (1 - cfg.cvd_price_move)

        if price_up and cvd_last < cvd_first:
            return "bearish"
        if price_down and cvd_last > cvd_first:
            return "bullish"
        return None

    def score_windows(self, trades: Sequence[Trade], now_ms: float) -> TapeWindowsResult:
        """
        Vote a direction across trailing windows (1m/5m/15m/1h by default).

        Windows with too few trades are skipped. A side wins when its summed
        window weight beats the other by more than the configured margin.

        Args:
            trades: Executed trades
            now_ms: Current time in epoch milliseconds

        Returns:
            TapeWindowsResult (NEUTRAL when no side wins)
        """
        cfg = self.config
        long_weight = short_weight = 0.0
        windows: Dict[str, Dict[str, Any]] = {}

        for name, seconds in cfg.windows_seconds.items():
            window_trades = [t for t in trades if t.time >= now_ms - seconds * 1000]
            if len(window_trades) < cfg.window_min_trades:
                continue
            result = self.score(window_trades)
            windows[name] = {"direction": result.direction.value, "delta": result.delta}
            weight = cfg.window_weights.get(name, 0.0)
            if result.direction == Direction.LONG:
                long_weight += weight
            elif result.direction == Direction.SHORT:
                short_weight += weight

        if long_weight > short_weight + cfg.window_margin:
            direction = Direction.LONG
        elif short_weight > long_weight + cfg.window_margin:
            direction = Direction.SHORT
        else:
            direction = Direction.NEUTRAL

        return TapeWindowsResult(direction, long_weight, short_weight, windows)
