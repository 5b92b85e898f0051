"""
Decision Engine - per-symbol analysis pipeline.

One ``analyze`` call:
1. Rejects insufficient data with an explicit reason (never raises)
2. Scores order book, tape (plus trailing windows) and all timeframes
3. Runs the auxiliary detectors on the working timeframe
4. Merges domains through the confluence engine, then the MTF policy,
   falling back to a non-auto-tradable majority vote
5. Builds the signal and blends in the online model

Design Pattern: Composition
- Every scorer, the confluence engine, the generator and the online model
  are injected, so tests can swap any of them
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Sequence, Tuple, Union
import logging

from ..analytics import indicators
from ..analytics.candles import CandleScore, CandleScorer, NEUTRAL_CANDLES
from ..analytics.multi_timeframe import MTFAggregator, MTFResult
from ..analytics.order_book import NEUTRAL_ORDER_BOOK, OrderBookScorer
from ..analytics.patterns import (
    detect_ema_rsi_cross,
    detect_low_volume_dip,
    detect_lower_band_reversal,
    detect_patterns,
    detect_volatility_breakout,
)
from ..analytics.tape import NEUTRAL_TAPE, TapeScorer
from ..config.settings import EngineConfig, TradingMode
from ..core.models import Candle, Direction, MarketSnapshot, TradingSignal
from ..risk.sizing import volatility_size_multiplier
from ..utils.logger import get_performance_logger
from ..utils.math_utils import mean_or_default, safe_divide
from ..utils.time_utils import Clock, to_millis, utc_now
from .breakdown import AnalysisBreakdown
from .confluence import AuxiliarySignals, ConfluenceContext, ConfluenceEngine, ConfluenceResult
from .online_model import OnlineConfidenceModel, SignalFeatures, rsi_bucket
from .signal_generator import SignalGenerator

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """
    Outcome of one analysis.

    Attributes:
        symbol: Analysed symbol
        signal: Generated signal (None on insufficient data)
        breakdown: Per-component explanation
        analysis: Working-timeframe indicators (patterns, rsi, macd, bb, atr)
        mtf: Multi-timeframe aggregation
        confluence: Confluence (or fallback) result
        data_insufficient: Inputs were too thin to analyse
    """
    symbol: str
    signal: Optional[TradingSignal]
    breakdown: AnalysisBreakdown
    analysis: Dict[str, Any] = field(default_factory=dict)
    mtf: Optional[MTFResult] = None
    confluence: Optional[ConfluenceResult] = None
    data_insufficient: bool = False

    @property
    def auto_tradable(self) -> bool:
        return self.signal is not None and self.breakdown.auto_tradable

    def __repr__(self) -> str:
        if self.signal is None:
            return f"AnalysisResult({self.symbol}, no signal: {self.breakdown.reason})"
        return (
            f"AnalysisResult({self.symbol}, {self.signal.direction.value} "
            f"conf={self.signal.confidence:.2f}, auto={self.auto_tradable})"
        )


@dataclass(frozen=True)
class AuxiliaryReadings:
    """Working-timeframe detectors feeding patterns, policy and fallback."""
    patterns: Tuple[str, ...]
    signals: AuxiliarySignals
    emarsi: Optional[float] = None


class DecisionEngine:
    """
    Orchestrates scorers, confluence and signal construction for one symbol.

    Workflow:
    1. Insufficient data check (book levels per side, trades, working candles)
    2. Order book + tape + tape windows
    3. Multi-timeframe aggregation and auxiliary detectors
    4. Confluence -> MTF policy, or fallback vote
    5. Signal generation + online model adjustment
    """

    def __init__(
        self,
        config: EngineConfig = None,
        order_book_scorer: OrderBookScorer = None,
        tape_scorer: TapeScorer = None,
        candle_scorer: CandleScorer = None,
        mtf_aggregator: MTFAggregator = None,
        confluence_engine: ConfluenceEngine = None,
        signal_generator: SignalGenerator = None,
        online_model: OnlineConfidenceModel = None,
        clock: Clock = utc_now,
        min_book_levels: int = 5,
        min_trades: int = 5,
        min_candles: int = 50,
        name: str = "DecisionEngine"
    ):
        """
        Initialize decision engine.

        Args:
            config: Engine configuration (defaults everywhere if omitted)
            order_book_scorer: Order book scorer
            tape_scorer: Tape scorer
            candle_scorer: Candle scorer used by the MTF aggregator
            mtf_aggregator: Multi-timeframe aggregator
            confluence_engine: Confluence engine
            signal_generator: Signal generator
            online_model: Online confidence model
            clock: Source of "now" for tape windows and signal ids
            min_book_levels: Minimum levels per book side
            min_trades: Minimum trades on the tape
            min_candles: Minimum candles on the working timeframe
            name: Engine name for logging
        """
        self.config = config or EngineConfig()
        cfg = self.config
        self.order_book_scorer = order_book_scorer or OrderBookScorer(cfg.order_book)
        self.tape_scorer = tape_scorer or TapeScorer(cfg.tape)
        self.candle_scorer = candle_scorer or CandleScorer(cfg.candles)
        self.mtf_aggregator = mtf_aggregator or MTFAggregator(cfg.mtf, self.candle_scorer)
        self.confluence_engine = confluence_engine or ConfluenceEngine(cfg.confluence)
        self.signal_generator = signal_generator or SignalGenerator(cfg.signal, cfg.trailing_stop, clock=clock)
        self.online_model = online_model or OnlineConfidenceModel(cfg.online_model)
        self.clock = clock
        self.min_book_levels = min_book_levels
        self.min_trades = min_trades
        self.min_candles = min_candles
        self.name = name

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.performance = get_performance_logger(f"{__name__}.{name}")
        self.logger.info(
            f"DecisionEngine initialized: min inputs book={min_book_levels}/side, "
            f"trades={min_trades}, candles={min_candles}"
        )

    # ========================================================================
    # Analysis
    # ========================================================================

    def analyze(
        self,
        snapshot: MarketSnapshot,
        *,
        timeframe: str = "5m",
        mode: Union[TradingMode, str] = TradingMode.DEFAULT
    ) -> AnalysisResult:
        """
        Analyse one symbol.

        Args:
            snapshot: Order book, trades and candles per timeframe
            timeframe: Working timeframe for patterns, ATR and the signal
            mode: Signal tightness mode

        Returns:
            AnalysisResult; ``data_insufficient`` with confidence 0 and a
            reason when inputs are too thin
        """
        with self.performance.timer("analyze", symbol=snapshot.symbol, timeframe=timeframe):
            missing = self.insufficient_data_reason(snapshot, timeframe)
            if missing:
                self.logger.info(f"⚠️  {snapshot.symbol}: {missing}")
                return self._insufficient(snapshot.symbol, missing)
            return self._analyze(snapshot, timeframe, TradingMode(mode))

    def insufficient_data_reason(self, snapshot: MarketSnapshot, timeframe: str = "5m") -> Optional[str]:
        """Reason the snapshot cannot be analysed, or None."""
        book = snapshot.order_book
        candles = snapshot.candles(timeframe)
        if len(book.bids) < self.min_book_levels or len(book.asks) < self.min_book_levels:
            return (
                f"Insufficient data: order book {len(book.bids)}/{len(book.asks)} levels "
                f"(need {self.min_book_levels} per side)"
            )
        if len(snapshot.trades) < self.min_trades:
            return f"Insufficient data: {len(snapshot.trades)} trades (need {self.min_trades})"
        if len(candles) < self.min_candles:
            return f"Insufficient data: {len(candles)} {timeframe} candles (need {self.min_candles})"
        return None

    def _analyze(self, snapshot: MarketSnapshot, timeframe: str, mode: TradingMode) -> AnalysisResult:
        cfg = self.config
        symbol = snapshot.symbol
        working = snapshot.candles(timeframe)
        closes = indicators.closes_of(working)

        # Step 1: Order book and tape
        book_score = self.order_book_scorer.score(snapshot.order_book)
        tape_score = self.tape_scorer.score(snapshot.trades)
        windows = self.tape_scorer.score_windows(snapshot.trades, to_millis(self.clock()))
        tape_for_confluence = tape_score
        if windows.direction != Direction.NEUTRAL:
            tape_for_confluence = replace(tape_score, direction=windows.direction)

        # Step 2: Multi-timeframe and working-timeframe detectors
        mtf = self.mtf_aggregator.aggregate(snapshot.candles_by_timeframe)
        aux = self.auxiliary_readings(working)
        rsi = indicators.calculate_rsi(closes, cfg.candles.rsi_period)

        last = working[-1]
        volume_confirm, avg_volume = self._volume_confirmation(working)
        candle_signal = CandleScore(
            direction=mtf.direction if mtf.direction != Direction.NEUTRAL else mtf.first_direction,
            score=mtf.score,
            patterns=aux.patterns,
            rsi=rsi,
            volume_confirm=volume_confirm,
            bb_squeeze=False,
            high_volatility=safe_divide(last.range, last.close) > cfg.candles.high_volatility_range,
        )

        atr = indicators.calculate_atr(working, cfg.candles.atr_period)
        avg_atr = indicators.calculate_atr_average(working, cfg.candles.atr_period)
        size_multiplier = volatility_size_multiplier(atr, avg_atr, cfg.sizing)
        false_breakout_hint = self._false_breakout_hint(aux.patterns, last.volume, avg_volume)

        # Step 3: Confluence -> MTF policy, or fallback vote
        context = ConfluenceContext(
            spread_pct=book_score.spread_pct,
            tape_delta=tape_score.delta,
            recent_delta=tape_score.recent_delta,
            dom_score=book_score.dom_score,
            cvd_divergence=tape_score.cvd_divergence,
            volume_confirm=candle_signal.volume_confirm,
            bb_squeeze=candle_signal.bb_squeeze,
            high_volatility=candle_signal.high_volatility,
            false_breakout_hint=false_breakout_hint,
        )
        raw = self.confluence_engine.evaluate(book_score, tape_for_confluence, candle_signal, context)
        if raw.confluence:
            decision = self.confluence_engine.apply_mtf_policy(raw, mtf, aux.signals)
            reason = raw.reason
        else:
            decision = self.confluence_engine.fallback_vote(
                book_score.direction, tape_score.direction, candle_signal.direction, aux.signals
            )
            reason = decision.reason
            self.logger.debug(f"{symbol}: confluence failed ({raw.reason}), {decision.reason}")

        breakdown = AnalysisBreakdown.build(
            book_score,
            tape_score,
            candle_signal,
            decision.direction,
            decision.confidence,
            reason,
            multi_tf={**mtf.to_dict()},
            tape_windows=dict(windows.windows),
            volatility_multiplier=size_multiplier,
            auto_tradable=decision.auto_tradable,
        )

        # Step 4: Signal construction
        price_direction = "up"
        if len(closes) >= 5:
            price_direction = "up" if closes[-1] >= closes[-5] else "down"

        signal = self.signal_generator.generate(
            decision.direction,
            snapshot.entry_price(timeframe),
            atr=atr,
            mode=mode,
            patterns=aux.patterns or ("none",),
            rsi=rsi,
            confidence=decision.confidence,
            price_direction=price_direction,
            false_breakout_risk=false_breakout_hint,
            symbol=symbol,
            exchange=snapshot.exchange,
            timeframe=timeframe,
        )
        features = SignalFeatures(
            confidence=signal.confidence,
            direction=1 if signal.direction == Direction.LONG else 0,
            risk_reward=signal.risk_reward or 1.0,
            triggers_count=len(signal.triggers),
            rsi_bucket=rsi_bucket(rsi),
            volume_confirm=1.0 if volume_confirm else 0.0,
        )
        adjusted = round(self.online_model.adjust_confidence(signal.confidence, features), 2)
        signal = replace(signal, confidence=adjusted)

        macd = indicators.calculate_macd(
            closes, cfg.candles.macd_fast, cfg.candles.macd_slow, cfg.candles.macd_signal
        )
        bands = indicators.calculate_bollinger_bands(closes, cfg.candles.bb_period, cfg.candles.bb_std)
        result = AnalysisResult(
            symbol=symbol,
            signal=signal,
            breakdown=breakdown,
            analysis={
                "patterns": list(aux.patterns),
                "rsi": rsi,
                "macd": macd,
                "bb": bands,
                "atr": atr,
                "avg_atr": avg_atr,
                "emarsi": aux.emarsi,
            },
            mtf=mtf,
            confluence=decision,
        )
        self.logger.info(f"🎯 {result} | MTF {mtf.align_count}/{mtf.evaluated}")
        return result

    # ========================================================================
    # Working-Timeframe Detectors
    # ========================================================================

    def auxiliary_readings(self, candles: Sequence[Candle]) -> AuxiliaryReadings:
        """
        Patterns plus trend detectors on the working timeframe.

        Adds setup names (lower-band reversal, low-volume dip, EMA/RSI cross,
        volatility breakout, ADX trend, EMA-RSI oversold, supertrend) to the
        candlestick patterns.
        """
        cfg = self.config.candles
        patterns = list(detect_patterns(candles))
        closes = indicators.closes_of(candles)

        if detect_lower_band_reversal(candles):
            patterns.append("binhv45_lower_bb_reversal")
        if detect_low_volume_dip(candles):
            patterns.append("cluc_low_volume_dip")

        hlhb = detect_ema_rsi_cross(candles)
        if hlhb is not None:
            patterns.append("hlhb_ema_rsi_cross" if hlhb == Direction.LONG else "hlhb_ema_rsi_cross_bear")

        breakout = detect_volatility_breakout(candles)
        if breakout is not None:
            patterns.append("volatility_breakout" if breakout == Direction.LONG else "volatility_breakout_bear")

        adx = indicators.calculate_adx(candles, cfg.adx_period)
        if adx is not None and adx > cfg.adx_trend_threshold:
            patterns.append("adx_trend")

        emarsi = indicators.calculate_emarsi(closes)
        if emarsi is not None and emarsi <= cfg.emarsi_oversold:
            patterns.append("emarsi_oversold")

        supertrend = indicators.supertrend_direction(candles)
        if supertrend is not None:
            patterns.append(f"supertrend_{supertrend}")

        return AuxiliaryReadings(
            patterns=tuple(patterns),
            signals=AuxiliarySignals(hlhb=hlhb, volatility_breakout=breakout, supertrend=supertrend, adx=adx),
            emarsi=emarsi,
        )

    def _volume_confirmation(self, candles: Sequence[Candle]) -> Tuple[bool, float]:
        """(last volume above avg * ratio, average volume); average 0 with too few bars."""
        cfg = self.config.candles
        period = cfg.volume_avg_period
        if len(candles) < period:
            return False, 0.0
        avg_volume = mean_or_default(c.volume for c in candles[-period:])
        return candles[-1].volume > avg_volume * cfg.volume_confirm_ratio, avg_volume

    def _false_breakout_hint(self, patterns, current_volume: float, avg_volume: float) -> bool:
        """Breakout-type pattern on volume below avg * 1.3."""
        breakout_like = any("engulfing" in p or "breakout" in p for p in patterns)
        if not breakout_like or avg_volume <= 0:
            return False
        return current_volume < avg_volume * self.config.candles.false_breakout_volume

    def _insufficient(self, symbol: str, reason: str) -> AnalysisResult:
        breakdown = AnalysisBreakdown.build(
            NEUTRAL_ORDER_BOOK, NEUTRAL_TAPE, NEUTRAL_CANDLES, None, 0.0, reason
        )
        return AnalysisResult(symbol=symbol, signal=None, breakdown=breakdown, data_insufficient=True)

    def get_stats(self) -> Dict[str, Any]:
        """Engine configuration summary."""
        return {
            "name": self.name,
            "min_book_levels": self.min_book_levels,
            "min_trades": self.min_trades,
            "min_candles": self.min_candles,
            "online_model": self.online_model.get_stats(),
        }
