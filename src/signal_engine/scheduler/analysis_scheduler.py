"""
Analysis Scheduler - periodic multi-symbol analysis loop.

Each tick, per watched symbol:
1. Skip the symbol if its previous analysis is still running
2. Fetch order book, trades and every configured timeframe in parallel
   (a failed fetch degrades to empty input and is recorded)
3. Hand the latest price to the price listener (trailing stops)
4. Run the decision engine
5. Gate auto-trading through the emotional filter
6. Publish ``SignalGenerated`` unless the scheduler was stopped meanwhile

Every tick returns one ``TickResult`` per symbol so callers can assert on
degraded cycles without reading logs.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..config.settings import SchedulerConfig
from ..core.events import EventBus, SignalGenerated
from ..core.models import Candle, MarketSnapshot, OrderBookSnapshot, TradingSignal
from ..decision.engine import AnalysisResult, DecisionEngine
from ..market_data.provider import MarketDataProvider
from ..risk.emotional_filter import EmotionalFilter
from ..utils.logger import get_signal_logger
from ..utils.time_utils import Clock, utc_now

logger = logging.getLogger(__name__)

PriceListener = Callable[[str, float], Awaitable[None]]


# ============================================================================
# Results
# ============================================================================

@dataclass
class TickResult:
    """
    Outcome of one symbol in one tick.

    Attributes:
        symbol: Analysed symbol
        analysis: Engine result (None when skipped or the engine failed)
        errors: Fetch, engine and subscriber failures of this cycle
        skipped: Previous analysis of the symbol was still in flight
        discarded: Scheduler stopped before the result could be emitted
        auto_tradable: Signal passed confluence and the emotional filter
        published: SignalGenerated was published
        last_price: Latest price seen for the symbol (None when unknown)
    """
    symbol: str
    analysis: Optional[AnalysisResult] = None
    errors: List[str] = field(default_factory=list)
    skipped: bool = False
    discarded: bool = False
    auto_tradable: bool = False
    published: bool = False
    last_price: Optional[float] = None

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    @property
    def signal(self) -> Optional[TradingSignal]:
        return self.analysis.signal if self.analysis is not None else None


@dataclass(frozen=True)
class RankedSignal:
    """Signal candidate for automatic selection."""
    signal: TradingSignal
    score: float
    align_count: int


def select_best_signal(
    results: Iterable[AnalysisResult],
    min_confidence: float = 0.82
) -> Optional[RankedSignal]:
    """
    Pick the best signal across symbols.

    Candidates need confidence >= ``min_confidence``; they are scored as
    confidence * 0.5 + min(rr / 3, 1) * 0.35 + min(1.2, 0.9 + align * 0.06) * 0.15.

    Args:
        results: Analysis results (results without a signal are ignored)
        min_confidence: Minimum signal confidence

    Returns:
        Highest scoring candidate or None
    """
    ranked: List[RankedSignal] = []
    for result in results:
        signal = result.signal
        if signal is None or signal.confidence < min_confidence:
            continue
        align_count = result.mtf.align_count if result.mtf is not None else 0
        confluence_bonus = min(1.2, 0.9 + align_count * 0.06)
        score = (
            signal.confidence * 0.5
            + min((signal.risk_reward or 1.0) / 3, 1.0) * 0.35
            + confluence_bonus * 0.15
        )
        ranked.append(RankedSignal(signal=signal, score=score, align_count=align_count))

    if not ranked:
        return None
    return max(ranked, key=lambda r: r.score)


# ============================================================================
# Scheduler
# ============================================================================

class AnalysisScheduler:
    """
    Cancellable periodic analysis task.

    ``tick()`` runs one cycle and can be awaited directly by tests;
    ``start()`` / ``stop()`` manage the background loop.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        provider: MarketDataProvider,
        event_bus: Optional[EventBus] = None,
        config: SchedulerConfig = None,
        emotional_filter: Optional[EmotionalFilter] = None,
        clock: Clock = utc_now,
        stop_timeout: float = 10.0,
        price_listener: Optional[PriceListener] = None,
        name: str = "AnalysisScheduler"
    ):
        """
        Initialize scheduler.

        Args:
            engine: Decision engine
            provider: Market data source
            event_bus: Where signals are published (optional)
            config: Interval, symbols, timeframe, mode and fetch sizes
            emotional_filter: Gate for auto-trading (optional)
            clock: Source of event timestamps
            stop_timeout: Seconds stop() waits for an in-flight tick
            price_listener: Awaited with (symbol, price) after every fetch
            name: Scheduler name for logging
        """
        self.engine = engine
        self.provider = provider
        self.event_bus = event_bus
        self.config = config or SchedulerConfig()
        self.emotional_filter = emotional_filter
        self.clock = clock
        self.stop_timeout = stop_timeout
        self.price_listener = price_listener
        self.name = name

        self._wake: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self._in_flight: Set[str] = set()

        self.ticks = 0
        self.signals_published = 0
        self.error_count = 0

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.signal_logger = get_signal_logger(f"{__name__}.{name}")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def candle_limits(self) -> Dict[str, int]:
        return dict(self.engine.config.mtf.candle_limits)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        """Start the periodic loop (no-op when already running)."""
        if self.is_running:
            self.logger.warning(f"{self.name} already running")
            return
        self._stopped = False
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        self.logger.info(
            f"🚀 {self.name} started: every {self.config.interval_seconds:g}s, "
            f"symbols={self.config.symbols}, timeframe={self.config.primary_timeframe}"
        )

    async def stop(self) -> None:
        """
        Stop the loop.

        The pending sleep is cancelled at once. A tick that is still fetching
        is allowed to finish (up to ``stop_timeout``) and its results are
        discarded before emission.
        """
        self._stopped = True
        if self._wake is not None:
            self._wake.set()

        task, self._task = self._task, None
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
            if not done:
                self.logger.warning(f"{self.name}: tick did not finish in {self.stop_timeout:g}s, cancelling")
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self.logger.info(f"{self.name} stopped after {self.ticks} ticks")

    async def _run(self) -> None:
        while not self._stopped:
            results = await self.tick()
            degraded = [r.symbol for r in results if r.degraded]
            if degraded:
                self.logger.warning(f"Degraded cycle for {degraded}")
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.interval_seconds)
            except asyncio.TimeoutError:
                pass

    # ========================================================================
    # Cycle
    # ========================================================================

    async def tick(self, symbols: Optional[Iterable[str]] = None) -> List[TickResult]:
        """
        Run one analysis cycle.

        Args:
            symbols: Symbols to analyse (defaults to the configured list)

        Returns:
            One TickResult per symbol, in input order
        """
        self.ticks += 1
        symbols = list(symbols) if symbols is not None else list(self.config.symbols)
        return list(await asyncio.gather(*(self.analyze_symbol(s) for s in symbols)))

    async def analyze_symbol(self, symbol: str) -> TickResult:
        """Analyse one symbol under the in-flight guard."""
        if symbol in self._in_flight:
            self.logger.debug(f"{symbol}: previous analysis still running, skipped")
            return TickResult(symbol=symbol, skipped=True)

        self._in_flight.add(symbol)
        try:
            return await self._analyze_symbol(symbol)
        finally:
            self._in_flight.discard(symbol)

    async def _analyze_symbol(self, symbol: str) -> TickResult:
        result = TickResult(symbol=symbol)
        snapshot, fetch_errors = await self.fetch_snapshot(symbol)
        result.errors.extend(fetch_errors)

        if self._stopped:
            result.discarded = True
            return result

        await self._notify_price(snapshot, result)

        try:
            analysis = self.engine.analyze(
                snapshot, timeframe=self.config.primary_timeframe, mode=self.config.mode
            )
        except Exception as e:
            self.logger.error(f"Analysis failed for {symbol}: {e}", exc_info=True)
            result.errors.append(f"analysis: {e}")
            self.error_count += 1
            return result
        result.analysis = analysis

        if analysis.signal is None:
            self.signal_logger.rejected(symbol, analysis.breakdown.reason)
            return result

        # Results of cycles that outlived stop() are never emitted
        if self._stopped:
            result.discarded = True
            return result

        result.auto_tradable = self._auto_tradable(analysis)
        await self._publish(analysis, result)
        return result

    async def fetch_snapshot(self, symbol: str) -> Tuple[MarketSnapshot, List[str]]:
        """
        Fetch all inputs for ``symbol`` in parallel.

        Returns:
            (snapshot, errors); failed fetches leave their input empty
        """
        cfg = self.config
        limits = self.candle_limits
        timeframes = list(limits)

        fetches = [
            self.provider.get_order_book(symbol, cfg.order_book_depth),
            self.provider.get_trades(symbol, cfg.trades_limit),
            *(self.provider.get_ohlcv(symbol, tf, limits[tf]) for tf in timeframes),
        ]
        outcomes = await asyncio.gather(*fetches, return_exceptions=True)
        labels = ["order_book", "trades", *(f"ohlcv {tf}" for tf in timeframes)]

        errors: List[str] = []
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, Exception):
                self.logger.warning(f"{symbol}: {label} fetch failed: {outcome}")
                errors.append(f"{label}: {outcome}")
                self.error_count += 1

        book, trades, *candles = outcomes
        candles_by_timeframe: Dict[str, List[Candle]] = {
            tf: list(c) for tf, c in zip(timeframes, candles) if not isinstance(c, Exception)
        }
        snapshot = MarketSnapshot(
            symbol=symbol,
            order_book=book if isinstance(book, OrderBookSnapshot) else OrderBookSnapshot(),
            trades=[] if isinstance(trades, Exception) else list(trades),
            candles_by_timeframe=candles_by_timeframe,
            exchange=self.provider.exchange,
        )
        return snapshot, errors

    async def _notify_price(self, snapshot: MarketSnapshot, result: TickResult) -> None:
        price = snapshot.entry_price(self.config.primary_timeframe)
        if price <= 0:
            return
        result.last_price = price
        if self.price_listener is None:
            return
        try:
            await self.price_listener(snapshot.symbol, price)
        except Exception as e:
            self.logger.error(f"Price listener failed for {snapshot.symbol}: {e}")
            result.errors.append(f"price listener: {e}")
            self.error_count += 1

    def _auto_tradable(self, analysis: AnalysisResult) -> bool:
        if not analysis.auto_tradable:
            return False
        if self.emotional_filter is None:
            return True
        gate = self.emotional_filter.can_open_trade()
        if not gate.allowed:
            self.signal_logger.gate_blocked("emotional_filter", gate.reason, symbol=analysis.symbol)
            return False
        return True

    async def _publish(self, analysis: AnalysisResult, result: TickResult) -> None:
        signal = analysis.signal
        self.signal_logger.signal(
            signal.symbol,
            signal.direction.value,
            signal.confidence,
            timeframe=signal.timeframe,
            auto_tradable=result.auto_tradable,
        )
        if self.event_bus is None:
            return

        event = SignalGenerated(
            timestamp=self.clock(),
            metadata={"scheduler": self.name},
            signal=signal,
            breakdown=analysis.breakdown.to_dict(),
            auto_tradable=result.auto_tradable,
        )
        subscriber_errors = await self.event_bus.publish(event)
        result.errors.extend(f"subscriber: {e}" for e in subscriber_errors)
        self.error_count += len(subscriber_errors)
        result.published = True
        self.signals_published += 1

    def get_stats(self) -> Dict[str, Any]:
        """Scheduler statistics."""
        return {
            "name": self.name,
            "running": self.is_running,
            "ticks": self.ticks,
            "signals_published": self.signals_published,
            "errors": self.error_count,
            "in_flight": sorted(self._in_flight),
        }
