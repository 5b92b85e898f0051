"""
Breakout Monitor - periodic level-breakout scan.

Every cycle, per symbol: fetch working candles, order book and tape in
parallel (a failed book or tape fetch is scored as empty), detect levels,
pick the nearest one to the last close and publish
``BreakoutDetected`` when the confirmer scores the break above the monitor's
minimum confidence.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..analytics.breakout import BreakoutConfirmer
from ..analytics.levels import LevelDetector
from ..config.settings import BreakoutConfig, Sensitivity
from ..core.events import BreakoutDetected, EventBus
from ..core.models import BreakoutSignal, OrderBookSnapshot
from ..market_data.provider import MarketDataProvider
from ..utils.time_utils import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakoutAlert:
    """Breakout that passed the monitor threshold."""
    symbol: str
    breakout: BreakoutSignal


@dataclass
class ScanResult:
    """
    Outcome of one symbol in one scan.

    Attributes:
        symbol: Scanned symbol
        breakout: Breakout above the monitor threshold, if any
        errors: Fetch and scan failures
    """
    symbol: str
    breakout: Optional[BreakoutSignal] = None
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)


class BreakoutMonitor:
    """
    Scan a symbol list for confirmed level breakouts.

    A failed book or tape fetch degrades that input to empty; any failure
    is recorded on the symbol's ScanResult and the scan continues.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        symbols: Iterable[str],
        event_bus: Optional[EventBus] = None,
        config: BreakoutConfig = None,
        level_detector: LevelDetector = None,
        confirmer: BreakoutConfirmer = None,
        order_book_depth: int = 50,
        trades_limit: int = 100,
        clock: Clock = utc_now,
        name: str = "BreakoutMonitor"
    ):
        """
        Initialize breakout monitor.

        Args:
            provider: Market data source
            symbols: Symbols to scan
            event_bus: Where alerts are published (optional)
            config: Breakout settings (interval, min confidence, timeframe)
            level_detector: Support/resistance detector
            confirmer: Breakout confirmer
            order_book_depth: Levels per side to fetch
            trades_limit: Trades to fetch
            clock: Source of event timestamps
            name: Monitor name for logging
        """
        self.provider = provider
        self.symbols = list(symbols)
        self.event_bus = event_bus
        self.config = config or BreakoutConfig()
        self.level_detector = level_detector or LevelDetector()
        self.confirmer = confirmer or BreakoutConfirmer(self.config)
        self.order_book_depth = order_book_depth
        self.trades_limit = trades_limit
        self.clock = clock
        self.name = name

        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._stopped = False

        self.scans = 0
        self.alerts_published = 0
        self.error_count = 0
        self.last_results: List[ScanResult] = []

        self.logger = logging.getLogger(f"{__name__}.{name}")

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start periodic scanning (no-op when already running)."""
        if self.is_running:
            return
        self._stopped = False
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        cfg = self.config
        self.logger.info(
            f"Started: every {cfg.monitor_interval_seconds:g}s, {len(self.symbols)} symbols, "
            f"min confidence {cfg.monitor_min_confidence}"
        )

    async def stop(self) -> None:
        self._stopped = True
        if self._wake is not None:
            self._wake.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.logger.info("Stopped")

    async def _run(self) -> None:
        while not self._stopped:
            await self.scan()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.monitor_interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def scan(self, symbols: Optional[Iterable[str]] = None) -> List[BreakoutAlert]:
        """
        Scan symbols once.

        Per-symbol outcomes (including fetch errors) are kept in
        ``last_results``.

        Returns:
            Alerts that reached the minimum confidence (already published)
        """
        self.scans += 1
        alerts: List[BreakoutAlert] = []
        results: List[ScanResult] = []
        for symbol in list(symbols) if symbols is not None else self.symbols:
            try:
                result = await self.scan_symbol(symbol)
            except Exception as e:
                self.logger.error(f"Breakout scan failed for {symbol}: {e}", exc_info=True)
                result = ScanResult(symbol=symbol, errors=[f"scan: {e}"])
            self.error_count += len(result.errors)
            results.append(result)

            if result.breakout is None or self._stopped:
                continue
            alert = BreakoutAlert(symbol=symbol, breakout=result.breakout)
            alerts.append(alert)
            await self._publish(alert)

        self.last_results = results
        return alerts

    async def scan_symbol(self, symbol: str) -> ScanResult:
        """
        Score the nearest level of ``symbol``.

        A failed book or tape fetch is scored as an empty input; without
        candles there is nothing to scan.

        Returns:
            ScanResult whose breakout is set only above the minimum confidence
        """
        cfg = self.config
        outcomes = await asyncio.gather(
            self.provider.get_ohlcv(symbol, cfg.monitor_timeframe, cfg.monitor_candle_limit),
            self.provider.get_order_book(symbol, self.order_book_depth),
            self.provider.get_trades(symbol, self.trades_limit),
            return_exceptions=True,
        )

        result = ScanResult(symbol=symbol)
        for label, outcome in zip(("ohlcv", "order_book", "trades"), outcomes):
            if isinstance(outcome, Exception):
                self.logger.warning(f"{symbol}: {label} fetch failed: {outcome}")
                result.errors.append(f"{label}: {outcome}")

        candles, book, trades = outcomes
        if isinstance(candles, Exception) or not candles:
            return result
        if not isinstance(book, OrderBookSnapshot):
            book = OrderBookSnapshot()
        trades = [] if isinstance(trades, Exception) else list(trades)

        levels = self.level_detector.detect_levels(candles, Sensitivity.MEDIUM)
        current_price = candles[-1].close
        nearest = self.level_detector.find_nearest_level(current_price, levels, cfg.monitor_level_distance)
        if nearest is None:
            return result

        breakout = self.confirmer.confirm(current_price, nearest, book, trades, candles)
        if breakout is not None and breakout.confidence >= cfg.monitor_min_confidence:
            result.breakout = breakout
        return result

    async def _publish(self, alert: BreakoutAlert) -> None:
        self.logger.info(f"💥 {alert.symbol}: {alert.breakout}")
        if self.event_bus is None:
            return
        await self.event_bus.publish(BreakoutDetected(
            timestamp=self.clock(),
            metadata={"monitor": self.name},
            symbol=alert.symbol,
            breakout=alert.breakout,
        ))
        self.alerts_published += 1

    def get_stats(self) -> Dict[str, Any]:
        return {
            "scans": self.scans,
            "alerts_published": self.alerts_published,
            "errors": self.error_count,
        }
