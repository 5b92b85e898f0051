"""
Signal Engine Application - wires all components together.

Components:
- Event Bus (signal distribution)
- Decision Engine (per-symbol analysis)
- Analysis Scheduler (periodic multi-symbol ticks)
- Breakout Monitor (periodic level-breakout scan)
- Trailing Stop Manager (tracks auto-tradable signals, one per symbol,
  fed with the latest price of every scheduler tick)
- Risk Controller / Emotional Filter (gates for the execution layer)

The market data provider is the only external collaborator and is injected.
"""

import logging
from typing import Any, Dict, Optional

from .config.loader import get_engine_config
from .config.settings import EngineConfig
from .core.events import BreakoutDetected, EventBus, SignalGenerated, TrailingStopHit
from .decision.engine import DecisionEngine
from .market_data.provider import MarketDataProvider
from .position.trailing_stop import TrailingStopManager
from .risk import EmotionalFilter, RiskController
from .scheduler import AnalysisScheduler, BreakoutMonitor
from .utils.logger import setup_logging
from .utils.time_utils import Clock, utc_now

logger = logging.getLogger(__name__)


class SignalEngineApp:
    """
    Composition root for the engine.

    Lifecycle:
    1. ``start()``: logging, event subscriptions, scheduler, breakout monitor
    2. ``stop()``: monitor and scheduler, in reverse order
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        config: Optional[EngineConfig] = None,
        clock: Clock = utc_now,
        configure_logging: bool = True
    ):
        """
        Initialize the application.

        Args:
            provider: Market data source
            config: Engine configuration (loaded from config/engine.yaml if omitted)
            clock: Source of "now" shared by every component
            configure_logging: Install root handlers from ``config.system``
        """
        self.config = config or get_engine_config()
        self.provider = provider
        self.clock = clock
        self.configure_logging = configure_logging
        cfg = self.config

        self.event_bus = EventBus()
        self.engine = DecisionEngine(cfg, clock=clock)
        self.risk_controller = RiskController(cfg.risk, clock=clock)
        self.emotional_filter = EmotionalFilter(cfg.emotional_filter, clock=clock)
        self.trailing_stops = TrailingStopManager(cfg.trailing_stop, event_bus=self.event_bus, clock=clock)
        self.scheduler = AnalysisScheduler(
            self.engine,
            provider,
            event_bus=self.event_bus,
            config=cfg.scheduler,
            emotional_filter=self.emotional_filter,
            price_listener=self.on_price,
            clock=clock,
        )
        self.breakout_monitor = BreakoutMonitor(
            provider,
            cfg.scheduler.symbols,
            event_bus=self.event_bus,
            config=cfg.breakout,
            clock=clock,
        )

        self._subscribed = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start all periodic components."""
        if self._running:
            return

        if self.configure_logging:
            system = self.config.system
            setup_logging(system.log_level, system.log_file, json_format=system.json_logs)

        logger.info("=" * 70)
        logger.info("🚀 Starting Signal Engine")
        logger.info("=" * 70)

        await self.setup_event_subscriptions()
        await self.scheduler.start()
        logger.info("✓ Analysis Scheduler started")
        await self.breakout_monitor.start()
        logger.info("✓ Breakout Monitor started")

        self._running = True

    async def stop(self) -> None:
        """Stop periodic components; in-flight results are discarded."""
        if not self._running:
            return

        logger.info("Stopping Signal Engine...")
        await self.breakout_monitor.stop()
        logger.info("✓ Breakout Monitor stopped")
        await self.scheduler.stop()
        logger.info("✓ Analysis Scheduler stopped")

        self._running = False
        logger.info("All components stopped gracefully")

    async def setup_event_subscriptions(self) -> None:
        """
        Wire components through the event bus.

        - SignalGenerated (auto-tradable) -> Trailing Stop Manager
        - BreakoutDetected / TrailingStopHit -> log
        """
        if self._subscribed:
            return

        await self.event_bus.subscribe(SignalGenerated.__name__, self.on_signal)
        await self.event_bus.subscribe(BreakoutDetected.__name__, self.on_breakout)
        await self.event_bus.subscribe(TrailingStopHit.__name__, self.on_stop_hit)
        self._subscribed = True
        logger.info("✓ Event subscriptions ready")

    async def on_signal(self, event: SignalGenerated) -> None:
        if not event.auto_tradable:
            return
        await self.trailing_stops.add_signal(event.signal)

    async def on_price(self, symbol: str, price: float) -> None:
        """Advance trailing stops of ``symbol``; expired signals are dropped."""
        await self.trailing_stops.update_on_tick(symbol, price)

    async def on_breakout(self, event: BreakoutDetected) -> None:
        logger.info(f"💥 Breakout on {event.symbol}: {event.breakout}")

    async def on_stop_hit(self, event: TrailingStopHit) -> None:
        logger.warning(
            f"🛑 Trailing stop hit: {event.signal_id} {event.symbol} "
            f"exit={event.exit_price} stop={event.stop_price}"
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "scheduler": self.scheduler.get_stats(),
            "breakout_monitor": self.breakout_monitor.get_stats(),
            "trailing_stops": self.trailing_stops.get_stats(),
            "emotional_filter": self.emotional_filter.get_state(),
        }
