"""
Periodic loops around the decision engine.

Components:
- AnalysisScheduler: cancellable multi-symbol analysis ticker
- BreakoutMonitor: periodic level-breakout scan
- select_best_signal: ranking of signals for automatic selection
"""

from .analysis_scheduler import AnalysisScheduler, RankedSignal, TickResult, select_best_signal
from .breakout_monitor import BreakoutAlert, BreakoutMonitor, ScanResult

__all__ = [
    # Analysis
    "AnalysisScheduler",
    "TickResult",
    "RankedSignal",
    "select_best_signal",
    # Breakouts
    "BreakoutMonitor",
    "BreakoutAlert",
    "ScanResult",
]
