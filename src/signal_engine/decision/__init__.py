"""
Decision Layer - from domain readings to a trading signal.

Components:
- ConfluenceEngine: 2-of-3 weighted merge, MTF policy and fallback vote
- SignalGenerator: stop, target ladder, confidence penalties
- OnlineConfidenceModel: outcome-trained confidence adjustment
- DecisionEngine: per-symbol pipeline orchestrator
- AnalysisBreakdown: per-component explanation of an analysis
"""

from .confluence import (
    AuxiliarySignals,
    ConfluenceContext,
    ConfluenceEngine,
    ConfluenceResult,
)
from .signal_generator import SignalGenerator
from .online_model import OnlineConfidenceModel, SignalFeatures, rsi_bucket
from .breakdown import AnalysisBreakdown
from .engine import AnalysisResult, DecisionEngine

__all__ = [
    # Confluence
    'ConfluenceEngine',
    'ConfluenceResult',
    'ConfluenceContext',
    'AuxiliarySignals',

    # Signals
    'SignalGenerator',

    # Online model
    'OnlineConfidenceModel',
    'SignalFeatures',
    'rsi_bucket',

    # Orchestration
    'DecisionEngine',
    'AnalysisResult',
    'AnalysisBreakdown',
]
