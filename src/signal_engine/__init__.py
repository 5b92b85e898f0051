"""
Signal Engine - confluence scoring and risk-gated decisions.

Turns order-book snapshots, trade tape and multi-timeframe candles into a
directional trading signal with entry/stop/target levels, and exposes the
stateful gates (risk limits, emotional filter) an execution layer consults
before acting on it.
"""

__version__ = "0.1.0"
