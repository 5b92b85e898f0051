"""
Logging helpers.

- ``setup_logging``: root handlers (console + optional file), plain or JSON
- ``JSONFormatter``: one JSON object per record, signal context included
- ``SignalLogger``: accepted / rejected / gated signal lines
- ``PerformanceLogger``: timing of analysis steps
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional


PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Record attributes passed through ``extra=`` that end up in JSON output
SIGNAL_CONTEXT_FIELDS = (
    "symbol",
    "timeframe",
    "direction",
    "confidence",
    "signal_id",
    "gate",
    "elapsed_ms",
)


class JSONFormatter(logging.Formatter):
    """Formats records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(
            (name, getattr(record, name))
            for name in SIGNAL_CONTEXT_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PerformanceLogger:
    """Debug-level timing of named operations."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @contextmanager
    def timer(self, operation: str, **context) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            self.logger.debug(
                f"⏱️ {operation} took {elapsed_ms:.1f}ms",
                extra={"elapsed_ms": round(elapsed_ms, 3), **context},
            )


class SignalLogger:
    """Uniform log lines for signal outcomes."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def signal(self, symbol: str, direction: str, confidence: float, **context) -> None:
        self.logger.info(
            f"📈 Signal: {direction} {symbol} (confidence={confidence:.2f})",
            extra={"symbol": symbol, "direction": direction, "confidence": confidence, **context},
        )

    def rejected(self, symbol: str, reason: str, **context) -> None:
        self.logger.info(f"No signal for {symbol}: {reason}", extra={"symbol": symbol, **context})

    def gate_blocked(self, gate: str, reason: str, **context) -> None:
        self.logger.warning(f"🚫 {gate} blocked auto-trading: {reason}", extra={"gate": gate, **context})


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True
) -> logging.Logger:
    """
    Replace the root logger's handlers.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Also write to this file; parent directories are created
        json_format: JSON lines instead of the plain text format

    Returns:
        The root logger
    """
    root = logging.getLogger()
    root.setLevel(logging.getLevelName(log_level.upper()))

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return root


def get_signal_logger(name: str) -> SignalLogger:
    return SignalLogger(name)


def get_performance_logger(name: str) -> PerformanceLogger:
    return PerformanceLogger(logging.getLogger(name))
