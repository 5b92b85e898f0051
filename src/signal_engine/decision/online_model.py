"""
Online Confidence Model

Logistic regression trained by SGD on closed trade outcomes. Its win
probability is blended into signal confidence once enough samples exist.

Features (6, normalized):
- confidence
- direction (1 LONG, 0 SHORT)
- min(1, risk_reward / 4)
- min(1, triggers / 5)
- rsi_bucket / 2 + 0.5 (bucket -1 overbought, 0 neutral, 1 oversold)
- volume_confirm (0/1, 0.5 unknown)
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from ..config.settings import OnlineModelConfig

logger = logging.getLogger(__name__)

FEATURE_DIM = 6


@dataclass(frozen=True)
class SignalFeatures:
    """Raw per-signal features."""
    confidence: float
    direction: int
    risk_reward: float
    triggers_count: int
    rsi_bucket: Optional[int] = None
    volume_confirm: Optional[float] = None

    def vector(self) -> np.ndarray:
        return np.array([
            self.confidence,
            float(self.direction),
            min(1.0, self.risk_reward / 4),
            min(1.0, self.triggers_count / 5),
            (self.rsi_bucket or 0) / 2 + 0.5,
            0.5 if self.volume_confirm is None else float(self.volume_confirm),
        ])


def rsi_bucket(rsi: Optional[float]) -> Optional[int]:
    """1 below 35, -1 above 65, 0 otherwise (None without RSI)."""
    if rsi is None:
        return None
    if rsi < 35:
        return 1
    if rsi > 65:
        return -1
    return 0


def sigmoid(z: float) -> float:
    return 1.0 / (1.0 + math.exp(-max(-20.0, min(20.0, z))))


class OnlineConfidenceModel:
    """
    Injectable online learner.

    ``update`` is serialised by an asyncio.Lock; ``predict`` and
    ``adjust_confidence`` read a consistent weights snapshot.
    """

    def __init__(self, config: OnlineModelConfig = None, name: str = "OnlineConfidenceModel"):
        self.config = config or OnlineModelConfig()
        self.name = name
        self.weights = np.zeros(FEATURE_DIM)
        self.samples = 0
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    def predict(self, features: SignalFeatures) -> float:
        """Win probability in (0, 1)."""
        return sigmoid(float(np.dot(self.weights, features.vector())))

    async def update(self, features: SignalFeatures, win: bool) -> None:
        """
        One SGD step on a closed trade.

        Args:
            features: Features the signal was generated with
            win: Whether the trade closed in profit
        """
        cfg = self.config
        async with self._lock:
            x = features.vector()
            error = (1.0 if win else 0.0) - self.predict(features)
            gradient = -error * x + cfg.l2 * self.weights
            self.weights = self.weights - cfg.learning_rate * gradient
            self.samples += 1

            if self.samples % cfg.log_every == 0:
                formatted = ",".join(f"{w:.3f}" for w in self.weights)
                self.logger.info(f"🧠 samples={self.samples} weights={formatted}")

    def adjust_confidence(self, base_confidence: float, features: SignalFeatures) -> float:
        """
        Blend model probability into confidence.

        Unchanged while disabled or below ``min_samples``; otherwise blended
        with weight min(0.5, samples / 50) * 0.3.
        """
        cfg = self.config
        if not cfg.enabled or self.samples < cfg.min_samples:
            return base_confidence
        probability = self.predict(features)
        blend = min(cfg.max_blend, self.samples / cfg.blend_samples) * cfg.blend_scale
        return base_confidence * (1 - blend) + probability * blend

    def get_stats(self) -> Dict[str, Any]:
        weights: List[float] = [float(w) for w in self.weights]
        return {"samples": self.samples, "weights": weights}

    def reset(self) -> None:
        self.weights = np.zeros(FEATURE_DIM)
        self.samples = 0
