"""
Unit tests for the online confidence model.

Tests:
- Feature vector normalization
- Untrained prediction and blending thresholds
- Serialized concurrent updates
"""

import asyncio

import pytest

from signal_engine.config.settings import OnlineModelConfig
from signal_engine.decision.online_model import OnlineConfidenceModel, SignalFeatures, rsi_bucket


@pytest.fixture
def features():
    return SignalFeatures(confidence=0.8, direction=1, risk_reward=2.0, triggers_count=2, rsi_bucket=1, volume_confirm=1.0)


def test_feature_vector(features):
    vector = features.vector()

    assert vector.tolist() == pytest.approx([0.8, 1.0, 0.5, 0.4, 1.0, 1.0])


def test_feature_vector_defaults():
    vector = SignalFeatures(confidence=0.7, direction=0, risk_reward=10.0, triggers_count=9).vector()

    assert vector.tolist() == pytest.approx([0.7, 0.0, 1.0, 1.0, 0.5, 0.5])


def test_rsi_bucket():
    assert rsi_bucket(None) is None
    assert rsi_bucket(30.0) == 1
    assert rsi_bucket(50.0) == 0
    assert rsi_bucket(70.0) == -1


def test_untrained_model_predicts_half(features):
    assert OnlineConfidenceModel().predict(features) == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_confidence_unchanged_below_min_samples(features):
    model = OnlineConfidenceModel()
    for _ in range(4):
        await model.update(features, win=True)

    assert model.samples == 4
    assert model.adjust_confidence(0.7, features) == 0.7


@pytest.mark.asyncio
async def test_wins_raise_prediction_and_blend(features):
    model = OnlineConfidenceModel()
    for _ in range(20):
        await model.update(features, win=True)

    probability = model.predict(features)
    assert probability > 0.5

    # blend = min(0.5, 20 / 50) * 0.3
    expected = 0.7 * (1 - 0.12) + probability * 0.12
    assert model.adjust_confidence(0.7, features) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_losses_lower_prediction(features):
    model = OnlineConfidenceModel()
    for _ in range(10):
        await model.update(features, win=False)

    assert model.predict(features) < 0.5


@pytest.mark.asyncio
async def test_concurrent_updates_all_applied(features):
    model = OnlineConfidenceModel()

    await asyncio.gather(*(model.update(features, win=i % 2 == 0) for i in range(20)))

    assert model.samples == 20
    assert len(model.get_stats()["weights"]) == 6


@pytest.mark.asyncio
async def test_disabled_model_never_adjusts(features):
    model = OnlineConfidenceModel(OnlineModelConfig(enabled=False))
    for _ in range(10):
        await model.update(features, win=True)

    assert model.adjust_confidence(0.65, features) == 0.65


@pytest.mark.asyncio
async def test_reset(features):
    model = OnlineConfidenceModel()
    await model.update(features, win=True)

    model.reset()

    assert model.samples == 0
    assert model.predict(features) == pytest.approx(0.5)
