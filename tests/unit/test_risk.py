"""
Unit tests for the risk gates.

Tests:
- Position, daily-trade, duration and balance limits
- Daily counter reset on UTC day change
- Limit updates with validation
- Emotional filter cooldown, daily stop and day rollover
- Position sizing
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from signal_engine.config.settings import EmotionalFilterConfig, RiskLimitsConfig
from signal_engine.risk import (
    EmotionalFilter,
    RiskController,
    calc_position_size_from_risk,
    volatility_size_multiplier,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def controller(clock):
    return RiskController(RiskLimitsConfig(max_daily_trades=3), clock=clock)


@pytest.fixture
def emotional_filter(clock):
    return EmotionalFilter(clock=clock)


# ============================================================================
# Risk Controller Tests
# ============================================================================

def test_position_limits(controller):
    assert controller.check_position_limits(0, 0, "BTC/USDT").ok

    total = controller.check_position_limits(5, 0, "BTC/USDT")
    assert not total.ok
    assert total.reason == "max_positions_total: 5 >= 5"

    per_symbol = controller.check_position_limits(2, 1, "BTC/USDT")
    assert not per_symbol.ok
    assert per_symbol.reason == "max_positions_per_symbol (BTC/USDT): 1 >= 1"


def test_daily_trade_limit(controller):
    for expected in (1, 2, 3):
        assert controller.record_trade() == expected

    check = controller.check_daily_trade_limit()
    assert not check.ok
    assert check.count == 3
    assert check.reason == "max_daily_trades: 3 >= 3"


def test_daily_counter_resets_next_utc_day(controller, clock):
    controller.record_trade()
    controller.record_trade()
    controller.record_trade()

    clock.advance(hours=12)
    check = controller.check_daily_trade_limit()
    assert check.ok
    assert check.count == 0


def test_position_duration(controller, clock):
    fresh = controller.check_position_duration(clock.now - timedelta(hours=1))
    assert fresh.ok
    assert fresh.hours == pytest.approx(1.0)

    stale = controller.check_position_duration(clock.now - timedelta(hours=25))
    assert not stale.ok
    assert stale.reason == "position_duration: 25.0h > 24h"


def test_position_duration_naive_time_is_utc(controller, clock):
    naive = (clock.now - timedelta(hours=2)).replace(tzinfo=None)
    assert controller.check_position_duration(naive).hours == pytest.approx(2.0)


def test_balance_levels(controller):
    assert controller.check_balance(500).level == "ok"
    assert controller.check_balance(80).level == "warning"
    critical = controller.check_balance(20)
    assert critical.level == "critical"
    assert critical.reason == "balance 20 < 50"


def test_update_config(controller):
    updated = controller.update_config(max_positions_total=10)

    assert updated.max_positions_total == 10
    assert updated.max_daily_trades == 3
    assert controller.check_position_limits(7, 0, "ETH/USDT").ok


def test_update_config_rejects_invalid_limits(controller):
    with pytest.raises(ValidationError):
        controller.update_config(min_balance_critical=200)
    with pytest.raises(ValidationError):
        controller.update_config(max_positions_total=0)

    assert controller.get_config().min_balance_critical == 50


def test_get_config_returns_copy(controller):
    config = controller.get_config()
    config.max_positions_total = 99
    assert controller.config.max_positions_total == 5


# ============================================================================
# Emotional Filter Tests
# ============================================================================

def test_fresh_filter_allows_trading(emotional_filter):
    gate = emotional_filter.can_open_trade()
    assert gate.allowed
    assert gate.reason is None


def test_three_losses_open_cooldown(emotional_filter, clock):
    for _ in range(3):
        emotional_filter.record_trade_outcome(-10)

    state = emotional_filter.get_state()
    assert state.loss_streak == 3
    assert state.cooldown_until == clock.now + timedelta(minutes=30)

    gate = emotional_filter.can_open_trade()
    assert not gate.allowed
    assert "Cooldown" in gate.reason
    assert gate.reason.startswith("Cooldown active. 30 min left.")


def test_cooldown_expires_but_daily_stop_remains(emotional_filter, clock):
    """-30 on 100 is a 30% drawdown: the daily stop outlives the cooldown."""
    for _ in range(3):
        emotional_filter.record_trade_outcome(-10)

    clock.advance(minutes=31)
    gate = emotional_filter.can_open_trade()

    assert not gate.allowed
    assert "Cooldown" not in gate.reason
    assert gate.reason == "Daily drawdown limit reached. Trading paused until next day."


def test_next_day_clears_daily_stop(emotional_filter, clock):
    for _ in range(3):
        emotional_filter.record_trade_outcome(-10)

    clock.advance(days=1)
    assert emotional_filter.can_open_trade().allowed

    state = emotional_filter.get_state()
    assert state.day_start_balance == pytest.approx(70)
    assert not state.daily_stop_active


def test_single_large_loss_triggers_daily_stop(clock):
    emotional_filter = EmotionalFilter(EmotionalFilterConfig(initial_balance=1000), clock=clock)

    state = emotional_filter.record_trade_outcome(-60)

    assert state.daily_stop_active
    assert state.drawdown_pct == pytest.approx(6.0)
    assert state.cooldown_until is None


def test_win_resets_loss_streak(emotional_filter):
    emotional_filter.record_trade_outcome(-1)
    emotional_filter.record_trade_outcome(-1)
    state = emotional_filter.record_trade_outcome(2)

    assert state.loss_streak == 0
    assert state.win_streak == 1
    assert emotional_filter.can_open_trade().allowed


def test_set_balance_and_reset(emotional_filter):
    emotional_filter.set_balance(1000, start_of_day=True)
    emotional_filter.record_trade_outcome(-100)
    assert not emotional_filter.can_open_trade().allowed

    state = emotional_filter.reset()
    assert state.current_balance == pytest.approx(900)
    assert state.day_start_balance == pytest.approx(900)
    assert emotional_filter.can_open_trade().allowed


# ============================================================================
# Sizing Tests
# ============================================================================

def test_position_size_from_risk():
    size = calc_position_size_from_risk(1000, 100.0, 99.0)

    assert size.risk_usd == pytest.approx(20.0)
    assert size.stop_pct == pytest.approx(0.01)
    assert size.size_usd == pytest.approx(2000.0)


def test_position_size_risk_capped():
    assert calc_position_size_from_risk(1000, 100.0, 99.0, risk_pct=0.1).risk_usd == pytest.approx(30.0)


def test_position_size_zero_stop_distance():
    assert calc_position_size_from_risk(1000, 100.0, 100.0).size_usd == 0.0


def test_volatility_multiplier():
    assert volatility_size_multiplier(2.0, 1.0) == 0.7
    assert volatility_size_multiplier(1.2, 1.0) == 1.0
    assert volatility_size_multiplier(None, 1.0) == 1.0
