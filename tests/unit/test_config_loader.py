"""
Unit tests for the configuration loader.

Tests:
- YAML loading with ${VAR} / ${VAR:default} placeholders
- Environment overrides and interval clamping
- Defaults when the file is missing
- Caching and reload
"""

import pytest
from pydantic import ValidationError

from signal_engine.config import ConfigLoader, EngineConfig


ENV_VARS = (
    "ENVIRONMENT",
    "LOG_LEVEL",
    "LOG_JSON",
    "ANALYSIS_INTERVAL_SECONDS",
    "ANALYSIS_SYMBOLS",
    "TRADING_MODE",
    "SIGNAL_TEST_SYMBOL",
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "engine.yaml").write_text(
        "system:\n"
        "  environment: ${ENVIRONMENT:staging}\n"
        "  log_level: ${LOG_LEVEL:DEBUG}\n"
        "scheduler:\n"
        "  interval_seconds: 10\n"
        "  symbols:\n"
        "    - ${SIGNAL_TEST_SYMBOL:BTC/USDT}\n"
        "  mode: scalping\n"
        "confluence:\n"
        "  min_confidence: 0.65\n"
    )
    return tmp_path


# ============================================================================
# Loading Tests
# ============================================================================

def test_load_yaml_with_placeholder_defaults(config_dir):
    config = ConfigLoader(config_dir).load_engine_config()

    assert isinstance(config, EngineConfig)
    assert config.system.environment == "staging"
    assert config.system.log_level == "DEBUG"
    assert config.scheduler.symbols == ["BTC/USDT"]
    assert config.scheduler.mode == "scalping"
    assert config.confluence.min_confidence == 0.65


def test_interval_clamped(config_dir):
    config = ConfigLoader(config_dir).load_engine_config()
    assert config.scheduler.interval_seconds == 30.0


def test_placeholder_reads_environment(config_dir, monkeypatch):
    monkeypatch.setenv("SIGNAL_TEST_SYMBOL", "ETH/USDT")

    config = ConfigLoader(config_dir).load_engine_config()

    assert config.scheduler.symbols == ["ETH/USDT"]


def test_unset_placeholder_without_default(tmp_path):
    (tmp_path / "engine.yaml").write_text("system:\n  log_file: ${SIGNAL_TEST_SYMBOL}\n")

    config = ConfigLoader(tmp_path).load_engine_config()

    assert config.system.log_file == ""


def test_environment_overrides(config_dir, monkeypatch):
    monkeypatch.setenv("ANALYSIS_INTERVAL_SECONDS", "500")
    monkeypatch.setenv("ANALYSIS_SYMBOLS", "SOL/USDT, ADA/USDT,")
    monkeypatch.setenv("TRADING_MODE", "futures25x")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("LOG_JSON", "true")

    config = ConfigLoader(config_dir).load_engine_config()

    assert config.scheduler.interval_seconds == 300.0
    assert config.scheduler.symbols == ["SOL/USDT", "ADA/USDT"]
    assert config.scheduler.mode == "futures25x"
    assert config.system.log_level == "WARNING"
    assert config.system.json_logs is True


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigLoader(tmp_path).load_engine_config()

    assert config.scheduler.interval_seconds == 60.0
    assert config.confluence.min_confidence == 0.60
    assert config.signal.rr_min == 2.0


def test_load_yaml_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(tmp_path).load_yaml("engine")


def test_invalid_values_rejected(tmp_path):
    (tmp_path / "engine.yaml").write_text("confluence:\n  min_confidence: 1.5\n")

    with pytest.raises(ValidationError):
        ConfigLoader(tmp_path).load_engine_config()


# ============================================================================
# Cache Tests
# ============================================================================

def test_cache_and_reload(config_dir):
    loader = ConfigLoader(config_dir)
    first = loader.load_engine_config()

    assert loader.load_engine_config() is first

    (config_dir / "engine.yaml").write_text("confluence:\n  min_confidence: 0.7\n")
    reloaded = loader.reload()

    assert reloaded is not first
    assert reloaded.confluence.min_confidence == 0.7


def test_shipped_config_is_valid():
    config = ConfigLoader().load_engine_config(use_cache=False)

    assert config.signal.rr_min_scalping == 1.5
    assert "BTC/USDT" in config.scheduler.symbols
