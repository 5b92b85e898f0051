"""
Configuration management module.

Loads configuration from YAML files and provides easy access.
"""

from .settings import EngineConfig, TradingMode, Sensitivity
from .loader import ConfigLoader, get_config_loader, get_engine_config, reload_config

__all__ = [
    'EngineConfig',
    'TradingMode',
    'Sensitivity',
    'ConfigLoader',
    'get_config_loader',
    'get_engine_config',
    'reload_config',
]
