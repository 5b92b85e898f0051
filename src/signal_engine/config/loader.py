"""
Engine configuration loading.

``config/engine.yaml`` is read, ``${VAR}`` / ``${VAR:default}`` placeholders
are expanded from the environment, a fixed set of environment variables is
applied on top, and the result is validated into an ``EngineConfig``.
A ``.env`` file at the repository root is loaded once on import.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .settings import EngineConfig


logger = logging.getLogger(__name__)

# src/signal_engine/config/loader.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parents[3]

load_dotenv(PROJECT_ROOT / ".env")

_PLACEHOLDER = re.compile(r"^\$\{\s*([^}:\s]+)\s*(?::([^}]*))?\}$")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_symbols(value: str) -> list:
    return [s.strip() for s in value.split(",") if s.strip()]


# env var -> (section, key, parser)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "ENVIRONMENT": ("system", "environment", str.strip),
    "LOG_LEVEL": ("system", "log_level", lambda v: v.strip().upper()),
    "LOG_JSON": ("system", "json_logs", _parse_bool),
    "ANALYSIS_INTERVAL_SECONDS": ("scheduler", "interval_seconds", float),
    "ANALYSIS_SYMBOLS": ("scheduler", "symbols", _parse_symbols),
    "TRADING_MODE": ("scheduler", "mode", str.strip),
}


def expand_placeholders(node: Any) -> Any:
    """
    Expand environment placeholders anywhere in a parsed YAML tree.

    Only whole-string values are expanded. An unset variable without a
    default becomes an empty string.
    """
    if isinstance(node, dict):
        return {key: expand_placeholders(value) for key, value in node.items()}
    if isinstance(node, list):
        return [expand_placeholders(item) for item in node]
    if not isinstance(node, str):
        return node

    match = _PLACEHOLDER.match(node)
    if match is None:
        return node

    name, default = match.group(1), match.group(2)
    value = os.getenv(name)
    if value is not None:
        return value
    if default is not None:
        return default.strip()

    logger.warning(f"⚠️ {name} is not set and has no default, using empty string")
    return ""


class ConfigLoader:
    """
    Loads and caches the validated engine configuration.

    Args:
        config_dir: Directory holding the YAML file (defaults to ``<root>/config``)
        config_name: YAML file name without extension
    """

    def __init__(self, config_dir: Optional[Path] = None, config_name: str = "engine"):
        self.config_dir = Path(config_dir) if config_dir else PROJECT_ROOT / "config"
        self.config_name = config_name
        self._config: Optional[EngineConfig] = None
        logger.debug(f"ConfigLoader using {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Read ``<config_dir>/<config_name>.yaml`` with placeholders expanded.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        path = self.config_dir / f"{config_name}.yaml"
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

        return expand_placeholders(raw)

    def load_engine_config(self, use_cache: bool = True) -> EngineConfig:
        """
        Build the engine configuration.

        Args:
            use_cache: Return the previously loaded config when there is one

        Returns:
            Validated EngineConfig

        Raises:
            pydantic.ValidationError: If a value is out of range
        """
        if use_cache and self._config is not None:
            return self._config

        try:
            data = self.load_yaml(self.config_name)
        except FileNotFoundError:
            logger.warning(f"{self.config_name}.yaml not found in {self.config_dir}, using defaults")
            data = {}

        self._apply_env_overrides(data)

        try:
            config = EngineConfig(**data)
        except ValueError as e:
            logger.error(f"❌ Invalid engine configuration: {e}")
            raise

        logger.info(
            f"Engine config loaded: env={config.system.environment} "
            f"symbols={config.scheduler.symbols} interval={config.scheduler.interval_seconds}s"
        )

        if use_cache:
            self._config = config
        return config

    @staticmethod
    def _apply_env_overrides(data: Dict[str, Any]) -> None:
        for var, (section, key, parse) in ENV_OVERRIDES.items():
            raw = os.getenv(var)
            if not raw:
                continue
            data.setdefault(section, {})[key] = parse(raw)
            logger.debug(f"{var} overrides {section}.{key}")

    def reload(self) -> EngineConfig:
        """Drop the cached config and read it from disk again."""
        self._config = None
        return self.load_engine_config()


# ============================================================================
# Module-level access
# ============================================================================

_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    global _loader
    if _loader is None:
        _loader = ConfigLoader()
    return _loader


def get_engine_config(use_cache: bool = True) -> EngineConfig:
    """Engine configuration from the shared loader."""
    return get_config_loader().load_engine_config(use_cache=use_cache)


def reload_config() -> EngineConfig:
    return get_config_loader().reload()
