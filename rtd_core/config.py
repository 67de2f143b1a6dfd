"""Configuration management for RTD."""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RTD_CFG_"

# Inclusive bounds for numeric settings; out-of-range values fall back to the default
CONFIG_BOUNDS = {
    "debug": (0, 3),
    "cache_ttl": (30, 86400),
    "max_file_size": (1024, 131072),
    "cmd_timeout": (0, 120),
}


class RTDConfig(BaseModel):
    """Global RTD Configuration."""

    auto_detect: bool = Field(default=False, description="Detect on first query instead of failing")
    debug: int = Field(default=0, description="Diagnostic verbosity (0-3)")
    cache_ttl: int = Field(default=300, description="Seconds a detection snapshot stays valid")
    max_file_size: int = Field(default=8192, description="Byte ceiling for probe file reads")
    cmd_timeout: int = Field(default=10, description="Seconds before a probe command is killed (0 = no limit)")
    strict_cmds: bool = Field(default=False, description="Disallow any command outside the whitelist")
    json_bool: bool = Field(default=False, description="Render JSON flags as true/false instead of 1/0")
    sanitize_env: bool = Field(default=True, description="Run probes with a minimal fixed environment")

    @field_validator("debug", "cache_ttl", "max_file_size", "cmd_timeout", mode="before")
    @classmethod
    def _reset_out_of_bounds(cls, value: Any, info: ValidationInfo) -> Any:
        default = cls.model_fields[info.field_name].default
        try:
            number = int(value)
        except (TypeError, ValueError):
            logger.warning(f"{info.field_name} is not a number ({value!r}), resetting to {default}")
            return default

        low, high = CONFIG_BOUNDS[info.field_name]
        if number < low or number > high:
            logger.warning(f"{info.field_name} out of bounds ({number}), resetting to {default}")
            return default
        return number


def _parse_env_value(raw: str) -> Any:
    """Convert an environment string to a JSON-ish scalar."""
    lowered = raw.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    return raw.strip()


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect RTD_CFG_* overrides from an environment mapping.

    Args:
        environ: Environment to read. Defaults to os.environ.

    Returns:
        Dictionary of field name to raw override value.
    """
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for name in RTDConfig.model_fields:
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            overrides[name] = _parse_env_value(raw)
    return overrides


class ConfigManager:
    """Manages loading and saving of configuration."""

    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None):
        """Initialize the config manager.

        Args:
            config_path: Path to the config file. If None, uses default location.
            environ: Environment used for RTD_CFG_* overrides. Defaults to os.environ.
        """
        if config_path:
            self.config_path = config_path
        else:
            self.config_path = Path.home() / ".rtd" / "config.json"

        self._environ = environ
        self._config: Optional[RTDConfig] = None

    @property
    def config(self) -> RTDConfig:
        """Get the current configuration (lazy loading)."""
        if self._config is None:
            self._load()
        return self._config  # type: ignore

    def _load(self) -> None:
        """Load config from file, then apply environment overrides."""
        data: Dict[str, Any] = {}
        if self.config_path.exists():
            try:
                with open(self.config_path, "r") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    data = {k: v for k, v in loaded.items() if k in RTDConfig.model_fields}
                    logger.debug(f"Configuration loaded from {self.config_path}")
                else:
                    logger.warning(f"Config file {self.config_path} is not an object, using defaults")
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid config file, using defaults: {e}")
            except OSError as e:
                logger.error(f"Error loading config: {e}")
        else:
            logger.debug("No config file found, using defaults")

        data.update(config_from_env(self._environ))
        try:
            self._config = RTDConfig(**data)
        except ValueError as e:
            logger.warning(f"Invalid configuration values, using defaults: {e}")
            self._config = RTDConfig()

    def save(self) -> None:
        """Save config to file.

        Raises:
            ConfigError: If the file cannot be written.
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                f.write(self.config.model_dump_json(indent=2))
        except OSError as e:
            raise ConfigError(f"Cannot write {self.config_path}: {e}") from e
        logger.debug(f"Configuration saved to {self.config_path}")

    def get(self) -> RTDConfig:
        """Get the current configuration."""
        return self.config

    def update(self, **kwargs) -> None:
        """Update configuration values.

        Args:
            **kwargs: Configuration values to update.
        """
        current = self.config.model_dump()
        current.update(kwargs)
        self._config = RTDConfig(**current)

    def reset(self) -> None:
        """Reset configuration to defaults."""
        self._config = RTDConfig()


# Lazy singleton pattern
_config_instance: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global config manager instance (lazy initialization)."""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance


def get_config() -> RTDConfig:
    """Get the current configuration."""
    return get_config_manager().config


def reset_config() -> None:
    """Reset the global config instance. Useful for testing."""
    global _config_instance
    _config_instance = None
