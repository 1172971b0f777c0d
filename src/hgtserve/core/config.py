"""Configuration loading for the elevation service.

Settings come from a YAML file and can be overridden by environment variables.

Typical usage example:
    from hgtserve.core.config import ConfigLoader, ServiceConfig

    config = ServiceConfig.from_loader(ConfigLoader.load("config/hgtserve.yaml"))
    config.apply_env()
    print(config.cache_policy, config.idle_minutes)

Example YAML:
    elevation:
      data_dir: elevation-cache
      storage: mmap          # mmap | memory
      workers: 8
      cache:
        policy: evicting     # eager | lazy | evicting
        idle_minutes: 30
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CACHE_POLICIES = ("eager", "lazy", "evicting")
STORAGE_MODES = ("mmap", "memory")

DATA_DIR_ENV = "ELEVATION_CACHE_DIR"
IDLE_MINUTES_ENV = "CACHE_SLIDING_WINDOW"


class ConfigError(Exception):
    """Raised when configuration operations fail."""


class ConfigLoader:
    """Configuration loader for YAML files.

    Provides loading and nested dot-notation access with defaults.

    Examples:
        >>> config = ConfigLoader.load("config/hgtserve.yaml")
        >>> policy = config.get("elevation.cache.policy", default="evicting")
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        """Initialize with configuration data.

        Args:
            data: Configuration dictionary.
        """
        self._data = data or {}

    @classmethod
    def load(cls, path: str | Path) -> "ConfigLoader":
        """Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file.

        Returns:
            ConfigLoader instance with loaded data.

        Raises:
            ConfigError: If file cannot be loaded.
        """
        path = Path(path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load configuration: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        logger.info("Loaded configuration from: %s", path)
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation.

        Args:
            key: Configuration key (supports dot notation).
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        value: Any = self._data

        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_section(self, key: str) -> dict[str, Any]:
        """Get an entire configuration section.

        Args:
            key: Section key (supports dot notation).

        Returns:
            Configuration section as dictionary.

        Raises:
            ConfigError: If section not found or not a dict.
        """
        value = self.get(key)

        if value is None:
            raise ConfigError(f"Configuration section not found: {key}")

        if not isinstance(value, dict):
            raise ConfigError(f"Configuration key is not a section: {key}")

        return value

    def merge(self, other: "ConfigLoader") -> None:
        """Merge another configuration into this one.

        Args:
            other: ConfigLoader to merge from.

        Note:
            Other config values override existing ones.
        """
        self._data = self._merge_dicts(self._data, other._data)

    def _merge_dicts(self, base: dict, override: dict) -> dict:
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value

        return result


@dataclass
class ServiceConfig:
    """Settings of the elevation service.

    Attributes:
        data_dir: Directory holding the elevation tiles
        cache_policy: One of "eager", "lazy", "evicting"
        storage_mode: "mmap" to memory-map tiles, "memory" to read them fully
        idle_minutes: Idle time before a tile is evicted (evicting policy)
        workers: Worker threads for tile loading and batch queries
    """

    data_dir: Path = field(default_factory=lambda: Path("elevation-cache"))
    cache_policy: str = "evicting"
    storage_mode: str = "mmap"
    idle_minutes: float = 30.0
    workers: int = 8

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        self.validate()

    def validate(self) -> None:
        """Check that every setting has an allowed value.

        Raises:
            ConfigError: If a setting is invalid
        """
        if self.cache_policy not in CACHE_POLICIES:
            raise ConfigError(
                f"Invalid cache policy {self.cache_policy!r}, expected one of {CACHE_POLICIES}"
            )
        if self.storage_mode not in STORAGE_MODES:
            raise ConfigError(
                f"Invalid storage mode {self.storage_mode!r}, expected one of {STORAGE_MODES}"
            )
        if not self.idle_minutes > 0:
            raise ConfigError(f"idle_minutes must be positive, got {self.idle_minutes}")
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")

    @classmethod
    def from_loader(cls, loader: ConfigLoader) -> "ServiceConfig":
        """Build service settings from the ``elevation`` section of a config.

        Missing keys keep their defaults.

        Raises:
            ConfigError: If the section is not a mapping, or a value has the
                wrong type or is not allowed
        """
        defaults = cls()
        if loader.get("elevation") is None:
            return defaults

        elevation = ConfigLoader(loader.get_section("elevation"))
        try:
            return cls(
                data_dir=Path(elevation.get("data_dir", defaults.data_dir)),
                cache_policy=str(elevation.get("cache.policy", defaults.cache_policy)),
                storage_mode=str(elevation.get("storage", defaults.storage_mode)),
                idle_minutes=float(elevation.get("cache.idle_minutes", defaults.idle_minutes)),
                workers=int(elevation.get("workers", defaults.workers)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid elevation configuration: {e}") from e

    def apply_env(self, environ: Mapping[str, str] | None = None) -> None:
        """Override settings from environment variables.

        ``ELEVATION_CACHE_DIR`` sets the tile directory and
        ``CACHE_SLIDING_WINDOW`` the idle eviction time in minutes.

        Args:
            environ: Environment to read, defaults to os.environ

        Raises:
            ConfigError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ

        data_dir = environ.get(DATA_DIR_ENV, "").strip()
        if data_dir:
            self.data_dir = Path(data_dir)

        window = environ.get(IDLE_MINUTES_ENV, "").strip()
        if window:
            try:
                self.idle_minutes = float(window)
            except ValueError as e:
                raise ConfigError(f"{IDLE_MINUTES_ENV} must be a number, got {window!r}") from e

        self.validate()
