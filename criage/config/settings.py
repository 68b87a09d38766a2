"""Client configuration for criage.

The configuration lives in a YAML file (``~/.config/criage/config.yaml`` by
default, overridable with ``CRIAGE_CONFIG``) and controls install roots, the
download cache, temporary directories, repositories and network settings.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from criage.config.manifest import CompressionConfig
from criage.core.exceptions import ConfigError
from criage.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CRIAGE_CONFIG"
DEFAULT_REPOSITORY_URL = "https://packages.criage.io"


def default_config_path() -> Path:
    """Location of the user configuration file."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "criage" / "config.yaml"


@dataclass
class Repository:
    """A package registry endpoint."""

    name: str
    url: str
    priority: int = 0
    enabled: bool = True
    auth_token: str = ""

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "url": self.url,
            "priority": self.priority,
            "enabled": self.enabled,
        }
        if self.auth_token:
            data["auth_token"] = self.auth_token
        return data

    @staticmethod
    def from_dict(data: dict) -> "Repository":
        if not isinstance(data, dict) or not data.get("url"):
            raise ConfigError(f"Invalid repository entry: {data!r}")
        return Repository(
            name=str(data.get("name") or data["url"]),
            url=str(data["url"]).rstrip("/"),
            priority=int(data.get("priority", 0)),
            enabled=bool(data.get("enabled", True)),
            auth_token=str(data.get("auth_token") or ""),
        )


def _default_repositories() -> List[Repository]:
    return [
        Repository(
            name="default", url=DEFAULT_REPOSITORY_URL, priority=100, enabled=True
        )
    ]


@dataclass
class Config:
    """Complete criage client configuration."""

    global_path: str = "/usr/local/lib/criage"
    local_path: str = "./criage_modules"
    cache_path: str = "~/.cache/criage"
    temp_path: str = "/tmp/criage"
    repositories: List[Repository] = field(default_factory=_default_repositories)
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    parallel: int = 4
    timeout: int = 60
    retry_count: int = 3
    auto_update: bool = False
    verify_hashes: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for YAML serialization."""
        return {
            "global_path": self.global_path,
            "local_path": self.local_path,
            "cache_path": self.cache_path,
            "temp_path": self.temp_path,
            "repositories": [r.to_dict() for r in self.repositories],
            "compression": self.compression.to_dict(),
            "parallel": self.parallel,
            "timeout": self.timeout,
            "retry_count": self.retry_count,
            "auto_update": self.auto_update,
            "verify_hashes": self.verify_hashes,
            "settings": copy.deepcopy(self.settings),
        }

    @staticmethod
    def from_dict(data: dict) -> "Config":
        """Create from dictionary loaded from YAML; missing keys keep defaults."""
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        config = Config()
        try:
            for key in ("global_path", "local_path", "cache_path", "temp_path"):
                if data.get(key):
                    setattr(config, key, str(data[key]))
            if "repositories" in data:
                config.repositories = [
                    Repository.from_dict(r) for r in data["repositories"] or []
                ]
            if "compression" in data:
                config.compression = CompressionConfig.from_dict(data["compression"])
            for key in ("parallel", "timeout", "retry_count"):
                if key in data:
                    setattr(config, key, int(data[key]))
            for key in ("auto_update", "verify_hashes"):
                if key in data:
                    setattr(config, key, bool(data[key]))
            if data.get("settings"):
                config.settings = dict(data["settings"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        return config


class ConfigManager:
    """
    Loads, queries and persists the client configuration.

    Also resolves the directory layout used by the package lifecycle:
    install roots per scope, the download cache and temp directories.

    Example:
        >>> manager = ConfigManager()
        >>> manager.get_install_path('foo', global_=False)
        PosixPath('/home/user/project/criage_modules/foo')
    """

    def __init__(
        self, config_path: Optional[Path] = None, config: Optional[Config] = None
    ):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config.yaml (default: user config location)
            config: Preloaded configuration; skips reading config_path
        """
        self.config_path = Path(config_path) if config_path else default_config_path()
        self._config = config if config is not None else self._load()

    def _load(self) -> Config:
        if not self.config_path.exists():
            logger.debug(f"Config file not found, using defaults: {self.config_path}")
            return Config()

        logger.debug(f"Loading configuration from {self.config_path}")
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        return Config.from_dict(data or {})

    def get_config(self) -> Config:
        return self._config

    def save(self) -> None:
        """Persist the configuration to config_path."""
        content = yaml.safe_dump(self._config.to_dict(), sort_keys=False)
        atomic_write(self.config_path, content)
        logger.debug(f"Saved configuration to {self.config_path}")

    # ------------------------------------------------------------------
    # Directory layout
    # ------------------------------------------------------------------

    @staticmethod
    def _expand(path: str) -> Path:
        return Path(path).expanduser().absolute()

    def get_root(self, global_: bool) -> Path:
        """Install root for a scope."""
        return self._expand(
            self._config.global_path if global_ else self._config.local_path
        )

    def get_install_path(self, name: str, global_: bool) -> Path:
        return self.get_root(global_) / name

    def get_cache_path(self, name: str, version: str) -> Path:
        return self._expand(self._config.cache_path) / name / version

    def get_temp_path(self, label: str) -> Path:
        return self._expand(self._config.temp_path) / label

    def get_lock_dir(self) -> Path:
        return self._expand(self._config.temp_path) / "locks"

    def get_repositories(self) -> List[Repository]:
        """Copy of the configured repositories."""
        return [copy.copy(r) for r in self._config.repositories]

    def ensure_directories(self) -> None:
        """Create the cache and temp directories."""
        for path in (self._config.cache_path, self._config.temp_path):
            self._expand(path).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Dotted key access (criage config get/set/list)
    # ------------------------------------------------------------------

    def list_values(self) -> Dict[str, Any]:
        """Flatten the configuration into dotted keys."""
        flat: Dict[str, Any] = {}

        def walk(prefix: str, value: Any):
            if isinstance(value, dict) and value:
                for key, item in value.items():
                    walk(f"{prefix}.{key}" if prefix else str(key), item)
            else:
                flat[prefix] = value

        walk("", self._config.to_dict())
        return flat

    def get_value(self, key: str) -> Any:
        """
        Get a configuration value by dotted key (e.g. ``compression.level``).

        Raises:
            ConfigError: If the key does not exist
        """
        value: Any = self._config.to_dict()
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                raise ConfigError(f"Unknown configuration key: {key}")
            value = value[part]
        return value

    def set_value(self, key: str, raw_value: Union[str, Any]) -> Any:
        """
        Set a configuration value by dotted key.

        String values are parsed as YAML scalars and coerced to the type of
        the existing value. Keys under ``settings.`` are free-form.

        Returns:
            The stored value

        Raises:
            ConfigError: If the key is unknown or the value has the wrong type
        """
        value = yaml.safe_load(raw_value) if isinstance(raw_value, str) else raw_value
        data = self._config.to_dict()
        parts = key.split(".")

        if parts[0] == "settings" and len(parts) > 1:
            target = data["settings"]
            for part in parts[1:-1]:
                target = target.setdefault(part, {})
                if not isinstance(target, dict):
                    raise ConfigError(f"Cannot set nested key under scalar: {key}")
            target[parts[-1]] = value
        else:
            current = self.get_value(key)
            if isinstance(current, (dict, list)):
                raise ConfigError(f"Cannot set composite configuration key: {key}")
            value = self._coerce(key, current, value, raw_value)

            target = data
            for part in parts[:-1]:
                target = target[part]
            target[parts[-1]] = value

        self._config = Config.from_dict(data)
        logger.debug(f"Set configuration {key} = {value!r}")
        return value

    @staticmethod
    def _coerce(key: str, current: Any, value: Any, raw_value: Any) -> Any:
        if isinstance(current, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"Value for {key} must be a boolean")
            return value
        if isinstance(current, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"Value for {key} must be an integer")
            return value
        return str(raw_value) if isinstance(raw_value, str) else str(value)


__all__ = [
    "Config",
    "ConfigManager",
    "Repository",
    "default_config_path",
    "CONFIG_ENV_VAR",
    "DEFAULT_REPOSITORY_URL",
]
