"""
Configuration management for bravia_remote.

Settings are read from TOML. The shipped defaults.toml is always loaded
first; a user file, if given, is merged over it section by section.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "defaults.toml"


class ConfigError(ValueError):
    """A configuration value is missing or invalid."""

    pass


@dataclass
class DiscoveryConfig:
    """SSDP discovery settings."""

    interval: float = 10.0
    missing_threshold: int = 3
    search_target: str = "urn:schemas-sony-com:service:ScalarWebAPI:1"
    bind_host: str = "0.0.0.0"


@dataclass
class DeviceSettings:
    """Per-television connection settings."""

    control_port: int = 20060
    response_timeout: float | None = None
    serialize_commands: bool = True


@dataclass
class WebConfig:
    """HTTP control surface settings."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8060


@dataclass
class RemoteConfig:
    """Loaded configuration."""

    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    device: DeviceSettings = field(default_factory=DeviceSettings)
    web: WebConfig = field(default_factory=WebConfig)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge override into base one section deep."""
    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in base.items()}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def _parse_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _parse_discovery(data: dict[str, Any]) -> DiscoveryConfig:
    interval = float(data.get("interval", 10.0))
    missing_threshold = int(data.get("missing_threshold", 3))
    if interval <= 0:
        raise ConfigError(f"discovery.interval must be positive, got {interval}")
    if missing_threshold < 1:
        raise ConfigError(f"discovery.missing_threshold must be at least 1, got {missing_threshold}")

    return DiscoveryConfig(
        interval=interval,
        missing_threshold=missing_threshold,
        search_target=str(data.get("search_target", DiscoveryConfig.search_target)),
        bind_host=str(data.get("bind_host", "0.0.0.0")),
    )


def _parse_device(data: dict[str, Any]) -> DeviceSettings:
    timeout = float(data.get("response_timeout", 0) or 0)
    if timeout < 0:
        raise ConfigError(f"device.response_timeout must not be negative, got {timeout}")

    return DeviceSettings(
        control_port=int(data.get("control_port", 20060)),
        response_timeout=timeout or None,
        serialize_commands=_parse_bool(data, "serialize_commands", True),
    )


def _parse_web(data: dict[str, Any]) -> WebConfig:
    return WebConfig(
        enabled=_parse_bool(data, "enabled", True),
        host=str(data.get("host", "0.0.0.0")),
        port=int(data.get("port", 8060)),
    )


def load_config(config_path: Path | None = None) -> RemoteConfig:
    """
    Load configuration from TOML.

    Args:
        config_path: Optional user config merged over the defaults.

    Returns:
        Loaded RemoteConfig instance.

    Raises:
        ConfigError: If a value is invalid.
    """
    logger.debug("Loading default config from %s", DEFAULT_CONFIG_PATH)
    with DEFAULT_CONFIG_PATH.open("rb") as f:
        data = tomllib.load(f)

    if config_path is not None:
        logger.debug("Loading config from %s", config_path)
        with Path(config_path).open("rb") as f:
            data = _merge(data, tomllib.load(f))

    try:
        return RemoteConfig(
            discovery=_parse_discovery(data.get("discovery", {})),
            device=_parse_device(data.get("device", {})),
            web=_parse_web(data.get("web", {})),
        )
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"Invalid configuration: {e}") from e


# Global singleton instance (lazy loaded)
_config: RemoteConfig | None = None


def get_config() -> RemoteConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The RemoteConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> RemoteConfig:
    """
    Force reload of configuration.

    Returns:
        The newly loaded RemoteConfig instance.
    """
    global _config
    _config = load_config(config_path)
    return _config
