"""
Configuration management for Pricewatch.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "pricewatch"
    version: str = "0.1.0"
    log_level: str = "INFO"
    data_dir: str = "data"
    logs_dir: str = "logs"


class DriverConfig(BaseModel):
    """Browser driver configuration.

    The driver process (chromedriver) is launched on a local port taken from
    [initial_port, initial_port + port_range_size]. Timings are in seconds.
    """

    model_config = ConfigDict(extra="forbid")

    driver_path: str = "chromedriver"
    browser_path: str = "/usr/bin/chromium"
    host: str = "localhost"
    initial_port: int = Field(default=9515, ge=1, le=65535)
    port_range_size: int = Field(default=100, ge=0)

    # Readiness polling after spawn; the last health check wins
    start_settle_seconds: float = Field(default=3.0, gt=0)
    ready_poll_interval: float = Field(default=0.25, gt=0)
    # Fixed wait after navigation for client-side rendering
    render_settle_seconds: float = Field(default=2.0, ge=0)

    health_check_timeout: float = Field(default=3.0, gt=0)
    stop_timeout: float = Field(default=5.0, gt=0)
    page_load_timeout: int = Field(default=45, ge=1)

    # Headless is always forced; only the viewport is configurable
    window_width: int = 1920
    window_height: int = 1080

    @model_validator(mode="after")
    def _check_port_range(self) -> "DriverConfig":
        if self.initial_port + self.port_range_size > 65535:
            raise ValueError("initial_port + port_range_size exceeds 65535")
        return self

    @property
    def max_port(self) -> int:
        """Upper bound of the default port range."""
        return self.initial_port + self.port_range_size


class StorageConfig(BaseModel):
    """Storage configuration."""

    database_path: str = "data/pricewatch.db"
    backups_dir: str = "data/backups"


class SitesConfig(BaseModel):
    """Supported e-commerce sites, matched by URL substring."""

    domains: list[str] = Field(default_factory=lambda: ["amazon.in", "flipkart.com"])


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    driver: DriverConfig = Field(default_factory=DriverConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sites: SitesConfig = Field(default_factory=SitesConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides.

    local.yaml is not version-controlled; its ``settings`` section is merged
    over settings.yaml.

    Example local.yaml:
        settings:
          driver:
            driver_path: /opt/chromedriver/chromedriver

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _load_yaml_file(config_dir / "settings.yaml")
    local_overrides = _load_yaml_file(config_dir / "local.yaml")

    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with PRICEWATCH_ and use
    double underscores for nested keys.

    Example:
        PRICEWATCH_DRIVER__INITIAL_PORT=9600

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "PRICEWATCH_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "PRICEWATCH_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("PRICEWATCH_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # src/utils/config.py -> project root
    return Path(__file__).parent.parent.parent


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    settings = get_settings()
    root = get_project_root()

    dirs = [
        root / settings.general.data_dir,
        root / settings.general.logs_dir,
        root / settings.storage.backups_dir,
    ]

    for dir_path in dirs:
        dir_path.mkdir(parents=True, exist_ok=True)
