"""
Tests for src/utils/config.py.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-CF-N-01 | Default DriverConfig | Equivalence – normal | 9515, range 100, 3s/2s settles | - |
| TC-CF-N-02 | settings.yaml + local.yaml | Equivalence – normal | local overrides merged | Deep merge |
| TC-CF-N-03 | PRICEWATCH_DRIVER__INITIAL_PORT | Equivalence – normal | Env wins, parsed as int | - |
| TC-CF-N-04 | Missing config dir | Equivalence – normal | Defaults | - |
| TC-CF-A-01 | Unknown driver key | Equivalence – error | ValidationError | extra=forbid |
| TC-CF-B-01 | initial_port + range > 65535 | Boundary – max | ValidationError | - |
| TC-CF-N-05 | ensure_directories | Equivalence – normal | data/logs/backups created | - |
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

pytestmark = pytest.mark.unit

from src.utils import config as config_module
from src.utils.config import (
    DriverConfig,
    Settings,
    _apply_env_overrides,
    _deep_merge,
    _load_yaml_config,
    ensure_directories,
    get_settings,
)


@pytest.fixture
def clean_settings_cache():
    """Clear the cached settings before and after the test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestDriverConfig:
    """Tests for DriverConfig defaults and validation."""

    def test_defaults(self):
        # Given/When: Default driver config
        config = DriverConfig()

        # Then: Documented defaults
        assert config.initial_port == 9515
        assert config.port_range_size == 100
        assert config.max_port == 9615
        assert config.start_settle_seconds == 3.0
        assert config.render_settle_seconds == 2.0

    def test_unknown_key_rejected(self):
        # Given/When/Then: Typo in a key fails loudly
        with pytest.raises(ValidationError):
            DriverConfig(intial_port=9600)

    def test_port_range_beyond_65535_rejected(self):
        # Given/When/Then: Range running past the last port
        with pytest.raises(ValidationError):
            DriverConfig(initial_port=65500, port_range_size=100)

    def test_port_range_ending_at_65535_accepted(self):
        # Given/When: Range ending exactly at the last port
        config = DriverConfig(initial_port=65435, port_range_size=100)

        # Then: Accepted
        assert config.max_port == 65535


class TestYamlLoading:
    """Tests for YAML loading and merging."""

    def test_deep_merge(self):
        # Given: Nested dicts
        base = {"driver": {"initial_port": 9515, "host": "localhost"}}
        override = {"driver": {"initial_port": 9600}}

        # When: Merged
        result = _deep_merge(base, override)

        # Then: Nested key replaced, siblings kept
        assert result == {"driver": {"initial_port": 9600, "host": "localhost"}}

    def test_local_yaml_overrides(self, tmp_path: Path):
        # Given: settings.yaml and local.yaml
        (tmp_path / "settings.yaml").write_text(
            "driver:\n  initial_port: 9515\n  driver_path: chromedriver\n", encoding="utf-8"
        )
        (tmp_path / "local.yaml").write_text(
            "settings:\n  driver:\n    driver_path: /opt/chromedriver\n", encoding="utf-8"
        )

        # When: Loaded
        config = _load_yaml_config(tmp_path)

        # Then: local.yaml wins for the key it sets
        assert config["driver"] == {"initial_port": 9515, "driver_path": "/opt/chromedriver"}

    def test_missing_directory_gives_empty(self, tmp_path: Path):
        # Given/When: No files
        config = _load_yaml_config(tmp_path / "absent")

        # Then: Empty config, defaults apply downstream
        assert config == {}
        assert Settings(**config).driver.initial_port == 9515


class TestEnvOverrides:
    """Tests for PRICEWATCH_ environment overrides."""

    def test_nested_int_override(self, monkeypatch):
        # Given: Env var for a nested key
        monkeypatch.setenv("PRICEWATCH_DRIVER__INITIAL_PORT", "9600")

        # When: Applied
        config = _apply_env_overrides({"driver": {"initial_port": 9515}})

        # Then: Parsed as int
        assert config["driver"]["initial_port"] == 9600

    def test_path_value_kept_as_string(self, monkeypatch):
        # Given: Env var containing a dot that is not a float
        monkeypatch.setenv("PRICEWATCH_STORAGE__DATABASE_PATH", "data/other.db")

        # When: Applied
        config = _apply_env_overrides({})

        # Then: Stored as string
        assert config["storage"]["database_path"] == "data/other.db"

    def test_config_dir_variable_ignored(self, monkeypatch):
        # Given: Only the config dir variable
        monkeypatch.setenv("PRICEWATCH_CONFIG_DIR", "/somewhere")

        # When: Applied
        config = _apply_env_overrides({})

        # Then: Not treated as a setting
        assert "config_dir" not in config

    def test_get_settings_reads_env(self, monkeypatch, tmp_path: Path, clean_settings_cache):
        # Given: Empty config dir and an env override
        monkeypatch.setenv("PRICEWATCH_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("PRICEWATCH_DRIVER__RENDER_SETTLE_SECONDS", "0.5")

        # When: Settings loaded
        settings = get_settings()

        # Then: Override visible
        assert settings.driver.render_settle_seconds == 0.5


class TestEnsureDirectories:
    """Tests for ensure_directories()."""

    def test_creates_directories(self, tmp_path: Path, mock_settings):
        # Given: Settings with relative dirs under a fake project root
        mock_settings.storage.backups_dir = "data/backups"

        with (
            patch.object(config_module, "get_settings", return_value=mock_settings),
            patch.object(config_module, "get_project_root", return_value=tmp_path),
        ):
            # When: Directories ensured
            ensure_directories()

        # Then: All exist
        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "logs").is_dir()
        assert (tmp_path / "data" / "backups").is_dir()
