"""Tests for config loading and validation."""

import tempfile
from pathlib import Path

import pytest

from tableturn.config import load_engine_config
from tableturn.errors import ConfigError


def _write_yaml(content: str) -> str:
    """Write YAML to a temp file and return the path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False)
    f.write(content)
    f.close()
    return f.name


class TestLoadEngineConfig:
    def test_valid_config(self):
        path = _write_yaml("""
records:
  base_url: "https://records.example.com"
  api_key_env: "FLOOR_KEY"
  owner_id: "user-7"
  timeout_seconds: 5
cache_dir: "/tmp/tableturn-cache"
extension_minutes: 20
countdown_interval_seconds: 0.5
ntp_check: true
timezone: "Europe/Lisbon"
""")
        config = load_engine_config(path)

        assert config.records.base_url == "https://records.example.com"
        assert config.records.api_key_env == "FLOOR_KEY"
        assert config.records.owner_id == "user-7"
        assert config.records.timeout_seconds == 5
        assert config.cache_dir == Path("/tmp/tableturn-cache")
        assert config.extension_minutes == 20
        assert config.countdown_interval_seconds == 0.5
        assert config.ntp_check is True
        assert config.timezone == "Europe/Lisbon"

    def test_defaults_applied(self):
        path = _write_yaml("""
records:
  base_url: "https://records.example.com"
""")
        config = load_engine_config(path)

        assert config.records.api_key_env == "TABLETURN_API_KEY"
        assert config.records.owner_id is None
        assert config.extension_minutes == 15
        assert config.countdown_interval_seconds == 1.0
        assert config.ntp_check is False
        assert config.timezone is None

    def test_missing_file(self):
        with pytest.raises(ConfigError, match="not found"):
            load_engine_config("/nonexistent/config.yaml")

    def test_invalid_yaml(self):
        path = _write_yaml("records: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_engine_config(path)

    def test_not_a_mapping(self):
        path = _write_yaml("- just\n- a list\n")
        with pytest.raises(ConfigError, match="YAML mapping"):
            load_engine_config(path)

    def test_missing_records(self):
        path = _write_yaml("extension_minutes: 15\n")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_engine_config(path)

    def test_extension_out_of_range(self):
        path = _write_yaml("""
records:
  base_url: "https://records.example.com"
extension_minutes: 0
""")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_engine_config(path)

    def test_unknown_timezone(self):
        path = _write_yaml("""
records:
  base_url: "https://records.example.com"
timezone: "Mars/Olympus_Mons"
""")
        with pytest.raises(ConfigError, match="Unknown timezone: Mars/Olympus_Mons"):
            load_engine_config(path)

    def test_records_url_needs_scheme(self):
        path = _write_yaml("""
records:
  base_url: "records.example.com"
""")
        with pytest.raises(ConfigError, match="http\\(s\\) URL"):
            load_engine_config(path)

    def test_cache_dir_expanded(self):
        path = _write_yaml("""
records:
  base_url: "https://records.example.com"
cache_dir: "~/floor-cache"
""")
        config = load_engine_config(path)

        assert config.cache_dir == Path("~/floor-cache").expanduser()
