"""YAML configuration loading and validation."""

from pathlib import Path
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from tableturn.errors import ConfigError
from tableturn.models import EngineConfig


def load_engine_config(path: str | Path) -> EngineConfig:
    """Load and validate an engine config from a YAML file.

    Beyond the model's field checks, the record store URL must be http(s)
    and `timezone` must name an IANA zone the floor clock can load.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a YAML mapping, got {type(data).__name__}")

    try:
        config = EngineConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid config: {e}") from e

    _check_records_url(config.records.base_url)
    if config.timezone is not None:
        _check_timezone(config.timezone)
    config.cache_dir = config.cache_dir.expanduser()
    return config


def _check_records_url(base_url: str) -> None:
    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"records.base_url must be an http(s) URL, got {base_url!r}")


def _check_timezone(name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name}") from e
