#
# config/loader.py
#
"""
Loads the optional TOML configuration file into GestConfig.
"""

import os
import re
import shlex
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog

from gest.config.models import GestConfig, GlobalConfig, RunnerSettings, WatchSettings
from gest.exceptions import ConfigurationError

log = structlog.get_logger("config.loader")

DEFAULT_CONFIG_NAME = "gest.toml"
ENV_LOG_LEVEL = "GEST_LOG_LEVEL"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": "milliseconds", "s": "seconds", "m": "minutes", "h": "hours", None: "seconds"}


def parse_duration(value: Any) -> timedelta:
    """Parses `250ms`, `30s`, `5m`, `1h` or a bare number of seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if isinstance(value, str) and (match := _DURATION_RE.match(value)):
        amount, unit = match.groups()
        return timedelta(**{_DURATION_UNITS[unit]: float(amount)})
    raise ValueError(f"Invalid duration '{value}'. Use e.g. '250ms', '30s', '5m' or '1h'.")


def _table(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigurationError(f"Section [{name}] must be a table.")
    return value


def _build_config(data: dict[str, Any]) -> GestConfig:
    runner_data = dict(_table(data, "runner"))
    watch_data = dict(_table(data, "watch"))
    global_data = dict(_table(data, "global"))

    if "timeout" in runner_data:
        runner_data["timeout"] = parse_duration(runner_data["timeout"]) if runner_data["timeout"] else None
    if isinstance(runner_data.get("test_command"), str):
        runner_data["test_command"] = shlex.split(runner_data["test_command"])
    if "debounce" in watch_data:
        watch_data["debounce"] = parse_duration(watch_data["debounce"])

    env_level = os.environ.get(ENV_LOG_LEVEL)
    if env_level:
        global_data["log_level"] = env_level

    top_level: dict[str, Any] = {}
    for key in ("mode", "packages"):
        if key in data:
            top_level[key] = data[key]
    if "package_cache_ttl" in data:
        top_level["package_cache_ttl"] = parse_duration(data["package_cache_ttl"])

    return GestConfig(
        runner=RunnerSettings(**runner_data),
        watch=WatchSettings(**watch_data),
        global_config=GlobalConfig(**global_data),
        **top_level,
    )


def load_config(config_path: Path | None) -> GestConfig:
    """
    Loads and validates configuration from a TOML file.

    A missing file is not an error: defaults are returned. Anything present
    but malformed raises ConfigurationError.
    """
    if config_path is None or not config_path.is_file():
        log.debug("No configuration file found, using defaults", path=str(config_path))
        return _build_config({})

    load_log = log.bind(path=str(config_path))
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in '{config_path}': {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file '{config_path}': {e}") from e

    try:
        config = _build_config(data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration in '{config_path}': {e}") from e

    load_log.info("Configuration loaded", mode=config.mode, packages=config.packages)
    return config

# 🔼⚙️
