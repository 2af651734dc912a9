# src/gest/cli/utils.py

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any

import attrs
import click
import structlog

from gest.config import DEFAULT_CONFIG_NAME, START_MODES, GestConfig, load_config, parse_duration
from gest.exceptions import ConfigurationError, WorkspaceError
from gest.telemetry.logger import setup_logging as core_setup_logging
from gest.telemetry.logger.processors import level_to_int
from gest.workspace import find_repo_root

log = structlog.get_logger("cli.utils")

LOG_LEVEL_CHOICES = click.Choice(list(logging._nameToLevel.keys()), case_sensitive=False)
ENV_CONFIG_PATH = "GEST_CONF"


def logging_options(f):
    """Decorator to add logging options to any command."""
    f = click.option(
        "-l",
        "--log-level",
        type=LOG_LEVEL_CHOICES,
        default=None,
        envvar="GEST_LOG_LEVEL",
        help="Set the logging level (overrides config file).",
    )(f)
    f = click.option(
        "--log-file",
        type=click.Path(dir_okay=False, writable=True, resolve_path=True),
        default=None,
        envvar="GEST_LOG_FILE",
        help="Path to write logs to a file (JSON format).",
    )(f)
    f = click.option(
        "--json-logs",
        is_flag=True,
        default=None,
        envvar="GEST_JSON_LOGS",
        help="Output console logs as JSON.",
    )(f)
    return f


class DurationParamType(click.ParamType):
    name = "duration"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> timedelta:
        try:
            return parse_duration(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


DURATION = DurationParamType()


def run_options(f):
    """Decorator adding the options shared by `watch` and `tail`."""
    options = [
        click.option(
            "-c",
            "--config-path",
            type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True, path_type=Path),
            default=None,
            envvar=ENV_CONFIG_PATH,
            show_envvar=True,
            help=f"Path to the configuration file (default: {DEFAULT_CONFIG_NAME} in the module root).",
        ),
        click.option("--mode", type=click.Choice(START_MODES), default=None, help="Initial view."),
        click.option(
            "--pkg-concurrency", type=click.IntRange(min=1), default=None, help="Package jobs run in parallel."
        ),
        click.option("--sequential", is_flag=True, default=None, help="Run one package at a time with go test -p=1."),
        click.option("--no-watch", is_flag=True, default=False, help="Do not rerun tests on file changes."),
        click.option("--no-test-cache", is_flag=True, default=None, help="Pass -count=1 to go test."),
        click.option("--packages", default=None, help="Only run packages whose import path matches this regex."),
        click.option("--timeout", type=DURATION, default=None, help="Cancel runs that take longer (e.g. 30s, 5m)."),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def resolve_root(start: Path | None = None) -> Path:
    """Finds the Go module root, raising WorkspaceError when there is none."""
    start = start or Path(os.getcwd())
    root = find_repo_root(start)
    if root is None:
        raise WorkspaceError("No go.mod found in this directory or its parents", root=str(start))
    return root


def resolve_config(root: Path, config_path: Path | None, **overrides: Any) -> GestConfig:
    """
    Loads the config file and applies CLI overrides on top of it.

    Raises:
        ConfigurationError: if the file or an override is invalid.
    """
    path = config_path or (root / DEFAULT_CONFIG_NAME)
    config = load_config(path)

    runner_changes = {
        key: overrides[key]
        for key in ("pkg_concurrency", "sequential", "no_test_cache", "timeout")
        if overrides.get(key) is not None
    }
    top_changes = {key: overrides[key] for key in ("mode", "packages") if overrides.get(key) is not None}

    try:
        if runner_changes:
            config = attrs.evolve(config, runner=attrs.evolve(config.runner, **runner_changes))
        if overrides.get("no_watch"):
            config = attrs.evolve(config, watch=attrs.evolve(config.watch, enabled=False))
        if top_changes:
            config = attrs.evolve(config, **top_changes)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
    return config


def setup_logging_from_context(
    ctx: click.Context,
    local_log_level: str | None = None,
    local_log_file: str | None = None,
    local_json_logs: bool | None = None,
    default_log_level: str = "INFO",
    tui_app_instance: Any | None = None,
    headless_mode: bool = False,
) -> None:
    """
    Setup logging using context values, allowing local overrides.
    """
    log_level_str = local_log_level or ctx.obj.get("LOG_LEVEL") or default_log_level
    log_file_path = local_log_file or ctx.obj.get("LOG_FILE")
    use_json_logs = local_json_logs if local_json_logs is not None else ctx.obj.get("JSON_LOGS", False)

    numeric_level = level_to_int(log_level_str)

    file_only = (tui_app_instance is not None) and (log_file_path is not None)

    core_setup_logging(
        level=numeric_level,
        json_logs=use_json_logs,
        log_file=log_file_path,
        file_only=file_only,
        tui_app_instance=tui_app_instance,
        headless_mode=headless_mode,
    )

    log.debug(
        "CLI logging initialized via utils",
        level=log_level_str,
        file=log_file_path or "console",
        json=use_json_logs,
        file_only=file_only,
        headless=headless_mode,
    )

# 🔼⚙️
