#
# config/models.py
#
"""
Attrs-based data models for gest configuration structure.
"""

import logging
import os
import re
from datetime import timedelta
from typing import Any

from attrs import define, field

START_MODES = ("all", "failing", "select")


# --- Validators ---
def _validate_log_level(inst: Any, attr: Any, value: str) -> None:
    """Validator for standard logging level names."""
    valid = logging._nameToLevel.keys()
    if value.upper() not in valid:
        raise ValueError(f"Invalid log_level '{value}'. Must be one of {list(valid)}.")


def _validate_positive_int(inst: Any, attr: Any, value: int) -> None:
    """Validator ensures integer is positive."""
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValueError(f"Field '{attr.name}' must be positive integer, got {value}")


def _validate_regex(inst: Any, attr: Any, value: str | None) -> None:
    if value is None:
        return
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"Field '{attr.name}' is not a valid regular expression: {e}") from e


def _validate_mode(inst: Any, attr: Any, value: str) -> None:
    if value not in START_MODES:
        raise ValueError(f"Invalid mode '{value}'. Must be one of {list(START_MODES)}.")


def _default_concurrency() -> int:
    return os.cpu_count() or 1


@define(frozen=True, slots=True)
class RunnerSettings:
    """How test processes are launched."""
    pkg_concurrency: int = field(factory=_default_concurrency, validator=_validate_positive_int)
    # Value for `go test -p`; defaults to pkg_concurrency.
    go_test_p: int | None = field(default=None)
    no_test_cache: bool = field(default=False)
    sequential: bool = field(default=False)
    timeout: timedelta | None = field(default=None)
    # Replaces `go test` entirely when set.
    test_command: list[str] | None = field(default=None)

    @property
    def effective_pkg_concurrency(self) -> int:
        return 1 if self.sequential else self.pkg_concurrency

    @property
    def effective_go_test_p(self) -> int:
        if self.sequential:
            return 1
        return self.go_test_p or self.pkg_concurrency


@define(frozen=True, slots=True)
class WatchSettings:
    """File watching behaviour."""
    enabled: bool = field(default=True)
    debounce: timedelta = field(default=timedelta(milliseconds=250))


@define(frozen=True, slots=True)
class GlobalConfig:
    """Global default settings for gest."""
    log_level: str = field(default="INFO", validator=_validate_log_level)


@define(frozen=True, slots=True)
class GestConfig:
    """Root configuration object for the gest application."""
    runner: RunnerSettings = field(factory=RunnerSettings)
    watch: WatchSettings = field(factory=WatchSettings)
    global_config: GlobalConfig = field(factory=GlobalConfig, metadata={"toml_name": "global"})
    mode: str = field(default="all", validator=_validate_mode)
    # Regex over import paths; when set only matching packages are run.
    packages: str | None = field(default=None, validator=_validate_regex)
    package_cache_ttl: timedelta = field(default=timedelta(minutes=10))

# 🔼⚙️
