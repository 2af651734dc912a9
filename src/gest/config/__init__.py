#
# config/__init__.py
#
"""
Configuration handling sub-package for gest.

Exports the loading function and core configuration model.
"""

from .loader import DEFAULT_CONFIG_NAME, load_config, parse_duration
from .models import (
    START_MODES,
    GestConfig,
    GlobalConfig,
    RunnerSettings,
    WatchSettings,
)

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "START_MODES",
    "GestConfig",
    "GlobalConfig",
    "RunnerSettings",
    "WatchSettings",
    "load_config",
    "parse_duration",
]

# 🔼⚙️
