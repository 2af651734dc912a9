#
# src/gest/telemetry/__init__.py
#
"""
Logging and telemetry helpers for gest.
"""
from .logger import StructLogger, setup_logging

__all__ = ["StructLogger", "setup_logging"]
