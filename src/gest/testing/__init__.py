#
# src/gest/testing/__init__.py
#
"""
Test execution sub-package for gest: the `go test -json` protocol and the
subprocess runner that streams it.
"""
from .protocols import PackageRun, RunKind, RunSpec, TestAction, TestEvent, parse_test_line
from .subprocess_runner import SubprocessTestRunner, build_command, build_run_regex

__all__ = [
    "PackageRun",
    "RunKind",
    "RunSpec",
    "SubprocessTestRunner",
    "TestAction",
    "TestEvent",
    "build_command",
    "build_run_regex",
    "parse_test_line",
]

# 🔼⚙️
