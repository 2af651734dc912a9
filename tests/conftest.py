import asyncio
from pathlib import Path

import pytest

from gest.cache import CacheState
from gest.runtime.coordinator import Coordinator, RunMode
from gest.workspace import PackageInfo


@pytest.fixture
def go_module(tmp_path: Path) -> Path:
    """A minimal Go module layout: go.mod plus a package with a nested package."""
    root = tmp_path / "mod"
    (root / "alpha" / "inner").mkdir(parents=True)
    (root / "go.mod").write_text("module example.com/m\n\ngo 1.22\n")
    (root / "alpha" / "alpha.go").write_text("package alpha\n")
    (root / "alpha" / "inner" / "inner.go").write_text("package inner\n")
    return root.resolve()


@pytest.fixture
def module_packages(go_module: Path) -> list[PackageInfo]:
    # Longest directory first, as list_packages returns them.
    return [
        PackageInfo("example.com/m/alpha/inner", go_module / "alpha" / "inner"),
        PackageInfo("example.com/m/alpha", go_module / "alpha"),
    ]


@pytest.fixture
def runner_tx() -> asyncio.Queue:
    """Stands in for the orchestrator's command queue."""
    return asyncio.Queue()


@pytest.fixture
def make_coordinator(go_module: Path, module_packages: list[PackageInfo], runner_tx: asyncio.Queue):
    """Factory for a Coordinator wired to `runner_tx`."""

    def _make(
        mode: RunMode = RunMode.ALL,
        cache: CacheState | None = None,
        package_filter_active: bool = False,
        watch_enabled: bool = True,
    ) -> Coordinator:
        return Coordinator(
            go_module,
            module_packages,
            cache or CacheState(),
            mode,
            package_filter_active=package_filter_active,
            watch_enabled=watch_enabled,
            runner_tx=runner_tx,
        )

    return _make
