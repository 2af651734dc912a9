# src/gest/runtime/session.py

"""
High-level assembly for a gest session.
Builds every runtime component for one workspace and manages their lifecycle.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import structlog

from gest.cache import CacheState, cached_packages, load_cache, save_cache, update_package_cache
from gest.config import GestConfig
from gest.exceptions import CacheError
from gest.monitor import WatchService
from gest.telemetry import StructLogger
from gest.workspace import PackageInfo, cache_file, ensure_cache_dir, filter_packages, list_packages

from .coordinator import Coordinator, RunMode
from .event_processor import AppEvent, EventProcessor, KeyInput
from .orchestrator import RunnerEvent, RunOrchestrator, Shutdown
from .tui_interface import TUIInterface

if TYPE_CHECKING:
    from gest.tui.app import GestTuiApp

log: StructLogger = structlog.get_logger("runtime.session")


async def discover_packages(root: Path, config: GestConfig, cache: CacheState) -> list[PackageInfo]:
    """Returns the workspace packages (from the cache when still fresh), filtered by `config.packages`."""
    packages = cached_packages(root, cache, config.package_cache_ttl)
    if packages is None:
        packages = await asyncio.to_thread(list_packages, root)
        update_package_cache(root, cache, packages)
    else:
        log.debug("Using cached package list", count=len(packages))
    return filter_packages(packages, config.packages)


class WatchSession:
    """Instantiates and coordinates all runtime components for one workspace."""

    def __init__(
        self,
        root: Path,
        config: GestConfig,
        shutdown_event: asyncio.Event,
        app: Optional["GestTuiApp"] = None,
        on_runner_events: Callable[[list[RunnerEvent]], None] | None = None,
    ):
        self.root = root
        self.config = config
        self.shutdown_event = shutdown_event
        self.app = app
        self.on_runner_events = on_runner_events
        self.app_queue: asyncio.Queue[AppEvent] = asyncio.Queue()
        self.runner_events: asyncio.Queue[RunnerEvent] = asyncio.Queue()
        self.coordinator: Coordinator | None = None
        self.orchestrator: RunOrchestrator | None = None
        self.watcher: WatchService | None = None
        self._cache: CacheState | None = None

    def send_key(self, key: str) -> None:
        self.app_queue.put_nowait(KeyInput(key))

    async def run(self) -> None:
        """
        Runs until quit or shutdown.

        Raises:
            WorkspaceError: if packages cannot be listed.
        """
        tui = TUIInterface(self.app)
        ensure_cache_dir(self.root)
        self._cache = load_cache(cache_file(self.root))
        packages = await discover_packages(self.root, self.config, self._cache)
        tui.post_log_update(None, "INFO", f"Found {len(packages)} packages in {self.root}")

        self.orchestrator = RunOrchestrator(self.root, self.config.runner, self.runner_events)
        self.coordinator = Coordinator(
            self.root,
            packages,
            self._cache,
            RunMode.from_start_mode(self.config.mode),
            package_filter_active=self.config.packages is not None,
            watch_enabled=self.config.watch.enabled,
            runner_tx=self.orchestrator.commands,
            timeout=self.config.runner.timeout,
        )
        processor = EventProcessor(
            self.coordinator,
            self.app_queue,
            self.runner_events,
            self.shutdown_event,
            tui,
            on_runner_events=self.on_runner_events,
        )

        orchestrator_task = asyncio.create_task(self.orchestrator.run(), name="orchestrator")
        try:
            if self.config.watch.enabled:
                self.watcher = WatchService(
                    self.root, self.app_queue, asyncio.get_running_loop(), self.config.watch.debounce
                )
                self.watcher.start()

            self.coordinator.run_all()
            await processor.run()
        finally:
            log.info("Session shutting down.")
            self.orchestrator.send(Shutdown())
            await orchestrator_task
            if self.watcher is not None:
                await self.watcher.stop()
            self.save_state()

    def save_state(self) -> None:
        """Persists failing/selected sets along with the package list cache."""
        if self.coordinator is None:
            return
        state = self.coordinator.cache_state()
        state.package_cache = self._cache.package_cache if self._cache else None
        try:
            save_cache(cache_file(self.root), state)
        except CacheError as e:
            log.error("Failed to save state", error=str(e))

# 🔼⚙️
