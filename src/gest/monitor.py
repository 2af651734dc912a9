#
# src/gest/monitor.py
#
"""
Filesystem watching for the workspace using watchdog.

Raw notifications arrive on the observer thread and are handed to the event
loop with `call_soon_threadsafe`; once the tree has been quiet for the
debounce delay, the collected paths are queued as one FilesChanged batch.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Any, TypeAlias

import structlog
from attrs import define, field
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from gest.telemetry import StructLogger

log: StructLogger = structlog.get_logger("monitor")

IGNORED_DIR_NAMES = frozenset({".git", ".gest"})


@define(frozen=True, slots=True)
class FilesChanged:
    paths: tuple[Path, ...] = field(converter=tuple)


@define(frozen=True, slots=True)
class WatchError:
    message: str


WatchEvent: TypeAlias = FilesChanged | WatchError


class _ChangeHandler(FileSystemEventHandler):
    """Forwards every file path watchdog reports to the owning service's loop."""

    def __init__(self, service: "WatchService"):
        self._service = service

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [Path(str(event.src_path))]
        dest_path = getattr(event, "dest_path", None)
        if dest_path:
            paths.append(Path(str(dest_path)))
        self._service.loop.call_soon_threadsafe(self._service._record, paths)


class WatchService:
    """Watches a directory tree recursively and emits debounced change batches."""

    def __init__(
        self,
        root: Path,
        event_queue: asyncio.Queue[Any],
        loop: asyncio.AbstractEventLoop,
        debounce: timedelta = timedelta(milliseconds=250),
    ):
        self.root = root
        self.event_queue = event_queue
        self.loop = loop
        self.debounce = debounce
        self._observer: Observer | None = None
        self._pending: set[Path] = set()
        self._flush_handle: asyncio.TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> bool:
        """Starts the observer; a failure is reported as a WatchError event."""
        if self.is_running:
            return True
        observer = Observer()
        try:
            observer.schedule(_ChangeHandler(self), str(self.root), recursive=True)
            observer.start()
        except OSError as e:
            log.error("Failed to start file watcher", root=str(self.root), error=str(e))
            self.event_queue.put_nowait(WatchError(f"file watcher failed: {e}"))
            return False
        self._observer = observer
        log.info("Watching for changes", root=str(self.root), debounce_ms=int(self.debounce.total_seconds() * 1000))
        return True

    async def stop(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        await asyncio.to_thread(observer.join)
        log.info("File watcher stopped")

    def _record(self, paths: list[Path]) -> None:
        for path in paths:
            if IGNORED_DIR_NAMES.intersection(path.parts):
                continue
            self._pending.add(path)
        if not self._pending:
            return
        if self._flush_handle is not None:
            self._flush_handle.cancel()
        self._flush_handle = self.loop.call_later(self.debounce.total_seconds(), self._flush)

    def _flush(self) -> None:
        self._flush_handle = None
        if not self._pending:
            return
        paths = tuple(sorted(self._pending))
        self._pending.clear()
        log.debug("Files changed", count=len(paths))
        self.event_queue.put_nowait(FilesChanged(paths))

# 🔼⚙️
