# src/gest/runtime/event_processor.py
"""
The single consumer loop: drains operator input, watch batches, ticks and
runner events, feeds them to the coordinator in bounded batches and publishes
snapshots at a bounded rate.
"""
import asyncio
import time
from collections import deque
from collections.abc import Callable
from typing import TypeAlias

import structlog
from attrs import define

from gest.monitor import FilesChanged, WatchError
from gest.runtime.coordinator import Coordinator
from gest.runtime.orchestrator import RunnerEvent
from gest.runtime.tui_interface import TUIInterface
from gest.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.event_processor")

APP_WAIT = 0.030
DRAIN_BUDGET = 0.010
APP_DRAIN_LIMIT = 200
RUNNER_DRAIN_LIMIT = 500
RUNNER_BATCH_LIMIT = 200
RUNNER_FLUSH_INTERVAL = 0.050
REDRAW_INTERVAL = 0.050
TICK_INTERVAL = 0.200


@define(frozen=True, slots=True)
class KeyInput:
    key: str


@define(frozen=True, slots=True)
class Tick:
    pass


@define(frozen=True, slots=True)
class ShutdownRequested:
    pass


AppEvent: TypeAlias = KeyInput | FilesChanged | WatchError | Tick | ShutdownRequested


@define(slots=True)
class _Outcome:
    should_exit: bool = False
    draw_now: bool = False
    dirty: bool = False


class EventProcessor:
    """Owns every mutation of the coordinator; nothing else touches it."""

    def __init__(
        self,
        coordinator: Coordinator,
        app_queue: asyncio.Queue[AppEvent],
        runner_events: asyncio.Queue[RunnerEvent],
        shutdown_event: asyncio.Event,
        tui: TUIInterface,
        on_runner_events: Callable[[list[RunnerEvent]], None] | None = None,
    ):
        self.coordinator = coordinator
        self.app_queue = app_queue
        self.runner_events = runner_events
        self.shutdown_event = shutdown_event
        self.tui = tui
        self.on_runner_events = on_runner_events
        self._pending: deque[RunnerEvent] = deque()
        self._ticker: asyncio.Task | None = None
        log.debug("EventProcessor initialized.")

    async def run(self) -> None:
        """Main consumption loop; returns once a quit or shutdown is requested."""
        log.info("Event processor is running.")
        self._ticker = asyncio.create_task(self._tick_loop(), name="tick")
        self.publish()

        should_exit = False
        dirty = False
        draw_now = False
        last_draw = last_flush = time.monotonic()
        try:
            while not should_exit and not self.shutdown_event.is_set():
                outcome = _Outcome()
                try:
                    event = await asyncio.wait_for(self.app_queue.get(), APP_WAIT)
                    self._handle_app_event(event, outcome)
                except TimeoutError:
                    pass

                self._drain_app_events(outcome)
                self._drain_runner_events()
                should_exit = outcome.should_exit
                dirty = dirty or outcome.dirty
                draw_now = draw_now or outcome.draw_now
                if should_exit:
                    break

                now = time.monotonic()
                if self._pending and (
                    draw_now
                    or now - last_flush >= RUNNER_FLUSH_INTERVAL
                    or len(self._pending) >= RUNNER_BATCH_LIMIT
                ):
                    self.flush_runner_events()
                    last_flush = now
                    dirty = True

                if draw_now or (dirty and now - last_draw >= REDRAW_INTERVAL):
                    self.publish()
                    last_draw = now
                    dirty = draw_now = False
        except asyncio.CancelledError:
            log.info("Event processor run loop cancelled.")
            raise
        finally:
            await self.stop()
            self.shutdown_event.set()
            log.info("Event processor has stopped.")

    async def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

    def flush_runner_events(self) -> None:
        """Hands at most one batch of pending runner events to the coordinator."""
        count = min(len(self._pending), RUNNER_BATCH_LIMIT)
        batch = [self._pending.popleft() for _ in range(count)]
        if not batch:
            return
        self.coordinator.handle_runner_events(batch)
        if self.on_runner_events is not None:
            self.on_runner_events(batch)

    def publish(self) -> None:
        self.tui.post_state_update(self.coordinator.snapshot())

    def _drain_app_events(self, outcome: _Outcome) -> None:
        deadline = time.monotonic() + DRAIN_BUDGET
        processed = 0
        while processed < APP_DRAIN_LIMIT and not outcome.should_exit and time.monotonic() < deadline:
            try:
                event = self.app_queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            processed += 1
            self._handle_app_event(event, outcome)

    def _drain_runner_events(self) -> None:
        deadline = time.monotonic() + DRAIN_BUDGET
        processed = 0
        while processed < RUNNER_DRAIN_LIMIT and time.monotonic() < deadline:
            try:
                self._pending.append(self.runner_events.get_nowait())
            except asyncio.QueueEmpty:
                break
            processed += 1

    def _handle_app_event(self, event: AppEvent, outcome: _Outcome) -> None:
        if isinstance(event, KeyInput):
            if self.coordinator.handle_key(event.key):
                log.info("Quit requested from keyboard")
                outcome.should_exit = True
            outcome.draw_now = outcome.dirty = True
        elif isinstance(event, FilesChanged | WatchError):
            self.coordinator.handle_watch_event(event)
            outcome.dirty = True
        elif isinstance(event, Tick):
            # Keeps the elapsed-time display moving while a run is active.
            if self.coordinator.run_state.running:
                outcome.dirty = True
        elif isinstance(event, ShutdownRequested):
            outcome.should_exit = True
        else:
            log.warning("Ignoring unknown application event", event_type=type(event).__name__)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(TICK_INTERVAL)
            self.app_queue.put_nowait(Tick())

# 🔼⚙️
