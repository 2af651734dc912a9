#
# src/gest/tui/app.py
#
"""
Textual dashboard: the test list, the detail pane for the current test and
the event log. Every key press is forwarded to the coordinator; the app only
renders the snapshots it receives.
"""

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, ClassVar

import structlog
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.reactive import var
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Header
from textual.widgets import Log as TextualLog
from textual.worker import Worker, WorkerState

from gest.config import GestConfig
from gest.exceptions import GestError
from gest.runtime.coordinator import DashboardSnapshot, RunMode
from gest.runtime.session import WatchSession
from gest.state import STATUS_EMOJI_MAP, TestStatus
from gest.tui.messages import LogMessageUpdate, StateUpdate

log = structlog.get_logger("tui.app")

MODE_LABELS = {
    RunMode.ALL: "All tests",
    RunMode.FAILING: "Failing tests",
    RunMode.SELECTED: "Selected tests",
    RunMode.SELECTING: "Pick tests",
}

STATUS_STYLES = {
    TestStatus.FAILED: "bold red",
    TestStatus.RUNNING: "yellow",
    TestStatus.PASSED: "green",
    TestStatus.UNKNOWN: "dim",
}

HELP_LIST = "a all · o failing · p pick · r/R rerun · x remove · enter details · q quit"
HELP_PICK = "type to filter · enter/space toggle · esc/p run selected"

# Upper bound on waiting for the session to clean up after a quit.
SHUTDOWN_GRACE = 5.0


def format_elapsed(started_at: float | None, now: float | None = None) -> str:
    if started_at is None:
        return ""
    seconds = int((time.monotonic() if now is None else now) - started_at)
    minutes, secs = divmod(max(seconds, 0), 60)
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def format_status_line(snapshot: DashboardSnapshot) -> str:
    """One-line summary of the run for the sub-title."""
    run = snapshot.run_state
    parts = [MODE_LABELS[snapshot.mode]]
    if run.run_id is not None:
        done, total = snapshot.progress
        state = "running" if run.running else "done"
        parts.append(f"run #{run.run_id} {state}")
        parts.append(f"packages {run.packages_done}/{run.packages_total}")
        parts.append(f"tests {done}/{total}")
        if run.running:
            parts.append(format_elapsed(run.started_at))
    parts.append(f"failing {snapshot.failing_count}")
    if not snapshot.watch_enabled:
        parts.append("watch off")
    return " · ".join(parts)


class TimerManager:
    """Manages application timers with proper lifecycle handling."""

    def __init__(self, app: App) -> None:
        self.app = app
        self._timers: dict[str, Timer] = {}
        self._logger = log.bind(component="TimerManager")

    def create_timer(self, name: str, interval: float, callback: Callable[[], Any]) -> Timer:
        """Create a repeating timer, replacing any existing timer with the same name."""
        if name in self._timers:
            self.stop_timer(name)

        timer = self.app.set_interval(interval, callback, name=name)
        self._timers[name] = timer
        self._logger.debug("Timer created", name=name, interval=interval)
        return timer

    def stop_timer(self, name: str) -> bool:
        timer = self._timers.pop(name, None)
        if timer is None:
            return False
        timer.stop()
        self._logger.debug("Timer stopped", name=name)
        return True

    def stop_all_timers(self) -> None:
        timer_names = list(self._timers)
        for name in timer_names:
            self.stop_timer(name)
        self._logger.debug("All timers stopped", count=len(timer_names))


class GestTuiApp(App):
    """Interactive dashboard over a running gest session."""

    TITLE = "gest"
    SUB_TITLE = "Starting..."
    BINDINGS: ClassVar[list] = [
        ("ctrl+l", "clear_log", "Clear Log"),
        ("ctrl+c", "quit", "Quit"),
    ]

    CSS = """
    Screen {
        layout: vertical;
        overflow: hidden;
    }

    #query_container {
        display: none;
        height: 3;
        border: round $accent;
        padding: 0 1;
        margin: 0 1;
    }

    #tests_container {
        height: 1fr;
        overflow-y: auto;
        scrollbar-gutter: stable;
        border: round $accent;
        padding: 0 1;
        margin: 0 1;
    }

    #detail_container {
        display: none;
        height: 40%;
        border: round $accent;
        padding: 0 1;
        margin: 0 1;
    }

    #log_container {
        height: 8;
        border: round $accent;
        padding: 0 1;
        margin: 0 1;
    }

    DataTable > .datatable--cursor {
        background: $accent;
        color: $text;
    }
    """

    show_detail_pane: bool = var(False)
    show_query: bool = var(False)

    def __init__(
        self,
        root: Path,
        config: GestConfig,
        cli_shutdown_event: asyncio.Event,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._root = root
        self._config = config
        self._cli_shutdown_event = cli_shutdown_event
        self._shutdown_event = asyncio.Event()
        self._session: WatchSession | None = None
        self._worker: Worker | None = None
        self._timer_manager = TimerManager(self)
        self._is_shutting_down = False
        self._last_detail: tuple[str | None, str] | None = None
        self.last_snapshot: DashboardSnapshot | None = None
        self.error_message: str | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Container(id="query_container"):
            yield TextualLog(id="query", highlight=False)
        with Container(id="tests_container"):
            yield DataTable(id="tests", zebra_stripes=True)
        with Container(id="detail_container"):
            yield TextualLog(id="detail", highlight=False)
        with Container(id="log_container"):
            yield TextualLog(id="event-log", highlight=True, max_lines=1000)
        yield Footer()

    def on_mount(self) -> None:
        log.info("TUI Mounted. Initializing UI components.")
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        # Keys go to the coordinator, not to the widgets' own scroll and cursor bindings.
        table.can_focus = False
        for log_widget in self.query(TextualLog):
            log_widget.can_focus = False
        table.add_columns(" ", "Test", "Package")

        self.query_one("#detail", TextualLog).auto_scroll = False
        self.query_one("#query_container", Container).border_subtitle = HELP_PICK
        self.query_one("#event-log", TextualLog).write_line(HELP_LIST)

        self._worker = self.run_worker(self._run_session, name="Session", group="session")
        self._timer_manager.create_timer("shutdown_check", 0.2, self._check_external_shutdown)

    async def _run_session(self) -> None:
        log.info("Session worker started.")
        try:
            self._session = WatchSession(self._root, self._config, self._shutdown_event, app=self)
            await self._session.run()
        except asyncio.CancelledError:
            log.info("Session worker was cancelled.")
        except GestError as e:
            log.error("Session failed", error=str(e))
            self.error_message = str(e)
        except Exception as e:
            log.exception("Session failed within TUI worker. The app will shut down.")
            self.error_message = f"unexpected error: {e}"
        finally:
            log.info("Session worker finished.")

    def _check_external_shutdown(self) -> None:
        if self._cli_shutdown_event.is_set() and not self._is_shutting_down:
            log.warning("External shutdown detected (CLI signal). Triggering quit.")
            self.action_quit()

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Exits once the session worker is done, whether by quit key, signal or failure."""
        log.debug("Worker state changed", worker=event.worker.name, state=event.state)
        finished = (WorkerState.SUCCESS, WorkerState.ERROR, WorkerState.CANCELLED)
        if event.worker == self._worker and event.state in finished:
            self._is_shutting_down = True
            self._timer_manager.stop_all_timers()
            if not self._cli_shutdown_event.is_set():
                self._cli_shutdown_event.set()
            self.exit(1 if self.error_message else 0)

    def on_key(self, event: events.Key) -> None:
        if self._session is None:
            return
        character = event.character
        key = character if character and len(character) == 1 and character.isprintable() else event.key
        self._session.send_key(key)
        event.stop()

    # Watch Methods
    def watch_show_detail_pane(self, show_detail: bool) -> None:
        self.query_one("#detail_container", Container).styles.display = "block" if show_detail else "none"

    def watch_show_query(self, show_query: bool) -> None:
        self.query_one("#query_container", Container).styles.display = "block" if show_query else "none"

    # Action Methods
    def action_clear_log(self) -> None:
        self.query_one("#event-log", TextualLog).clear()

    def action_quit(self) -> None:
        """Initiates a graceful shutdown of the application."""
        if self._is_shutting_down:
            return

        self._is_shutting_down = True
        log.info("Quit action triggered. Waiting for the session to stop.")
        self._update_sub_title("Quitting...")
        self._timer_manager.stop_all_timers()

        if not self._cli_shutdown_event.is_set():
            self._cli_shutdown_event.set()
        if self._worker is None or self._worker.is_finished:
            self.exit(0)
            return

        # The session saves its state on the way out; the worker-state handler exits.
        self._shutdown_event.set()
        self.set_timer(SHUTDOWN_GRACE, self._force_exit)

    def _force_exit(self) -> None:
        log.warning("Session did not stop in time, exiting anyway.")
        self.exit(0)

    # Message Handlers
    def on_state_update(self, message: StateUpdate) -> None:
        snapshot = message.snapshot
        self.last_snapshot = snapshot
        self._update_sub_title(format_status_line(snapshot))
        self._render_table(snapshot)

        self.show_query = snapshot.mode == RunMode.SELECTING
        if self.show_query:
            query_widget = self.query_one("#query", TextualLog)
            query_widget.clear()
            query_widget.write_line(f"🔎 {snapshot.query}")

        self.show_detail_pane = snapshot.detail_open
        if snapshot.detail_open:
            self._render_detail(snapshot)

        if snapshot.last_error:
            self.query_one("#log_container", Container).border_subtitle = snapshot.last_error

    def _render_table(self, snapshot: DashboardSnapshot) -> None:
        table = self.query_one(DataTable)
        table.clear()
        for row in snapshot.rows:
            marker = "☑ " if snapshot.mode == RunMode.SELECTING and row.selected else ""
            icon = "💥" if row.panic else STATUS_EMOJI_MAP[row.status]
            table.add_row(
                icon,
                Text(marker + row.test_id.name, style=STATUS_STYLES[row.status]),
                Text(row.test_id.package, style="dim"),
                key=str(row.test_id),
            )
        if snapshot.cursor is not None and snapshot.cursor < table.row_count:
            table.move_cursor(row=snapshot.cursor)

    def _render_detail(self, snapshot: DashboardSnapshot) -> None:
        detail = (snapshot.detail_title, snapshot.detail_output)
        if detail == self._last_detail:
            return
        self._last_detail = detail
        detail_log = self.query_one("#detail", TextualLog)
        detail_log.clear()
        if snapshot.detail_title:
            detail_log.write_line(snapshot.detail_title)
            detail_log.write_line("")
        detail_log.write(snapshot.detail_output or "(no output)")

    def on_log_message_update(self, message: LogMessageUpdate) -> None:
        log_widget = self.query_one("#event-log", TextualLog)
        formatted_message = f"[{message.package}] {message.message}" if message.package else message.message
        log_widget.write_line(formatted_message)

    # Helper Methods
    def _update_sub_title(self, text: str) -> None:
        self.sub_title = text

# 🔼⚙️
