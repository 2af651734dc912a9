# src/gest/runtime/coordinator.py

"""
The coordinator owns what the user sees: the run mode, the persistent
failing/selected sets, the active run's identity and the list cursor.

It is driven synchronously from the single consumer loop (operator keys,
watch batches and runner events) and talks to the orchestrator only by
queueing RunnerCommands.
"""

import asyncio
import time
from collections.abc import Iterable
from datetime import timedelta
from enum import Enum
from pathlib import Path

import attrs
import structlog
from attrs import field, frozen, mutable

from gest.cache import CacheState
from gest.fuzzy import fuzzy_match
from gest.state import STATUS_RANK, TestCase, TestId, TestRegistry, TestStatus
from gest.telemetry import StructLogger
from gest.testing.protocols import PackageRun, RunKind, RunSpec
from gest.workspace import PackageInfo, is_watched_file, package_for_path

from ..monitor import FilesChanged, WatchError, WatchEvent
from .orchestrator import (
    CancelRun,
    PackageFinished,
    PackageStarted,
    RunError,
    RunFinished,
    RunnerCommand,
    RunnerEvent,
    RunStarted,
    SubmitRun,
    TestEventReceived,
)

log: StructLogger = structlog.get_logger("runtime.coordinator")

ALL_PACKAGES_PATTERN = "./..."


class RunMode(Enum):
    ALL = "all"
    FAILING = "failing"
    SELECTED = "selected"
    SELECTING = "selecting"

    @classmethod
    def from_start_mode(cls, name: str) -> "RunMode":
        """Maps a configured start mode (`all`, `failing`, `select`) to a run mode."""
        if name == "select":
            return cls.SELECTING
        return cls(name)


@mutable(slots=True)
class RunState:
    """Identity and progress of the run the coordinator is tracking."""

    run_id: int | None = None
    kind: RunKind | None = None
    packages_total: int = 0
    packages_done: int = 0
    running: bool = False
    started_at: float | None = None  # time.monotonic()


@mutable(slots=True)
class SelectionState:
    query: str = ""
    filtered: list[TestId] = field(factory=list)


@frozen(slots=True)
class TestRow:
    """One line of the visible test list as handed to the renderer."""

    __test__ = False

    test_id: TestId
    status: TestStatus
    panic: bool
    selected: bool


@frozen(slots=True)
class DashboardSnapshot:
    """Immutable view of coordinator state; the renderer never mutates it."""

    mode: RunMode
    rows: tuple[TestRow, ...]
    cursor: int | None
    detail_open: bool
    detail_title: str | None
    detail_output: str
    query: str
    run_state: RunState
    progress: tuple[int, int]
    failing_count: int
    selected_count: int
    watch_enabled: bool
    last_error: str | None


class Coordinator:
    """Single authority for the active run and the dashboard view state."""

    def __init__(
        self,
        root: Path,
        packages: list[PackageInfo],
        cache: CacheState,
        mode: RunMode,
        package_filter_active: bool,
        watch_enabled: bool,
        runner_tx: asyncio.Queue[RunnerCommand],
        timeout: timedelta | None = None,
    ):
        self.root = root
        self.packages = packages
        self.mode = mode
        self.package_filter_active = package_filter_active
        self.watch_enabled = watch_enabled
        self.runner_tx = runner_tx
        self.timeout = timeout

        self.registry = TestRegistry()
        self.failing_set: set[TestId] = set(cache.failing)
        self.selected_set: set[TestId] = set(cache.selected)
        for test_id in (*cache.failing, *cache.selected):
            self.registry.ensure_test(test_id)

        self.cursor: int | None = None
        self.detail_open = False
        self.selection = SelectionState()
        self.run_state = RunState()
        self.last_error: str | None = None

        if self.mode == RunMode.SELECTING:
            self.refresh_selection_filter()
        self._refresh_lists()
        log.debug(
            "Coordinator initialized",
            mode=mode.value,
            packages=len(packages),
            failing=len(self.failing_set),
            selected=len(self.selected_set),
        )

    # --- Views ---
    def cache_state(self) -> CacheState:
        return CacheState(
            failing=sorted(self.failing_set, key=self.registry.order_index),
            selected=sorted(self.selected_set, key=self.registry.order_index),
        )

    def visible_tests(self) -> list[TestId]:
        if self.mode == RunMode.ALL:
            return self._sorted_all_tests()
        if self.mode == RunMode.FAILING:
            return self._sorted_from_set(self.failing_set)
        if self.mode == RunMode.SELECTED:
            return self._sorted_from_set(self.selected_set)
        return list(self.selection.filtered)

    def current_test(self) -> TestId | None:
        if self.cursor is None:
            return None
        tests = self.visible_tests()
        if 0 <= self.cursor < len(tests):
            return tests[self.cursor]
        return None

    def test_progress(self) -> tuple[int, int]:
        """(done, total) over leaf tests touched since the tracked run started."""
        start = self.run_state.started_at
        if start is None:
            return 0, 0
        done = total = 0
        for test_id in self.registry.leaf_tests():
            case = self.registry.case(test_id)
            if case is None or case.last_update is None or case.last_update < start:
                continue
            total += 1
            if case.status in (TestStatus.PASSED, TestStatus.FAILED):
                done += 1
        return done, total

    def snapshot(self) -> DashboardSnapshot:
        tests = self.visible_tests()
        rows = []
        for test_id in tests:
            case = self.registry.case(test_id) or TestCase()
            rows.append(TestRow(test_id, case.status, case.panic, test_id in self.selected_set))

        current = self.current_test()
        current_case = self.registry.case(current) if current else None
        return DashboardSnapshot(
            mode=self.mode,
            rows=tuple(rows),
            cursor=self.cursor,
            detail_open=self.detail_open,
            detail_title=str(current) if current else None,
            detail_output=current_case.output if current_case else "",
            query=self.selection.query,
            run_state=attrs.evolve(self.run_state),
            progress=self.test_progress(),
            failing_count=len(self.failing_set),
            selected_count=len(self.selected_set),
            watch_enabled=self.watch_enabled,
            last_error=self.last_error,
        )

    # --- Runner events ---
    def handle_runner_event(self, event: RunnerEvent) -> None:
        self.handle_runner_events((event,))

    def handle_runner_events(self, events: Iterable[RunnerEvent]) -> None:
        refresh_selection = False
        refresh_failing = False

        for event in events:
            if isinstance(event, RunStarted):
                self.run_state = RunState(
                    run_id=event.run_id,
                    kind=event.kind,
                    packages_total=event.package_count,
                    packages_done=0,
                    running=True,
                    started_at=time.monotonic(),
                )
                continue

            if not self._is_current_run(event.run_id):
                continue

            if isinstance(event, TestEventReceived):
                self.registry.apply_event(event.event)
                if self.mode == RunMode.SELECTING:
                    refresh_selection = True
            elif isinstance(event, PackageFinished):
                self.run_state.packages_done += 1
            elif isinstance(event, RunFinished):
                self.run_state.running = False
                if event.kind == RunKind.ALL:
                    refresh_failing = True
                log.info("Run finished", run_id=event.run_id, kind=event.kind.value)
            elif isinstance(event, RunError):
                self.last_error = event.message
                log.warning("Run reported an error", run_id=event.run_id, error=event.message)
            elif isinstance(event, PackageStarted):
                pass

        if refresh_failing:
            self.failing_set = set(self.registry.failed_tests())
        if refresh_selection:
            self.refresh_selection_filter()
        self._refresh_lists()

    def _is_current_run(self, run_id: int) -> bool:
        # Before the first RunStarted nothing is tracked yet, so any run is accepted.
        return self.run_state.run_id is None or self.run_state.run_id == run_id

    # --- Watch events ---
    def handle_watch_event(self, event: WatchEvent) -> None:
        if isinstance(event, WatchError):
            self.last_error = event.message
            return
        if not isinstance(event, FilesChanged) or not self.watch_enabled:
            return

        if self.mode == RunMode.ALL:
            packages: list[str] = []
            for path in event.paths:
                if not is_watched_file(path):
                    continue
                package = package_for_path(self.packages, path)
                if package is not None and package.import_path not in packages:
                    packages.append(package.import_path)
            if packages:
                log.info("Files changed, rerunning affected packages", packages=packages)
                self.cancel_current_run()
                self._submit(RunSpec(RunKind.ALL, (PackageRun(packages),), timeout=self.timeout))
        elif self.mode == RunMode.FAILING:
            self.run_failing()
        else:
            self.run_selected()

    # --- Run issuance ---
    def run_all(self) -> None:
        self.cancel_current_run()
        if self.package_filter_active:
            packages = [package.import_path for package in self.packages]
        else:
            packages = [ALL_PACKAGES_PATTERN]
        if not packages:
            log.warning("No packages match the package filter; nothing to run")
            return
        self._submit(RunSpec(RunKind.ALL, (PackageRun(packages),), timeout=self.timeout))

    def run_failing(self) -> None:
        self.cancel_current_run()
        spec = self.spec_for_tests(RunKind.FAILING, self.failing_set)
        if spec is not None:
            self._submit(spec)

    def run_selected(self) -> None:
        self.cancel_current_run()
        spec = self.spec_for_tests(RunKind.SELECTED, self.selected_set)
        if spec is not None:
            self._submit(spec)

    def rerun_current(self, no_test_cache: bool = False) -> None:
        test_id = self.current_test()
        if test_id is None:
            return
        self.detail_open = False
        self.mark_running(test_id)
        spec = self.spec_for_tests(RunKind.SINGLE, [test_id], True if no_test_cache else None)
        if spec is not None:
            self.cancel_current_run()
            self._submit(spec)

    def spec_for_tests(
        self,
        kind: RunKind,
        tests: Iterable[TestId],
        no_cache_override: bool | None = None,
    ) -> RunSpec | None:
        """Groups tests into one package job per distinct package; None if there are no tests."""
        by_package: dict[str, list[str]] = {}
        for test_id in sorted(tests, key=self.registry.order_index):
            by_package.setdefault(test_id.package, []).append(test_id.name)
        if not by_package:
            return None
        jobs = tuple(PackageRun((package,), names) for package, names in by_package.items())
        return RunSpec(kind, jobs, no_cache_override=no_cache_override, timeout=self.timeout)

    def mark_running(self, test_id: TestId) -> None:
        self.registry.ensure_test(test_id).reset_for_run()

    def cancel_current_run(self) -> None:
        if self.run_state.running:
            self.runner_tx.put_nowait(CancelRun(self.run_state.run_id))

    def _submit(self, spec: RunSpec) -> None:
        log.debug("Submitting run", kind=spec.kind.value, package_jobs=len(spec.package_jobs))
        self.runner_tx.put_nowait(SubmitRun(spec))

    # --- Operator input ---
    def handle_key(self, key: str) -> bool:
        """
        Applies one key press.

        `key` is either a single printable character or a named key
        (`up`, `enter`, `escape`, `ctrl+c`, ...). Returns True to quit.
        """
        if key == "ctrl+c":
            return True
        if self.mode == RunMode.SELECTING:
            return self._handle_select_key(key)
        return self._handle_list_key(key)

    def _handle_list_key(self, key: str) -> bool:
        if key == "q":
            return True
        if key == "a":
            self.mode = RunMode.ALL
            self.run_all()
        elif key == "o":
            self.mode = RunMode.FAILING
            self.run_failing()
        elif key == "p":
            self.mode = RunMode.SELECTING
            self.selection.query = ""
            self.refresh_selection_filter()
        elif key == "up":
            self._select_previous()
        elif key == "down":
            self._select_next()
        elif key == "enter":
            self.detail_open = not self.detail_open
        elif key == "right":
            self.detail_open = True
        elif key == "left":
            self.detail_open = False
        elif key in ("r", "R"):
            self.rerun_current(no_test_cache=(key == "R"))
        elif key == "x":
            test_id = self.current_test()
            if test_id is not None:
                if self.mode == RunMode.FAILING:
                    self.failing_set.discard(test_id)
                elif self.mode == RunMode.SELECTED:
                    self.selected_set.discard(test_id)
        self._refresh_lists()
        return False

    def _handle_select_key(self, key: str) -> bool:
        if key in ("escape", "p"):
            self.mode = RunMode.SELECTED
            self._refresh_lists()
            self.run_selected()
        elif key == "a":
            self.mode = RunMode.ALL
            self.run_all()
        elif key == "o":
            self.mode = RunMode.FAILING
            self.run_failing()
        elif key == "up":
            self._select_previous()
        elif key == "down":
            self._select_next()
        elif key in ("enter", " ", "space"):
            test_id = self.current_test()
            if test_id is not None:
                if test_id in self.selected_set:
                    self.selected_set.discard(test_id)
                else:
                    self.selected_set.add(test_id)
        elif key == "backspace":
            self.selection.query = self.selection.query[:-1]
            self.refresh_selection_filter()
        elif len(key) == 1 and key.isprintable():
            self.selection.query += key
            self.refresh_selection_filter()
        self._refresh_lists()
        return False

    # --- Cursor and lists ---
    def _select_previous(self) -> None:
        tests = self.visible_tests()
        if not tests:
            self.cursor = None
            return
        index = self.cursor or 0
        self.cursor = len(tests) - 1 if index == 0 else index - 1

    def _select_next(self) -> None:
        tests = self.visible_tests()
        if not tests:
            self.cursor = None
            return
        index = self.cursor or 0
        self.cursor = 0 if index + 1 >= len(tests) else index + 1

    def _refresh_lists(self) -> None:
        self._ensure_selection_index(self.visible_tests())

    def _ensure_selection_index(self, tests: list[TestId]) -> None:
        if not tests:
            self.cursor = None
        elif self.cursor is None or self.cursor >= len(tests):
            self.cursor = 0

    def _sorted_all_tests(self) -> list[TestId]:
        return sorted(
            self.registry.leaf_tests(),
            key=lambda test_id: (self._status_rank(test_id), self.registry.order_index(test_id)),
        )

    def _sorted_from_set(self, tests: set[TestId]) -> list[TestId]:
        return sorted(
            (test_id for test_id in tests if not self.registry.is_parent(test_id)),
            key=self.registry.order_index,
        )

    def _status_rank(self, test_id: TestId) -> int:
        case = self.registry.case(test_id)
        return STATUS_RANK[case.status if case else TestStatus.UNKNOWN]

    def refresh_selection_filter(self) -> None:
        """Recomputes the picker list for the current query and resets the cursor."""
        query = self.selection.query
        tests = self.registry.leaf_tests()
        if query:
            scored: list[tuple[int, TestId]] = []
            for test_id in tests:
                score = fuzzy_match(f"{test_id.name} {test_id.package}", query)
                if score is not None:
                    scored.append((score, test_id))
            scored.sort(key=lambda item: (-item[0], self.registry.order_index(item[1])))
            tests = [test_id for _, test_id in scored]
        self.selection.filtered = tests
        self.cursor = 0 if tests else None

# 🔼⚙️
