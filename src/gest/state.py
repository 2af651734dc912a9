# src/gest/state.py
#
"""
Defines the test registry: hierarchical pass/fail/running state built from
the stream of `go test -json` events.
"""

import time
import unicodedata
from enum import Enum, auto

import structlog
from attrs import define, field, mutable

from gest.testing.protocols import TestAction, TestEvent

log: structlog.stdlib.BoundLogger = structlog.get_logger("state")

# Package-level summary lines printed by `go test` outside of any test.
HARNESS_EXACT = ("PASS", "FAIL")
HARNESS_PREFIXES = ("ok ", "ok\t", "FAIL\t", "?\t", "?  ")
PANIC_MARKERS = ("panic:", "fatal error")


class TestStatus(Enum):
    """Enumeration of the states a single test can be in."""

    __test__ = False

    UNKNOWN = auto()  # Never run, or skipped.
    RUNNING = auto()
    PASSED = auto()
    FAILED = auto()


# Sort rank used by the "all" view: failures first, unknown last.
STATUS_RANK = {
    TestStatus.FAILED: 0,
    TestStatus.RUNNING: 1,
    TestStatus.PASSED: 2,
    TestStatus.UNKNOWN: 3,
}

# Terminal actions and the status each one leaves behind; a skip is not a failure.
FINAL_STATUS = {
    TestAction.PASS: TestStatus.PASSED,
    TestAction.FAIL: TestStatus.FAILED,
    TestAction.SKIP: TestStatus.UNKNOWN,
}

STATUS_EMOJI_MAP = {
    TestStatus.UNKNOWN: "·",
    TestStatus.RUNNING: "🔄",
    TestStatus.PASSED: "✅",
    TestStatus.FAILED: "❌",
}


@define(frozen=True, slots=True, order=True)
class TestId:
    """Identifies one test (or subtest, `Parent/Child`) within a package."""

    __test__ = False

    package: str
    name: str

    def __str__(self) -> str:
        return f"{self.package}::{self.name}"

    @property
    def parent_names(self) -> list[str]:
        """Every strict `/`-prefix of the name, outermost first."""
        parts = self.name.split("/")
        return ["/".join(parts[:idx]) for idx in range(1, len(parts))]


@mutable(slots=True)
class TestCase:
    """
    Holds the accumulated state for a single test.

    Mutated only by the registry while applying events (and by the
    coordinator's immediate "mark running" feedback on rerun).
    """

    __test__ = False

    status: TestStatus = field(default=TestStatus.UNKNOWN)
    output: str = field(default="")
    panic: bool = field(default=False)
    is_parent_only: bool = field(default=False)
    last_update: float | None = field(default=None)  # time.monotonic()

    def reset_for_run(self) -> None:
        self.status = TestStatus.RUNNING
        self.output = ""
        self.panic = False
        self.touch()

    def touch(self) -> None:
        self.last_update = time.monotonic()


def is_panic_output(line: str) -> bool:
    """True if the line carries a Go panic or fatal runtime error."""
    trimmed = line.lstrip()
    return any(marker in trimmed for marker in PANIC_MARKERS)


def is_harness_output(line: str) -> bool:
    """True for the package summary lines `go test` prints outside of any test."""
    trimmed = line.strip()
    if trimmed in HARNESS_EXACT:
        return True
    # Prefixes include their separator, so match against the left-trimmed line.
    stripped = line.lstrip()
    return stripped.startswith(HARNESS_PREFIXES)


def sanitize_output(output: str) -> str:
    """
    Makes raw test output safe for the terminal.

    ANSI escape sequences are dropped (from ESC through the next ASCII letter),
    carriage returns become newlines, and every other control character apart
    from newline and tab is removed.
    """
    cleaned: list[str] = []
    in_escape = False
    for ch in output:
        if in_escape:
            if ch.isascii() and ch.isalpha():
                in_escape = False
            continue
        if ch == "\x1b":
            in_escape = True
        elif ch == "\r":
            cleaned.append("\n")
        elif ch in ("\n", "\t"):
            cleaned.append(ch)
        elif unicodedata.category(ch) != "Cc":
            cleaned.append(ch)
    return "".join(cleaned)


@define(slots=True)
class _PackageState:
    current_test: str | None = None


class TestRegistry:
    """
    Pure, synchronous container for every test seen during the process lifetime.

    Tests are never removed. Insertion order is tracked so views can
    break ties stably, and `Parent/Child` names mark their ancestors as
    parent-only nodes that are never offered to the user.
    """

    __test__ = False

    def __init__(self) -> None:
        self._tests: dict[TestId, TestCase] = {}
        self._order: list[TestId] = []
        self._order_index: dict[TestId, int] = {}
        self._parents: set[TestId] = set()
        self._packages: dict[str, _PackageState] = {}

    def __len__(self) -> int:
        return len(self._tests)

    def __contains__(self, test_id: object) -> bool:
        return test_id in self._tests

    def ensure_test(self, test_id: TestId) -> TestCase:
        """Materializes a default test case if absent; existing state is untouched."""
        case = self._tests.get(test_id)
        if case is None:
            case = TestCase()
            self._tests[test_id] = case
            self._track_order(test_id)
        return case

    def case(self, test_id: TestId) -> TestCase | None:
        return self._tests.get(test_id)

    def is_parent(self, test_id: TestId) -> bool:
        return test_id in self._parents

    def leaf_tests(self) -> list[TestId]:
        """All tracked tests that are not parent-only, in first-seen order."""
        return [test_id for test_id in self._order if test_id not in self._parents]

    def failed_tests(self) -> list[TestId]:
        return [
            test_id
            for test_id in self.leaf_tests()
            if self._tests[test_id].status == TestStatus.FAILED
        ]

    def order_index(self, test_id: TestId) -> float:
        """Stable first-seen rank; unknown tests sort last."""
        return self._order_index.get(test_id, float("inf"))

    def apply_event(self, event: TestEvent) -> None:
        """Folds one decoded test event into the registry."""
        package = event.package
        if event.test:
            self._mark_parents(TestId(package, event.test))

        if event.action == TestAction.RUN:
            if event.test:
                self.ensure_test(TestId(package, event.test)).reset_for_run()
                self._package(package).current_test = event.test
        elif event.action in FINAL_STATUS:
            if event.test:
                case = self.ensure_test(TestId(package, event.test))
                case.status = FINAL_STATUS[event.action]
                case.touch()
                self._package(package).current_test = event.test
        elif event.action == TestAction.OUTPUT:
            self._apply_output(event)

    def _apply_output(self, event: TestEvent) -> None:
        package = event.package
        if event.test is None and event.output is not None and is_harness_output(event.output):
            return

        target = event.test or self._package(package).current_test
        if target:
            case = self.ensure_test(TestId(package, target))
            if event.output is not None:
                case.output += sanitize_output(event.output)
                if is_panic_output(event.output):
                    if not case.panic:
                        log.debug("Panic detected in test output", package=package, test=target)
                    case.panic = True
            case.touch()
        if event.test:
            self._package(package).current_test = event.test

    def _package(self, package: str) -> _PackageState:
        state = self._packages.get(package)
        if state is None:
            state = self._packages[package] = _PackageState()
        return state

    def _track_order(self, test_id: TestId) -> None:
        if test_id not in self._order_index:
            self._order_index[test_id] = len(self._order)
            self._order.append(test_id)

    def _mark_parents(self, test_id: TestId) -> None:
        for parent_name in test_id.parent_names:
            parent_id = TestId(test_id.package, parent_name)
            self._parents.add(parent_id)
            self.ensure_test(parent_id).is_parent_only = True

# 🔼⚙️
