# src/gest/runtime/orchestrator.py

"""
Run orchestrator: turns a RunSpec into a bounded-concurrency set of test
processes and reports their lifecycle as a stream of runner events.
"""

import asyncio
import itertools
from datetime import timedelta
from pathlib import Path
from typing import TypeAlias

import structlog
from attrs import define, field, mutable

from gest.config import RunnerSettings
from gest.exceptions import RunnerError
from gest.telemetry import StructLogger
from gest.testing.protocols import PackageRun, RunKind, RunSpec, TestEvent
from gest.testing.subprocess_runner import SubprocessTestRunner, kill_process

log: StructLogger = structlog.get_logger("runtime.orchestrator")


# --- Runner events (orchestrator -> consumers) ---
@define(frozen=True, slots=True)
class RunStarted:
    run_id: int
    kind: RunKind
    package_count: int


@define(frozen=True, slots=True)
class PackageStarted:
    run_id: int
    package: str


@define(frozen=True, slots=True)
class TestEventReceived:
    __test__ = False

    run_id: int
    event: TestEvent


@define(frozen=True, slots=True)
class PackageFinished:
    run_id: int
    package: str
    success: bool


@define(frozen=True, slots=True)
class RunFinished:
    run_id: int
    kind: RunKind


@define(frozen=True, slots=True)
class RunError:
    run_id: int
    message: str


RunnerEvent: TypeAlias = RunStarted | PackageStarted | TestEventReceived | PackageFinished | RunFinished | RunError


# --- Runner commands (consumers -> orchestrator control loop) ---
@define(frozen=True, slots=True)
class SubmitRun:
    spec: RunSpec


@define(frozen=True, slots=True)
class CancelRun:
    run_id: int | None = None


@define(frozen=True, slots=True)
class Shutdown:
    pass


RunnerCommand: TypeAlias = SubmitRun | CancelRun | Shutdown


def format_timeout(timeout: timedelta) -> str:
    seconds = timeout.total_seconds()
    if seconds >= 60 and seconds % 60 == 0:
        return f"{int(seconds // 60)}m"
    return f"{seconds:g}s"


@mutable(slots=True)
class ActiveRun:
    """
    Ownership object for one run-group.

    Cancellation is one-shot: the first call records its reason and kills
    every live process; later calls, and any call after the run completed,
    are no-ops.
    """

    run_id: int = field()
    cancel_reason: str | None = field(default=None)
    _cancelled: bool = field(default=False, init=False)
    _completed: bool = field(default=False, init=False)
    _processes: set[asyncio.subprocess.Process] = field(factory=set, init=False)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_completed(self) -> bool:
        return self._completed

    @property
    def live_processes(self) -> int:
        return len(self._processes)

    def cancel(self, reason: str) -> bool:
        """Requests cancellation; returns True only for the call that took effect."""
        if self._completed or self._cancelled:
            return False
        self._cancelled = True
        self.cancel_reason = reason
        log.info("Cancelling run", run_id=self.run_id, reason=reason, processes=len(self._processes))
        for process in list(self._processes):
            kill_process(process)
        return True

    def finish(self) -> None:
        self._completed = True

    def register(self, process: asyncio.subprocess.Process) -> None:
        self._processes.add(process)

    def unregister(self, process: asyncio.subprocess.Process) -> None:
        self._processes.discard(process)


class RunOrchestrator:
    """Executes at most one run-group at a time on behalf of the coordinator."""

    def __init__(
        self,
        root: Path,
        settings: RunnerSettings,
        event_queue: asyncio.Queue[RunnerEvent],
    ):
        self.root = root
        self.settings = settings
        self.event_queue = event_queue
        self.commands: asyncio.Queue[RunnerCommand] = asyncio.Queue()
        self._runner = SubprocessTestRunner(root, settings.effective_go_test_p, settings.test_command)
        self._run_ids = itertools.count(1)
        self._active: ActiveRun | None = None
        self._active_task: asyncio.Task | None = None
        self._accepting = True
        log.debug(
            "RunOrchestrator initialized.",
            root=str(root),
            pkg_concurrency=settings.effective_pkg_concurrency,
            go_test_p=settings.effective_go_test_p,
        )

    @property
    def active_run(self) -> ActiveRun | None:
        return self._active

    def send(self, command: RunnerCommand) -> None:
        """Queues a command for the control loop; never blocks."""
        self.commands.put_nowait(command)

    async def run(self) -> None:
        """Control loop: applies commands strictly one at a time."""
        log.info("Orchestrator control loop is running.")
        try:
            while True:
                command = await self.commands.get()
                if isinstance(command, SubmitRun):
                    try:
                        await self.submit(command.spec)
                    except RunnerError as e:
                        log.warning("Run request rejected", error=str(e))
                elif isinstance(command, CancelRun):
                    self.cancel(command.run_id)
                elif isinstance(command, Shutdown):
                    break
        except asyncio.CancelledError:
            log.info("Orchestrator control loop cancelled.")
            raise
        finally:
            await self.shutdown()
            log.info("Orchestrator control loop has stopped.")

    async def submit(self, spec: RunSpec) -> int:
        """
        Starts a new run-group, superseding any active one.

        The previous run is cancelled and joined before the new run id is
        handed out, so its RunFinished always precedes the new RunStarted.
        Returns as soon as the new run has been started.
        """
        if not self._accepting:
            raise RunnerError("orchestrator is shut down")

        await self._teardown_active("run cancelled by new request")

        run_id = next(self._run_ids)
        run = ActiveRun(run_id)
        log.info(
            "Starting run",
            run_id=run_id,
            kind=spec.kind.value,
            package_jobs=len(spec.package_jobs),
            timeout=str(spec.timeout) if spec.timeout else None,
        )
        self._emit(RunStarted(run_id, spec.kind, len(spec.package_jobs)))
        self._active = run
        self._active_task = asyncio.create_task(self._execute(run, spec), name=f"run-{run_id}")
        return run_id

    def cancel(self, run_id: int | None = None) -> bool:
        """Cancels the active run if it matches `run_id` (any run when None)."""
        run = self._active
        if run is None or (run_id is not None and run_id != run.run_id):
            log.debug("Cancel ignored, no matching active run", run_id=run_id)
            return False
        return run.cancel("run cancelled")

    async def shutdown(self) -> None:
        """Stops accepting submissions and tears down the active run."""
        self._accepting = False
        await self._teardown_active("runner shutdown")

    async def wait_idle(self) -> None:
        """Waits for the active run-group, if any, to finish on its own."""
        if self._active_task is not None:
            await asyncio.shield(self._active_task)

    async def _teardown_active(self, reason: str) -> None:
        run, task = self._active, self._active_task
        if run is None or task is None:
            return
        run.cancel(reason)
        await task
        self._active = None
        self._active_task = None

    def _emit(self, event: RunnerEvent) -> None:
        self.event_queue.put_nowait(event)

    async def _execute(self, run: ActiveRun, spec: RunSpec) -> None:
        run_log = log.bind(run_id=run.run_id, kind=spec.kind.value)
        timer: asyncio.TimerHandle | None = None
        no_test_cache = (
            spec.no_cache_override if spec.no_cache_override is not None else self.settings.no_test_cache
        )

        try:
            if spec.package_jobs:
                if spec.timeout is not None:
                    message = f"run timed out after {format_timeout(spec.timeout)}"
                    timer = asyncio.get_running_loop().call_later(
                        spec.timeout.total_seconds(), run.cancel, message
                    )

                jobs: asyncio.Queue[PackageRun] = asyncio.Queue()
                for job in spec.package_jobs:
                    jobs.put_nowait(job)

                worker_count = max(1, self.settings.effective_pkg_concurrency)
                run_log.debug("Starting workers", workers=worker_count)
                await asyncio.gather(
                    *(self._worker(run, jobs, no_test_cache) for _ in range(worker_count))
                )
        finally:
            if timer is not None:
                timer.cancel()
            if run.is_cancelled:
                self._emit(RunError(run.run_id, run.cancel_reason or "run cancelled"))
            self._emit(RunFinished(run.run_id, spec.kind))
            run.finish()
            run_log.info("Run finished", cancelled=run.is_cancelled)

    async def _worker(self, run: ActiveRun, jobs: asyncio.Queue[PackageRun], no_test_cache: bool) -> None:
        while not run.is_cancelled:
            try:
                job = jobs.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._run_package(run, job, no_test_cache)

    async def _run_package(self, run: ActiveRun, job: PackageRun, no_test_cache: bool) -> None:
        if run.is_cancelled:
            return
        label = job.label if job.packages else "(unknown)"
        self._emit(PackageStarted(run.run_id, label))

        if not job.packages and not self._runner.test_command:
            log.warning("Package job has no packages", run_id=run.run_id)
            self._emit(RunError(run.run_id, "no packages provided for go test"))
            return

        def emit_test_event(event: TestEvent) -> None:
            self._emit(TestEventReceived(run.run_id, event))

        try:
            success = await self._runner.run_job(job, no_test_cache, run, emit_test_event)
        except RunnerError as e:
            self._emit(RunError(run.run_id, str(e)))
            return
        except Exception as e:
            log.exception("Unexpected failure while running package job", run_id=run.run_id, package=label)
            self._emit(RunError(run.run_id, f"{label}: {e}"))
            return

        log.debug("Package finished", run_id=run.run_id, package=label, success=success)
        self._emit(PackageFinished(run.run_id, label, success))

# 🔼⚙️
