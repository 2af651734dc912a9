# src/gest/cli/tail_cmds.py

import asyncio
import logging
import sys
from pathlib import Path

import click
import structlog

from gest.cli.utils import logging_options, resolve_config, resolve_root, run_options, setup_logging_from_context
from gest.config import GestConfig
from gest.exceptions import GestError
from gest.runtime.orchestrator import PackageFinished, RunError, RunFinished, RunnerEvent, RunStarted
from gest.runtime.session import WatchSession
from gest.state import TestStatus
from gest.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.tail")

# Lines of output shown per failing test in run summaries.
FAILURE_TAIL_LINES = 20


class TailReporter:
    """Logs run progress from the runner event stream of a headless session."""

    def __init__(self, once: bool = False):
        self.once = once
        self.session: WatchSession | None = None
        self.failed = False
        self.finished_runs = 0

    def __call__(self, events: list[RunnerEvent]) -> None:
        if self.session is None or self.session.coordinator is None:
            return
        coordinator = self.session.coordinator
        for event in events:
            if isinstance(event, RunStarted):
                log.info("Run started", run_id=event.run_id, kind=event.kind.value, packages=event.package_count)
            elif event.run_id != coordinator.run_state.run_id:
                continue
            elif isinstance(event, PackageFinished) and not event.success:
                log.warning("Package failed", run_id=event.run_id, package=event.package)
            elif isinstance(event, RunError):
                log.error("Run error", run_id=event.run_id, error=event.message)
                self.failed = True
            elif isinstance(event, RunFinished):
                self._summarize(event)

    def _summarize(self, event: RunFinished) -> None:
        registry = self.session.coordinator.registry
        done, total = self.session.coordinator.test_progress()
        failures = [
            test_id
            for test_id in registry.leaf_tests()
            if (case := registry.case(test_id)) is not None and case.status == TestStatus.FAILED
        ]
        for test_id in failures:
            case = registry.case(test_id)
            output = "\n".join(case.output.rstrip("\n").splitlines()[-FAILURE_TAIL_LINES:])
            log.error("FAIL", test=str(test_id), panic=case.panic, output=output)

        self.finished_runs += 1
        self.failed = self.failed or bool(failures)
        log.info(
            "Run finished",
            run_id=event.run_id,
            kind=event.kind.value,
            tests=total,
            completed=done,
            failed=len(failures),
            emoji="❌" if failures else "✅",
        )
        if self.once:
            self.session.shutdown_event.set()


async def _run_tail(root: Path, config: GestConfig, reporter: TailReporter) -> None:
    shutdown_event = asyncio.Event()
    session = WatchSession(root, config, shutdown_event, app=None, on_runner_events=reporter)
    reporter.session = session
    await session.run()


def _run_headless_session(root: Path, config: GestConfig, reporter: TailReporter) -> int:
    """
    Runs the session with asyncio.run(), which cancels the main task on CTRL-C;
    the session's cleanup still saves its state.
    """
    try:
        asyncio.run(_run_tail(root, config, reporter))
        return 1 if reporter.once and reporter.failed else 0
    except KeyboardInterrupt:
        log.warning("Shutdown initiated by KeyboardInterrupt (CTRL-C).")
        return 130
    except GestError as e:
        log.error("gest failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        return 1
    except Exception:
        log.critical("Session exited with an unhandled exception.", exc_info=True)
        return 1
    finally:
        logging.shutdown()


@click.command(name="tail")
@run_options
@click.option("--once", is_flag=True, default=False, help="Exit after the first run; status 1 if tests failed.")
@logging_options
@click.pass_context
def tail_cli(ctx: click.Context, config_path: Path | None, once: bool, **kwargs):
    """Run and rerun tests without the dashboard, logging results (non-interactive mode)."""
    try:
        root = resolve_root()
        config = resolve_config(root, config_path, **kwargs)
    except GestError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level") or ctx.obj.get("LOG_LEVEL") or config.global_config.log_level,
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
        headless_mode=True,
    )
    log.info("Initializing tail command...", root=str(root), once=once)

    exit_code = _run_headless_session(root, config, TailReporter(once=once))

    log.info("'tail' command finished.")
    if exit_code != 0:
        sys.exit(exit_code)

# 🔼⚙️
