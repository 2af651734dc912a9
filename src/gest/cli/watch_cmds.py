# src/gest/cli/watch_cmds.py
#

import asyncio
from pathlib import Path

import click
import structlog

from gest.cli.utils import logging_options, resolve_config, resolve_root, run_options, setup_logging_from_context
from gest.exceptions import GestError
from gest.telemetry import StructLogger

# --- Try importing TUI App Class ---
try:
    from gest.tui.app import GestTuiApp

    TEXTUAL_AVAILABLE = True
except ImportError as e:
    TEXTUAL_AVAILABLE = False
    GestTuiApp = None
    structlog.get_logger("cli.watch.tui_check").debug(
        "Failed to import gest.tui.app. Possible missing 'gest[tui]' install.", error=str(e)
    )

log: StructLogger = structlog.get_logger("cli.watch")


@click.command(name="watch")
@run_options
@logging_options
@click.pass_context
def watch_cli(ctx: click.Context, config_path: Path | None, **kwargs):
    """Interactive dashboard: run tests, rerun on change, pick tests to focus on."""
    if not TEXTUAL_AVAILABLE or GestTuiApp is None:
        click.echo(
            "Error: The 'watch' command requires the 'textual' library, provided by the 'tui' extra.",
            err=True,
        )
        click.echo("Hint: pip install 'gest[tui]' or use 'gest tail' for headless mode.", err=True)
        ctx.exit(1)

    try:
        root = resolve_root()
        config = resolve_config(root, config_path, **kwargs)
    except GestError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    shutdown_event = asyncio.Event()
    app = GestTuiApp(root=root, config=config, cli_shutdown_event=shutdown_event)

    # Logs go to the TUI log pane (and the log file if one was given), never the console.
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level") or ctx.obj.get("LOG_LEVEL") or config.global_config.log_level,
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
        tui_app_instance=app,
    )
    log.info("Initializing interactive dashboard...", root=str(root))

    try:
        exit_code = app.run()
    except Exception as e:
        log.critical("The TUI application crashed unexpectedly.", error=str(e), exc_info=True)
        click.echo(f"An unexpected error occurred in the TUI: {e}", err=True)
        ctx.exit(1)

    if app.error_message:
        click.echo(f"Error: {app.error_message}", err=True)
    log.info("Interactive dashboard finished.")
    if exit_code:
        ctx.exit(exit_code)

# 🔼⚙️
