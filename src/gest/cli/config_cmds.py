# src/gest/cli/config_cmds.py

from pathlib import Path

import click
import structlog
from rich.pretty import pretty_repr

from gest.cli.utils import ENV_CONFIG_PATH, logging_options, resolve_config, resolve_root, setup_logging_from_context
from gest.exceptions import ConfigurationError, WorkspaceError
from gest.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.config")


@click.group(name="config")
def config_cli():
    """Commands for inspecting configuration."""
    pass


@config_cli.command(name="show")
@click.option(
    "-c",
    "--config-path",
    type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True, path_type=Path),
    default=None,
    envvar=ENV_CONFIG_PATH,
    show_envvar=True,
    help="Path to the configuration file (default: gest.toml in the module root).",
)
@logging_options
@click.pass_context
def show_config(ctx: click.Context, config_path: Path | None, **kwargs):
    """Load, validate, and display the effective configuration."""
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
    )
    log.info("Executing 'config show' command", config_path=str(config_path))

    try:
        if config_path is None:
            root = resolve_root()
        else:
            root = config_path.resolve().parent
        config = resolve_config(root, config_path)
    except (ConfigurationError, WorkspaceError) as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except Exception as e:
        log.critical("An unexpected error occurred during 'config show'", error=str(e), exc_info=True)
        click.echo(f"Error: An unexpected issue occurred: {e}", err=True)
        ctx.exit(2)

    click.echo(pretty_repr(config, expand_all=True))

# 🔼⚙️
