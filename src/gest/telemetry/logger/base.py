# src/gest/telemetry/logger/base.py

"""
structlog configuration for the three ways gest runs: the dashboard (logs go
to the TUI log pane), headless `tail` (logs go to the console) and any of
them with an extra JSON log file.
"""

import logging
import sys
from typing import TYPE_CHECKING, Optional

import structlog
from structlog.typing import FilteringBoundLogger

from gest.telemetry.logger.processors import (
    add_emoji_processor,
    remove_extra_keys_processor,
)

try:
    from gest.tui.logging_handler import TextualLogHandler
    HAS_TUI = True
except ImportError:
    TextualLogHandler = None
    HAS_TUI = False

if TYPE_CHECKING:
    from gest.tui.app import GestTuiApp


BASE_LOGGER_NAME = "gest"

# Third-party loggers that are chatty below WARNING. watchdog logs every
# inotify event, which floods the log pane while `go test` writes build files.
NOISY_LOGGERS = ("watchdog", "asyncio")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_emoji_processor,
        remove_extra_keys_processor,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def _console_renderer(json_logs: bool, headless_mode: bool) -> structlog.types.Processor:
    if json_logs:
        return structlog.processors.JSONRenderer(sort_keys=True)
    # Headless: colour only when stdout is a terminal.
    colors = sys.stdout.isatty() if headless_mode else True
    return structlog.dev.ConsoleRenderer(colors=colors)


def _reset_root_logger(level: int) -> logging.Logger:
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return root_logger


def _add_file_handler(root_logger: logging.Logger, log_file: str, level: int) -> str | None:
    """Adds a JSON-lines file handler; returns an error message instead of raising."""
    try:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        return str(e)
    file_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer(sort_keys=True))
    )
    file_handler.setLevel(level)
    root_logger.addHandler(file_handler)
    return None


def setup_logging(
    level: int = logging.INFO,
    json_logs: bool = False,
    log_file: str | None = None,
    file_only: bool = False,
    tui_app_instance: Optional["GestTuiApp"] = None,
    headless_mode: bool = False,
) -> None:
    """
    Configures structlog (over stdlib logging) for the entire application.

    The console handler is skipped in TUI mode, where output would corrupt
    the screen, and when `file_only` is set.
    """
    is_tui_mode = tui_app_instance is not None

    structlog.configure(
        processors=_shared_processors(),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = _reset_root_logger(level)
    slog = structlog.get_logger(BASE_LOGGER_NAME)

    console_enabled = not is_tui_mode and not file_only
    if console_enabled:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(processor=_console_renderer(json_logs, headless_mode))
        )
        root_logger.addHandler(console_handler)

    if log_file:
        error = _add_file_handler(root_logger, log_file, level)
        if error is None:
            slog.info("File logging enabled", log_file=log_file)
        else:
            slog.error("Failed to set up file logging", log_file=log_file, error=error)

    if is_tui_mode:
        if HAS_TUI and TextualLogHandler:
            textual_handler = TextualLogHandler(app=tui_app_instance, level=level)
            # The Log widget shows ANSI codes verbatim.
            textual_handler.setFormatter(
                structlog.stdlib.ProcessorFormatter(processor=structlog.dev.ConsoleRenderer(colors=False))
            )
            root_logger.addHandler(textual_handler)
        else:
            slog.error("TUI mode active but textual is not installed.")

    slog.debug(
        "Logging configured",
        log_level=logging.getLevelName(level),
        json_console_format=json_logs,
        console_output_enabled=console_enabled,
        log_file=log_file or "None",
        tui_mode_active=is_tui_mode,
    )


StructLogger = FilteringBoundLogger

# 🔼⚙️
