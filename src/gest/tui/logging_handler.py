#
# src/gest/tui/logging_handler.py
#
"""
A stdlib logging handler that forwards formatted records to the TUI log pane.
"""

import logging
from typing import TYPE_CHECKING

from gest.tui.messages import LogMessageUpdate

if TYPE_CHECKING:
    from textual.app import App


def record_package(record: logging.LogRecord) -> str | None:
    """The `package` a log call was bound to, if any."""
    # structlog's ProcessorFormatter hands over the event dict as the record's msg.
    if isinstance(record.msg, dict):
        package = record.msg.get("package")
    else:
        package = getattr(record, "package", None)
    return package if isinstance(package, str) else None


class TextualLogHandler(logging.Handler):
    def __init__(self, app: "App", level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            package = record_package(record)
            message = self.format(record)
            self.app.post_message(LogMessageUpdate(package, record.levelname, message))
        except Exception:
            self.handleError(record)

# 🔼⚙️
