# src/gest/runtime/tui_interface.py

"""
Provides a safe interface for pushing coordinator snapshots to the Textual TUI.
"""

from typing import TYPE_CHECKING, Optional

import structlog

from gest.telemetry import StructLogger

# Conditional imports for TUI components to avoid hard dependency
try:
    if TYPE_CHECKING:
        from gest.tui.app import GestTuiApp
    from gest.tui.messages import LogMessageUpdate, StateUpdate
    TEXTUAL_AVAILABLE = True
except ImportError:
    TEXTUAL_AVAILABLE = False
    GestTuiApp = None  # type: ignore
    StateUpdate = None  # type: ignore
    LogMessageUpdate = None  # type: ignore

if TYPE_CHECKING:
    from gest.runtime.coordinator import DashboardSnapshot

log: StructLogger = structlog.get_logger("runtime.tui_interface")


class TUIInterface:
    """A bridge for communicating with the Textual UI; inert when no app is attached."""

    def __init__(self, app: Optional["GestTuiApp"]):
        self.app = app
        self.is_active = bool(app and TEXTUAL_AVAILABLE)
        if self.is_active:
            log.debug("TUI Interface initialized and active.")

    def post_state_update(self, snapshot: "DashboardSnapshot") -> None:
        """Posts a coordinator snapshot to the TUI. Snapshots are immutable, so no copy is made."""
        if not self.is_active or not self.app or not StateUpdate:
            return

        try:
            self.app.post_message(StateUpdate(snapshot))
        except Exception as e:
            # This log won't go to the TUI to prevent loops, but will go to file if configured.
            log.warning("Failed to post state update to TUI", error=str(e), exc_info=False)

    def post_log_update(self, package: str | None, level: str, message: str) -> None:
        """Posts a log message to the TUI."""
        if not self.is_active or not self.app or not LogMessageUpdate:
            return

        try:
            self.app.post_message(LogMessageUpdate(package, level.upper(), message))
        except Exception as e:
            log.warning("Failed to post log message to TUI", error=str(e), exc_info=False)

# 🔼⚙️
