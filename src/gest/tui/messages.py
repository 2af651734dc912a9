#
# src/gest/tui/messages.py
#
"""
Textual messages posted from the runtime to the dashboard.
"""

from typing import TYPE_CHECKING

from textual.message import Message

if TYPE_CHECKING:
    from gest.runtime.coordinator import DashboardSnapshot


class StateUpdate(Message):
    """Carries a fresh, immutable coordinator snapshot."""

    def __init__(self, snapshot: "DashboardSnapshot") -> None:
        self.snapshot = snapshot
        super().__init__()


class LogMessageUpdate(Message):
    """A log line destined for the event log pane."""

    def __init__(self, package: str | None, level: str, message: str) -> None:
        self.package = package
        self.level = level
        self.message = message
        super().__init__()

# 🔼⚙️
