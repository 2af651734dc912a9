#
# src/gest/runtime/__init__.py
#
"""
Runtime components: the run orchestrator, the coordinator and the consumer
loop that ties them together.
"""
from .coordinator import Coordinator, DashboardSnapshot, RunMode, RunState, SelectionState
from .orchestrator import ActiveRun, RunOrchestrator
from .session import WatchSession

__all__ = [
    "ActiveRun",
    "Coordinator",
    "DashboardSnapshot",
    "RunMode",
    "RunOrchestrator",
    "RunState",
    "SelectionState",
    "WatchSession",
]

# 🔼⚙️
