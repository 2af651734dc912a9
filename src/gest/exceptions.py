#
# src/gest/exceptions.py
#
"""
Exception hierarchy for gest.
"""


class GestError(Exception):
    """Base class for all gest errors."""

    pass


class ConfigurationError(GestError):
    """Raised when the configuration file is missing, malformed or invalid."""

    pass


class WorkspaceError(GestError):
    """Raised when the Go workspace cannot be located or listed."""

    def __init__(self, message: str, root: str | None = None, details: Exception | None = None):
        self.root = root
        self.details = details
        full_message = message
        if root:
            full_message += f" (Workspace: '{root}')"
        super().__init__(full_message)
        if details and hasattr(self, "add_note"):
            self.add_note(f"Original error: {type(details).__name__}: {details}")


class CacheError(GestError):
    """Raised when the on-disk state cache cannot be read or written."""

    pass


class RunnerError(GestError):
    """Raised when a test process cannot be started for a package job."""

    def __init__(self, message: str, package: str | None = None, details: Exception | None = None):
        self.package = package
        self.details = details
        full_message = message
        if package:
            full_message += f" (Package: '{package}')"
        super().__init__(full_message)
        if details and hasattr(self, "add_note"):
            self.add_note(f"Original error: {type(details).__name__}: {details}")

# 🔼⚙️
