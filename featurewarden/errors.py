"""
Exceptions raised by featurewarden.

Degraded paths (cache misses, corrupt files, failed checks, failed AI
calls) return values instead of raising. Only these propagate.
"""


class WardenError(Exception):
    """Base class for featurewarden errors."""


class StoreWriteError(WardenError):
    """A verification result could not be persisted."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path


class InvalidTransitionError(WardenError):
    """The verification state machine was driven out of order."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Invalid transition: {current} -> {requested}")
        self.current = current
        self.requested = requested
