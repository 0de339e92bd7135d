"""
Exception types for livetweak.

Lookups, waits and patches report their failures as outcome values rather than
exceptions; only configuration problems are raised to callers.
"""


class LivetweakError(Exception):
    """Base class for livetweak errors."""


class ConfigError(LivetweakError):
    """Raised when a profile cannot be loaded or fails validation."""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        if key:
            message = f"{key}: {message}"
        super().__init__(message)


class StepFailed(LivetweakError):
    """Raised inside a workflow run to abort the remaining steps."""

    def __init__(self, reason: str, index: int):
        self.reason = reason
        self.index = index
        super().__init__(f"step {index + 1}: {reason}")
