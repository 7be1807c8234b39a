"""Custom exceptions for Autodeploy."""

from typing import Any


class AutodeployError(Exception):
    """Base exception for Autodeploy."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DeploymentBusyError(AutodeployError):
    """A deployment is already in flight."""

    def __init__(self, current: Any = None):
        super().__init__("Deployment already in progress")
        self.current = current


class DeploymentRateLimitedError(AutodeployError):
    """Deployments requested faster than the minimum interval."""

    def __init__(self, wait_seconds: int, last_started_ms: int):
        super().__init__(
            f"Please wait {wait_seconds} seconds before next deployment",
            {"wait_seconds": wait_seconds},
        )
        self.wait_seconds = wait_seconds
        self.last_started_ms = last_started_ms


class BuildFailedError(AutodeployError):
    """The external build command failed, timed out or overflowed its buffer."""

    def __init__(self, message: str, output: str = ""):
        super().__init__(message, {"build_output": output} if output else None)
        self.output = output


class SlotOccupiedError(AutodeployError):
    """A job slot already holds a running job."""

    def __init__(self, slot: str):
        super().__init__(f"Job slot '{slot}' is occupied", {"slot": slot})
        self.slot = slot
