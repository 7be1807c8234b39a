"""Core functionality for Autodeploy."""

from autodeploy.core.exceptions import (
    AutodeployError,
    BuildFailedError,
    DeploymentBusyError,
    DeploymentRateLimitedError,
    SlotOccupiedError,
)
from autodeploy.core.build import BuildResult, BuildRunner
from autodeploy.core.events import DeploymentEventBus, Event, get_event_bus
from autodeploy.core.host import HostProcess, get_host
from autodeploy.core.jobs import BackgroundJobs, Job, JobSlot
from autodeploy.core.orchestrator import DeploymentOrchestrator, get_orchestrator

__all__ = [
    "AutodeployError",
    "BuildFailedError",
    "DeploymentBusyError",
    "DeploymentRateLimitedError",
    "SlotOccupiedError",
    "BuildResult",
    "BuildRunner",
    "DeploymentEventBus",
    "Event",
    "get_event_bus",
    "HostProcess",
    "get_host",
    "BackgroundJobs",
    "Job",
    "JobSlot",
    "DeploymentOrchestrator",
    "get_orchestrator",
]
