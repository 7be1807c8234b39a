"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends

from autodeploy.core.events import DeploymentEventBus, get_event_bus
from autodeploy.core.orchestrator import DeploymentOrchestrator, get_orchestrator


async def get_deployments() -> DeploymentOrchestrator:
    """Get the deployment orchestrator."""
    return get_orchestrator()


async def get_events() -> DeploymentEventBus:
    """Get the event bus."""
    return get_event_bus()


# Type aliases for cleaner signatures
OrchestratorDep = Annotated[DeploymentOrchestrator, Depends(get_deployments)]
EventsDep = Annotated[DeploymentEventBus, Depends(get_events)]
