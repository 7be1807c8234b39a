"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from autodeploy import __version__
from autodeploy.api.deps import OrchestratorDep
from autodeploy.config import settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    environment: str
    uptime_seconds: float
    deploying: bool
    current_deployment_id: str | None = None
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check(orchestrator: OrchestratorDep) -> HealthResponse:
    """Report liveness and whether a deployment is in flight."""
    current = orchestrator.current
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        uptime_seconds=round(orchestrator.host.uptime(), 3),
        deploying=orchestrator.is_deploying,
        current_deployment_id=current.id if current else None,
        timestamp=datetime.now(timezone.utc),
    )
