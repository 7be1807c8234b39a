"""Deployment control and observability endpoints."""

import asyncio
import json
from typing import Annotated, Any, AsyncIterator

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from autodeploy.api.deps import EventsDep, OrchestratorDep
from autodeploy.core.events import DeploymentEventBus, Event
from autodeploy.core.exceptions import DeploymentBusyError, DeploymentRateLimitedError
from autodeploy.models.deployment import (
    BuildOnlyAccepted,
    DeploymentAccepted,
    DeployNowRequest,
    ErrorResponse,
    HistoryPage,
    InfoDocument,
    RestartAccepted,
    RestartRequest,
    StatusSnapshot,
)
from autodeploy.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

TERMINAL_EVENTS = ("deployment_completed", "deployment_failed")
KEEPALIVE_SECONDS = 30.0

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


def error_response(status_code: int, error: str, **fields: Any) -> JSONResponse:
    """Render the shared failure body."""
    body = ErrorResponse(error=error, **fields)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.post(
    "/deploy/now",
    response_model=DeploymentAccepted,
    responses={
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
        **ERROR_RESPONSES,
    },
    summary="Build and restart the server",
    description="Accepts the deployment and returns immediately; the build and restart run in background.",
)
async def deploy_now(
    orchestrator: OrchestratorDep,
    data: DeployNowRequest | None = None,
) -> DeploymentAccepted | JSONResponse:
    """Start a full deployment."""
    try:
        return await orchestrator.initiate_deployment(data)
    except DeploymentBusyError as e:
        return error_response(
            status.HTTP_409_CONFLICT, e.message, current_deployment=e.current
        )
    except DeploymentRateLimitedError as e:
        return error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            e.message,
            last_deployment=e.last_started_ms,
            wait_time=e.wait_seconds,
        )
    except Exception as e:
        logger.exception("deploy.initiation_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to initiate deployment",
            details=str(e),
        )


@router.post(
    "/deploy/build-only",
    response_model=BuildOnlyAccepted,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorResponse}, **ERROR_RESPONSES},
    summary="Build without restarting",
)
async def build_only(orchestrator: OrchestratorDep) -> BuildOnlyAccepted | JSONResponse:
    """Run the build command as a dry run."""
    try:
        return await orchestrator.build_only()
    except DeploymentBusyError as e:
        return error_response(status.HTTP_409_CONFLICT, e.message)
    except Exception as e:
        logger.exception("deploy.build_only_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to start build",
            details=str(e),
        )


@router.post(
    "/deploy/restart",
    response_model=RestartAccepted,
    responses=ERROR_RESPONSES,
    summary="Restart without building",
)
async def restart(
    orchestrator: OrchestratorDep,
    data: RestartRequest | None = None,
) -> RestartAccepted | JSONResponse:
    """Exit the process so the supervisor relaunches it."""
    data = data or RestartRequest()
    try:
        return await orchestrator.restart_only(data.message)
    except Exception as e:
        logger.exception("deploy.restart_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to restart server",
            details=str(e),
        )


@router.get(
    "/deploy/status",
    response_model=StatusSnapshot,
    responses=ERROR_RESPONSES,
    summary="Current deployment status",
)
async def deployment_status(orchestrator: OrchestratorDep) -> StatusSnapshot | JSONResponse:
    try:
        return orchestrator.get_status()
    except Exception as e:
        logger.exception("deploy.status_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to get deployment status",
            details=str(e),
        )


@router.get(
    "/deploy/history",
    response_model=HistoryPage,
    responses=ERROR_RESPONSES,
    summary="Deployment history, most recent first",
)
async def deployment_history(
    orchestrator: OrchestratorDep,
    limit: Annotated[int, Query(ge=0)] = 20,
) -> HistoryPage | JSONResponse:
    try:
        return orchestrator.get_history(limit)
    except Exception as e:
        logger.exception("deploy.history_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to get deployment history",
            details=str(e),
        )


@router.get(
    "/deploy/info",
    response_model=InfoDocument,
    responses=ERROR_RESPONSES,
    summary="About the deployment system",
)
async def deployment_info(orchestrator: OrchestratorDep) -> InfoDocument | JSONResponse:
    try:
        return orchestrator.get_info()
    except Exception as e:
        logger.exception("deploy.info_error")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to get deployment info",
            details=str(e),
        )


async def event_stream(
    events: DeploymentEventBus,
    initial: dict[str, Any],
    until_terminal: bool = False,
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE messages for deployment events."""
    subscriber_id, queue = events.subscribe()

    try:
        yield {"event": "connected", "data": json.dumps(initial)}

        while True:
            try:
                event: Event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield {"event": "keepalive", "data": "{}"}
                continue

            yield event.to_sse()

            if until_terminal and event.event_type in TERMINAL_EVENTS:
                break

    finally:
        events.unsubscribe(subscriber_id)


@router.get(
    "/deploy/stream",
    summary="Stream deployment events (SSE)",
)
async def stream_deployment_events(
    orchestrator: OrchestratorDep,
    events: EventsDep,
    until_terminal: Annotated[bool, Query(alias="untilTerminal")] = False,
) -> EventSourceResponse:
    """Stream deployment lifecycle events using Server-Sent Events."""
    snapshot = orchestrator.get_status()
    initial = {
        "isDeploying": snapshot.is_deploying,
        "currentDeployment": (
            snapshot.current_deployment.id if snapshot.current_deployment else None
        ),
    }
    return EventSourceResponse(event_stream(events, initial, until_terminal))
