"""Deployment data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Record fields left out of the wire format until they are set
_ABSENT_WHEN_UNSET = ("build_output", "error", "duration")


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeploymentStatus(str, Enum):
    """Deployment lifecycle status."""

    PENDING = "pending"
    BUILDING = "building"
    DEPLOYING = "deploying"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILED)


class DeploymentRecord(CamelModel):
    """One deployment attempt."""

    id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    timestamp: datetime = Field(default_factory=utcnow, frozen=True)
    status: DeploymentStatus = DeploymentStatus.PENDING
    message: str = ""
    build_output: str | None = None
    error: str | None = None
    duration: int | None = None
    files_changed: list[str] = Field(default_factory=list)

    def finish(
        self,
        status: DeploymentStatus,
        duration_ms: int,
        error: str | None = None,
    ) -> None:
        """Move to a terminal status, recording the duration once."""
        if not status.is_terminal:
            raise ValueError(f"Not a terminal status: {status.value}")
        if self.duration is not None:
            raise ValueError(f"Deployment {self.id} already finished")

        self.status = status
        self.duration = duration_ms
        if error is not None:
            self.error = error

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler):
        data = handler(self)
        for name in _ABSENT_WHEN_UNSET:
            if getattr(self, name) is None:
                data.pop(name, None)
                data.pop(to_camel(name), None)
        return data


class DeployNowRequest(CamelModel):
    """Body of POST /deploy/now."""

    build_first: bool = True
    skip_build: bool = False
    message: str = "Deployment via Admin API"
    files_changed: list[str] = Field(default_factory=list)

    @property
    def will_build(self) -> bool:
        return self.build_first and not self.skip_build


class RestartRequest(CamelModel):
    """Body of POST /deploy/restart."""

    message: str = "Server restart via Admin API"


class DeploymentAccepted(CamelModel):
    """Returned when a deployment is accepted."""

    success: bool = True
    message: str = "Deployment initiated"
    deployment_id: str
    estimated_time: str
    steps: list[str]


class BuildOnlyAccepted(CamelModel):
    """Returned when a dry-run build is started."""

    success: bool = True
    message: str = "Build started"
    note: str = "Build output will be logged to console"


class RestartAccepted(CamelModel):
    """Returned when a restart is scheduled."""

    success: bool = True
    message: str = "Server restarting..."
    note: str = "Application will be back online in 5-10 seconds"


class StatusSnapshot(CamelModel):
    """Point-in-time view of the orchestrator."""

    success: bool = True
    is_deploying: bool
    current_deployment: DeploymentRecord | None = None
    last_deployment_time: datetime | None = None
    can_deploy: bool
    min_interval_ms: int
    server_uptime: float
    server_started: datetime


class HistoryPage(CamelModel):
    """Most-recent-first slice of the deployment history."""

    success: bool = True
    history: list[DeploymentRecord]
    total: int
    showing: int


class InfoDocument(CamelModel):
    """Descriptive document about the deployment system."""

    success: bool = True
    info: dict[str, Any]
    runtime: dict[str, Any]


class ErrorResponse(CamelModel):
    """Failure body shared by every deployment endpoint."""

    success: bool = False
    error: str
    details: Any = None
    current_deployment: DeploymentRecord | None = None
    last_deployment: int | None = None
    wait_time: int | None = None
