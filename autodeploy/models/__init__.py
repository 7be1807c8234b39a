"""Data models for Autodeploy."""

from autodeploy.models.deployment import (
    BuildOnlyAccepted,
    DeploymentAccepted,
    DeploymentRecord,
    DeploymentStatus,
    DeployNowRequest,
    ErrorResponse,
    HistoryPage,
    InfoDocument,
    RestartAccepted,
    RestartRequest,
    StatusSnapshot,
)

__all__ = [
    # Records
    "DeploymentRecord",
    "DeploymentStatus",
    # Requests
    "DeployNowRequest",
    "RestartRequest",
    # Responses
    "DeploymentAccepted",
    "BuildOnlyAccepted",
    "RestartAccepted",
    "StatusSnapshot",
    "HistoryPage",
    "InfoDocument",
    "ErrorResponse",
]
