"""Autodeploy - autonomous build-and-restart orchestrator."""

__version__ = "1.0.0"
