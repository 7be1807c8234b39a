"""Pytest configuration and fixtures."""

from typing import Any, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from autodeploy.api.deps import get_deployments, get_events
from autodeploy.core.build import BuildRunner
from autodeploy.core.events import DeploymentEventBus
from autodeploy.core.host import HostProcess
from autodeploy.core.orchestrator import DeploymentOrchestrator
from autodeploy.main import app


class RecordingHost(HostProcess):
    """Host that records exit requests instead of exiting."""

    def __init__(self):
        super().__init__()
        self.exit_codes: list[int] = []

    def exit(self, code: int = 0) -> None:
        self.exit_codes.append(code)


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> DeploymentEventBus:
    """Create a fresh event bus."""
    return DeploymentEventBus()


@pytest.fixture
def make_orchestrator(
    host: RecordingHost, clock: FakeClock, events: DeploymentEventBus
) -> Callable[..., DeploymentOrchestrator]:
    """Factory for orchestrators with test doubles and no delays."""

    def factory(command: str = "echo built", **overrides: Any) -> DeploymentOrchestrator:
        options: dict[str, Any] = {
            "build_runner": BuildRunner(command=command, timeout=10),
            "host": host,
            "events": events,
            "clock": clock,
            "start_delay": 0,
            "exit_delay": 0,
            "build_only_delay": 0,
        }
        options.update(overrides)
        return DeploymentOrchestrator(**options)

    return factory


@pytest.fixture
def orchestrator(make_orchestrator) -> DeploymentOrchestrator:
    return make_orchestrator()


@pytest.fixture
async def client(
    orchestrator: DeploymentOrchestrator, events: DeploymentEventBus
) -> AsyncClient:
    """Async test client wired to the test orchestrator."""
    app.dependency_overrides[get_deployments] = lambda: orchestrator
    app.dependency_overrides[get_events] = lambda: events

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Let background work finish before the loop closes
    if orchestrator.last_job is not None:
        await orchestrator.last_job.wait()
    await orchestrator.background.drain()
    app.dependency_overrides.clear()
