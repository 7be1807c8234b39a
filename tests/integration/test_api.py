"""Integration tests for API endpoints."""

import pytest
from httpx import AsyncClient

PREFIX = "/api/admin/deploy"


@pytest.fixture
def orchestrator(make_orchestrator):
    """Keep deployments pending long enough to observe them."""
    return make_orchestrator(start_delay=0.2)


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "environment" in data
        assert "timestamp" in data
        assert data["deploying"] is False
        assert data["current_deployment_id"] is None

    @pytest.mark.asyncio
    async def test_health_reports_deployment_in_flight(self, client: AsyncClient):
        accepted = (await client.post(f"{PREFIX}/now")).json()

        data = (await client.get("/health")).json()

        assert data["deploying"] is True
        assert data["current_deployment_id"] == accepted["deploymentId"]

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.headers["X-Request-ID"] == "abc-123"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestDeployNow:
    """Tests for POST /deploy/now."""

    @pytest.mark.asyncio
    async def test_accepted(self, client: AsyncClient):
        response = await client.post(
            f"{PREFIX}/now",
            json={"message": "test", "filesChanged": ["client/src/pages/home.tsx"]},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Deployment initiated"
        assert data["deploymentId"]
        assert data["estimatedTime"] == "30-60 seconds"
        assert len(data["steps"]) == 3

    @pytest.mark.asyncio
    async def test_empty_body_uses_defaults(self, client: AsyncClient, orchestrator):
        response = await client.post(f"{PREFIX}/now")

        assert response.status_code == 200
        assert orchestrator.current.message == "Deployment via Admin API"

    @pytest.mark.asyncio
    async def test_busy_returns_409(self, client: AsyncClient):
        first = await client.post(f"{PREFIX}/now", json={"message": "test"})
        second = await client.post(f"{PREFIX}/now", json={"message": "again"})

        assert second.status_code == 409
        data = second.json()
        assert data["success"] is False
        assert data["error"] == "Deployment already in progress"
        assert data["currentDeployment"]["id"] == first.json()["deploymentId"]

    @pytest.mark.asyncio
    async def test_rate_limited_returns_429(
        self, client: AsyncClient, orchestrator, clock
    ):
        await client.post(f"{PREFIX}/now", json={"skipBuild": True})
        await orchestrator.last_job.wait()

        clock.advance(2)
        response = await client.post(f"{PREFIX}/now", json={"skipBuild": True})

        assert response.status_code == 429
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Please wait 8 seconds before next deployment"
        assert data["waitTime"] == 8
        assert data["lastDeployment"] == int((clock.now - 2) * 1000)

    @pytest.mark.asyncio
    async def test_skip_build_deploys_and_exits(
        self, client: AsyncClient, orchestrator, host
    ):
        response = await client.post(f"{PREFIX}/now", json={"skipBuild": True})
        assert response.json()["estimatedTime"] == "5-10 seconds"

        await orchestrator.last_job.wait()

        history = (await client.get(f"{PREFIX}/history")).json()["history"]
        assert history[0]["status"] == "success"
        assert history[0]["duration"] is not None
        assert "buildOutput" not in history[0]
        assert "error" not in history[0]
        assert host.exit_codes == [0]

    @pytest.mark.asyncio
    async def test_unexpected_error_returns_500(
        self, client: AsyncClient, orchestrator, monkeypatch
    ):
        async def broken(request=None):
            raise RuntimeError("disk full")

        monkeypatch.setattr(orchestrator, "initiate_deployment", broken)

        response = await client.post(f"{PREFIX}/now")

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Failed to initiate deployment"
        assert data["details"] == "disk full"

    @pytest.mark.asyncio
    async def test_invalid_body(self, client: AsyncClient):
        response = await client.post(f"{PREFIX}/now", json={"filesChanged": "nope"})

        assert response.status_code == 422


class TestFailedBuild:
    """A deployment whose build command fails."""

    @pytest.fixture
    def orchestrator(self, make_orchestrator):
        return make_orchestrator(command="echo compiling; echo 'error TS2304' >&2; exit 1")

    @pytest.mark.asyncio
    async def test_failure_visible_in_history(
        self, client: AsyncClient, orchestrator, host
    ):
        await client.post(f"{PREFIX}/now", json={"buildFirst": True})
        await orchestrator.last_job.wait()

        response = await client.get(f"{PREFIX}/history", params={"limit": 1})
        latest = response.json()["history"][0]

        assert latest["status"] == "failed"
        assert latest["error"]
        assert latest["duration"] is not None
        assert "error TS2304" in latest["buildOutput"]
        assert host.exit_codes == []

        status_data = (await client.get(f"{PREFIX}/status")).json()
        assert status_data["isDeploying"] is False
        assert status_data["currentDeployment"] is None


class TestBuildOnlyAndRestart:
    """Tests for POST /deploy/build-only and /deploy/restart."""

    @pytest.mark.asyncio
    async def test_build_only(self, client: AsyncClient, orchestrator, host):
        response = await client.post(f"{PREFIX}/build-only")

        assert response.status_code == 200
        data = response.json()
        assert data == {
            "success": True,
            "message": "Build started",
            "note": "Build output will be logged to console",
        }

        await orchestrator.last_build_job.wait()
        assert host.exit_codes == []
        assert (await client.get(f"{PREFIX}/history")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_build_only_busy(self, client: AsyncClient):
        await client.post(f"{PREFIX}/now")

        response = await client.post(f"{PREFIX}/build-only")

        assert response.status_code == 409
        assert response.json()["error"] == "Deployment already in progress"

    @pytest.mark.asyncio
    async def test_restart(self, client: AsyncClient, orchestrator, host):
        response = await client.post(
            f"{PREFIX}/restart", json={"message": "backend hotfix"}
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Server restarting..."

        await orchestrator.background.drain()
        assert host.exit_codes == [0]

    @pytest.mark.asyncio
    async def test_restart_without_body(self, client: AsyncClient, orchestrator, host):
        response = await client.post(f"{PREFIX}/restart")

        assert response.status_code == 200
        await orchestrator.background.drain()
        assert host.exit_codes == [0]


class TestObservability:
    """Tests for status, history and info."""

    @pytest.mark.asyncio
    async def test_idle_status(self, client: AsyncClient):
        response = await client.get(f"{PREFIX}/status")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["isDeploying"] is False
        assert data["currentDeployment"] is None
        assert data["lastDeploymentTime"] is None
        assert data["canDeploy"] is True
        assert data["minIntervalMs"] == 10000
        assert data["serverUptime"] >= 0
        assert data["serverStarted"]

    @pytest.mark.asyncio
    async def test_status_while_deploying(self, client: AsyncClient):
        accepted = (await client.post(f"{PREFIX}/now")).json()

        data = (await client.get(f"{PREFIX}/status")).json()

        assert data["isDeploying"] is True
        assert data["canDeploy"] is False
        assert data["currentDeployment"]["id"] == accepted["deploymentId"]
        assert "duration" not in data["currentDeployment"]
        assert "error" not in data["currentDeployment"]
        assert data["lastDeploymentTime"] is not None

    @pytest.mark.asyncio
    async def test_history_limit(self, client: AsyncClient, orchestrator, clock):
        ids = []
        for _ in range(10):
            response = await client.post(f"{PREFIX}/now", json={"skipBuild": True})
            ids.append(response.json()["deploymentId"])
            await orchestrator.last_job.wait()
            clock.advance(10)

        response = await client.get(f"{PREFIX}/history", params={"limit": 5})

        data = response.json()
        assert data["success"] is True
        assert data["total"] == 10
        assert data["showing"] == 5
        assert [r["id"] for r in data["history"]] == list(reversed(ids[-5:]))

    @pytest.mark.asyncio
    async def test_history_rejects_negative_limit(self, client: AsyncClient):
        response = await client.get(f"{PREFIX}/history", params={"limit": -1})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_info(self, client: AsyncClient):
        response = await client.get(f"{PREFIX}/info")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["info"]["system"] == "Autonomous Deployment System"
        assert "GET /api/admin/deploy/status" in data["info"]["endpoints"]
        assert data["runtime"]["env"] == "development"
        assert data["runtime"]["cwd"]
