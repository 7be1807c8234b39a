"""Deployment Orchestrator.

Serializes build-and-restart cycles of the running server. A deployment is
accepted synchronously, then runs in the background:

    pending -> building -> deploying -> success   (process exits with 0)
    pending -> building -> failed                 (server keeps running)
    pending -> deploying -> success               (build skipped)

State lives only in memory; restarting the process, which is what a
successful deployment does, resets it.
"""

import asyncio
import math
import time
from collections import deque
from datetime import datetime, timezone
from typing import Callable

from autodeploy import __version__
from autodeploy.config import settings
from autodeploy.core.build import BuildResult, BuildRunner
from autodeploy.core.events import DeploymentEventBus, get_event_bus
from autodeploy.core.exceptions import (
    BuildFailedError,
    DeploymentBusyError,
    DeploymentRateLimitedError,
)
from autodeploy.core.host import HostProcess, get_host
from autodeploy.core.jobs import BackgroundJobs, Job, JobSlot
from autodeploy.models.deployment import (
    BuildOnlyAccepted,
    DeploymentAccepted,
    DeploymentRecord,
    DeploymentStatus,
    DeployNowRequest,
    HistoryPage,
    InfoDocument,
    RestartAccepted,
    StatusSnapshot,
)
from autodeploy.utils.logging import get_logger


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class DeploymentOrchestrator:
    """Owns all deployment state for the process."""

    def __init__(
        self,
        build_runner: BuildRunner | None = None,
        host: HostProcess | None = None,
        events: DeploymentEventBus | None = None,
        clock: Callable[[], float] | None = None,
        min_interval_ms: int | None = None,
        history_size: int | None = None,
        start_delay: float | None = None,
        exit_delay: float | None = None,
        build_only_delay: float | None = None,
    ):
        self.build_runner = build_runner or BuildRunner()
        self.host = host or get_host()
        self.events = events or get_event_bus()
        self.logger = get_logger("orchestrator")

        self._clock = clock or time.time
        self.min_interval_ms = (
            settings.deploy_min_interval_ms if min_interval_ms is None else min_interval_ms
        )
        self.start_delay = (
            settings.deploy_start_delay_seconds if start_delay is None else start_delay
        )
        self.exit_delay = (
            settings.deploy_exit_delay_seconds if exit_delay is None else exit_delay
        )
        self.build_only_delay = (
            settings.deploy_build_only_delay_seconds
            if build_only_delay is None
            else build_only_delay
        )

        self._history: deque[DeploymentRecord] = deque(
            maxlen=settings.deploy_history_size if history_size is None else history_size
        )
        self._current: DeploymentRecord | None = None
        self._last_start_ms: int | None = None
        self._slot = JobSlot("deployment")
        self._background = BackgroundJobs()

        # Most recent handles, for callers that want to await the work
        self.last_job: Job | None = None
        self.last_build_job: Job | None = None
        self.last_restart_job: Job | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_deploying(self) -> bool:
        return self._slot.busy

    @property
    def current(self) -> DeploymentRecord | None:
        return self._current

    @property
    def background(self) -> BackgroundJobs:
        return self._background

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _rate_limit_remaining_ms(self, now_ms: int) -> int:
        if self._last_start_ms is None:
            return 0
        return max(0, self.min_interval_ms - (now_ms - self._last_start_ms))

    def _record(self, record: DeploymentRecord) -> None:
        self._history.append(record)

    def _transition(self, record: DeploymentRecord, status: DeploymentStatus) -> None:
        record.status = status
        self.logger.info(
            "deployment.status_changed",
            deployment_id=record.id,
            status=status.value,
            message=record.message,
        )
        self.events.publish_status_changed(record.id, status.value)

    def _fail(self, record: DeploymentRecord, error: str, start: float) -> None:
        duration_ms = _elapsed_ms(start)
        record.finish(DeploymentStatus.FAILED, duration_ms, error=error)
        self.logger.error(
            "deployment.failed",
            deployment_id=record.id,
            error=error,
            duration_ms=duration_ms,
        )
        self.events.publish_deployment_failed(record.id, error, duration_ms)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def initiate_deployment(
        self, request: DeployNowRequest | None = None
    ) -> DeploymentAccepted:
        """Accept a deployment and schedule it in the background.

        Raises:
            DeploymentBusyError: A deployment is already in flight
            DeploymentRateLimitedError: The previous one started too recently
        """
        request = request or DeployNowRequest()

        if self.is_deploying:
            self.logger.info(
                "deployment.rejected_busy",
                current_id=self._current.id if self._current else None,
            )
            raise DeploymentBusyError(
                self._current.model_copy(deep=True) if self._current else None
            )

        now_ms = self._now_ms()
        remaining_ms = self._rate_limit_remaining_ms(now_ms)
        if remaining_ms > 0:
            wait_seconds = math.ceil(remaining_ms / 1000)
            self.logger.info("deployment.rate_limited", wait_seconds=wait_seconds)
            raise DeploymentRateLimitedError(wait_seconds, self._last_start_ms or 0)

        record = DeploymentRecord(
            message=request.message,
            files_changed=list(request.files_changed),
        )

        job: Job | None = None
        try:
            self._last_start_ms = now_ms
            self._current = record
            job = self._slot.submit(
                self._execute, record, request.will_build, delay=self.start_delay
            )
            self._record(record)
        except Exception:
            self.logger.exception("deployment.initiation_failed", deployment_id=record.id)
            if job is not None:
                self._slot.discard(job)
            self._current = None
            raise

        self.last_job = job

        self.logger.info(
            "deployment.status_changed",
            deployment_id=record.id,
            status=record.status.value,
            message=record.message,
            files_changed=record.files_changed,
        )
        self.events.publish(
            "deployment_accepted",
            deployment_id=record.id,
            will_build=request.will_build,
        )

        if request.will_build:
            return DeploymentAccepted(
                deployment_id=record.id,
                estimated_time="30-60 seconds",
                steps=[
                    f"1. Building application ({self.build_runner.command})",
                    "2. Restarting server",
                    "3. Changes live!",
                ],
            )
        return DeploymentAccepted(
            deployment_id=record.id,
            estimated_time="5-10 seconds",
            steps=["1. Restarting server", "2. Changes live!"],
        )

    async def _execute(self, record: DeploymentRecord, will_build: bool) -> DeploymentRecord:
        """Background half of a deployment. Never raises."""
        start = time.perf_counter()

        try:
            if will_build:
                self._transition(record, DeploymentStatus.BUILDING)
                try:
                    result = await self.build_runner.run()
                except BuildFailedError as e:
                    record.build_output = e.output
                    self._fail(record, e.message, start)
                    return record

                record.build_output = result.output
                self.events.publish(
                    "build_output",
                    deployment_id=record.id,
                    output_len=len(result.output),
                    duration_ms=result.duration_ms,
                )

            self._transition(record, DeploymentStatus.DEPLOYING)

            duration_ms = _elapsed_ms(start)
            record.finish(DeploymentStatus.SUCCESS, duration_ms)
            record.message += f" (completed in {duration_ms}ms)"
            self.logger.info(
                "deployment.succeeded",
                deployment_id=record.id,
                duration_ms=duration_ms,
            )
            self.events.publish_deployment_completed(record.id, duration_ms)

            # Let logs and open responses flush before the process goes away
            await asyncio.sleep(self.exit_delay)

            self._current = None
            self.host.exit(0)
            return record

        except Exception as e:
            self.logger.exception("deployment.crashed", deployment_id=record.id)
            if not record.status.is_terminal:
                self._fail(record, str(e) or type(e).__name__, start)
            return record

        finally:
            if self._current is record:
                self._current = None

    async def build_only(self) -> BuildOnlyAccepted:
        """Start a dry-run build in the background.

        Shares only the busy check with deployments: it creates no record,
        leaves the rate limit alone and never exits the process.
        """
        if self.is_deploying:
            raise DeploymentBusyError(
                self._current.model_copy(deep=True) if self._current else None
            )

        self.last_build_job = self._background.spawn(
            "build-only", self._run_build_only, delay=self.build_only_delay
        )
        self.logger.info("deployment.build_only.accepted")
        return BuildOnlyAccepted()

    async def _run_build_only(self) -> BuildResult | None:
        self.events.publish("build_only_started")
        try:
            result = await self.build_runner.run()
        except BuildFailedError as e:
            self.logger.error(
                "deployment.build_only.failed", error=e.message, output=e.output
            )
            self.events.publish("build_only_failed", error=e.message)
            return None
        except Exception as e:
            self.logger.exception("deployment.build_only.crashed")
            self.events.publish("build_only_failed", error=str(e))
            return None

        self.logger.info(
            "deployment.build_only.completed",
            duration_ms=result.duration_ms,
            output=result.output,
        )
        self.events.publish("build_only_completed", duration_ms=result.duration_ms)
        return result

    async def restart_only(
        self, message: str = "Server restart via Admin API"
    ) -> RestartAccepted:
        """Exit the process shortly so the supervisor relaunches it."""
        self.logger.info("deployment.restart.scheduled", message=message)
        self.events.publish("restart_scheduled", message=message)
        self.last_restart_job = self._background.spawn(
            "restart", self._restart, delay=self.exit_delay
        )
        return RestartAccepted()

    async def _restart(self) -> None:
        self.host.exit(0)

    def get_status(self) -> StatusSnapshot:
        now_ms = self._now_ms()
        last_time = (
            datetime.fromtimestamp(self._last_start_ms / 1000, tz=timezone.utc)
            if self._last_start_ms is not None
            else None
        )
        return StatusSnapshot(
            is_deploying=self.is_deploying,
            current_deployment=(
                self._current.model_copy(deep=True) if self._current else None
            ),
            last_deployment_time=last_time,
            can_deploy=not self.is_deploying
            and self._rate_limit_remaining_ms(now_ms) == 0,
            min_interval_ms=self.min_interval_ms,
            server_uptime=self.host.uptime(),
            server_started=self.host.server_started(),
        )

    def get_history(self, limit: int = 20) -> HistoryPage:
        """Up to `limit` records, most recent first."""
        records = list(self._history)
        selected = records[-limit:][::-1] if limit > 0 else []
        return HistoryPage(
            history=[r.model_copy(deep=True) for r in selected],
            total=len(records),
            showing=len(selected),
        )

    def get_info(self) -> InfoDocument:
        prefix = settings.admin_prefix.rstrip("/")
        interval_s = self.min_interval_ms / 1000
        return InfoDocument(
            info={
                "system": "Autonomous Deployment System",
                "version": __version__,
                "buildCommand": self.build_runner.command,
                "capabilities": [
                    f"Build application ({self.build_runner.command})",
                    "Restart server process",
                    "Deploy backend changes without build",
                    "Deploy frontend changes with build",
                    "Deployment history tracking",
                    f"Rate limiting ({interval_s:g}s minimum interval)",
                    "Build output logging",
                    "Live deployment event stream",
                ],
                "endpoints": {
                    f"POST {prefix}/deploy/now": "Full deployment (build + restart)",
                    f"POST {prefix}/deploy/build-only": "Build without restart (testing)",
                    f"POST {prefix}/deploy/restart": "Restart without build (backend only)",
                    f"GET {prefix}/deploy/status": "Current deployment status",
                    f"GET {prefix}/deploy/history": "Deployment history",
                    f"GET {prefix}/deploy/info": "This information endpoint",
                    f"GET {prefix}/deploy/stream": "Deployment events (SSE)",
                },
                "usage": {
                    "Frontend changes": "Use /deploy/now with buildFirst: true (default)",
                    "Backend changes": "Use /deploy/restart (faster)",
                    "Testing build": "Use /deploy/build-only",
                    "Full deploy": "Use /deploy/now with message describing changes",
                },
                "timing": {
                    "Backend restart": "5-10 seconds",
                    "Frontend build + restart": "30-60 seconds",
                    "Rate limit": f"{interval_s:g} seconds minimum between deployments",
                },
                "notes": [
                    "All deployments run in background - API responds immediately",
                    "Server will restart automatically after deployment",
                    "Build errors are logged and prevent deployment",
                    f"Deployment history is kept in memory (last {self._history.maxlen})",
                    "The process supervisor restarts the server on exit",
                ],
            },
            runtime=self.host.runtime_info(),
        )


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = DeploymentOrchestrator()
    return _orchestrator

