"""Host process facade.

The orchestrator never restarts anything itself: it exits, and the external
process supervisor is expected to launch a fresh process.
"""

import os
import platform
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from autodeploy.config import settings
from autodeploy.utils.logging import flush_logging, get_logger

logger = get_logger(__name__)


class HostProcess:
    """Facts about, and control over, the running interpreter."""

    def __init__(self):
        self._started_monotonic = time.monotonic()
        self.started_at = datetime.now(timezone.utc)

    def uptime(self) -> float:
        """Seconds since the process started."""
        return time.monotonic() - self._started_monotonic

    def server_started(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(seconds=self.uptime())

    def runtime_info(self) -> dict[str, Any]:
        return {
            "pythonVersion": platform.python_version(),
            "platform": sys.platform,
            "uptime": self.uptime(),
            "env": settings.app_env,
            "cwd": os.getcwd(),
            "pid": os.getpid(),
        }

    def exit(self, code: int = 0) -> None:
        """Terminate the process immediately with `code`."""
        logger.warning("host.exiting", code=code, pid=os.getpid())
        flush_logging()
        sys.stdout.flush()
        sys.stderr.flush()
        os._exit(code)


# Singleton instance
_host: HostProcess | None = None


def get_host() -> HostProcess:
    """Get the host process singleton."""
    global _host
    if _host is None:
        _host = HostProcess()
    return _host
