"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autodeploy import __version__
from autodeploy.api.middleware import RequestLoggingMiddleware
from autodeploy.api.router import router as api_router
from autodeploy.config import settings
from autodeploy.core.exceptions import AutodeployError
from autodeploy.core.host import get_host
from autodeploy.core.orchestrator import get_orchestrator
from autodeploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    host = get_host()
    orchestrator = get_orchestrator()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        admin_prefix=settings.admin_prefix,
        build_command=orchestrator.build_runner.command,
        started_at=host.started_at.isoformat(),
    )

    yield

    # Shutdown
    await orchestrator.background.drain()
    logger.info("application.shutdown", deploying=orchestrator.is_deploying)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Autodeploy API",
        description="Autonomous build-and-restart endpoints for the running server",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers
    @app.exception_handler(AutodeployError)
    async def autodeploy_error_handler(
        request: Request, exc: AutodeployError
    ) -> JSONResponse:
        """Handle application-specific errors."""
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": exc.message,
                "code": type(exc).__name__.upper(),
                "details": exc.details,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "An unexpected error occurred",
                "details": str(exc) if settings.is_development else None,
            },
        )

    # Include routers
    app.include_router(api_router)

    return app


# Create app instance
app = create_app()


def run() -> None:
    """Serve the app. Reloading stays off: the supervisor owns restarts."""
    import uvicorn

    uvicorn.run(
        "autodeploy.main:app",
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    run()
