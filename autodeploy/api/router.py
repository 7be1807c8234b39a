"""Main API router."""

from fastapi import APIRouter

from autodeploy.api.routes import deploy, health
from autodeploy.config import settings

router = APIRouter()

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(deploy.router, prefix=settings.admin_prefix, tags=["deployment"])
