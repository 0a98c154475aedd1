"""API Routes Package

This module aggregates all route handlers into a single router
that can be included in the main FastAPI application.
"""

from fastapi import APIRouter

from .audio import router as audio_router
from .profile import router as profile_router
from .tasks import router as tasks_router


# Create main API router
api_router = APIRouter(prefix="/api")

# Include all sub-routers
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
api_router.include_router(audio_router, prefix="/audio", tags=["audio"])
api_router.include_router(profile_router, prefix="/profile", tags=["profile"])

__all__ = ["api_router"]
