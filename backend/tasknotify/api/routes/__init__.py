"""API Routes module"""
from fastapi import APIRouter

from .linking import router as linking_router
from .preferences import router as preferences_router
from .notifications import router as notifications_router
from .channels import router as channels_router

# Main API router
api_router = APIRouter()

api_router.include_router(linking_router, prefix="/linking", tags=["Linking"])
api_router.include_router(preferences_router, prefix="/preferences", tags=["Preferences"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(channels_router, prefix="/channels", tags=["Channels"])

__all__ = ["api_router"]
