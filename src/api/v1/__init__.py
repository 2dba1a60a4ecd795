"""
API v1 package.

Contains versioned API routes for the staff onboarding API.
"""

from fastapi import APIRouter

from src.api.v1.admin import router as admin_router
from src.api.v1.routes import router as registration_router

router = APIRouter()
router.include_router(registration_router)
router.include_router(admin_router)

__all__ = ["router"]
