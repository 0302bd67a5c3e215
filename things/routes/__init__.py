"""
Routes module for the things service.

Only operational endpoints live here; the thing API itself is served by
the platform gateway.
"""

from fastapi import APIRouter

from .healthz import router as healthz_router

api_router = APIRouter()

api_router.include_router(healthz_router)

__all__ = [
    "api_router",
    "healthz_router",
]
